"""Expand command line arguments into the list of images to benchmark."""
from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set

import structlog

from .errors import NoImagesFoundError

LOGGER = structlog.get_logger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp", ".tiff"}

WarnFn = Callable[[str], None]


def _stderr_warning(message: str) -> None:
    print(message, file=sys.stderr)


def is_image_file(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS


def collect_image_paths(
    inputs: Iterable[str], warn: Optional[WarnFn] = None
) -> List[Path]:
    """Resolve files and directories into an ordered list of image paths.

    Directories are walked recursively, depth first, with entries in sorted
    order. Paths that are neither a directory nor an image file are reported
    through ``warn`` and skipped; the caller decides what an empty result means.
    """

    warn = warn or _stderr_warning
    images: List[Path] = []
    for raw in inputs:
        path = Path(raw)
        if path.is_dir():
            _walk_directory(path, images, warn, visited=set())
        elif is_image_file(path):
            images.append(path)
        else:
            warn(f"Warning: Skipping invalid path: {raw}")
            LOGGER.debug("skip_invalid_path", path=raw)
    return images


def _walk_directory(
    directory: Path, images: List[Path], warn: WarnFn, visited: Set[str]
) -> None:
    real = os.path.realpath(directory)
    if real in visited:
        LOGGER.debug("skip_visited_directory", path=str(directory))
        return
    visited.add(real)
    try:
        entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
    except OSError as exc:
        warn(f"Warning: Cannot read directory {directory}: {exc.strerror or exc}")
        LOGGER.debug("unreadable_directory", path=str(directory), error=str(exc))
        return
    for entry in entries:
        if entry.is_dir():
            _walk_directory(entry, images, warn, visited)
        elif is_image_file(entry):
            images.append(entry)


def require_image_paths(
    inputs: Iterable[str], warn: Optional[WarnFn] = None
) -> List[Path]:
    """Like :func:`collect_image_paths` but an empty result is an error."""

    images = collect_image_paths(inputs, warn=warn)
    if not images:
        raise NoImagesFoundError(
            "Please check that the specified paths contain image files ("
            + ", ".join(sorted(IMAGE_EXTENSIONS))
            + ")"
        )
    return images
