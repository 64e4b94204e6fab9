"""Persist the retained OCR output of each processed image."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, List, Sequence

import structlog

from .inference import InferenceResult

LOGGER = structlog.get_logger(__name__)


def result_json_name(result: InferenceResult, position: int) -> str:
    stem = result.input_path.stem
    if position == 0:
        return f"{stem}_res.json"
    return f"{stem}_{position}_res.json"


class ResultSink:
    """Write one visualization and one JSON document per retained result.

    Engine-native results (PaddleOCR) render and save themselves; plain results
    are written as ``<stem>_res.json`` with a ``rec_texts`` array, which is the
    layout the bundled scorer reads back.
    """

    def __init__(self, output_dir: Path, echo: Callable[[str], None] = print):
        self.output_dir = Path(output_dir)
        self.echo = echo

    def persist(self, results: Sequence[InferenceResult]) -> List[str]:
        warnings: List[str] = []
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            message = f"Cannot create output directory {self.output_dir}: {exc}"
            LOGGER.debug("sink_mkdir_failed", path=str(self.output_dir), error=str(exc))
            return [message]
        self.echo(f"  [OUTPUT] Processing {len(results)} output(s)...")
        for position, result in enumerate(results):
            label = f"    [OUTPUT {position + 1}]"
            self.echo(f"{label} Printing results...")
            warnings.extend(self._guard("text", result, self._render, position))
            self.echo(f"{label} Saving to image...")
            warnings.extend(self._guard("visualization", result, self._save_image, position))
            self.echo(f"{label} Saving to JSON...")
            warnings.extend(self._guard("json", result, self._save_json, position))
        return warnings

    def _guard(self, kind, result, action, position):  # type: ignore[no-untyped-def]
        try:
            action(result, position)
        except Exception as exc:
            LOGGER.debug(
                "sink_output_failed",
                artifact=kind,
                path=str(result.input_path),
                error=str(exc),
            )
            verb = "render" if kind == "text" else "save"
            return [f"Failed to {verb} {kind} for {result.input_path.name}: {exc}"]
        return []

    def _render(self, result: InferenceResult, position: int) -> None:
        printer = getattr(result.raw, "print", None)
        if callable(printer):
            printer()
        else:
            self.echo(result.render_text())

    def _save_image(self, result: InferenceResult, position: int) -> None:
        saver = getattr(result.raw, "save_to_img", None)
        if not callable(saver):
            LOGGER.debug("sink_no_visualization", path=str(result.input_path))
            return
        saver(str(self.output_dir))

    def _save_json(self, result: InferenceResult, position: int) -> None:
        saver = getattr(result.raw, "save_to_json", None)
        if callable(saver):
            saver(str(self.output_dir))
            return
        target = self.output_dir / result_json_name(result, position)
        target.write_text(
            json.dumps(result.to_dict(), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
