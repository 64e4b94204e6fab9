"""Command line interface for the OCR benchmark."""
from __future__ import annotations

import argparse
import dataclasses
import sys
from pathlib import Path
from typing import Iterable, Optional

from .config import SUPPORTED_ENGINES, BenchmarkConfig, load_config
from .discovery import require_image_paths
from .errors import ConfigError, EngineInitError, NoImagesFoundError
from .log import configure_logging
from .runner import BenchmarkRunner

SAMPLE_PREVIEW = 5


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ocrbench",
        description="Benchmark OCR latency, throughput and accuracy over a batch of images",
        epilog=(
            "examples:\n"
            "  ocrbench ./general_ocr_002.png\n"
            "  ocrbench ./images/\n"
            "  ocrbench img1.png img2.jpg img3.png"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "paths",
        nargs="*",
        metavar="image_path_or_directory",
        help="Image files and/or directories searched recursively",
    )
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--trials", type=int, default=None)
    parser.add_argument("--engine", type=str, choices=SUPPORTED_ENGINES, default=None)
    parser.add_argument("--device", type=str, default=None)
    parser.add_argument("--output-dir", type=str, default=None)
    parser.add_argument("--ground-truth", type=str, default=None)
    parser.add_argument("--no-accuracy", action="store_true", default=False)
    parser.add_argument("--scorer-timeout", type=float, default=None)
    parser.add_argument("--report-dir", type=str, default=None)
    parser.add_argument("--log-level", type=str, default=None)
    return parser


def apply_overrides(config: BenchmarkConfig, args: argparse.Namespace) -> BenchmarkConfig:
    if args.trials is not None:
        config.trials = args.trials
    if args.engine:
        config.engine = args.engine
    if args.device:
        config.engine_config = dataclasses.replace(config.engine_config, device=args.device)
    if args.output_dir:
        config.output_dir = args.output_dir
    if args.ground_truth:
        config.accuracy.ground_truth = args.ground_truth
    if args.no_accuracy:
        config.accuracy.enabled = False
    if args.scorer_timeout is not None:
        config.accuracy.timeout = args.scorer_timeout
    if args.report_dir:
        config.report_dir = args.report_dir
    return config.validate()


def _err(line: str) -> None:
    print(line, file=sys.stderr)


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as exc:
        # argparse exits 2 on usage errors; --help exits 0
        return 0 if exc.code in (0, None) else 1
    if not args.paths:
        parser.print_usage(sys.stderr)
        _err("ocrbench: error: at least one image path or directory is required")
        return 1
    configure_logging(args.log_level)

    try:
        config = apply_overrides(load_config(args.config), args)
    except ConfigError as exc:
        _err(f"[ERROR] Invalid configuration: {exc}")
        return 1

    print(f"[INFO] Collecting image paths from {len(args.paths)} input arguments...")
    try:
        images = require_image_paths(args.paths, warn=_err)
    except NoImagesFoundError as exc:
        _err("[ERROR] No valid image files found!")
        _err(f"[ERROR] {exc}")
        return 1

    print(f"[SUCCESS] Found {len(images)} images to process")
    print("[INFO] Sample images to be processed:")
    for position, image in enumerate(images[:SAMPLE_PREVIEW], start=1):
        print(f"  [{position}] {image}")
    if len(images) > SAMPLE_PREVIEW:
        print(f"  ... and {len(images) - SAMPLE_PREVIEW} more images")

    runner = BenchmarkRunner(config)
    try:
        runner.initialize()
    except EngineInitError as exc:
        _err(f"[ERROR] Failed to initialize OCR engine: {exc}")
        return 1
    report = runner.run(images)
    return 1 if report.failures else 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
