"""High level orchestration of a benchmark run."""
from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Callable, Optional, Sequence

import structlog

from .aggregate import BatchAggregator
from .config import BenchmarkConfig
from .errors import AggregateUndefinedError, EngineInitError, TrialError
from .inference import OCREngine, create_engine
from .metrics import BatchReport, ImageFailure, ImageOutcome, ImageSuccess, PerImageMetrics
from .report import per_image_line, progress_line, summary_lines, timing_lines, write_reports
from .scoring import AccuracyCorrelator
from .sink import ResultSink
from .trials import NS_PER_MS, TrialRunner

LOGGER = structlog.get_logger(__name__)

Echo = Callable[[str], None]


def _stderr(line: str) -> None:
    print(line, file=sys.stderr)


class BenchmarkRunner:
    """Drive discovery output through trials, persistence, scoring and aggregation."""

    def __init__(
        self,
        config: BenchmarkConfig,
        engine_factory: Callable[[BenchmarkConfig], OCREngine] = create_engine,
        out: Echo = print,
        err: Echo = _stderr,
        clock: Callable[[], int] = time.perf_counter_ns,
    ):
        self.config = config
        self.engine_factory = engine_factory
        self.out = out
        self.err = err
        self.clock = clock
        self.logger = LOGGER.bind(module="runner")
        self.engine: Optional[OCREngine] = None
        self.init_ms = 0
        self.sink = ResultSink(Path(config.output_dir), echo=out)
        self.correlator: Optional[AccuracyCorrelator] = None
        if config.accuracy.enabled:
            self.correlator = AccuracyCorrelator(
                command=config.accuracy.command,
                ground_truth=Path(config.accuracy.ground_truth),
                output_dir=Path(config.output_dir),
                timeout=config.accuracy.timeout,
            )
        self._trial_runner: Optional[TrialRunner] = None

    def initialize(self) -> int:
        """Construct the engine once and return the initialization time in ms."""

        engine_config = self.config.engine_config
        self.out("\n[INIT] Initializing OCR engine with the following configuration:")
        self.out(f"  - Engine: {'dummy' if self.config.use_fake_engine else self.config.engine}")
        self.out(f"  - Device: {engine_config.device or 'default'}")
        self.out(f"  - Detection model: {engine_config.text_detection_model_dir or 'default'}")
        self.out(f"  - Recognition model: {engine_config.text_recognition_model_dir or 'default'}")
        self.out(
            "  - Doc orientation model: "
            f"{engine_config.doc_orientation_classify_model_dir or 'default'}"
        )
        self.out(f"  - Doc unwarping model: {engine_config.doc_unwarping_model_dir or 'default'}")
        self.out(
            "  - Textline orientation model: "
            f"{engine_config.textline_orientation_model_dir or 'default'}"
        )
        self.out("[INIT] Starting OCR engine initialization...")
        start = self.clock()
        try:
            engine = self.engine_factory(self.config)
        except EngineInitError:
            raise
        except Exception as exc:
            raise EngineInitError(f"Failed to initialize OCR engine: {exc}") from exc
        self.init_ms = int((self.clock() - start) // NS_PER_MS)
        self.engine = engine
        self._trial_runner = TrialRunner(
            engine, trials=self.config.trials, clock=self.clock, echo=self.out
        )
        self.out(
            f"[SUCCESS] OCR engine initialized successfully in {self.init_ms} ms"
            f" (device: {getattr(engine, 'device', 'unknown')})"
        )
        self.logger.info("engine_initialized", init_ms=self.init_ms)
        return self.init_ms

    def process_image(self, index: int, total: int, path: Path) -> ImageOutcome:
        if self._trial_runner is None:
            raise RuntimeError("initialize() must be called before processing images")
        self.out(f"\n[PROCESS {index}/{total}] Starting: {path}")
        try:
            run = self._trial_runner.run(path)
        except TrialError as exc:
            self.err(f"  [ERROR] Failed to process {path}: {exc.cause}")
            self.err("  [ERROR] Continuing with next image...")
            return ImageFailure(index=index, path=path, reason=str(exc.cause))

        average = run.average_ms
        preview = PerImageMetrics.from_trials(path, run.latencies_ms, run.total_chars)
        self.out(f"  [METRICS] Average inference time: {average:.2f} ms")
        self.out(f"  [METRICS] FPS: {preview.fps:.2f}")
        self.out(f"  [METRICS] Characters/second: {preview.chars_per_second:.2f} chars/s")
        self.out(f"  [METRICS] Total characters detected: {run.total_chars}")

        warnings = list(self.sink.persist(run.results))
        for warning in warnings:
            self.err(f"  [WARNING] {warning}")

        accuracy = self._score(path)
        metrics = PerImageMetrics.from_trials(
            path, run.latencies_ms, run.total_chars, accuracy=accuracy
        )
        self.out(per_image_line(metrics))
        self.out(f"  [SUCCESS] Image {index} processed successfully.")
        return ImageSuccess(index=index, path=path, metrics=metrics, warnings=tuple(warnings))

    def _score(self, path: Path) -> float:
        if self.correlator is None:
            self.out("  [ACCURACY] Skipped (accuracy scoring disabled)")
            return 0.0
        self.out("  [ACCURACY] Calculating accuracy metrics...")
        result = self.correlator.score(path.stem)
        if not result.ok:
            self.err(f"[ERROR] {result.error} for {path.name}")
            if result.output:
                self.err(f"[ERROR] Scorer output:\n{result.output.rstrip()}")
        return result.accuracy

    def run(self, paths: Sequence[Path]) -> BatchReport:
        if self.engine is None:
            self.initialize()
        total = len(paths)
        aggregator = BatchAggregator(total, progress_interval=self.config.progress_interval)
        self.out(f"\n[BATCH] Starting batch processing of {total} images...")
        start = self.clock()
        for index, path in enumerate(paths, start=1):
            outcome = self.process_image(index, total, path)
            aggregator.record(outcome)
            if aggregator.progress_due(index):
                self.out(
                    "\n"
                    + progress_line(
                        index,
                        total,
                        aggregator.progress_percent(index),
                        aggregator.successful_count,
                        aggregator.failed_count,
                    )
                )
        wall_ms = int((self.clock() - start) // NS_PER_MS)
        self.out("\n[BATCH] Batch processing completed!")
        self.out(f"[BATCH] Total time: {wall_ms} ms")

        report = BatchReport(metrics=list(aggregator.metrics), failures=list(aggregator.failures))
        try:
            report.summary = aggregator.summarize(self.init_ms, wall_ms)
        except AggregateUndefinedError as exc:
            self.err(f"\n[ERROR] {exc}")
        else:
            self.out("\n[STATS] Calculating performance statistics...")
            self.out("")
            for line in summary_lines(report.summary):
                self.out(line)
            self.out("\n[SHELL_OUTPUT] Timing information for shell script:")
            for line in timing_lines(report.summary):
                self.out(line)

        if self.config.report_dir:
            try:
                written = write_reports(report, Path(self.config.report_dir))
            except OSError as exc:
                self.err(f"[ERROR] Failed to write reports to {self.config.report_dir}: {exc}")
                self.logger.debug("report_write_failed", error=str(exc))
            else:
                for path in written:
                    self.out(f"[REPORT] Saved {path}")
        return report
