"""Accumulate per-image outcomes and reduce them to batch statistics."""
from __future__ import annotations

import statistics
from typing import List

import structlog

from .errors import AggregateUndefinedError
from .metrics import (
    BatchSummary,
    ImageFailure,
    ImageOutcome,
    ImageSuccess,
    PerImageMetrics,
    fps_from_latency,
)

LOGGER = structlog.get_logger(__name__)


class BatchAggregator:
    """Running tallies over the ordered sequence of processed images."""

    def __init__(self, total: int, progress_interval: int = 10):
        if progress_interval < 1:
            raise ValueError("progress_interval must be at least 1")
        self.total = total
        self.progress_interval = progress_interval
        self.successful_count = 0
        self.failed_count = 0
        self.latencies_ms: List[float] = []
        self.metrics: List[PerImageMetrics] = []
        self.failures: List[ImageFailure] = []

    @property
    def processed(self) -> int:
        return self.successful_count + self.failed_count

    def record(self, outcome: ImageOutcome) -> None:
        if isinstance(outcome, ImageSuccess):
            self.successful_count += 1
            self.latencies_ms.append(outcome.metrics.inference_ms)
            self.metrics.append(outcome.metrics)
        elif isinstance(outcome, ImageFailure):
            self.failed_count += 1
            self.failures.append(outcome)
        else:
            raise TypeError(f"Unsupported outcome type {type(outcome).__name__}")

    def progress_due(self, position: int) -> bool:
        """Whether a progress line is due after the ``position``-th image (1-based)."""

        return position % self.progress_interval == 0 or position == self.total

    def progress_percent(self, position: int) -> float:
        return 100.0 * position / self.total if self.total else 100.0

    def summarize(self, init_ms: int, wall_ms: int) -> BatchSummary:
        if not self.latencies_ms:
            raise AggregateUndefinedError(
                "No successful inferences completed - cannot calculate statistics!"
            )
        latencies = self.latencies_ms
        total_inference = sum(latencies)
        average = total_inference / len(latencies)
        if len(latencies) > 1:
            p95 = statistics.quantiles(latencies, n=20, method="inclusive")[18]
        else:
            p95 = latencies[0]
        summary = BatchSummary(
            total=self.total,
            succeeded=self.successful_count,
            failed=self.failed_count,
            success_rate=100.0 * self.successful_count / self.total,
            total_inference_ms=total_inference,
            min_ms=min(latencies),
            max_ms=max(latencies),
            avg_ms=average,
            median_ms=statistics.median(latencies),
            p95_ms=p95,
            avg_fps=fps_from_latency(average),
            batch_fps=self.successful_count * fps_from_latency(total_inference),
            avg_chars_per_second=statistics.fmean(
                metric.chars_per_second for metric in self.metrics
            ),
            avg_accuracy=statistics.fmean(metric.accuracy for metric in self.metrics),
            init_ms=init_ms,
            wall_ms=wall_ms,
        )
        LOGGER.info(
            "batch_summarized",
            succeeded=summary.succeeded,
            failed=summary.failed,
            avg_ms=round(summary.avg_ms, 3),
        )
        return summary
