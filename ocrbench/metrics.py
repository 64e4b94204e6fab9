"""Per-image and batch level measurement records."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union


def fps_from_latency(latency_ms: float) -> float:
    return 1000.0 / latency_ms if latency_ms > 0 else 0.0


def chars_per_second(total_chars: int, latency_ms: float) -> float:
    return total_chars * 1000.0 / latency_ms if latency_ms > 0 else 0.0


@dataclass(frozen=True)
class PerImageMetrics:
    filename: str
    inference_ms: float
    fps: float
    chars_per_second: float
    total_chars: int
    accuracy: float
    trial_latencies_ms: Tuple[float, ...] = ()
    source_path: str = ""

    @classmethod
    def from_trials(
        cls,
        path: Path,
        latencies_ms: Sequence[float],
        total_chars: int,
        accuracy: float = 0.0,
    ) -> "PerImageMetrics":
        if not latencies_ms:
            raise ValueError("at least one trial latency is required")
        average = sum(latencies_ms) / len(latencies_ms)
        return cls(
            filename=path.stem,
            inference_ms=average,
            fps=fps_from_latency(average),
            chars_per_second=chars_per_second(total_chars, average),
            total_chars=total_chars,
            accuracy=accuracy,
            trial_latencies_ms=tuple(latencies_ms),
            source_path=str(path),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["trial_latencies_ms"] = list(self.trial_latencies_ms)
        return payload


@dataclass(frozen=True)
class ImageSuccess:
    index: int
    path: Path
    metrics: PerImageMetrics
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ImageFailure:
    index: int
    path: Path
    reason: str


ImageOutcome = Union[ImageSuccess, ImageFailure]


@dataclass(frozen=True)
class BatchSummary:
    total: int
    succeeded: int
    failed: int
    success_rate: float
    total_inference_ms: float
    min_ms: float
    max_ms: float
    avg_ms: float
    median_ms: float
    p95_ms: float
    avg_fps: float
    batch_fps: float
    avg_chars_per_second: float
    avg_accuracy: float
    init_ms: int
    wall_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BatchReport:
    """Everything a finished run produced, used by the report writers."""

    metrics: List[PerImageMetrics] = field(default_factory=list)
    failures: List[ImageFailure] = field(default_factory=list)
    summary: Optional[BatchSummary] = None
