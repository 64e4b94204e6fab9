"""Repeated-trial latency measurement for a single image."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List

import structlog

from .errors import TrialError
from .inference import InferenceResult, OCREngine

LOGGER = structlog.get_logger(__name__)

DEFAULT_TRIALS = 3
NS_PER_MS = 1_000_000


@dataclass
class TrialRun:
    path: Path
    latencies_ms: List[float]
    results: List[InferenceResult] = field(default_factory=list)

    @property
    def total_chars(self) -> int:
        return sum(result.char_count for result in self.results)

    @property
    def average_ms(self) -> float:
        return sum(self.latencies_ms) / len(self.latencies_ms)


class TrialRunner:
    """Time ``trials`` sequential predictions of one image.

    Only the first trial's results are kept; later trials exist to smooth out
    jitter in the latency estimate.
    """

    def __init__(
        self,
        engine: OCREngine,
        trials: int = DEFAULT_TRIALS,
        clock: Callable[[], int] = time.perf_counter_ns,
        echo: Callable[[str], None] = print,
    ):
        if trials < 1:
            raise ValueError("trials must be at least 1")
        self.engine = engine
        self.trials = trials
        self.clock = clock
        self.echo = echo

    def run(self, path: Path) -> TrialRun:
        logger = LOGGER.bind(path=str(path))
        latencies: List[float] = []
        retained: List[InferenceResult] = []
        self.echo(f"  [INFERENCE] Running {self.trials} iterations for average metrics...")
        for trial in range(1, self.trials + 1):
            self.echo(f"    [RUN {trial}/{self.trials}] Starting inference...")
            start = self.clock()
            try:
                results = self.engine.predict(path)
            except Exception as exc:
                logger.debug("trial_failed", trial=trial, error=str(exc))
                raise TrialError(str(path), trial, exc) from exc
            elapsed_ms = (self.clock() - start) / NS_PER_MS
            latencies.append(elapsed_ms)
            if trial == 1:
                retained = list(results)
            self.echo(f"    [RUN {trial}/{self.trials}] Completed in {elapsed_ms:.2f} ms")
            logger.debug("trial_completed", trial=trial, latency_ms=elapsed_ms)
        return TrialRun(path=path, latencies_ms=latencies, results=retained)
