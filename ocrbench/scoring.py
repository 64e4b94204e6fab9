"""Correlate a processed image with its externally computed accuracy."""
from __future__ import annotations

import json
import math
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import structlog

LOGGER = structlog.get_logger(__name__)

ACCURACY_MARKER = "SINGLE_ACC:"
ACCURACY_FIELD = "character_accuracy"


@dataclass(frozen=True)
class ScoreResult:
    accuracy: float
    error: Optional[str] = None
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_accuracy(output: str) -> float:
    """Extract ``character_accuracy`` from the scorer's marker line.

    Raises :class:`ValueError` when the marker, the JSON payload or the field
    is missing, or when the field is not a finite number.
    """

    for line in output.splitlines():
        if not line.startswith(ACCURACY_MARKER):
            continue
        try:
            payload = json.loads(line[len(ACCURACY_MARKER):].strip())
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid {ACCURACY_MARKER} payload: {exc}") from exc
        if not isinstance(payload, dict) or ACCURACY_FIELD not in payload:
            raise ValueError(f"{ACCURACY_MARKER} payload has no '{ACCURACY_FIELD}' field")
        raw = payload[ACCURACY_FIELD]
        if isinstance(raw, bool):
            raise ValueError(f"'{ACCURACY_FIELD}' must be a number, got {raw!r}")
        try:
            value = float(raw)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"'{ACCURACY_FIELD}' must be a number, got {raw!r}") from exc
        if not math.isfinite(value):
            raise ValueError(f"'{ACCURACY_FIELD}' is not finite: {raw!r}")
        return min(1.0, max(0.0, value))
    raise ValueError(f"Could not find '{ACCURACY_MARKER}' prefix in scorer output")


class AccuracyCorrelator:
    """Run the scorer as a child process for one image at a time."""

    def __init__(
        self,
        command: Sequence[str],
        ground_truth: Path,
        output_dir: Path,
        timeout: Optional[float] = None,
    ):
        self.command = list(command)
        self.ground_truth = Path(ground_truth)
        self.output_dir = Path(output_dir)
        self.timeout = timeout

    def build_command(self, image_name: str) -> List[str]:
        return [
            *self.command,
            "--ground_truth",
            str(self.ground_truth),
            "--output_dir",
            str(self.output_dir),
            "--image_name",
            image_name,
        ]

    def score(self, image_name: str) -> ScoreResult:
        logger = LOGGER.bind(image=image_name)
        command = self.build_command(image_name)
        try:
            completed = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            reason = f"Accuracy calculation timed out after {self.timeout} s"
            logger.debug("scoring_timeout", timeout=self.timeout)
            return ScoreResult(accuracy=0.0, error=reason)
        except OSError as exc:
            reason = f"Failed to execute accuracy calculation: {exc}"
            logger.debug("scoring_launch_failed", error=str(exc))
            return ScoreResult(accuracy=0.0, error=reason)

        output = completed.stdout or ""
        if completed.returncode != 0:
            logger.debug("scoring_failed", returncode=completed.returncode)
            return ScoreResult(
                accuracy=0.0,
                error=f"Accuracy calculation exited with status {completed.returncode}",
                output=output,
            )
        try:
            accuracy = parse_accuracy(output)
        except ValueError as exc:
            logger.debug("scoring_unparsable", error=str(exc))
            return ScoreResult(accuracy=0.0, error=str(exc), output=output)
        logger.debug("scoring_completed", accuracy=accuracy)
        return ScoreResult(accuracy=accuracy, output=output)
