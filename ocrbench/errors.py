"""Exception hierarchy for the benchmark harness."""
from __future__ import annotations


class BenchmarkError(Exception):
    """Base class for errors raised by :mod:`ocrbench`."""


class ConfigError(BenchmarkError, ValueError):
    """Raised when the configuration file or overrides are invalid."""


class NoImagesFoundError(BenchmarkError):
    """Raised when input discovery produced no image paths."""


class EngineInitError(BenchmarkError, RuntimeError):
    """Raised when the OCR engine cannot be constructed."""


class TrialError(BenchmarkError):
    """Raised when one inference trial for an image fails."""

    def __init__(self, path: str, trial: int, cause: BaseException):
        super().__init__(f"trial {trial} failed for {path}: {cause}")
        self.path = path
        self.trial = trial
        self.cause = cause


class AggregateUndefinedError(BenchmarkError):
    """Raised when batch statistics are requested with zero successful images."""
