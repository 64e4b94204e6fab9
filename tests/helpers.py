"""Shared test doubles for the benchmark tests."""
from pathlib import Path
from typing import Iterable, List

from ocrbench.inference import InferenceResult

PNG_HEADER = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def write_image(path: Path, payload: bytes = PNG_HEADER) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)
    return path


class FakeEngine:
    """Scripted engine: texts per image stem, and stems that raise."""

    device = "cpu"

    def __init__(self, texts=None, failing: Iterable[str] = ()):
        self.texts = texts or {}
        self.failing = set(failing)
        self.calls: List[Path] = []

    def predict(self, path: Path) -> List[InferenceResult]:
        path = Path(path)
        self.calls.append(path)
        if path.stem in self.failing:
            raise RuntimeError(f"cannot decode {path.name}")
        texts = self.texts.get(path.stem, ["hello"])
        return [InferenceResult(input_path=path, texts=list(texts), scores=[0.9] * len(texts))]


class StepClock:
    """Deterministic ``perf_counter_ns`` replacement returning scripted ticks."""

    def __init__(self, ticks_ns: Iterable[int]):
        self._ticks = list(ticks_ns)

    def __call__(self) -> int:
        if not self._ticks:
            raise AssertionError("clock called more often than scripted")
        return self._ticks.pop(0)
