import json
import sys
from pathlib import Path

import pytest

from ocrbench.config import AccuracyConfig, BenchmarkConfig
from ocrbench.errors import EngineInitError
from ocrbench.inference import InferenceResult
from ocrbench.metrics import ImageFailure, ImageSuccess
from ocrbench.runner import BenchmarkRunner

from helpers import FakeEngine, write_image

ROOT = Path(__file__).resolve().parents[1]


def _config(tmp_path: Path, **accuracy) -> BenchmarkConfig:
    accuracy_config = AccuracyConfig(**accuracy) if accuracy else AccuracyConfig(enabled=False)
    return BenchmarkConfig(
        engine="dummy",
        output_dir=str(tmp_path / "output"),
        accuracy=accuracy_config,
    )


class Capture:
    def __init__(self) -> None:
        self.out: list[str] = []
        self.err: list[str] = []

    def lines(self, prefix: str) -> list[str]:
        return [line for line in self.out if line.startswith(prefix)]


def _runner(config: BenchmarkConfig, engine: FakeEngine, capture: Capture) -> BenchmarkRunner:
    factory_calls = []

    def factory(cfg):
        factory_calls.append(cfg)
        return engine

    runner = BenchmarkRunner(config, engine_factory=factory, out=capture.out.append, err=capture.err.append)
    runner.factory_calls = factory_calls  # type: ignore[attr-defined]
    return runner


def _images(tmp_path: Path, *names: str) -> list[Path]:
    return [write_image(tmp_path / "images" / name) for name in names]


def test_failed_image_does_not_abort_the_batch(tmp_path: Path) -> None:
    images = _images(tmp_path, "a.png", "bad.png", "c.png")
    engine = FakeEngine(texts={"a": ["hello"], "c": ["hi", "there"]}, failing={"bad"})
    capture = Capture()
    runner = _runner(_config(tmp_path), engine, capture)
    report = runner.run(images)

    assert runner.factory_calls == [runner.config]  # type: ignore[attr-defined]
    assert [metric.filename for metric in report.metrics] == ["a", "c"]
    assert [metric.total_chars for metric in report.metrics] == [5, 7]
    assert [failure.path.name for failure in report.failures] == ["bad.png"]
    assert len(report.metrics) + len(report.failures) == len(images)
    assert report.summary is not None
    assert report.summary.success_rate == pytest.approx(200 / 3)
    assert len(capture.lines("PER_IMAGE_RESULT:")) == 2
    assert len(capture.lines("TIMING_INFO:")) == 6
    assert capture.lines("TIMING_INFO:SUCCESS_RATE:") == ["TIMING_INFO:SUCCESS_RATE:66.67%"]
    assert any("[ERROR] Failed to process" in line and "bad.png" in line for line in capture.err)
    # bad.png fails on its first trial; the others run three trials each
    assert len(engine.calls) == 3 + 1 + 3


def test_process_image_returns_outcomes(tmp_path: Path) -> None:
    good, bad = _images(tmp_path, "good.png", "bad.png")
    runner = _runner(_config(tmp_path), FakeEngine(failing={"bad"}), Capture())
    runner.initialize()
    success = runner.process_image(1, 2, good)
    failure = runner.process_image(2, 2, bad)
    assert isinstance(success, ImageSuccess)
    assert success.metrics.filename == "good"
    assert len(success.metrics.trial_latencies_ms) == 3
    assert isinstance(failure, ImageFailure)
    assert "cannot decode" in failure.reason


def test_results_are_persisted_for_scoring(tmp_path: Path) -> None:
    (image,) = _images(tmp_path, "doc.png")
    runner = _runner(_config(tmp_path), FakeEngine(texts={"doc": ["Total", "42"]}), Capture())
    runner.run([image])
    saved = json.loads((tmp_path / "output" / "doc_res.json").read_text(encoding="utf-8"))
    assert saved["rec_texts"] == ["Total", "42"]


def test_scoring_failure_keeps_the_image(tmp_path: Path) -> None:
    (image,) = _images(tmp_path, "a.png")
    config = _config(tmp_path, command=[sys.executable, "-c", "print('nothing useful')"])
    capture = Capture()
    report = _runner(config, FakeEngine(), capture).run([image])

    assert len(report.metrics) == 1
    assert report.metrics[0].accuracy == 0.0
    assert not report.failures
    assert capture.lines("PER_IMAGE_RESULT:")[0].endswith('"accuracy":0.0000}')
    assert any("SINGLE_ACC:" in line for line in capture.err)


def test_accuracy_from_bundled_scorer(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PYTHONPATH", str(ROOT))
    (image,) = _images(tmp_path, "receipt.png")
    labels = tmp_path / "labels.json"
    labels.write_text(
        json.dumps({"receipt.png": [{"text": "TOTAL"}, {"text": "4x2"}]}), encoding="utf-8"
    )
    config = _config(
        tmp_path,
        ground_truth=str(labels),
        command=[sys.executable, "-m", "ocrbench.accuracy"],
        timeout=60.0,
    )
    engine = FakeEngine(texts={"receipt": ["total", "4y2"]})
    report = _runner(config, engine, Capture()).run([image])
    assert report.metrics[0].accuracy == pytest.approx(0.875)


def test_zero_successes_report_undefined_aggregate(tmp_path: Path) -> None:
    images = _images(tmp_path, "x.png", "y.png")
    capture = Capture()
    report = _runner(_config(tmp_path), FakeEngine(failing={"x", "y"}), capture).run(images)

    assert report.summary is None
    assert len(report.failures) == 2
    assert capture.lines("TIMING_INFO:") == []
    assert capture.lines("PER_IMAGE_RESULT:") == []
    assert any("No successful inferences completed" in line for line in capture.err)


def test_progress_emitted_at_milestones(tmp_path: Path) -> None:
    images = _images(tmp_path, *(f"img_{index:02d}.png" for index in range(25)))
    capture = Capture()
    _runner(_config(tmp_path), FakeEngine(), capture).run(images)
    progress = [line.strip() for line in capture.out if "[PROGRESS]" in line]
    assert progress == [
        "[PROGRESS] 10/25 images processed (40.0%) - Success: 10, Failed: 0",
        "[PROGRESS] 20/25 images processed (80.0%) - Success: 20, Failed: 0",
        "[PROGRESS] 25/25 images processed (100.0%) - Success: 25, Failed: 0",
    ]


def test_reports_written_when_requested(tmp_path: Path) -> None:
    (image,) = _images(tmp_path, "a.png")
    config = _config(tmp_path)
    config.report_dir = str(tmp_path / "reports")
    _runner(config, FakeEngine(), Capture()).run([image])
    assert (tmp_path / "reports" / "results.json").exists()
    assert "| `a` |" in (tmp_path / "reports" / "results.md").read_text(encoding="utf-8")


def test_engine_errors_surface_as_init_errors(tmp_path: Path) -> None:
    def factory(config):
        raise RuntimeError("no models")

    runner = BenchmarkRunner(_config(tmp_path), engine_factory=factory, out=lambda line: None)
    with pytest.raises(EngineInitError):
        runner.initialize()


def test_output_failures_do_not_abort_the_batch(tmp_path: Path) -> None:
    class UnprintableResult:
        def print(self):
            raise RuntimeError("render failed")

    class UnprintableEngine:
        device = "cpu"

        def predict(self, path):
            return [InferenceResult(input_path=Path(path), texts=["abc"], raw=UnprintableResult())]

    images = _images(tmp_path, "a.png", "b.png")
    capture = Capture()
    report = _runner(_config(tmp_path), UnprintableEngine(), capture).run(images)

    assert [metric.filename for metric in report.metrics] == ["a", "b"]
    assert not report.failures
    assert sum("[WARNING] Failed to render text" in line for line in capture.err) == 2


def test_malformed_scorer_record_does_not_abort_the_batch(tmp_path: Path) -> None:
    images = _images(tmp_path, "a.png", "b.png")
    script = "print('SINGLE_ACC: {\"character_accuracy\": null}')"
    config = _config(tmp_path, command=[sys.executable, "-c", script])
    report = _runner(config, FakeEngine(), Capture()).run(images)

    assert [metric.accuracy for metric in report.metrics] == [0.0, 0.0]
    assert report.summary is not None and report.summary.succeeded == 2


def test_undecodable_scorer_output_does_not_abort_the_batch(tmp_path: Path) -> None:
    images = _images(tmp_path, "a.png", "b.png")
    script = "import sys\nsys.stdout.buffer.write(b'\\xff\\xfe bad\\n')\n"
    config = _config(tmp_path, command=[sys.executable, "-c", script])
    report = _runner(config, FakeEngine(), Capture()).run(images)

    assert len(report.metrics) == 2
    assert all(metric.accuracy == 0.0 for metric in report.metrics)
