"""Configuration management for the benchmark harness."""
from __future__ import annotations

import dataclasses
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError

LEGACY_KEY_ALIASES = {
    "det_model_dir": "text_detection_model_dir",
    "rec_model_dir": "text_recognition_model_dir",
    "cls_model_dir": "textline_orientation_model_dir",
    "det_model_name": "text_detection_model_name",
    "rec_model_name": "text_recognition_model_name",
    "use_angle_cls": "use_textline_orientation",
}

SUPPORTED_ENGINES = ("paddle", "dummy")


@dataclass(frozen=True)
class EngineConfig:
    """Options handed to the OCR engine at construction.

    ``None`` means "use the engine default"; such options are never forwarded.
    """

    doc_orientation_classify_model_dir: Optional[str] = None
    doc_unwarping_model_dir: Optional[str] = None
    textline_orientation_model_dir: Optional[str] = None
    text_detection_model_dir: Optional[str] = None
    text_recognition_model_dir: Optional[str] = None
    text_detection_model_name: Optional[str] = None
    text_recognition_model_name: Optional[str] = None
    device: Optional[str] = None
    use_doc_orientation_classify: Optional[bool] = None
    use_doc_unwarping: Optional[bool] = None
    use_textline_orientation: Optional[bool] = None

    def engine_kwargs(self) -> Dict[str, Any]:
        return {
            key: value
            for key, value in dataclasses.asdict(self).items()
            if value is not None
        }


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _default_scorer_command() -> List[str]:
    return [sys.executable, "-m", "ocrbench.accuracy"]


@dataclass
class AccuracyConfig:
    enabled: bool = True
    ground_truth: str = "images/labels.json"
    command: List[str] = field(default_factory=_default_scorer_command)
    timeout: Optional[float] = 120.0


@dataclass
class BenchmarkConfig:
    """Dataclass representing the configurable options for a benchmark run."""

    engine: str = "paddle"
    trials: int = 3
    progress_interval: int = 10
    output_dir: str = "output"
    report_dir: Optional[str] = None
    accuracy: AccuracyConfig = field(default_factory=AccuracyConfig)
    engine_config: EngineConfig = field(default_factory=EngineConfig)

    @property
    def use_fake_engine(self) -> bool:
        return self.engine == "dummy" or os.environ.get("OCRBENCH_FAKE_ENGINE") == "1"

    def validate(self) -> "BenchmarkConfig":
        if self.engine not in SUPPORTED_ENGINES:
            raise ConfigError(
                f"Unsupported engine '{self.engine}', expected one of {SUPPORTED_ENGINES}"
            )
        for name in ("trials", "progress_interval"):
            value = getattr(self, name)
            if not _is_int(value) or value < 1:
                raise ConfigError(f"{name} must be an integer of at least 1, got {value!r}")
        for name in ("output_dir", "report_dir"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, (str, os.PathLike)):
                raise ConfigError(f"{name} must be a path, got {value!r}")
        accuracy = self.accuracy
        if not isinstance(accuracy.enabled, bool):
            raise ConfigError(f"accuracy.enabled must be true or false, got {accuracy.enabled!r}")
        if not isinstance(accuracy.ground_truth, (str, os.PathLike)):
            raise ConfigError(f"accuracy.ground_truth must be a path, got {accuracy.ground_truth!r}")
        timeout = accuracy.timeout
        if timeout is not None and (
            isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0
        ):
            raise ConfigError(f"accuracy.timeout must be a positive number or null, got {timeout!r}")
        if (
            not isinstance(accuracy.command, (list, tuple))
            or not accuracy.command
            or not all(isinstance(part, str) for part in accuracy.command)
        ):
            raise ConfigError("accuracy.command must be a non-empty list of strings")
        return self


DEFAULT_CONFIG_PATH = Path("config.yaml")


def _apply_legacy_aliases(data: dict) -> dict:
    for old_key, new_key in LEGACY_KEY_ALIASES.items():
        if old_key in data and new_key not in data:
            data[new_key] = data[old_key]
        if old_key in data:
            data.pop(old_key, None)
    if "use_gpu" in data:
        use_gpu = data.pop("use_gpu")
        data.setdefault("device", "gpu" if use_gpu else "cpu")
    return data


def _build(cls, data: Any, section: str, nested: tuple = ()):  # type: ignore[no-untyped-def]
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration section '{section}' must be a mapping")
    known = {item.name for item in dataclasses.fields(cls)} - set(nested)
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown keys in '{section}': {', '.join(unknown)}")
    return cls(**data)


def config_from_mapping(data: Dict[str, Any]) -> BenchmarkConfig:
    data = dict(data)
    engine_section = _apply_legacy_aliases(dict(data.pop("paddle", None) or {}))
    accuracy_section = data.pop("accuracy", None)
    config = _build(BenchmarkConfig, data, "benchmark", nested=("accuracy", "engine_config"))
    config.engine_config = _build(EngineConfig, engine_section, "paddle")
    config.accuracy = _build(AccuracyConfig, accuracy_section, "accuracy")
    if isinstance(config.accuracy.command, str):
        config.accuracy.command = config.accuracy.command.split()
    return config.validate()


def load_config(path: Optional[Path] = None) -> BenchmarkConfig:
    """Load configuration from a YAML file if it exists."""

    config_path = path or DEFAULT_CONFIG_PATH
    if not config_path.exists():
        if path is not None:
            raise ConfigError(f"Configuration file not found: {config_path}")
        return BenchmarkConfig()
    with config_path.open("r", encoding="utf-8") as fp:
        try:
            data = yaml.safe_load(fp) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("Configuration file must define a mapping")
    return config_from_mapping(data)
