"""OCR batch benchmarking toolkit."""
from .config import BenchmarkConfig, EngineConfig, load_config
from .runner import BenchmarkRunner

__all__ = ["BenchmarkConfig", "BenchmarkRunner", "EngineConfig", "load_config"]
