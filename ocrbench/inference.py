"""OCR engine adapters used by the benchmark."""
from __future__ import annotations

import inspect
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol

import structlog

from .config import BenchmarkConfig, EngineConfig
from .errors import EngineInitError

LOGGER = structlog.get_logger(__name__)

ESCAPE_MARKER = "\\"

# "Unknown argument: foo" from PaddleX, "unexpected keyword argument 'foo'" from Python
_UNKNOWN_ARGUMENT = re.compile(
    r"(?:Unknown argument|unexpected keyword argument)\s*:?\s*['\"]?(?P<name>\w+)"
)


@dataclass
class InferenceResult:
    """One logical OCR result (a page or region) for an input image."""

    input_path: Path
    texts: List[str]
    scores: List[float] = field(default_factory=list)
    page_index: Optional[int] = None
    raw: Any = None

    @property
    def char_count(self) -> int:
        return sum(len(text) - text.count(ESCAPE_MARKER) for text in self.texts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_path": str(self.input_path),
            "page_index": self.page_index,
            "rec_texts": list(self.texts),
            "rec_scores": [float(score) for score in self.scores],
        }

    def render_text(self) -> str:
        return json.dumps({"res": self.to_dict()}, ensure_ascii=False, indent=4)


class OCREngine(Protocol):
    """Interface of a long-lived OCR engine handle."""

    device: str

    def predict(self, path: Path) -> List[InferenceResult]:
        ...


class DummyOCREngine:
    """A deterministic engine used for tests and dry runs."""

    text = "dummy-ocr-output"

    def __init__(self) -> None:
        self.device = "cpu"
        self.logger = LOGGER.bind(engine="dummy")

    def predict(self, path: Path) -> List[InferenceResult]:
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(path)
        if path.stat().st_size == 0:
            raise ValueError(f"Cannot decode empty image: {path}")
        self.logger.debug("dummy_predict", path=str(path))
        return [InferenceResult(input_path=path, texts=[self.text], scores=[0.5])]


class PaddleOCREngine:
    """Wrapper around :class:`paddleocr.PaddleOCR` (3.x ``predict`` API)."""

    def __init__(self, config: EngineConfig):
        try:
            from paddleocr import PaddleOCR  # type: ignore
        except ImportError as exc:  # pragma: no cover - heavy dependency
            raise EngineInitError(
                "PaddleOCR is not installed. Install the 'paddle' extra"
                " (paddleocr>=3.0 and paddlepaddle)."
            ) from exc

        self._engine_factory = PaddleOCR
        self._ocr_kwargs: Dict[str, Any] = config.engine_kwargs()
        self._filter_supported_kwargs()
        self._gpu_retry_done = False
        self.device = str(self._ocr_kwargs.get("device") or "default")
        self.ocr = self._create_engine_instance()
        self.logger = LOGGER.bind(engine="paddle", device=self.device)

    def predict(self, path: Path) -> List[InferenceResult]:
        path = Path(path)
        outputs = self.ocr.predict(str(path))
        results = [self._convert(path, output) for output in outputs or []]
        self.logger.debug("paddle_predict", path=str(path), results=len(results))
        return results

    def _filter_supported_kwargs(self) -> None:
        signature = inspect.signature(self._engine_factory.__init__)
        accepts_kwargs = any(
            parameter.kind is inspect.Parameter.VAR_KEYWORD
            for parameter in signature.parameters.values()
        )
        if accepts_kwargs:
            return
        for key in list(self._ocr_kwargs):
            if key not in signature.parameters:
                LOGGER.debug("drop_unsupported_param", param=key)
                self._ocr_kwargs.pop(key, None)

    def _create_engine_instance(self):  # type: ignore[no-untyped-def]
        attempts = 0
        while True:
            try:
                return self._engine_factory(**self._ocr_kwargs)
            except ModuleNotFoundError as exc:  # pragma: no cover - heavy optional dependency
                if exc.name == "paddle":
                    raise EngineInitError(
                        "PaddleOCR requires the `paddlepaddle` package. Install the CPU build with"
                        " `pip install paddlepaddle` (or the GPU build with `pip install"
                        " paddlepaddle-gpu`)."
                    ) from exc
                raise EngineInitError(f"Failed to initialize PaddleOCR: {exc}") from exc
            except (TypeError, ValueError) as exc:
                unknown = self._extract_unknown_argument(str(exc))
                if unknown and unknown in self._ocr_kwargs and attempts < 5:
                    LOGGER.debug("drop_unknown_param", param=unknown)
                    self._ocr_kwargs.pop(unknown, None)
                    attempts += 1
                    continue
                if self._maybe_retry_without_gpu(exc):
                    attempts += 1
                    continue
                raise EngineInitError(f"Failed to initialize PaddleOCR: {exc}") from exc
            except Exception as exc:
                if self._maybe_retry_without_gpu(exc):
                    attempts += 1
                    continue
                raise EngineInitError(f"Failed to initialize PaddleOCR: {exc}") from exc

    @staticmethod
    def _extract_unknown_argument(message: str) -> Optional[str]:
        """Name of the rejected option in a PaddleOCR or ``TypeError`` message."""

        match = _UNKNOWN_ARGUMENT.search(message)
        return match.group("name") if match else None

    def _maybe_retry_without_gpu(self, exc: Exception) -> bool:
        """Fall back to CPU once when GPU initialization fails."""

        device = str(self._ocr_kwargs.get("device") or "")
        if not device.startswith("gpu") or self._gpu_retry_done:
            return False
        LOGGER.warning("paddle_gpu_retry_cpu", error=str(exc))
        self._ocr_kwargs["device"] = "cpu"
        self.device = "cpu"
        self._gpu_retry_done = True
        return True

    @staticmethod
    def _payload(output: Any) -> Mapping[str, Any]:
        """Normalise a PaddleOCR result object into its ``res`` mapping."""

        if isinstance(output, Mapping) and "rec_texts" in output:
            return output
        document = getattr(output, "json", None)
        if callable(document):
            document = document()
        if isinstance(document, Mapping):
            inner = document.get("res", document)
            if isinstance(inner, Mapping):
                return inner
        return {}

    def _convert(self, path: Path, output: Any) -> InferenceResult:
        payload = self._payload(output)
        texts = [str(text) for text in payload.get("rec_texts") or []]
        scores = [float(score) for score in payload.get("rec_scores") or []]
        page_index = payload.get("page_index")
        return InferenceResult(
            input_path=path,
            texts=texts,
            scores=scores,
            page_index=page_index if isinstance(page_index, int) else None,
            raw=output,
        )


def create_engine(config: BenchmarkConfig) -> OCREngine:
    """Factory that returns the configured OCR engine."""

    if config.use_fake_engine:
        return DummyOCREngine()
    if config.engine == "paddle":
        return PaddleOCREngine(config.engine_config)
    raise EngineInitError(f"Unsupported OCR engine '{config.engine}'")
