import os
import sys
from pathlib import Path

import pytest

os.environ.setdefault("OCRBENCH_FAKE_ENGINE", "1")

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from helpers import FakeEngine, write_image  # noqa: E402
from ocrbench.log import configure_logging  # noqa: E402


@pytest.fixture(autouse=True, scope="session")
def _quiet_logging() -> None:
    configure_logging("WARNING")


@pytest.fixture
def image_tree(tmp_path: Path) -> Path:
    """A directory holding one png, one txt and a nested jpg."""

    root = tmp_path / "images"
    write_image(root / "page.png")
    (root / "notes.txt").write_text("not an image", encoding="utf-8")
    write_image(root / "nested" / "scan.jpg")
    return root


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def debug_logging():
    configure_logging("DEBUG")
    yield
    configure_logging("WARNING")
