import os
import threading
import time
from pathlib import Path

import pytest
from PIL import Image

from lumen.config import Config
from lumen.exceptions import UnreadableSourceError
from lumen.resizer import Resizer
from lumen.transforms.base import BaseTransform

SOURCE_MTIME = 1700000000


class CountingTransform(BaseTransform):
    """
    Fake transform that records calls and writes predictable bytes.
    """

    type_aliases = ["counting"]

    calls: list[tuple[int, int, str]] = []
    calls_lock = threading.Lock()
    delay: float = 0
    fail_with: Exception | None = None

    def __init__(self, width: int = 1200, height: int = 800):
        self.width = width
        self.height = height

    def load(self, path: Path):
        if not path.is_file():
            raise UnreadableSourceError(f"No such image {path}")
        return {"width": self.width, "height": self.height}

    def resize(self, width: int, height: int, output_ext: str) -> bytes:
        with CountingTransform.calls_lock:
            CountingTransform.calls.append((width, height, output_ext))
        if CountingTransform.delay:
            time.sleep(CountingTransform.delay)
        if CountingTransform.fail_with is not None:
            raise CountingTransform.fail_with
        return f"{width}x{height}.{output_ext}".encode()


@pytest.fixture(autouse=True)
def reset_counting_transform():
    CountingTransform.calls = []
    CountingTransform.delay = 0
    CountingTransform.fail_with = None
    yield


@pytest.fixture
def source_root(tmp_path):
    path = tmp_path / "source"
    path.mkdir()
    return path


@pytest.fixture
def cache_root(tmp_path):
    return tmp_path / "cache"


def make_image(path: Path, size=(1200, 800), mtime: int = SOURCE_MTIME, fmt="JPEG"):
    """
    Writes a real image file with a fixed mtime.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, (200, 80, 40)).save(path, fmt)
    os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def make_config(source_root, cache_root):
    def _make(**options) -> Config:
        data = {"source_path": str(source_root), "cache_path": str(cache_root)}
        data.update(options)
        return Config.from_dict(data)

    return _make


@pytest.fixture
def config(make_config):
    """
    Config using the real Pillow transform.
    """
    return make_config()


@pytest.fixture
def counting_config(make_config):
    """
    Config using the call-recording fake transform.
    """
    return make_config(transform={"type": "counting"})


@pytest.fixture
def photo(source_root):
    return make_image(source_root / "products" / "photo.jpg")


@pytest.fixture
def resizer(counting_config):
    return Resizer(counting_config)
