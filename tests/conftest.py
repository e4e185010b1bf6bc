import io
from typing import Dict, List, Tuple

import pytest
from PIL import Image, ImageDraw

from intel_image.core import RenderService
from intel_image.fonts import FontRegistry
from intel_image.storage import ObjectStorage


def png_bytes(size: Tuple[int, int] = (1200, 1500), color=(40, 90, 160)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color=color).save(buf, format="PNG")
    return buf.getvalue()


def busy_bottom_png_bytes(size: Tuple[int, int] = (1200, 1500)) -> bytes:
    """Flat top, striped bottom: the calmer edge is the top one."""
    width, height = size
    img = Image.new("RGB", size, (30, 30, 30))
    draw = ImageDraw.Draw(img)
    for y in range(int(height * 0.7), height, 3):
        draw.line([(0, y), (width, y)], fill=((y * 13) % 256, (y * 7) % 256, 90))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class StubFetcher:
    """Returns canned bytes per source reference."""

    def __init__(self, payloads: Dict[str, bytes]):
        self.payloads = payloads
        self.calls: List[str] = []

    def fetch(self, source_url: str) -> bytes:
        self.calls.append(source_url)
        return self.payloads[source_url]


class RecordingStorage(ObjectStorage):
    def __init__(self, base_url: str = "https://cdn.example.com/blog-images"):
        self.base_url = base_url
        self.uploads: List[Tuple[str, bytes, str]] = []

    def upload(self, name: str, data: bytes, content_type: str = "image/png") -> str:
        self.uploads.append((name, data, content_type))
        return f"{self.base_url}/{name}"


@pytest.fixture
def plain_fonts(tmp_path):
    """Registry that finds no TrueType file and draws with Pillow's built-in face."""
    return FontRegistry(fonts_dir=tmp_path / "no-fonts", candidates=[])


@pytest.fixture
def storage():
    return RecordingStorage()


@pytest.fixture
def source_payloads():
    return {
        "https://img.example.com/key-visual.png": png_bytes(),
        "https://img.example.com/banner.png": png_bytes(size=(3000, 1000)),
        "https://img.example.com/broken.png": b"<html>not an image</html>",
        "https://img.example.com/busy-bottom.png": busy_bottom_png_bytes(),
    }


@pytest.fixture
def fetcher(source_payloads):
    return StubFetcher(source_payloads)


@pytest.fixture
def service(fetcher, storage, plain_fonts):
    return RenderService(fetcher=fetcher, storage=storage, fonts=plain_fonts)
