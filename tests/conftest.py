"""Shared test fixtures for the image text search test suite."""

import io
import struct
import zlib
from collections.abc import Iterator
from pathlib import Path

import numpy as np
import pytest
from PIL import Image, ImageDraw

from ocrsearch.preprocessing.pipeline import Preprocessor
from ocrsearch.processing.pipeline import ProcessingPipeline
from ocrsearch.storage.assets import AssetStore
from ocrsearch.storage.record_store import RecordStore, create_database_engine
from ocrsearch.utils.config import (
    AppConfig,
    PreprocessingConfig,
    StorageConfig,
)


class StubEngine:
    """Deterministic stand-in for the Tesseract engine.

    Returns queued responses in order, then ``default``. Queued exceptions
    are raised instead of returned.
    """

    def __init__(
        self, responses: list | None = None, default: str = "Nutrition Facts"
    ) -> None:
        self.responses = list(responses or [])
        self.default = default
        self.calls: list[Path] = []

    def recognize(self, image_path: Path) -> str:
        path = Path(image_path)
        assert path.exists(), "OCR must receive an existing preprocessed artifact"
        self.calls.append(path)
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return response

    def is_available(self) -> bool:
        return True


def make_png_bytes(width: int = 300, height: int = 100, label: str = "Hello") -> bytes:
    """Create a small PNG with dark text on a light background."""
    img = Image.new("RGB", (width, height), (235, 235, 235))
    ImageDraw.Draw(img).text((10, height // 3), label, fill=(20, 20, 20))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _png_chunk(kind: bytes, data: bytes) -> bytes:
    crc = zlib.crc32(kind + data) & 0xFFFFFFFF
    return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", crc)


def make_oversized_png_bytes(width: int = 14000, height: int = 14000) -> bytes:
    """Create a tiny PNG whose header declares a huge grayscale image."""
    header = struct.pack(">IIBBBBB", width, height, 8, 0, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", b"not really deflate data")
        + _png_chunk(b"IEND", b"")
    )


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.full((200, 300), 200, dtype=np.uint8)
    image[80:120, 50:250] = 40
    return image


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic BGR test image."""
    image = np.full((200, 300, 3), 220, dtype=np.uint8)
    image[80:120, 50:250] = (30, 30, 30)
    return image


@pytest.fixture
def png_bytes() -> bytes:
    return make_png_bytes()


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Configuration pointing every path into a temporary directory."""
    return AppConfig(
        preprocessing=PreprocessingConfig(scratch_dir=str(tmp_path / "temp")),
        storage=StorageConfig(images_dir=str(tmp_path / "images")),
        database_url=f"sqlite:///{tmp_path / 'db' / 'test.db'}",
    )


@pytest.fixture
def record_store() -> Iterator[RecordStore]:
    engine = create_database_engine(":memory:")
    yield RecordStore(engine)
    engine.dispose()


@pytest.fixture
def asset_store(app_config: AppConfig) -> AssetStore:
    return AssetStore(app_config.storage.images_dir)


@pytest.fixture
def stub_engine() -> StubEngine:
    return StubEngine()


@pytest.fixture
def pipeline(
    app_config: AppConfig,
    record_store: RecordStore,
    asset_store: AssetStore,
    stub_engine: StubEngine,
) -> ProcessingPipeline:
    return ProcessingPipeline(
        preprocessor=Preprocessor(app_config.preprocessing),
        ocr_engine=stub_engine,
        record_store=record_store,
        asset_store=asset_store,
        upload_config=app_config.upload,
    )


@pytest.fixture
def scratch_dir(app_config: AppConfig) -> Path:
    return Path(app_config.preprocessing.scratch_dir)
