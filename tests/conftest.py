from __future__ import annotations

import base64
import io
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from photo_enhancer.config import ServerConfig, load_config

BASE_URL = "https://enhancer.test"


def make_image_bytes(fmt: str = "PNG", width: int = 8, height: int = 6) -> bytes:
    from PIL import Image
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color=(120, 180, 240)).save(buf, format=fmt)
    return buf.getvalue()


def data_url(data: bytes, subtype: str = "png") -> str:
    return f"data:image/{subtype};base64,{base64.b64encode(data).decode('ascii')}"


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG")


@pytest.fixture
def config(tmp_path: Path) -> ServerConfig:
    return load_config(
        env={},
        public_base_url=BASE_URL,
        upload_dir=str(tmp_path / "uploads"),
        backend_url="https://backend.test/enhance-photo",
    )
