import io

import pytest
from PIL import Image


def make_image(w: int, h: int, mode: str = "RGB") -> Image.Image:
    """An image whose pixels encode their own coordinates."""
    img = Image.new("RGB", (w, h))
    img.putdata([(x % 256, y % 256, (x // 256) * 16 + (y // 256)) for y in range(h) for x in range(w)])
    return img.convert(mode) if mode != "RGB" else img


def png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, "PNG")
    return buf.getvalue()


def decode(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config directory at a temp folder."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("APPDATA", str(tmp_path / "config"))
    return tmp_path / "config"
