"""
Qt-free image I/O utilities.

Provides helpers to decode image references (files, including PSD, or
in-memory bytes) into Pillow images, write encoded crops to disk atomically
and generate unique file paths.  Safe to import in worker threads.
"""

import io
import logging
import os
import tempfile
from pathlib import Path

from PIL import Image, UnidentifiedImageError
from psd_tools import PSDImage

from creative_crop.errors import ImageDecodeError
from creative_crop.models import ImageRef, SourceImage

logger = logging.getLogger(__name__)

# Allow very large images (Pillow's default limit is ~178MP)
Image.MAX_IMAGE_PIXELS = None

_PSD_SIGNATURE = b"8BPS"


def _is_psd(ref: ImageRef) -> bool:
    if isinstance(ref, bytes):
        return ref[:4] == _PSD_SIGNATURE
    return Path(ref).suffix.lower() == ".psd"


def open_image(ref: ImageRef) -> Image.Image:
    """Open an image reference, using psd-tools for PSD and Pillow for the rest."""
    if _is_psd(ref):
        psd = PSDImage.open(io.BytesIO(ref) if isinstance(ref, bytes) else str(ref))
        return psd.composite()
    if isinstance(ref, bytes):
        return Image.open(io.BytesIO(ref))
    return Image.open(ref)


def load_source(ref: ImageRef) -> SourceImage:
    """Fully decode an image reference into a SourceImage.

    Raises ImageDecodeError if the data is missing, unreadable or not an image.
    """
    try:
        img = open_image(ref)
        fmt = "PSD" if _is_psd(ref) else (img.format or "PNG")
        img.load()
    except (OSError, UnidentifiedImageError, ValueError) as exc:
        label = "<bytes>" if isinstance(ref, bytes) else str(ref)
        raise ImageDecodeError(f"failed to load {label}: {exc}") from exc
    if img.width <= 0 or img.height <= 0:
        raise ImageDecodeError("image has no pixels")
    logger.debug("Decoded %s image %dx%d (%s)", fmt, img.width, img.height, img.mode)
    return SourceImage(image=img, ref=ref if isinstance(ref, bytes) else Path(ref), format=fmt)


def unique_path(out_path: Path) -> Path:
    """Return a unique path by appending -01, -02, etc. if file already exists."""
    if not out_path.exists():
        return out_path
    stem = out_path.stem
    suffix = out_path.suffix
    parent = out_path.parent
    counter = 1
    while True:
        candidate = parent / f"{stem}-{counter:02d}{suffix}"
        if not candidate.exists():
            return candidate
        counter += 1


def write_atomic(path: Path, data: bytes) -> None:
    """Write bytes to *path* via a temporary file so readers never see a partial file."""
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except OSError:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
