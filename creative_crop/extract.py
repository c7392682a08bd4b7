"""
Crop extraction: turn a percentage-space selection into source pixels.

The region is first expressed relative to the image's own drawn area (the
bounds), never the container, so letterbox bars can never leak into the
output.  Pixel coordinates are floored, and the copy is a plain
``Image.crop`` with no resampling: selecting the full bounds yields the
source pixels unchanged.

This module is Qt-free and safe to run in a worker thread.
"""

import io
import logging
import math
from concurrent.futures import Executor, Future
from pathlib import Path

from PIL import Image

from creative_crop.config import CROP_SUFFIX, FORMAT_EXTENSIONS, JPEG_SUBSAMPLING_MAP
from creative_crop.errors import EncodeError, InvalidCropError
from creative_crop.image_io import unique_path, write_atomic
from creative_crop.models import ImageRef, Rect, Size, SourceImage
from creative_crop.settings import ExportSettings

logger = logging.getLogger(__name__)

# Modes PNG can store as-is
_PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}
_PIXEL_SNAP = 1e-6


def _unit(value: float) -> float:
    return max(0.0, min(value, 1.0))


def _floor_px(value: float) -> int:
    # Percent round trips leave values like 199.99999999999997 for pixel 200
    nearest = round(value)
    if abs(value - nearest) < _PIXEL_SNAP:
        return int(nearest)
    return math.floor(value)


def relative_region(bounds: Rect, region: Rect) -> tuple[float, float, float, float]:
    """Region as (x, y, w, h) fractions of the drawn image, each clamped to [0, 1]."""
    if bounds.width <= 0 or bounds.height <= 0:
        raise InvalidCropError("image bounds are empty")
    return (
        _unit((region.x - bounds.x) / bounds.width),
        _unit((region.y - bounds.y) / bounds.height),
        _unit(region.width / bounds.width),
        _unit(region.height / bounds.height),
    )


def source_rect(natural: Size, bounds: Rect, region: Rect) -> tuple[int, int, int, int]:
    """Map a region to an (x, y, w, h) pixel rectangle of the full-resolution source.

    Raises InvalidCropError if the rectangle has no area.
    """
    rel_x, rel_y, rel_w, rel_h = relative_region(bounds, region)
    img_w, img_h = int(natural.width), int(natural.height)
    sx = _floor_px(rel_x * img_w)
    sy = _floor_px(rel_y * img_h)
    sw = _floor_px(rel_w * img_w)
    sh = _floor_px(rel_h * img_h)

    # Keep inside the raster
    sw = min(sw, img_w - sx)
    sh = min(sh, img_h - sy)

    if sw <= 0 or sh <= 0:
        raise InvalidCropError(f"crop of {sw}x{sh} pixels is empty")
    return sx, sy, sw, sh


def crop_source(source: SourceImage, bounds: Rect, region: Rect) -> Image.Image:
    """Copy the selected pixel rectangle into a new image of exactly that size."""
    x, y, w, h = source_rect(source.natural_size, bounds, region)
    cropped = source.image.crop((x, y, x + w, y + h))
    logger.debug("Cropped %dx%d at (%d, %d) from %dx%d source",
                 w, h, x, y, source.image.width, source.image.height)
    return cropped


def encode_image(img: Image.Image, settings: ExportSettings) -> bytes:
    """Encode a Pillow image with the configured format; raises EncodeError on failure."""
    buf = io.BytesIO()
    try:
        if settings.format == "JPEG":
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            img.save(
                buf, "JPEG",
                quality=settings.jpeg_quality,
                optimize=settings.jpeg_optimize,
                subsampling=JPEG_SUBSAMPLING_MAP[settings.jpeg_subsampling],
            )
        elif settings.format == "PNG":
            if img.mode not in _PNG_MODES:
                img = img.convert("RGBA")
            img.save(buf, "PNG", compress_level=settings.compress_level)
        else:
            raise ValueError(f"unsupported output format {settings.format!r}")
    except (OSError, ValueError, KeyError) as exc:
        raise EncodeError(f"could not encode {img.width}x{img.height} image: {exc}") from exc
    return buf.getvalue()


def output_path_for(source_path: Path, settings: ExportSettings, output_dir: Path | None = None) -> Path:
    """Return a unique ``<stem>-crop.<ext>`` path next to the source or in *output_dir*."""
    out_dir = output_dir or source_path.parent
    ext = FORMAT_EXTENSIONS[settings.format]
    return unique_path(out_dir / f"{source_path.stem}{CROP_SUFFIX}{ext}")


def extract(
    source: SourceImage,
    bounds: Rect,
    region: Rect,
    settings: ExportSettings | None = None,
    output_dir: Path | None = None,
) -> ImageRef:
    """
    Crop and encode the selection, returning a reference of the source's kind.

    In-memory sources produce encoded bytes.  File sources produce a new file
    written next to the source (or into *output_dir*) and return its path;
    the source file is never touched.

    Raises InvalidCropError for an empty selection and EncodeError when
    encoding or writing fails.  Nothing is written in either case.
    """
    settings = settings or ExportSettings()
    data = encode_image(crop_source(source, bounds, region), settings)

    if isinstance(source.ref, bytes):
        return data

    out_path = output_path_for(Path(source.ref), settings, output_dir)
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        write_atomic(out_path, data)
    except OSError as exc:
        raise EncodeError(f"could not write {out_path}: {exc}") from exc
    logger.info("Wrote crop to %s (%d bytes)", out_path, len(data))
    return out_path


def extract_async(
    executor: Executor,
    source: SourceImage,
    bounds: Rect,
    region: Rect,
    settings: ExportSettings | None = None,
    output_dir: Path | None = None,
) -> Future:
    """Run ``extract`` on *executor*; the future resolves to the new ImageRef."""
    return executor.submit(extract, source, bounds, region, settings, output_dir)
