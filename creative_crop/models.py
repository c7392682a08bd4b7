"""
Data models and crop-geometry utilities.

All rectangles live in *percentage space*: ``x``, ``y``, ``width`` and
``height`` are 0-100 fractions of the container the image is drawn in.
``ImageBounds`` is where the aspect-fitted image is actually drawn inside the
container; a crop region is a ``Rect`` that must always stay inside it.

Nothing here caches bounds: every helper takes them as an explicit argument
so two sessions on different entities can never see each other's geometry.
"""

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from PIL import Image

from creative_crop.config import MIN_CROP_SIZE
from creative_crop.errors import ContainerNotReadyError

# A reference to image data: a file on disk or encoded bytes in memory.
ImageRef = Union[Path, bytes]


# =============================================================================
# Data classes
# =============================================================================
@dataclass(frozen=True)
class Size:
    """Pixel size of a container or an image."""
    width: float
    height: float

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass(frozen=True)
class Point:
    """Pointer position in container pixels."""
    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    """Rectangle in percentage space."""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def as_tuple(self) -> tuple[float, float, float, float]:
        return self.x, self.y, self.width, self.height


class Handle(enum.Enum):
    """The nine control points of a crop rectangle."""
    MOVE = "move"
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"

    @classmethod
    def parse(cls, name: str) -> "Handle":
        """Look up a handle by its kebab-case name (``"top-left"``)."""
        try:
            return cls(name.strip().lower().replace("_", "-"))
        except ValueError:
            raise ValueError(f"unknown handle: {name!r}") from None


@dataclass(frozen=True)
class SourceImage:
    """A decoded, read-only original image and the reference it came from."""
    image: Image.Image
    ref: ImageRef
    format: str = "PNG"

    @property
    def natural_size(self) -> Size:
        return Size(self.image.width, self.image.height)


@dataclass(frozen=True)
class DragSession:
    """Frozen start state of one pointer drag."""
    handle: Handle
    start_pointer: Point
    start_region: Rect


# =============================================================================
# Crop math utilities
# =============================================================================
def compute_image_bounds(natural: Size, container: Size) -> Rect | None:
    """
    Return where an aspect-fitted image is drawn inside its container.

    A relatively wider image is fit to the container width and centred
    vertically (letterbox); otherwise it is fit to the height and centred
    horizontally (pillarbox).  Returns ``None`` when either size has a zero
    dimension: the bounds are indeterminate and callers must treat the
    container as not ready.
    """
    if natural.is_empty or container.is_empty:
        return None

    image_aspect = natural.width / natural.height
    container_aspect = container.width / container.height

    # min() keeps float noise from overshooting the container
    if image_aspect > container_aspect:
        disp_w = container.width
        disp_h = min(container.width / image_aspect, container.height)
        offset_x = 0.0
        offset_y = (container.height - disp_h) / 2
    else:
        disp_h = container.height
        disp_w = min(container.height * image_aspect, container.width)
        offset_x = (container.width - disp_w) / 2
        offset_y = 0.0

    return Rect(
        offset_x / container.width * 100,
        offset_y / container.height * 100,
        disp_w / container.width * 100,
        disp_h / container.height * 100,
    )


def require_image_bounds(natural: Size, container: Size) -> Rect:
    """Like ``compute_image_bounds`` but raise ContainerNotReadyError instead of returning None."""
    bounds = compute_image_bounds(natural, container)
    if bounds is None:
        raise ContainerNotReadyError(
            f"cannot fit {natural.width}x{natural.height} image into "
            f"{container.width}x{container.height} container"
        )
    return bounds


def initial_region(bounds: Rect) -> Rect:
    """The region a new session starts with: the whole image, i.e. no crop."""
    return Rect(bounds.x, bounds.y, bounds.width, bounds.height)


def clamp_region(region: Rect, bounds: Rect, min_size: float = MIN_CROP_SIZE) -> Rect:
    """Clamp a crop region into the image bounds.

    Size is clamped before position, so whatever the input the result can
    never extend past the bounds.  A minimum larger than the bounds yields
    to the bounds.
    """
    w = min(max(region.width, min_size), bounds.width)
    h = min(max(region.height, min_size), bounds.height)
    x = max(bounds.x, min(region.x, bounds.right - w))
    y = max(bounds.y, min(region.y, bounds.bottom - h))
    return Rect(x, y, w, h)


def map_region(region: Rect, old_bounds: Rect, new_bounds: Rect) -> Rect:
    """Carry a region across a bounds change, keeping its position relative to the image."""
    sx = new_bounds.width / old_bounds.width if old_bounds.width else 0.0
    sy = new_bounds.height / old_bounds.height if old_bounds.height else 0.0
    return Rect(
        new_bounds.x + (region.x - old_bounds.x) * sx,
        new_bounds.y + (region.y - old_bounds.y) * sy,
        region.width * sx,
        region.height * sy,
    )


def calculate_max_crop(img_w: int, img_h: int, ratio_w: int, ratio_h: int) -> tuple[int, int]:
    """Calculate the maximum crop dimensions for a given aspect ratio within an image."""
    aspect = ratio_w / ratio_h
    # Try full width
    crop_w = img_w
    crop_h = int(round(crop_w / aspect))
    if crop_h <= img_h:
        return crop_w, crop_h
    # Full height
    crop_h = img_h
    crop_w = int(round(crop_h * aspect))
    return min(crop_w, img_w), crop_h


def centered_region_for_ratio(
    bounds: Rect, natural: Size, ratio_w: int, ratio_h: int,
    min_size: float = MIN_CROP_SIZE,
) -> Rect:
    """Largest centred region with the given pixel aspect ratio.

    The ratio applies to source pixels, not to percentage space, so the
    maximum crop is found in pixels and then mapped back into the bounds.
    A ratio of 0 on either side selects the whole image.
    """
    if ratio_w <= 0 or ratio_h <= 0 or natural.is_empty:
        return initial_region(bounds)
    img_w, img_h = int(natural.width), int(natural.height)
    crop_w, crop_h = calculate_max_crop(img_w, img_h, ratio_w, ratio_h)
    rel_w = crop_w / img_w
    rel_h = crop_h / img_h
    region = Rect(
        bounds.x + (1 - rel_w) / 2 * bounds.width,
        bounds.y + (1 - rel_h) / 2 * bounds.height,
        rel_w * bounds.width,
        rel_h * bounds.height,
    )
    return clamp_region(region, bounds, min_size)
