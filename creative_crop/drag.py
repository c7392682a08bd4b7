"""
Handle dragging for the crop rectangle.

``drag_region`` is a pure function of a frozen ``DragSession`` and the live
pointer position: every pointer-move recomputes the region from the start
state, so dropped or reordered events can never make it drift.

Each handle is a pair of one-axis rules, ``(x_rule, y_rule)``.  Edge handles
move one axis and keep the other; corner handles are the composition of the
two adjacent edge rules, so a runaway value on one axis cannot leak into the
other.

``DragController`` is the narrow pointer interface the hosting UI talks to:
``on_drag_start`` / ``on_drag_move`` / ``on_drag_end``.
"""

import logging
from typing import Callable

from creative_crop.config import HANDLE_TOLERANCE, MIN_CROP_SIZE
from creative_crop.models import DragSession, Handle, Point, Rect, Size, clamp_region

logger = logging.getLogger(__name__)

# (start, length, delta, lo, hi, min_size) -> (start, length)
AxisRule = Callable[[float, float, float, float, float, float], tuple[float, float]]


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(value, hi))


# =============================================================================
# One-axis rules
# =============================================================================
def _keep(start, length, delta, lo, hi, min_size):
    return start, length


def _shift(start, length, delta, lo, hi, min_size):
    """Move without resizing."""
    return _clamp(start + delta, lo, hi - length), length


def _pull_start(start, length, delta, lo, hi, min_size):
    """Drag the leading edge (top or left); the trailing edge stays put."""
    end = start + length
    new_start = min(end - min_size, max(lo, start + delta))
    return new_start, end - new_start


def _pull_end(start, length, delta, lo, hi, min_size):
    """Drag the trailing edge (bottom or right); the leading edge stays put."""
    return start, _clamp(length + delta, min_size, hi - start)


HANDLE_RULES: dict[Handle, tuple[AxisRule, AxisRule]] = {
    Handle.MOVE: (_shift, _shift),
    Handle.TOP: (_keep, _pull_start),
    Handle.BOTTOM: (_keep, _pull_end),
    Handle.LEFT: (_pull_start, _keep),
    Handle.RIGHT: (_pull_end, _keep),
    Handle.TOP_LEFT: (_pull_start, _pull_start),
    Handle.TOP_RIGHT: (_pull_end, _pull_start),
    Handle.BOTTOM_LEFT: (_pull_start, _pull_end),
    Handle.BOTTOM_RIGHT: (_pull_end, _pull_end),
}


# =============================================================================
# Pure drag math
# =============================================================================
def pointer_delta(session: DragSession, pointer: Point, container: Size) -> tuple[float, float]:
    """Convert the pixel distance from the drag start into percentage points."""
    dx = (pointer.x - session.start_pointer.x) / container.width * 100
    dy = (pointer.y - session.start_pointer.y) / container.height * 100
    return dx, dy


def drag_region(
    session: DragSession,
    pointer: Point,
    bounds: Rect,
    container: Size,
    min_size: float = MIN_CROP_SIZE,
) -> Rect:
    """Compute the region for the current pointer position of a drag."""
    if container.is_empty:
        return session.start_region
    dx, dy = pointer_delta(session, pointer, container)
    s = session.start_region
    x_rule, y_rule = HANDLE_RULES[session.handle]
    x, w = x_rule(s.x, s.width, dx, bounds.x, bounds.right, min_size)
    y, h = y_rule(s.y, s.height, dy, bounds.y, bounds.bottom, min_size)
    return clamp_region(Rect(x, y, w, h), bounds, min_size)


def nudge_region(region: Rect, bounds: Rect, dx: float, dy: float,
                 min_size: float = MIN_CROP_SIZE) -> Rect:
    """Shift the region by (dx, dy) percentage points, keeping it inside the bounds."""
    return clamp_region(Rect(region.x + dx, region.y + dy, region.width, region.height),
                        bounds, min_size)


def hit_test(region: Rect, point: Point, tolerance: float = HANDLE_TOLERANCE) -> Handle | None:
    """Return the handle under a point given in percentage space, or None.

    Corners win over edges and edges win over the interior.
    """
    near_left = abs(point.x - region.x) <= tolerance
    near_right = abs(point.x - region.right) <= tolerance
    near_top = abs(point.y - region.y) <= tolerance
    near_bottom = abs(point.y - region.bottom) <= tolerance
    in_x = region.x - tolerance <= point.x <= region.right + tolerance
    in_y = region.y - tolerance <= point.y <= region.bottom + tolerance

    if near_top and near_left:
        return Handle.TOP_LEFT
    if near_top and near_right:
        return Handle.TOP_RIGHT
    if near_bottom and near_left:
        return Handle.BOTTOM_LEFT
    if near_bottom and near_right:
        return Handle.BOTTOM_RIGHT
    if near_top and in_x:
        return Handle.TOP
    if near_bottom and in_x:
        return Handle.BOTTOM
    if near_left and in_y:
        return Handle.LEFT
    if near_right and in_y:
        return Handle.RIGHT
    if region.x < point.x < region.right and region.y < point.y < region.bottom:
        return Handle.MOVE
    return None


# =============================================================================
# Pointer interface
# =============================================================================
class DragController:
    """Tracks at most one active drag and turns pointer events into regions."""

    def __init__(self, bounds: Rect, container: Size, min_size: float = MIN_CROP_SIZE):
        self._bounds = bounds
        self._container = container
        self._min_size = min_size
        self._session: DragSession | None = None

    @property
    def active(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> DragSession | None:
        return self._session

    def update_geometry(self, bounds: Rect, container: Size):
        """Swap in new bounds after a container resize; an active drag is abandoned."""
        if self._session is not None:
            logger.debug("Container changed mid-drag, abandoning %s drag", self._session.handle.value)
        self._bounds = bounds
        self._container = container
        self._session = None

    def on_drag_start(self, handle: Handle, pointer: Point, region: Rect) -> bool:
        """Begin a drag.  Returns False (and ignores the event) if one is already active."""
        if self._session is not None:
            return False
        self._session = DragSession(handle, pointer, region)
        return True

    def on_drag_move(self, pointer: Point) -> Rect | None:
        """Return the region for this pointer position, or None when no drag is active."""
        if self._session is None:
            return None
        return drag_region(self._session, pointer, self._bounds, self._container, self._min_size)

    def on_drag_end(self):
        self._session = None

    def cancel(self) -> Rect | None:
        """Abandon the drag and return the region it started from."""
        session, self._session = self._session, None
        return session.start_region if session else None
