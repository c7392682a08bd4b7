import random

import pytest

from creative_crop.drag import DragController, drag_region, hit_test, nudge_region
from creative_crop.models import DragSession, Handle, Point, Rect, Size

FULL = Rect(0, 0, 100, 100)
CONTAINER = Size(200, 200)  # 2 px per percentage point
START = Rect(20, 20, 40, 40)
ORIGIN = Point(100, 100)


def drag(handle, dx_px, dy_px, bounds=FULL, start=START, container=CONTAINER, min_size=5):
    session = DragSession(handle, ORIGIN, start)
    return drag_region(session, Point(ORIGIN.x + dx_px, ORIGIN.y + dy_px), bounds, container, min_size)


def assert_rect(actual, x, y, w, h):
    assert actual.x == pytest.approx(x)
    assert actual.y == pytest.approx(y)
    assert actual.width == pytest.approx(w)
    assert actual.height == pytest.approx(h)


def assert_valid(region, bounds, min_size):
    eps = 1e-9
    assert region.x >= bounds.x - eps
    assert region.y >= bounds.y - eps
    assert region.right <= bounds.right + eps
    assert region.bottom <= bounds.bottom + eps
    assert region.width >= min(min_size, bounds.width) - eps
    assert region.height >= min(min_size, bounds.height) - eps


# =============================================================================
# Per-handle rules
# =============================================================================
def test_no_pointer_movement_keeps_region():
    for handle in Handle:
        assert_rect(drag(handle, 0, 0), 20, 20, 40, 40)


def test_move_shifts_without_resizing():
    assert_rect(drag(Handle.MOVE, 40, -20), 40, 10, 40, 40)


def test_move_stops_at_bounds():
    assert_rect(drag(Handle.MOVE, 4000, -4000), 60, 0, 40, 40)
    assert_rect(drag(Handle.MOVE, -4000, 4000), 0, 60, 40, 40)


def test_top_edge_grows_upwards():
    assert_rect(drag(Handle.TOP, 50, -10), 20, 15, 40, 45)


def test_top_edge_past_bottom_stops_at_min_size():
    assert_rect(drag(Handle.TOP, 0, 1000), 20, 55, 40, 5)


def test_top_edge_stops_at_bounds():
    assert_rect(drag(Handle.TOP, 0, -1000), 20, 0, 40, 60)


def test_bottom_edge_clamps_to_bounds():
    assert_rect(drag(Handle.BOTTOM, 0, 100), 20, 20, 40, 80)


def test_bottom_edge_past_top_stops_at_min_size():
    assert_rect(drag(Handle.BOTTOM, 0, -1000), 20, 20, 40, 5)


def test_left_edge_stops_at_bounds():
    assert_rect(drag(Handle.LEFT, -1000, 30), 0, 20, 60, 40)


def test_right_edge_never_overshoots_image():
    bounds = Rect(25, 0, 50, 100)
    region = drag(Handle.RIGHT, 400, 0, bounds=bounds, start=Rect(30, 10, 20, 20),
                  container=Size(400, 400))
    assert_rect(region, 30, 10, 45, 20)
    assert region.right == pytest.approx(bounds.right)


def test_corner_axes_are_independent():
    assert_rect(drag(Handle.BOTTOM_RIGHT, 20, -1000), 20, 20, 50, 5)
    assert_rect(drag(Handle.TOP_LEFT, -1000, 10), 0, 25, 60, 35)
    assert_rect(drag(Handle.TOP_RIGHT, 1000, -1000), 20, 0, 80, 60)
    assert_rect(drag(Handle.BOTTOM_LEFT, 1000, 1000), 55, 20, 5, 80)


def test_corners_match_their_two_edges():
    for corner, (h_edge, v_edge) in {
        Handle.TOP_LEFT: (Handle.LEFT, Handle.TOP),
        Handle.TOP_RIGHT: (Handle.RIGHT, Handle.TOP),
        Handle.BOTTOM_LEFT: (Handle.LEFT, Handle.BOTTOM),
        Handle.BOTTOM_RIGHT: (Handle.RIGHT, Handle.BOTTOM),
    }.items():
        for dx, dy in [(30, -50), (-700, 900), (15, 15)]:
            c = drag(corner, dx, dy)
            h = drag(h_edge, dx, dy)
            v = drag(v_edge, dx, dy)
            assert_rect(c, h.x, v.y, h.width, v.height)


def test_delta_uses_container_axis_sizes():
    # 400x100 container: 40 px is 10% horizontally and 40% vertically
    region = drag(Handle.MOVE, 40, 40, start=Rect(0, 0, 10, 10), container=Size(400, 100))
    assert_rect(region, 10, 40, 10, 10)


def test_empty_container_returns_start_region():
    assert drag(Handle.MOVE, 50, 50, container=Size(0, 0)) == START


def test_random_drags_keep_invariants():
    rng = random.Random(1234)
    bounds = Rect(12.5, 0, 75, 100)
    container = Size(640, 360)
    region = bounds
    for _ in range(2000):
        handle = rng.choice(list(Handle))
        session = DragSession(handle, Point(rng.uniform(-2000, 2000), rng.uniform(-2000, 2000)), region)
        pointer = Point(rng.uniform(-5000, 5000), rng.uniform(-5000, 5000))
        region = drag_region(session, pointer, bounds, container, 5)
        assert_valid(region, bounds, 5)


# =============================================================================
# Nudge and hit testing
# =============================================================================
def test_nudge_moves_and_clamps():
    assert_rect(nudge_region(START, FULL, 5, -5), 25, 15, 40, 40)
    assert_rect(nudge_region(START, FULL, -100, 100), 0, 60, 40, 40)


@pytest.mark.parametrize("point,expected", [
    (Point(20, 20), Handle.TOP_LEFT),
    (Point(60, 20), Handle.TOP_RIGHT),
    (Point(20, 60), Handle.BOTTOM_LEFT),
    (Point(60.5, 59.5), Handle.BOTTOM_RIGHT),
    (Point(40, 21), Handle.TOP),
    (Point(40, 59), Handle.BOTTOM),
    (Point(19, 40), Handle.LEFT),
    (Point(61, 40), Handle.RIGHT),
    (Point(40, 40), Handle.MOVE),
    (Point(90, 90), None),
])
def test_hit_test(point, expected):
    assert hit_test(START, point, tolerance=2) is expected


# =============================================================================
# Controller
# =============================================================================
def test_controller_recomputes_from_start_state():
    ctl = DragController(FULL, CONTAINER, 5)
    assert ctl.on_drag_start(Handle.MOVE, ORIGIN, START)
    ctl.on_drag_move(Point(300, 100))
    ctl.on_drag_move(Point(900, 100))
    # Only the latest pointer matters, no accumulated drift
    assert_rect(ctl.on_drag_move(Point(110, 100)), 25, 20, 40, 40)


def test_controller_ignores_second_drag_start():
    ctl = DragController(FULL, CONTAINER, 5)
    assert ctl.on_drag_start(Handle.RIGHT, ORIGIN, START)
    assert not ctl.on_drag_start(Handle.LEFT, ORIGIN, FULL)
    assert ctl.session.handle is Handle.RIGHT


def test_controller_without_drag_returns_none():
    ctl = DragController(FULL, CONTAINER, 5)
    assert ctl.on_drag_move(Point(10, 10)) is None
    ctl.on_drag_start(Handle.MOVE, ORIGIN, START)
    ctl.on_drag_end()
    assert not ctl.active
    assert ctl.on_drag_move(Point(10, 10)) is None


def test_controller_cancel_returns_start_region():
    ctl = DragController(FULL, CONTAINER, 5)
    ctl.on_drag_start(Handle.MOVE, ORIGIN, START)
    ctl.on_drag_move(Point(150, 150))
    assert ctl.cancel() == START
    assert ctl.cancel() is None


def test_geometry_update_abandons_drag():
    ctl = DragController(FULL, CONTAINER, 5)
    ctl.on_drag_start(Handle.MOVE, ORIGIN, START)
    ctl.update_geometry(Rect(25, 0, 50, 100), Size(400, 400))
    assert not ctl.active
