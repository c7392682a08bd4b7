"""
Crop sessions and the editor facade the hosting UI talks to.

A ``CropSession`` owns everything one entity's crop UI needs: the decoded
source, the container size, the image bounds derived from both, the current
region and the drag controller.  Bounds are held on the session and passed
explicitly to every geometry helper; nothing is shared between sessions.

``CropEditor`` opens, commits and cancels sessions and keeps the undo
history.  A commit may run on a worker thread; while it is in flight the
entity is locked against a second commit, a new session or an undo.
"""

import itertools
import logging
import threading
from pathlib import Path

from creative_crop.config import HANDLE_TOLERANCE, MIN_CROP_SIZE
from creative_crop.drag import DragController, hit_test, nudge_region
from creative_crop.errors import ContainerNotReadyError, CropError, CropInProgressError
from creative_crop.extract import extract, source_rect
from creative_crop.history import EditHistory
from creative_crop.image_io import load_source
from creative_crop.models import (
    Handle, ImageRef, Point, Rect, Size, SourceImage,
    centered_region_for_ratio, clamp_region, compute_image_bounds, initial_region, map_region,
)
from creative_crop.settings import ExportSettings

logger = logging.getLogger(__name__)


# =============================================================================
# Crop session
# =============================================================================
class CropSession:
    """Crop state for one entity while its crop UI is open."""

    def __init__(self, entity_id: str, source: SourceImage, container: Size,
                 min_size: float = MIN_CROP_SIZE):
        self.entity_id = entity_id
        self.source = source
        self.min_size = min_size
        self.closed = False
        self._container = container
        self._bounds = compute_image_bounds(source.natural_size, container)
        self._region = initial_region(self._bounds) if self._bounds else None
        self._drag = DragController(self._bounds or Rect(), container, min_size)

    @property
    def ready(self) -> bool:
        """False until the container has a non-zero size."""
        return self._bounds is not None

    @property
    def container(self) -> Size:
        return self._container

    @property
    def bounds(self) -> Rect | None:
        return self._bounds

    @property
    def region(self) -> Rect | None:
        return self._region

    @property
    def dragging(self) -> bool:
        return self._drag.active

    def resize_container(self, container: Size):
        """Recompute bounds for a new container size and carry the region across.

        Raises ContainerNotReadyError for an empty container; the previous
        geometry is kept in that case.
        """
        bounds = compute_image_bounds(self.source.natural_size, container)
        if bounds is None:
            raise ContainerNotReadyError(f"container {container.width}x{container.height} is empty")
        if self._region is None:
            region = initial_region(bounds)
        else:
            region = clamp_region(map_region(self._region, self._bounds, bounds), bounds, self.min_size)
        self._container = container
        self._bounds = bounds
        self._region = region
        self._drag.update_geometry(bounds, container)
        logger.debug("Container %gx%g -> bounds %s", container.width, container.height, bounds)

    def to_percent(self, pointer: Point) -> Point:
        """Convert a container pixel position into percentage space."""
        return Point(pointer.x / self._container.width * 100, pointer.y / self._container.height * 100)

    def handle_at(self, pointer: Point, tolerance: float = HANDLE_TOLERANCE) -> Handle | None:
        """Return the handle under a pointer given in container pixels."""
        if not self.ready:
            return None
        return hit_test(self._region, self.to_percent(pointer), tolerance)

    # --- Pointer interface ---

    def drag_start(self, handle: Handle | str, pointer: Point) -> bool:
        """Start dragging *handle*. Ignored while not ready or while another drag is active."""
        if not self.ready or self.closed:
            return False
        if isinstance(handle, str):
            handle = Handle.parse(handle)
        return self._drag.on_drag_start(handle, pointer, self._region)

    def drag_move(self, pointer: Point) -> Rect | None:
        region = self._drag.on_drag_move(pointer)
        if region is not None:
            self._region = region
        return region

    def drag_end(self):
        self._drag.on_drag_end()

    def drag_cancel(self):
        """Abandon the active drag and put the region back where it started."""
        start = self._drag.cancel()
        if start is not None:
            self._region = start

    # --- Direct edits ---

    def _require_ready(self):
        if not self.ready:
            raise ContainerNotReadyError("image bounds are not available yet")

    def set_region(self, region: Rect) -> Rect:
        self._require_ready()
        self._region = clamp_region(region, self._bounds, self.min_size)
        return self._region

    def nudge(self, dx: float, dy: float) -> Rect:
        self._require_ready()
        self._region = nudge_region(self._region, self._bounds, dx, dy, self.min_size)
        return self._region

    def reset(self) -> Rect:
        self._require_ready()
        self._drag.cancel()
        self._region = initial_region(self._bounds)
        return self._region

    def apply_preset(self, ratio_w: int, ratio_h: int) -> Rect:
        """Select the largest centred region of the given pixel aspect ratio."""
        self._require_ready()
        self._drag.cancel()
        self._region = centered_region_for_ratio(
            self._bounds, self.source.natural_size, ratio_w, ratio_h, self.min_size,
        )
        return self._region

    def pixel_rect(self) -> tuple[int, int, int, int]:
        """The source pixel rectangle the current region would extract."""
        self._require_ready()
        return source_rect(self.source.natural_size, self._bounds, self._region)


# =============================================================================
# Editor facade
# =============================================================================
class CropEditor:
    """Opens crop sessions, commits them and keeps one level of undo per entity."""

    def __init__(self, history: EditHistory | None = None,
                 export: ExportSettings | None = None,
                 output_dir: Path | None = None,
                 min_size: float = MIN_CROP_SIZE):
        self.history = history if history is not None else EditHistory()
        self.export = export or ExportSettings()
        self.output_dir = output_dir
        self.min_size = min_size
        self._sessions: dict[str, CropSession] = {}
        self._in_flight: set[str] = set()
        # Latest open_session ticket per entity; older decodes are stale
        self._opening: dict[str, int] = {}
        self._tickets = itertools.count(1)
        self._lock = threading.Lock()

    def session_for(self, entity_id: str) -> CropSession | None:
        return self._sessions.get(entity_id)

    def is_busy(self, entity_id: str) -> bool:
        with self._lock:
            return entity_id in self._in_flight

    def _check_idle(self, entity_id: str):
        if entity_id in self._in_flight:
            raise CropInProgressError(f"a crop of {entity_id} is still being applied")

    def open_session(self, entity_id: str, image_ref: ImageRef, container: Size) -> CropSession:
        """
        Decode *image_ref* and start a crop session for *entity_id*.

        Raises ImageDecodeError if the image cannot be loaded and
        CropInProgressError while a commit for the entity is running.  An
        already open session for the entity is cancelled.

        When a later ``open_session`` for the same entity starts while this
        one is still decoding, the later one wins: this call returns its
        session already closed and leaves the registered session alone.
        """
        with self._lock:
            self._check_idle(entity_id)
            ticket = next(self._tickets)
            self._opening[entity_id] = ticket
        try:
            source = load_source(image_ref)
        except CropError:
            with self._lock:
                if self._opening.get(entity_id) == ticket:
                    del self._opening[entity_id]
            raise
        session = CropSession(entity_id, source, container, self.min_size)
        with self._lock:
            if self._opening.get(entity_id) != ticket:
                session.closed = True
                logger.debug("Discarding stale crop session for %s", entity_id)
                return session
            del self._opening[entity_id]
            self._check_idle(entity_id)
            previous = self._sessions.get(entity_id)
            if previous is not None:
                previous.drag_cancel()
                previous.closed = True
                logger.debug("Replacing open crop session for %s", entity_id)
            self._sessions[entity_id] = session
        logger.info("Opened crop session for %s (%dx%d)", entity_id,
                    source.image.width, source.image.height)
        return session

    def commit(self, session: CropSession) -> ImageRef:
        """
        Extract the session's region and return the new image reference.

        The pre-crop image is recorded as the undo baseline only after the new
        image exists.  On InvalidCropError, EncodeError or
        ContainerNotReadyError the session stays open with its region
        unchanged, so the same commit can be retried.
        """
        entity_id = session.entity_id
        with self._lock:
            if session.closed or self._sessions.get(entity_id) is not session:
                raise CropError(f"crop session for {entity_id} is closed")
            self._check_idle(entity_id)
            if not session.ready:
                raise ContainerNotReadyError("image bounds are not available yet")
            self._in_flight.add(entity_id)
            bounds, region = session.bounds, session.region

        try:
            new_ref = extract(session.source, bounds, region, self.export, self.output_dir)
        except BaseException as exc:
            with self._lock:
                self._in_flight.discard(entity_id)
            if isinstance(exc, CropError):
                logger.warning("Crop of %s failed: %s", entity_id, exc)
            raise

        # Baseline, session close and unlock must be seen together
        with self._lock:
            self.history.record_if_absent(entity_id, session.source.ref)
            session.closed = True
            if self._sessions.get(entity_id) is session:
                del self._sessions[entity_id]
            self._in_flight.discard(entity_id)
        logger.info("Committed crop for %s", entity_id)
        return new_ref

    def cancel(self, session: CropSession):
        """Close the session without committing anything."""
        session.drag_cancel()
        session.closed = True
        with self._lock:
            if self._sessions.get(session.entity_id) is session:
                del self._sessions[session.entity_id]
        logger.debug("Cancelled crop session for %s", session.entity_id)

    def undo_available(self, entity_id: str) -> bool:
        return self.history.has_undo(entity_id)

    def undo(self, entity_id: str) -> ImageRef | None:
        """Return the entity's pre-crop image, or None if it has no crop to undo."""
        with self._lock:
            self._check_idle(entity_id)
            if not self.history.has_undo(entity_id):
                return None
            ref = self.history.restore(entity_id)
        logger.info("Undid crop for %s", entity_id)
        return ref
