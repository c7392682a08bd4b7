"""
Interactive crop-overlay widget and Qt helpers.

This module contains everything that touches both Qt **and** image display:
``pil_to_qpixmap``, the background ``ImageLoaderThread`` and ``CommitThread``,
and the ``CropOverlayWidget`` editor.  All geometry lives in the Qt-free
``CropSession``; the widget only translates events and paints.
"""

from PIL import Image
from PyQt6.QtWidgets import QWidget, QSizePolicy
from PyQt6.QtCore import Qt, QRectF, QPointF, pyqtSignal, QThread
from PyQt6.QtGui import (
    QPainter, QPixmap, QColor, QPen, QBrush, QImage,
    QKeyEvent, QMouseEvent, QPaintEvent, QResizeEvent,
)

from creative_crop.config import HANDLE_SIZE, NUDGE_SMALL, NUDGE_LARGE
from creative_crop.errors import ContainerNotReadyError, CropError
from creative_crop.models import Handle, ImageRef, Point, Rect, Size
from creative_crop.session import CropEditor, CropSession


# =============================================================================
# Qt ↔ PIL helpers
# =============================================================================

def pil_to_qpixmap(pil_img: Image.Image) -> QPixmap:
    """Convert a PIL Image to QPixmap."""
    img_rgb = pil_img.convert("RGBA")
    data = img_rgb.tobytes("raw", "RGBA")
    qimg = QImage(data, img_rgb.width, img_rgb.height, QImage.Format.Format_RGBA8888)
    return QPixmap.fromImage(qimg)


# =============================================================================
# Background workers
# =============================================================================

class ImageLoaderThread(QThread):
    """Background thread that decodes an image and opens a crop session for it."""
    finished = pyqtSignal(object)  # CropSession
    error = pyqtSignal(str)

    def __init__(self, editor: CropEditor, entity_id: str, ref: ImageRef, container: Size, parent=None):
        super().__init__(parent)
        self._editor = editor
        self._entity_id = entity_id
        self._ref = ref
        self._container = container

    def run(self):
        try:
            session = self._editor.open_session(self._entity_id, self._ref, self._container)
            self.finished.emit(session)
        except CropError as e:
            self.error.emit(str(e))


class CommitThread(QThread):
    """Background thread that extracts and encodes a committed crop."""
    finished = pyqtSignal(object)  # ImageRef
    error = pyqtSignal(str)

    def __init__(self, editor: CropEditor, session: CropSession, parent=None):
        super().__init__(parent)
        self._editor = editor
        self._session = session

    def run(self):
        try:
            self.finished.emit(self._editor.commit(self._session))
        except CropError as e:
            self.error.emit(str(e))


# =============================================================================
# Crop Overlay Widget — interactive crop rectangle on a letterboxed image
# =============================================================================

_HANDLE_CURSORS = {
    Handle.MOVE: Qt.CursorShape.SizeAllCursor,
    Handle.TOP: Qt.CursorShape.SizeVerCursor,
    Handle.BOTTOM: Qt.CursorShape.SizeVerCursor,
    Handle.LEFT: Qt.CursorShape.SizeHorCursor,
    Handle.RIGHT: Qt.CursorShape.SizeHorCursor,
    Handle.TOP_LEFT: Qt.CursorShape.SizeFDiagCursor,
    Handle.BOTTOM_RIGHT: Qt.CursorShape.SizeFDiagCursor,
    Handle.TOP_RIGHT: Qt.CursorShape.SizeBDiagCursor,
    Handle.BOTTOM_LEFT: Qt.CursorShape.SizeBDiagCursor,
}


class CropOverlayWidget(QWidget):
    """Widget that displays an image with an interactive, resizable crop overlay."""

    region_changed = pyqtSignal()

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setMinimumSize(400, 300)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)
        self.setMouseTracking(True)

        self._session: CropSession | None = None
        self._pixmap: QPixmap | None = None
        self._loading = False
        self._locked = False  # no edits while a commit is in flight

    def set_loading(self, loading: bool):
        """Show/hide loading indicator."""
        self._loading = loading
        self.update()

    def set_locked(self, locked: bool):
        self._locked = locked
        if locked and self._session is not None:
            self._session.drag_end()
        self.update()

    def set_session(self, session: CropSession):
        """Show a session's image and start editing its region."""
        self._loading = False
        self._session = session
        self._pixmap = pil_to_qpixmap(session.source.image)
        self._sync_container()
        self.update()

    def session(self) -> CropSession | None:
        return self._session

    def clear(self):
        self._session = None
        self._pixmap = None
        self.update()

    def _sync_container(self):
        if self._session is None:
            return
        try:
            self._session.resize_container(Size(self.width(), self.height()))
        except ContainerNotReadyError:
            pass  # not laid out yet; the next resizeEvent retries

    # --- Coordinate mapping ---

    def _to_display(self, rect: Rect) -> QRectF:
        sx = self.width() / 100
        sy = self.height() / 100
        return QRectF(rect.x * sx, rect.y * sy, rect.width * sx, rect.height * sy)

    def _handle_rects(self, r: QRectF) -> dict[Handle, QRectF]:
        """Return screen-coordinate rectangles for the 8 resize handles."""
        hs = HANDLE_SIZE
        cx, cy = r.center().x(), r.center().y()
        points = {
            Handle.TOP_LEFT: (r.left(), r.top()),
            Handle.TOP: (cx, r.top()),
            Handle.TOP_RIGHT: (r.right(), r.top()),
            Handle.RIGHT: (r.right(), cy),
            Handle.BOTTOM_RIGHT: (r.right(), r.bottom()),
            Handle.BOTTOM: (cx, r.bottom()),
            Handle.BOTTOM_LEFT: (r.left(), r.bottom()),
            Handle.LEFT: (r.left(), cy),
        }
        return {h: QRectF(x - hs / 2, y - hs / 2, hs, hs) for h, (x, y) in points.items()}

    def _hit_test(self, pos: QPointF) -> Handle | None:
        for handle, rect in self._handle_rects(self._to_display(self._session.region)).items():
            if rect.contains(pos):
                return handle
        return self._session.handle_at(Point(pos.x(), pos.y()))

    # --- Painting ---

    def paintEvent(self, event: QPaintEvent):
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform)
        painter.fillRect(self.rect(), QColor(30, 30, 30))

        if not self._pixmap or self._session is None or not self._session.ready:
            painter.setPen(QColor(128, 128, 128))
            msg = "Loading image…" if self._loading else "No image loaded"
            painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, msg)
            painter.end()
            return

        # Draw image
        dest = self._to_display(self._session.bounds)
        painter.drawPixmap(dest.toRect(), self._pixmap)

        # Dim area outside crop
        crop_rect = self._to_display(self._session.region)
        dim = QColor(0, 0, 0, 140)

        # Top strip
        painter.fillRect(QRectF(dest.left(), dest.top(), dest.width(), crop_rect.top() - dest.top()), dim)
        # Bottom strip
        painter.fillRect(QRectF(dest.left(), crop_rect.bottom(), dest.width(), dest.bottom() - crop_rect.bottom()), dim)
        # Left strip
        painter.fillRect(QRectF(dest.left(), crop_rect.top(), crop_rect.left() - dest.left(), crop_rect.height()), dim)
        # Right strip
        painter.fillRect(QRectF(crop_rect.right(), crop_rect.top(), dest.right() - crop_rect.right(), crop_rect.height()), dim)

        # Draw crop border
        border = QColor(255, 255, 255) if not self._locked else QColor(128, 128, 128)
        painter.setPen(QPen(border, 2))
        painter.drawRect(crop_rect)

        # Draw rule-of-thirds lines
        pen_thirds = QPen(QColor(255, 255, 255, 80), 1, Qt.PenStyle.DashLine)
        painter.setPen(pen_thirds)
        for i in range(1, 3):
            x = crop_rect.left() + crop_rect.width() * i / 3
            painter.drawLine(QPointF(x, crop_rect.top()), QPointF(x, crop_rect.bottom()))
            y = crop_rect.top() + crop_rect.height() * i / 3
            painter.drawLine(QPointF(crop_rect.left(), y), QPointF(crop_rect.right(), y))

        # Draw resize handles
        if not self._locked:
            painter.setPen(QPen(QColor(0, 0, 0), 1))
            painter.setBrush(QBrush(QColor(255, 255, 255)))
            for rect in self._handle_rects(crop_rect).values():
                painter.drawRect(rect)

        # Draw source pixel size label
        try:
            _, _, w, h = self._session.pixel_rect()
            label = f"{w} × {h}"
        except CropError:
            label = "—"
        painter.setPen(QColor(255, 255, 255))
        painter.drawText(
            crop_rect.adjusted(0, -20, 0, 0).toRect(),
            Qt.AlignmentFlag.AlignHCenter | Qt.AlignmentFlag.AlignBottom,
            label,
        )

        painter.end()

    def resizeEvent(self, event: QResizeEvent):
        self._sync_container()
        super().resizeEvent(event)

    # --- Mouse interaction ---

    def _editable(self) -> bool:
        return self._session is not None and self._session.ready and not self._locked

    def mousePressEvent(self, event: QMouseEvent):
        if event.button() != Qt.MouseButton.LeftButton or not self._editable():
            return
        pos = event.position()
        handle = self._hit_test(pos)
        if handle is not None:
            self._session.drag_start(handle, Point(pos.x(), pos.y()))

    def mouseMoveEvent(self, event: QMouseEvent):
        if not self._editable():
            return
        pos = event.position()

        if self._session.dragging:
            if self._session.drag_move(Point(pos.x(), pos.y())) is not None:
                self.region_changed.emit()
                self.update()
            return

        # Update cursor
        handle = self._hit_test(pos)
        self.setCursor(_HANDLE_CURSORS.get(handle, Qt.CursorShape.ArrowCursor))

    def mouseReleaseEvent(self, event: QMouseEvent):
        if event.button() == Qt.MouseButton.LeftButton and self._session is not None:
            self._session.drag_end()

    # --- Keyboard nudge ---

    def keyPressEvent(self, event: QKeyEvent):
        if not self._editable():
            super().keyPressEvent(event)
            return
        amount = NUDGE_LARGE if event.modifiers() & Qt.KeyboardModifier.ShiftModifier else NUDGE_SMALL
        deltas = {
            Qt.Key.Key_Left: (-amount, 0),
            Qt.Key.Key_Right: (amount, 0),
            Qt.Key.Key_Up: (0, -amount),
            Qt.Key.Key_Down: (0, amount),
        }
        key = event.key()
        if key == Qt.Key.Key_Escape and self._session.dragging:
            self._session.drag_cancel()
        elif key in deltas and not self._session.dragging:
            self._session.nudge(*deltas[key])
        else:
            super().keyPressEvent(event)
            return
        self.region_changed.emit()
        self.update()
