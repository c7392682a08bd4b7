"""
Main application window.

Orchestrates image loading, crop editing, ratio presets, applying crops on a
background thread and undoing them.  Each opened file is an entity whose
current image changes as crops are applied and undone.
"""

import logging
from pathlib import Path

from PyQt6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QPushButton, QLabel,
    QFileDialog, QGroupBox, QMessageBox, QStatusBar, QToolBar, QApplication,
)
from PyQt6.QtCore import Qt
from PyQt6.QtGui import QAction, QKeySequence, QShortcut

from creative_crop.config import IMAGE_EXTENSIONS
from creative_crop.crop_widget import CropOverlayWidget, ImageLoaderThread, CommitThread
from creative_crop.errors import CropError
from creative_crop.models import ImageRef, Size
from creative_crop.session import CropEditor, CropSession
from creative_crop.settings import load_settings

logger = logging.getLogger(__name__)


class MainWindow(QMainWindow):
    def __init__(self, initial_path: Path | None = None):
        super().__init__()
        self.setWindowTitle("Creative Crop")
        self.setMinimumSize(900, 600)

        # Screen-aware startup size, clamped to 80% of screen
        preferred_w, preferred_h = 1280, 860
        screen = QApplication.primaryScreen()
        if screen is not None:
            avail = screen.availableGeometry()
            preferred_w = min(preferred_w, int(avail.width() * 0.8))
            preferred_h = min(preferred_h, int(avail.height() * 0.8))
        self.resize(preferred_w, preferred_h)

        self._settings = load_settings()
        self._editor = CropEditor(export=self._settings.export, min_size=self._settings.min_crop_size)
        self._entity_id: str | None = None
        self._loader: ImageLoaderThread | None = None
        self._committer: CommitThread | None = None

        self._build_ui()
        self._update_button_states()

        if initial_path is not None:
            self._open_entity(initial_path)

    # =========================================================================
    # UI construction
    # =========================================================================

    def _build_ui(self):
        self._build_toolbar()

        central = QWidget()
        self.setCentralWidget(central)
        layout = QHBoxLayout(central)
        layout.setContentsMargins(4, 4, 4, 4)

        self._crop_widget = CropOverlayWidget()
        self._crop_widget.region_changed.connect(self._update_crop_info)
        layout.addWidget(self._crop_widget, stretch=1)
        layout.addWidget(self._build_right_panel())

        self._status = QStatusBar()
        self.setStatusBar(self._status)
        self._status.showMessage("Open an image to begin.")

        # --- Keyboard Shortcuts ---
        QShortcut(QKeySequence(Qt.Key.Key_Return), self, self._apply_crop)
        QShortcut(QKeySequence(Qt.Key.Key_R), self, self._reset_region)
        QShortcut(QKeySequence.StandardKey.Undo, self, self._undo_crop)

    def _build_toolbar(self):
        toolbar = QToolBar("Main")
        toolbar.setMovable(False)
        self.addToolBar(toolbar)

        act_open = QAction("📂 Open Image", self)
        act_open.triggered.connect(self._select_image)
        toolbar.addAction(act_open)

        act_output = QAction("💾 Set Output Folder", self)
        act_output.triggered.connect(self._select_output_folder)
        toolbar.addAction(act_output)

    def _build_right_panel(self) -> QWidget:
        panel = QWidget()
        panel.setFixedWidth(220)
        panel_layout = QVBoxLayout(panel)
        panel_layout.setContentsMargins(4, 0, 0, 0)

        preset_group = QGroupBox("Presets")
        preset_layout = QVBoxLayout(preset_group)
        self._preset_buttons: list[QPushButton] = []
        for preset in self._settings.presets:
            btn = QPushButton(preset["name"])
            btn.clicked.connect(lambda checked, p=preset: self._apply_preset(p))
            preset_layout.addWidget(btn)
            self._preset_buttons.append(btn)
        panel_layout.addWidget(preset_group)

        self._crop_info_label = QLabel("Crop: —")
        self._crop_info_label.setWordWrap(True)
        panel_layout.addWidget(self._crop_info_label)

        actions_group = QGroupBox("Actions")
        actions_layout = QVBoxLayout(actions_group)

        self._btn_apply = QPushButton("✂️ Apply Crop")
        self._btn_apply.clicked.connect(self._apply_crop)
        actions_layout.addWidget(self._btn_apply)

        self._btn_reset = QPushButton("Reset Selection")
        self._btn_reset.clicked.connect(self._reset_region)
        actions_layout.addWidget(self._btn_reset)

        self._btn_undo = QPushButton("↩ Undo Crop")
        self._btn_undo.setToolTip("Restore the image from before the first crop")
        self._btn_undo.clicked.connect(self._undo_crop)
        actions_layout.addWidget(self._btn_undo)

        panel_layout.addWidget(actions_group)
        panel_layout.addStretch()
        return panel

    # =========================================================================
    # Loading
    # =========================================================================

    def _select_image(self):
        patterns = " ".join(f"*{ext}" for ext in sorted(IMAGE_EXTENSIONS))
        path, _ = QFileDialog.getOpenFileName(self, "Open Image", "", f"Images ({patterns})")
        if path:
            self._open_entity(Path(path))

    def _select_output_folder(self):
        folder = QFileDialog.getExistingDirectory(self, "Select Output Folder")
        if folder:
            self._editor.output_dir = Path(folder)
            self._status.showMessage(f"Crops will be written to {folder}")

    def _open_entity(self, path: Path):
        session = self._crop_widget.session()
        if session is not None and not session.closed:
            self._editor.cancel(session)
        self._entity_id = str(path.resolve())
        self._load(path)

    def _load(self, ref: ImageRef):
        """Decode *ref* in the background and open a session for the current entity."""
        self._crop_widget.clear()
        self._crop_widget.set_loading(True)

        if self._loader is not None:
            try:
                self._loader.finished.disconnect()
                self._loader.error.disconnect()
            except (TypeError, RuntimeError):
                pass  # Already disconnected or destroyed
            if self._loader.isRunning():
                self._loader.wait(500)

        container = Size(self._crop_widget.width(), self._crop_widget.height())
        self._loader = ImageLoaderThread(self._editor, self._entity_id, ref, container, self)
        self._loader.finished.connect(self._on_session_opened)
        self._loader.error.connect(self._on_load_error)
        self._loader.start()
        self._update_button_states()

    def _on_session_opened(self, session: CropSession):
        if session.closed:
            return  # Superseded by a newer load of the same entity
        if session.entity_id != self._entity_id:
            self._editor.cancel(session)
            return  # User opened another file before loading finished
        self._crop_widget.set_session(session)
        w, h = session.source.image.width, session.source.image.height
        self._status.showMessage(f"{Path(str(self._entity_id)).name}  ({w}×{h}, {session.source.format})")
        self._update_crop_info()
        self._update_button_states()

    def _on_load_error(self, error: str):
        logger.warning("Image load failed for %s: %s", self._entity_id, error)
        self._crop_widget.set_loading(False)
        self._status.showMessage(f"Failed to load image: {error}")
        QMessageBox.warning(self, "Load Failed", f"Could not open image:\n{error}")
        self._update_button_states()

    # =========================================================================
    # Editing
    # =========================================================================

    def _active_session(self) -> CropSession | None:
        session = self._crop_widget.session()
        if session is None or session.closed or not session.ready:
            return None
        return session

    def _apply_preset(self, preset: dict):
        session = self._active_session()
        if session is None or self._committer is not None:
            return
        session.apply_preset(preset["ratio_w"], preset["ratio_h"])
        self._crop_widget.update()
        self._update_crop_info()

    def _reset_region(self):
        session = self._active_session()
        if session is None or self._committer is not None:
            return
        session.reset()
        self._crop_widget.update()
        self._update_crop_info()

    def _update_crop_info(self):
        session = self._active_session()
        if session is None:
            self._crop_info_label.setText("Crop: —")
            return
        try:
            x, y, w, h = session.pixel_rect()
        except CropError as e:
            self._crop_info_label.setText(f"Crop: invalid ({e})")
            return
        self._crop_info_label.setText(f"Crop: {w} × {h} px\nat ({x}, {y})")

    def _update_button_states(self):
        has_session = self._active_session() is not None
        busy = self._committer is not None
        self._btn_apply.setEnabled(has_session and not busy)
        self._btn_reset.setEnabled(has_session and not busy)
        for btn in self._preset_buttons:
            btn.setEnabled(has_session and not busy)
        self._btn_undo.setEnabled(
            self._entity_id is not None and not busy and self._editor.undo_available(self._entity_id)
        )

    # =========================================================================
    # Commit / undo
    # =========================================================================

    def _apply_crop(self):
        session = self._active_session()
        if session is None or self._committer is not None:
            return
        self._crop_widget.set_locked(True)
        self._status.showMessage("Applying crop…")
        self._committer = CommitThread(self._editor, session, self)
        self._committer.finished.connect(self._on_commit_done)
        self._committer.error.connect(self._on_commit_error)
        self._update_button_states()
        self._committer.start()

    def _finish_commit(self):
        self._committer = None
        self._crop_widget.set_locked(False)

    def _on_commit_done(self, new_ref: ImageRef):
        self._finish_commit()
        self._status.showMessage(f"Crop applied: {new_ref}")
        self._load(new_ref)

    def _on_commit_error(self, error: str):
        logger.warning("Crop commit failed for %s: %s", self._entity_id, error)
        self._finish_commit()
        self._update_button_states()
        self._status.showMessage(f"Cannot apply crop: {error}")
        QMessageBox.warning(self, "Cannot Apply Crop", f"{error}\n\nThe image was not changed.")

    def _undo_crop(self):
        if self._entity_id is None or self._committer is not None:
            return
        original = self._editor.undo(self._entity_id)
        if original is None:
            return
        session = self._crop_widget.session()
        if session is not None and not session.closed:
            self._editor.cancel(session)
        self._status.showMessage(f"Restored {original}")
        self._load(original)

    def closeEvent(self, event):
        for thread in (self._loader, self._committer):
            if thread is not None and thread.isRunning():
                thread.wait(2000)
        super().closeEvent(event)
