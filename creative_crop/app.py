"""
Application entry point and dark-theme stylesheet.

Usage:
    python -m creative_crop [IMAGE] [--debug]
    creative-crop [IMAGE] [--debug]      (after pip install)
"""

import argparse
import logging
import sys
from pathlib import Path

from PyQt6.QtWidgets import QApplication

from creative_crop.main_window import MainWindow

DARK_STYLESHEET = """
    QMainWindow { background: #2b2b2b; }
    QWidget { background: #2b2b2b; color: #ddd; font-size: 10pt; }
    QGroupBox { border: 1px solid #555; border-radius: 4px; margin-top: 8px; padding-top: 12px; font-weight: bold; }
    QGroupBox::title { subcontrol-origin: margin; left: 8px; padding: 0 4px; }
    QPushButton { background: #3a3a3a; border: 1px solid #555; border-radius: 4px; padding: 6px 12px; }
    QPushButton:hover { background: #4a4a4a; }
    QPushButton:pressed { background: #2a2a2a; }
    QPushButton:disabled { color: #666; }
    QToolBar { background: #333; border-bottom: 1px solid #444; spacing: 4px; padding: 4px; }
    QStatusBar { background: #333; border-top: 1px solid #444; }
"""


def main():
    parser = argparse.ArgumentParser(prog="creative-crop", description="Crop product creatives.")
    parser.add_argument("image", nargs="?", type=Path, help="image to open on startup")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    args, qt_args = parser.parse_known_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = QApplication([sys.argv[0], *qt_args])
    app.setStyleSheet(DARK_STYLESHEET)

    window = MainWindow(initial_path=args.image)
    window.show()

    try:
        sys.exit(app.exec())
    except (SystemExit, KeyboardInterrupt):
        pass


if __name__ == "__main__":
    main()
