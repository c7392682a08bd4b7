"""
Application constants and configuration.

DEFAULT_PRESETS provides the built-in crop ratio presets. Runtime presets and
export settings are loaded from settings.json via the settings module. All
other constants control crop-editor behaviour and export encoding.

Geometry constants are expressed in *percentage space*: 0-100 fractions of
the crop container, independent of its pixel size.

The ``config_dir()`` helper returns the platform-appropriate config
directory and is shared by all persistence modules.
"""

import os
import sys
from pathlib import Path

# =============================================================================
# APP IDENTITY & CONFIG DIRECTORY
# =============================================================================
APP_NAME = "creative-crop"


def config_dir() -> Path:
    """Return the platform-appropriate config directory, creating it if needed."""
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    directory = base / APP_NAME
    directory.mkdir(parents=True, exist_ok=True)
    return directory

# =============================================================================
# DEFAULT PRESETS — Built-in fallback when settings.json is missing or corrupt
# =============================================================================
# ratio_w/ratio_h of 0 means a free (unconstrained) selection.
DEFAULT_PRESETS = [
    {"name": "Free", "ratio_w": 0, "ratio_h": 0},
    {"name": "1:1", "ratio_w": 1, "ratio_h": 1},
    {"name": "2:3", "ratio_w": 2, "ratio_h": 3},
    {"name": "4:5", "ratio_w": 4, "ratio_h": 5},
    {"name": "9:16", "ratio_w": 9, "ratio_h": 16},
    {"name": "16:9", "ratio_w": 16, "ratio_h": 9},
]

# PNG compression level (0-9, 9 = maximum compression)
PNG_COMPRESS_LEVEL = 9

# JPEG export defaults (matches the creative generation pipeline)
JPEG_QUALITY_DEFAULT = 95
JPEG_QUALITY_MIN = 1
JPEG_QUALITY_MAX = 100
JPEG_SUBSAMPLING_OPTIONS = ["4:4:4", "4:2:2", "4:2:0"]
JPEG_SUBSAMPLING_DEFAULT = "4:4:4"

# Map subsampling labels to Pillow integer values
JPEG_SUBSAMPLING_MAP = {"4:4:4": 0, "4:2:2": 1, "4:2:0": 2}

# Output format options. PNG keeps full-image crops pixel-identical.
OUTPUT_FORMATS = ["PNG", "JPEG"]
OUTPUT_FORMAT_DEFAULT = "PNG"

# File extension written for each output format
FORMAT_EXTENSIONS = {"PNG": ".png", "JPEG": ".jpg"}

# Suffix appended to the source stem when a crop is written to disk
CROP_SUFFIX = "-crop"

# Supported source image extensions
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tiff", ".tif", ".webp", ".psd"}

# Minimum crop width/height (percentage points of the container)
MIN_CROP_SIZE = 5.0

# Nudge amounts (percentage points)
NUDGE_SMALL = 0.5
NUDGE_LARGE = 5.0

# Handle hit-test tolerance (percentage points)
HANDLE_TOLERANCE = 2.0

# Handle size for resize handles (pixels in screen coordinates)
HANDLE_SIZE = 10
