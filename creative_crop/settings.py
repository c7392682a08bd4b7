"""
Settings persistence: load, save, and validate export settings and presets.

Runtime settings are stored in a JSON file in the user's config directory
(provided by ``config.config_dir()``).  On first launch (or if the file is
missing/corrupt), the file is created from the defaults in ``config``.  This
module is Qt-free.

The on-disk format uses a versioned envelope::

    {
        "version": 1,
        "export": {"format": "PNG", "compress_level": 9, "jpeg_quality": 95,
                   "jpeg_subsampling": "4:4:4", "jpeg_optimize": true},
        "min_crop_size": 5.0,
        "presets": [{"name": "2:3", "ratio_w": 2, "ratio_h": 3}, ...]
    }
"""

import json
import logging
from copy import deepcopy
from dataclasses import asdict, dataclass, field
from pathlib import Path

from creative_crop.config import (
    DEFAULT_PRESETS, MIN_CROP_SIZE, OUTPUT_FORMATS, OUTPUT_FORMAT_DEFAULT,
    PNG_COMPRESS_LEVEL, JPEG_QUALITY_DEFAULT, JPEG_QUALITY_MIN, JPEG_QUALITY_MAX,
    JPEG_SUBSAMPLING_DEFAULT, JPEG_SUBSAMPLING_MAP, config_dir,
)

logger = logging.getLogger(__name__)

_SETTINGS_FILENAME = "settings.json"
_FORMAT_VERSION = 1

_PRESET_REQUIRED_KEYS = {"name", "ratio_w", "ratio_h"}


# =============================================================================
# Data classes
# =============================================================================
@dataclass
class ExportSettings:
    """How cropped rasters are encoded."""
    format: str = OUTPUT_FORMAT_DEFAULT
    compress_level: int = PNG_COMPRESS_LEVEL
    jpeg_quality: int = JPEG_QUALITY_DEFAULT
    jpeg_subsampling: str = JPEG_SUBSAMPLING_DEFAULT
    jpeg_optimize: bool = True


@dataclass
class Settings:
    export: ExportSettings = field(default_factory=ExportSettings)
    min_crop_size: float = MIN_CROP_SIZE
    presets: list = field(default_factory=lambda: deepcopy(DEFAULT_PRESETS))


# =============================================================================
# Validation
# =============================================================================
def validate_export(data) -> list[str]:
    """Return a list of error strings for an export-settings dict (empty if valid)."""
    if not isinstance(data, dict):
        return ["export must be an object"]
    errors = []
    fmt = data.get("format", OUTPUT_FORMAT_DEFAULT)
    if fmt not in OUTPUT_FORMATS:
        errors.append(f"export.format must be one of {OUTPUT_FORMATS}, got {fmt!r}")
    level = data.get("compress_level", PNG_COMPRESS_LEVEL)
    if not isinstance(level, int) or isinstance(level, bool) or not 0 <= level <= 9:
        errors.append("export.compress_level must be an integer 0-9")
    quality = data.get("jpeg_quality", JPEG_QUALITY_DEFAULT)
    if (not isinstance(quality, int) or isinstance(quality, bool)
            or not JPEG_QUALITY_MIN <= quality <= JPEG_QUALITY_MAX):
        errors.append(f"export.jpeg_quality must be an integer {JPEG_QUALITY_MIN}-{JPEG_QUALITY_MAX}")
    if data.get("jpeg_subsampling", JPEG_SUBSAMPLING_DEFAULT) not in JPEG_SUBSAMPLING_MAP:
        errors.append(f"export.jpeg_subsampling must be one of {list(JPEG_SUBSAMPLING_MAP)}")
    if not isinstance(data.get("jpeg_optimize", True), bool):
        errors.append("export.jpeg_optimize must be a boolean")
    return errors


def validate_presets(presets) -> list[str]:
    """Return a list of error strings for a preset list (empty if valid)."""
    if not isinstance(presets, list) or not presets:
        return ["presets must be a non-empty list"]
    errors = []
    names_seen = set()
    for i, preset in enumerate(presets):
        where = f"presets[{i}]"
        if not isinstance(preset, dict):
            errors.append(f"{where} must be an object")
            continue
        missing = _PRESET_REQUIRED_KEYS - preset.keys()
        if missing:
            errors.append(f"{where} missing keys: {', '.join(sorted(missing))}")
            continue
        name = preset["name"]
        if not isinstance(name, str) or not name.strip():
            errors.append(f"{where}.name must be a non-empty string")
        elif name in names_seen:
            errors.append(f"{where}.name {name!r} is duplicated")
        else:
            names_seen.add(name)
        for key in ("ratio_w", "ratio_h"):
            value = preset[key]
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                errors.append(f"{where}.{key} must be a non-negative integer")
        if (preset["ratio_w"] == 0) != (preset["ratio_h"] == 0):
            errors.append(f"{where} free presets need ratio_w and ratio_h both 0")
    return errors


def validate_settings(raw) -> list[str]:
    if not isinstance(raw, dict):
        return ["settings must be an object"]
    errors = validate_export(raw.get("export", {}))
    min_size = raw.get("min_crop_size", MIN_CROP_SIZE)
    if not isinstance(min_size, (int, float)) or isinstance(min_size, bool) or not 0 < min_size <= 100:
        errors.append("min_crop_size must be a number in (0, 100]")
    errors.extend(validate_presets(raw.get("presets", DEFAULT_PRESETS)))
    return errors


# =============================================================================
# Config directory helpers
# =============================================================================
def _settings_path() -> Path:
    """Return the full path to settings.json."""
    return config_dir() / _SETTINGS_FILENAME


def _from_dict(raw: dict) -> Settings:
    return Settings(
        export=ExportSettings(**raw.get("export", {})),
        min_crop_size=float(raw.get("min_crop_size", MIN_CROP_SIZE)),
        presets=raw.get("presets", deepcopy(DEFAULT_PRESETS)),
    )


def _to_dict(settings: Settings) -> dict:
    return {
        "export": asdict(settings.export),
        "min_crop_size": settings.min_crop_size,
        "presets": settings.presets,
    }


# =============================================================================
# Load / Save
# =============================================================================
def load_settings() -> Settings:
    """
    Load settings from settings.json.

    If the file is missing, corrupt, or fails validation, writes the
    defaults and returns them.
    """
    path = _settings_path()

    if not path.exists():
        logger.info("settings.json not found — creating with defaults at %s", path)
        _write_defaults(path)
        return Settings()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read settings.json (%s) — restoring defaults", exc)
        _write_defaults(path)
        return Settings()

    if not isinstance(raw, dict) or raw.get("version") != _FORMAT_VERSION:
        logger.warning("settings.json missing version envelope — restoring defaults")
        _write_defaults(path)
        return Settings()

    errors = validate_settings(raw)
    if not errors and not set(raw.get("export", {})) <= set(asdict(ExportSettings())):
        errors.append("export has unknown keys")
    if errors:
        logger.warning(
            "settings.json validation failed:\n  %s\nRestoring defaults.",
            "\n  ".join(errors),
        )
        _write_defaults(path)
        return Settings()

    return _from_dict(raw)


def save_settings(settings: Settings) -> None:
    """
    Validate and write settings to settings.json in versioned envelope.

    Raises ValueError if validation fails.
    Raises OSError if the file cannot be written.
    """
    data = _to_dict(settings)
    errors = validate_settings(data)
    if errors:
        raise ValueError("Invalid settings:\n  " + "\n  ".join(errors))

    envelope = {"version": _FORMAT_VERSION, **data}
    path = _settings_path()
    path.write_text(json.dumps(envelope, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Saved settings (%d preset(s)) to %s", len(settings.presets), path)


def _write_defaults(path: Path) -> None:
    """Write default settings to the given path in versioned envelope."""
    try:
        envelope = {"version": _FORMAT_VERSION, **_to_dict(Settings())}
        path.write_text(
            json.dumps(envelope, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
    except OSError as exc:
        logger.error("Could not write default settings to %s: %s", path, exc)
