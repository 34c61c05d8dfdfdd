from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/template-gallery/config.json").expanduser()

CONFIG_ENV_OVERRIDES = {
    "sync_interval_s": "TEMPLATE_GALLERY_SYNC_INTERVAL_S",
    "thumbnail_size": "TEMPLATE_GALLERY_THUMBNAIL_SIZE",
    "max_source_dimension": "TEMPLATE_GALLERY_MAX_SOURCE_DIMENSION",
    "max_image_pixels": "TEMPLATE_GALLERY_MAX_IMAGE_PIXELS",
    "thumbnail_workers": "TEMPLATE_GALLERY_THUMBNAIL_WORKERS",
    "thumbnail_dedupe": "TEMPLATE_GALLERY_THUMBNAIL_DEDUPE",
    "refresh_delay_ms": "TEMPLATE_GALLERY_REFRESH_DELAY_MS",
    "log_level": "TEMPLATE_GALLERY_LOG_LEVEL",
}

_INT_KEYS = {
    "thumbnail_size",
    "max_source_dimension",
    "max_image_pixels",
    "thumbnail_workers",
    "refresh_delay_ms",
}
_FLOAT_KEYS = {"sync_interval_s"}
_BOOL_KEYS = {"thumbnail_dedupe"}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("TEMPLATE_GALLERY_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    """Return the JSON object at the config path; ``{}`` when missing or blank."""
    config_path = get_config_path(path)
    try:
        raw = config_path.read_text()
    except FileNotFoundError:
        return {}
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid config json in {config_path}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"config in {config_path} must be an object")
    return data


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class GalleryConfig:
    # Polling period of the sync scheduler while the panel is visible.
    sync_interval_s: float = 2.0
    thumbnail_size: int = 100
    # Larger sources only log a warning.
    max_source_dimension: int = 10000
    # Pillow's decompression-bomb pixel ceiling; 0 leaves it off.
    max_image_pixels: int = 0
    thumbnail_workers: int = 4
    thumbnail_dedupe: bool = True
    refresh_delay_ms: int = 100
    log_level: str = "WARNING"


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    if parsed <= 0:
        warnings.warn(f"Non-positive value for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    return parsed


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def load_config(path: Path | None = None) -> GalleryConfig:
    try:
        data = read_config_file(path)
    except ValueError as exc:
        warnings.warn(f"Ignoring config file: {exc}", RuntimeWarning, stacklevel=2)
        data = {}
    cfg = _apply_dict(GalleryConfig(), data)
    return _apply_dict(cfg, get_env_overrides())


def _apply_dict(cfg: GalleryConfig, data: dict[str, Any]) -> GalleryConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if key in _FLOAT_KEYS:
            setattr(cfg, key, _parse_float(value, getattr(cfg, key), key=key))
            continue
        if key in _BOOL_KEYS:
            setattr(cfg, key, _coerce_bool(value, getattr(cfg, key), key=key))
            continue
        if key == "log_level":
            setattr(cfg, key, str(value).upper())
            continue
        setattr(cfg, key, value)
    return cfg
