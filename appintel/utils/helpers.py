"""
Helper utilities for the App Intelligence core.

Provides:
- Settings loading (TOML merged over defaults)
- Snapshot export to JSON
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

import toml
from loguru import logger

DEFAULT_SETTINGS: Dict[str, Any] = {
    "ranking": {
        "lookback_days": 30,
        "decay": 1e-4,
    },
    "icons": {
        "cache_size": 256,
        "size_px": 96,
        "workers": 4,
    },
    "categories": {
        "personal_prefix": "",
        "rules_file": "",
    },
    "storage": {
        "usage_db": "",
    },
}


def default_settings_path() -> Path:
    """XDG config location for the settings file."""
    return Path.home() / ".config" / "appintel" / "settings.toml"


def load_settings(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load settings from a TOML file.

    Args:
        path: Settings file, defaults to ~/.config/appintel/settings.toml

    Returns:
        Dictionary containing settings with defaults applied

    Example settings structure:
        [ranking]
        lookback_days = 14
        decay = 2e-5

        [icons]
        cache_size = 512
    """
    settings_path = Path(path) if path else default_settings_path()

    if not settings_path.exists():
        logger.debug(f"Settings file not found at {settings_path}, using defaults")
        return _deep_merge(DEFAULT_SETTINGS, {})

    try:
        loaded = toml.load(str(settings_path))
    except (OSError, toml.TomlDecodeError) as e:
        logger.warning(f"Could not load settings from {settings_path}: {e}")
        return _deep_merge(DEFAULT_SETTINGS, {})

    return _deep_merge(DEFAULT_SETTINGS, loaded)


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary with defaults
        override: Dictionary with overrides

    Returns:
        Merged dictionary (override takes precedence); base is not mutated
    """
    result = {}
    for key, value in base.items():
        result[key] = _deep_merge(value, {}) if isinstance(value, dict) else value

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def save_snapshot(snapshot, path: Path) -> None:
    """
    Write a catalog snapshot's rank map and category assignments as JSON.

    Args:
        snapshot: CatalogSnapshot to export
        path: Destination file (parent directories are created)
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(snapshot.to_dict(), f, indent=2)
    logger.debug(f"Saved catalog snapshot to {path}")
