# Rev 0.2.0
# src/focuslog/utils/config.py
import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from .paths import config_dir, DB_PATH

log = logging.getLogger(__name__)

_DEFAULTS: Dict[str, Any] = {
    "timeline": {
        "hour_height": 60.0,
        "default_duration_minutes": 30,
    },
    "drag": {
        "throttle_ms": 250,
    },
    "database": {
        "path": str(DB_PATH),
    },
}


def settings_file() -> Path:
    return config_dir() / "settings.json"


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def load_settings(path: Optional[Path] = None) -> Dict[str, Any]:
    path = path or settings_file()
    if path.exists():
        try:
            return _merge(_DEFAULTS, json.loads(path.read_text()))
        except (OSError, ValueError) as exc:
            log.warning("Ignoring unreadable settings %s: %s", path, exc)
            return copy.deepcopy(_DEFAULTS)
    return copy.deepcopy(_DEFAULTS)


def save_settings(data: Dict[str, Any], path: Optional[Path] = None) -> None:
    (path or settings_file()).write_text(json.dumps(data, indent=2))
