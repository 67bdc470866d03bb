# Rev 0.2.0

"""Paths and XDG helpers (Rev 0.2.0)
- XDG Base Directory locations for data/state/config
- Schema migrations ship inside the package (focuslog/data/migrations)
"""
from __future__ import annotations
import os
from pathlib import Path


APP_NAME = "focuslog"


XDG_DATA_HOME = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
XDG_STATE_HOME = Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state"))
XDG_CONFIG_HOME = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


DATA_DIR = XDG_DATA_HOME / APP_NAME
STATE_DIR = XDG_STATE_HOME / APP_NAME
LOGS_DIR = STATE_DIR / "logs"
CONFIG_DIR = XDG_CONFIG_HOME / APP_NAME


# Package-relative locations
PACKAGE_ROOT = Path(__file__).resolve().parents[1]
MIGRATIONS_DIR = (PACKAGE_ROOT / "data" / "migrations").resolve()


DB_PATH = Path(os.environ.get("FOCUSLOG_DB", DATA_DIR / "focuslog.db"))


def ensure_dirs() -> None:
    for p in (DATA_DIR, STATE_DIR, LOGS_DIR, CONFIG_DIR):
        p.mkdir(parents=True, exist_ok=True)


def config_dir() -> Path:
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    return CONFIG_DIR
