# tests/test_config.py
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from focuslog.utils.config import load_settings, save_settings
from focuslog.utils.logging_setup import get_logger, setup_logging


def test_missing_file_gives_defaults(tmp_path: Path):
    settings = load_settings(tmp_path / "settings.json")
    assert settings["timeline"] == {"hour_height": 60.0, "default_duration_minutes": 30}
    assert settings["drag"]["throttle_ms"] == 250
    assert settings["database"]["path"]


def test_partial_file_is_merged_over_defaults(tmp_path: Path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"timeline": {"hour_height": 80}}))
    settings = load_settings(path)
    assert settings["timeline"]["hour_height"] == 80
    assert settings["timeline"]["default_duration_minutes"] == 30


def test_malformed_file_falls_back(tmp_path: Path, caplog):
    path = tmp_path / "settings.json"
    path.write_text("{not json")
    with caplog.at_level(logging.WARNING):
        settings = load_settings(path)
    assert settings["drag"]["throttle_ms"] == 250
    assert "Ignoring unreadable settings" in caplog.text


def test_save_then_load(tmp_path: Path):
    path = tmp_path / "settings.json"
    data = load_settings(path)
    data["drag"]["throttle_ms"] = 100
    save_settings(data, path)
    assert load_settings(path)["drag"]["throttle_ms"] == 100


def test_defaults_are_not_shared(tmp_path: Path):
    first = load_settings(tmp_path / "a.json")
    first["timeline"]["hour_height"] = 1
    assert load_settings(tmp_path / "a.json")["timeline"]["hour_height"] == 60.0


def test_get_logger_is_namespaced():
    assert get_logger("ordering").name == "focuslog.ordering"


def test_setup_logging_writes_rotating_file(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path))
    monkeypatch.setenv("FOCUSLOG_LOG_LEVEL", "DEBUG")
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    root = logging.getLogger()
    before = list(root.handlers)
    old_level = root.level
    try:
        logfile = setup_logging()
        get_logger("test").info("hello from test")
        for h in root.handlers:
            h.flush()
        assert logfile == tmp_path / "focuslog" / "logs" / "focuslog.log"
        assert "hello from test" in logfile.read_text(encoding="utf-8")
    finally:
        for h in list(root.handlers):
            if h not in before:
                root.removeHandler(h)
                h.close()
        root.setLevel(old_level)
