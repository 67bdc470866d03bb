# Rev 0.2.0

"""SQLite connection & migration runner (Rev 0.2.0)
- WAL mode, foreign_keys=ON (item deletes cascade to children and blocks)
- Applies SQL files in focuslog/data/migrations in lexical order
- Tracks applied files in schema_migrations(filename TEXT PRIMARY KEY, applied_at UTC)
"""
from __future__ import annotations
import sqlite3
from pathlib import Path
from datetime import datetime, timezone

from focuslog.utils.logging_setup import get_logger
from focuslog.utils.paths import DB_PATH, MIGRATIONS_DIR, ensure_dirs

log = get_logger("db")


class Database:
    def __init__(self, path: Path | str = DB_PATH) -> None:
        self.path = Path(path)
        if self.path == DB_PATH:
            ensure_dirs()
        self.conn = sqlite3.connect(self.path, isolation_level=None, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL;")
        self.conn.execute("PRAGMA foreign_keys=ON;")
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_migrations (filename TEXT PRIMARY KEY, applied_at TEXT NOT NULL)"
        )
        log.info("SQLite open %s", self.path)

    def close(self) -> None:
        self.conn.close()

    def applied(self) -> set[str]:
        rows = self.conn.execute("SELECT filename FROM schema_migrations").fetchall()
        return {r[0] for r in rows}

    def run_migrations(self, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
        applied = self.applied()
        to_apply = [p for p in sorted(migrations_dir.glob("*.sql")) if p.name not in applied]
        for p in to_apply:
            self.conn.executescript(p.read_text(encoding="utf-8"))
            self.conn.execute(
                "INSERT INTO schema_migrations(filename, applied_at) VALUES(?, ?)",
                (p.name, datetime.now(timezone.utc).isoformat()),
            )
            log.info("Applied migration %s", p.name)
        return [p.name for p in to_apply]

    def cursor(self) -> sqlite3.Cursor:
        return self.conn.cursor()
