# Rev 0.2.0
from __future__ import annotations

import sqlite3
from datetime import date, datetime
from typing import Any, List, Optional, Union

from focuslog.models.entities import ScheduledBlock, Section, Timeframe

_COLUMNS = """
    id, item_id, timeframe, section, block_date, scheduled_start,
    duration_minutes, created_from_drag, sort_order, created_at_utc
"""

# field name on ScheduledBlock -> column
_UPDATABLE = {
    "timeframe": "timeframe",
    "section": "section",
    "date": "block_date",
    "scheduled_start": "scheduled_start",
    "duration_minutes": "duration_minutes",
    "sort_order": "sort_order",
}


def _to_db(value: Any) -> Any:
    if isinstance(value, (Timeframe, Section)):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class SQLiteBlockRepository:
    """
    Scheduled blocks (commitments of an item to a timeframe/section/date,
    optionally placed on the calendar timeline).
    """

    def __init__(self, db_or_conn: Union[sqlite3.Connection, Any]):
        self._db_or_conn = db_or_conn

    def _conn(self) -> sqlite3.Connection:
        if isinstance(self._db_or_conn, sqlite3.Connection):
            return self._db_or_conn
        if hasattr(self._db_or_conn, "conn") and isinstance(self._db_or_conn.conn, sqlite3.Connection):
            return self._db_or_conn.conn
        raise RuntimeError("SQLiteBlockRepository: unable to obtain sqlite3.Connection (.conn expected).")

    @staticmethod
    def _row_to_block(row: sqlite3.Row) -> ScheduledBlock:
        start = row["scheduled_start"]
        created = row["created_at_utc"]
        return ScheduledBlock(
            id=row["id"],
            item_id=row["item_id"],
            timeframe=Timeframe(row["timeframe"]),
            section=Section(row["section"]),
            date=date.fromisoformat(row["block_date"]),
            scheduled_start=datetime.fromisoformat(start) if start else None,
            duration_minutes=row["duration_minutes"],
            created_from_drag=bool(row["created_from_drag"]),
            sort_order=int(row["sort_order"]),
            created_at=datetime.fromisoformat(created.replace("Z", "+00:00")) if created else None,
        )

    # --------------- reads ---------------
    def get_block(self, block_id: str) -> Optional[ScheduledBlock]:
        row = self._conn().execute(
            f"SELECT {_COLUMNS} FROM scheduled_blocks WHERE id = ?", (block_id,)
        ).fetchone()
        return self._row_to_block(row) if row else None

    def fetch_timed_blocks(self, day: date) -> List[ScheduledBlock]:
        """Blocks placed on the timeline for `day`, earliest first."""
        cur = self._conn().execute(
            f"""
            SELECT {_COLUMNS} FROM scheduled_blocks
            WHERE block_date = ? AND scheduled_start IS NOT NULL
            ORDER BY scheduled_start, id
            """,
            (day.isoformat(),),
        )
        return [self._row_to_block(r) for r in cur.fetchall()]

    def fetch_blocks_for_item(self, item_id: str) -> List[ScheduledBlock]:
        cur = self._conn().execute(
            f"SELECT {_COLUMNS} FROM scheduled_blocks WHERE item_id = ? ORDER BY block_date, sort_order",
            (item_id,),
        )
        return [self._row_to_block(r) for r in cur.fetchall()]

    def count_in_section(self, timeframe: Timeframe, section: Section, day: date) -> int:
        row = self._conn().execute(
            "SELECT COUNT(1) FROM scheduled_blocks WHERE timeframe = ? AND section = ? AND block_date = ?",
            (timeframe.value, section.value, day.isoformat()),
        ).fetchone()
        return int(row[0]) if row and row[0] is not None else 0

    # --------------- writes ---------------
    def create_scheduled_block(self, block: ScheduledBlock) -> ScheduledBlock:
        con = self._conn()
        con.execute(
            """
            INSERT INTO scheduled_blocks(id, item_id, timeframe, section, block_date,
                                         scheduled_start, duration_minutes, created_from_drag, sort_order)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                block.id, block.item_id, block.timeframe.value, block.section.value,
                block.date.isoformat(), _to_db(block.scheduled_start), block.duration_minutes,
                int(block.created_from_drag), block.sort_order,
            ),
        )
        con.commit()
        return self.get_block(block.id)

    def update_scheduled_block(self, block_id: str, **fields: Any) -> bool:
        sets, params = [], []
        for name, value in fields.items():
            if name not in _UPDATABLE:
                raise ValueError(f"not an updatable block field: {name}")
            sets.append(f"{_UPDATABLE[name]} = ?")
            params.append(_to_db(value))
        if not sets:
            return False
        con = self._conn()
        cur = con.execute(
            f"UPDATE scheduled_blocks SET {', '.join(sets)} WHERE id = ?",
            (*params, block_id),
        )
        con.commit()
        return cur.rowcount > 0

    def delete_scheduled_block(self, block_id: str) -> bool:
        con = self._conn()
        cur = con.execute("DELETE FROM scheduled_blocks WHERE id = ?", (block_id,))
        con.commit()
        return cur.rowcount > 0
