# Rev 0.2.1
from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Union

from focuslog.models.entities import Item, ItemKind, PriorityTier
from focuslog.models.store import SortOrderUpdate

_COLUMNS = """
    id, title, description, kind, parent_id, priority_tier, sort_order,
    is_completed, completed_at_utc, previous_child_snapshot,
    created_at_utc, modified_at_utc
"""


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteItemRepository:
    """
    Item persistence: tasks, lists and projects plus their children.

    Schema expectation (Rev 0.2.0): items(id TEXT PK, parent_id REFERENCES
    items ON DELETE CASCADE, ...); scheduled_blocks.item_id also cascades,
    so delete_item removes children and every block that points at them.
    """

    def __init__(self, db_or_conn: Union[sqlite3.Connection, Any]):
        self._db_or_conn = db_or_conn

    # -------------------------
    # Connection handling
    # -------------------------
    def _conn(self) -> sqlite3.Connection:
        if isinstance(self._db_or_conn, sqlite3.Connection):
            return self._db_or_conn
        if hasattr(self._db_or_conn, "conn") and isinstance(self._db_or_conn.conn, sqlite3.Connection):
            return self._db_or_conn.conn
        raise RuntimeError(
            "SQLiteItemRepository: could not obtain sqlite3.Connection "
            "(expected .conn on wrapper, or a raw Connection)."
        )

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> Item:
        snapshot = row["previous_child_snapshot"]
        return Item(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            kind=ItemKind(row["kind"]),
            parent_id=row["parent_id"],
            priority_tier=PriorityTier(row["priority_tier"]),
            sort_order=int(row["sort_order"]),
            is_completed=bool(row["is_completed"]),
            completed_at=_parse_ts(row["completed_at_utc"]),
            previous_child_snapshot=[bool(v) for v in json.loads(snapshot)] if snapshot else None,
            created_at=_parse_ts(row["created_at_utc"]),
            modified_at=_parse_ts(row["modified_at_utc"]),
        )

    # -------------------------
    # Reads
    # -------------------------
    def fetch_items(self, kind: ItemKind) -> List[Item]:
        """Top-level items of `kind` together with all of their children."""
        cur = self._conn().execute(
            f"""
            SELECT {_COLUMNS} FROM items
            WHERE (parent_id IS NULL AND kind = ?)
               OR parent_id IN (SELECT id FROM items WHERE parent_id IS NULL AND kind = ?)
            ORDER BY sort_order, id
            """,
            (kind.value, kind.value),
        )
        return [self._row_to_item(r) for r in cur.fetchall()]

    def fetch_children(self, parent_id: str) -> List[Item]:
        cur = self._conn().execute(
            f"SELECT {_COLUMNS} FROM items WHERE parent_id = ? ORDER BY sort_order, id",
            (parent_id,),
        )
        return [self._row_to_item(r) for r in cur.fetchall()]

    def get_item(self, item_id: str) -> Optional[Item]:
        row = self._conn().execute(f"SELECT {_COLUMNS} FROM items WHERE id = ?", (item_id,)).fetchone()
        return self._row_to_item(row) if row else None

    # -------------------------
    # Writes
    # -------------------------
    def create_item(self, item: Item) -> Item:
        con = self._conn()
        now = _now()
        con.execute(
            """
            INSERT INTO items(id, title, description, kind, parent_id, priority_tier, sort_order,
                              is_completed, completed_at_utc, previous_child_snapshot,
                              created_at_utc, modified_at_utc)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item.id, item.title, item.description, item.kind.value, item.parent_id,
                item.priority_tier.value, item.sort_order, int(item.is_completed),
                _ts(item.completed_at),
                json.dumps(item.previous_child_snapshot) if item.previous_child_snapshot is not None else None,
                _ts(item.created_at) or now, now,
            ),
        )
        con.commit()
        return self.get_item(item.id)

    def update_item(self, item: Item) -> bool:
        """Write title, tier, order and completion fields (incl. snapshot)."""
        con = self._conn()
        cur = con.execute(
            """
            UPDATE items
               SET title = ?, description = ?, priority_tier = ?, sort_order = ?,
                   is_completed = ?, completed_at_utc = ?, previous_child_snapshot = ?,
                   modified_at_utc = ?
             WHERE id = ?
            """,
            (
                item.title, item.description, item.priority_tier.value, item.sort_order,
                int(item.is_completed), _ts(item.completed_at),
                json.dumps(item.previous_child_snapshot) if item.previous_child_snapshot is not None else None,
                _now(), item.id,
            ),
        )
        con.commit()
        return cur.rowcount > 0

    def update_sort_orders(self, updates: Iterable[SortOrderUpdate]) -> None:
        con = self._conn()
        now = _now()
        con.executemany(
            "UPDATE items SET sort_order = ?, modified_at_utc = ? WHERE id = ?",
            [(u.sort_order, now, u.id) for u in updates],
        )
        con.commit()

    def delete_item(self, item_id: str) -> bool:
        con = self._conn()
        cur = con.execute("DELETE FROM items WHERE id = ?", (item_id,))
        con.commit()
        return cur.rowcount > 0
