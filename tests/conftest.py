# Rev 0.2.0

"""Pytest fixtures for focuslog (Rev 0.2.0)"""
from __future__ import annotations
import copy
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List

import pytest

from focuslog.models.entities import Item, ItemKind, PriorityTier
from focuslog.models.store import SortOrderUpdate
from focuslog.repositories.db import Database
from focuslog.repositories.sqlite_block_repository import SQLiteBlockRepository
from focuslog.repositories.sqlite_item_repository import SQLiteItemRepository

FIXED_NOW = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


def make_item(item_id: str, order: int = 0, *, parent: str | None = None, tier: PriorityTier = PriorityTier.MEDIUM,
              done: bool = False, kind: ItemKind = ItemKind.TASK, title: str | None = None) -> Item:
    return Item(
        id=item_id,
        title=title or item_id,
        kind=kind,
        parent_id=parent,
        priority_tier=tier,
        sort_order=order,
        is_completed=done,
        completed_at=FIXED_NOW if done else None,
    )


# --- In-memory stub repo for view-model tests ------------------------------

class StubItemRepo:
    """Keeps its own copies, like a real persistence layer would."""

    def __init__(self, items: Iterable[Item] = ()):
        self.rows: Dict[str, Item] = {it.id: copy.deepcopy(it) for it in items}
        self.calls: List[tuple] = []
        self.fail = False
        self.fail_on: set = set()

    def _check(self, op: str, *args) -> None:
        self.calls.append((op, *args))
        if self.fail or op in self.fail_on:
            raise sqlite3.OperationalError("disk I/O error")

    def fetch_items(self, kind: ItemKind) -> List[Item]:
        self._check("fetch_items", kind)
        tops = {i for i, it in self.rows.items() if it.parent_id is None and it.kind is kind}
        return [copy.deepcopy(it) for it in self.rows.values() if it.id in tops or it.parent_id in tops]

    def fetch_children(self, parent_id: str) -> List[Item]:
        self._check("fetch_children", parent_id)
        return [copy.deepcopy(it) for it in self.rows.values() if it.parent_id == parent_id]

    def create_item(self, item: Item) -> Item:
        self._check("create_item", item.id)
        self.rows[item.id] = copy.deepcopy(item)
        return copy.deepcopy(item)

    def update_item(self, item: Item) -> bool:
        self._check("update_item", item.id)
        if item.id not in self.rows:
            return False
        self.rows[item.id] = copy.deepcopy(item)
        return True

    def update_sort_orders(self, updates: Iterable[SortOrderUpdate]) -> None:
        updates = list(updates)
        self._check("update_sort_orders", tuple((u.id, u.sort_order) for u in updates))
        for u in updates:
            if u.id in self.rows:
                self.rows[u.id].sort_order = u.sort_order

    def delete_item(self, item_id: str) -> bool:
        self._check("delete_item", item_id)
        if item_id not in self.rows:
            return False
        for child in [c for c in self.rows.values() if c.parent_id == item_id]:
            del self.rows[child.id]
        del self.rows[item_id]
        return True

    def ops(self) -> List[str]:
        return [c[0] for c in self.calls]


# --- Fixtures --------------------------------------------------------------

@pytest.fixture()
def db(tmp_path: Path):
    database = Database(path=str(tmp_path / "test.db"))
    try:
        database.run_migrations()
        yield database
    finally:
        database.close()


@pytest.fixture()
def db_conn(db: Database) -> sqlite3.Connection:
    return db.conn


@pytest.fixture()
def item_repo(db: Database) -> SQLiteItemRepository:
    return SQLiteItemRepository(db)


@pytest.fixture()
def block_repo(db: Database) -> SQLiteBlockRepository:
    return SQLiteBlockRepository(db)


@pytest.fixture()
def clock():
    return lambda: FIXED_NOW
