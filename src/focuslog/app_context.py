# focuslog application context
# Rev 0.2.0

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional

from focuslog.models.entities import ItemKind
from focuslog.repositories.db import Database
from focuslog.repositories.sqlite_block_repository import SQLiteBlockRepository
from focuslog.repositories.sqlite_item_repository import SQLiteItemRepository
from focuslog.services.sync_bus import CompletionBus
from focuslog.services.timegrid import TimeGrid
from focuslog.utils.config import load_settings
from focuslog.utils.logging_setup import get_logger
from focuslog.viewmodels.item_list_viewmodel import ItemListViewModel
from focuslog.viewmodels.timeline_viewmodel import TimelineViewModel

_VIEW_NAMES = {
    ItemKind.TASK: "log",
    ItemKind.LIST: "lists",
    ItemKind.PROJECT: "projects",
}


@dataclass
class AppContext:
    """Central container for shared app resources."""
    settings: Dict[str, Any]
    db: Database
    items_repo: SQLiteItemRepository
    blocks_repo: SQLiteBlockRepository
    bus: CompletionBus
    grid: TimeGrid
    lists: Dict[ItemKind, ItemListViewModel] = field(default_factory=dict)
    timeline: Optional[TimelineViewModel] = None

    @classmethod
    def create(cls, db_path: Optional[Path] = None, settings: Optional[Dict[str, Any]] = None) -> "AppContext":
        """Open and migrate the DB, then wire repositories, bus and view-models."""
        log = get_logger("AppContext")
        settings = settings or load_settings()
        db = Database(db_path or settings["database"]["path"])
        db.run_migrations()

        items_repo = SQLiteItemRepository(db)
        blocks_repo = SQLiteBlockRepository(db)
        bus = CompletionBus()
        grid = TimeGrid(
            hour_height=settings["timeline"]["hour_height"],
            default_duration=settings["timeline"]["default_duration_minutes"],
        )
        ctx = cls(settings=settings, db=db, items_repo=items_repo, blocks_repo=blocks_repo, bus=bus, grid=grid)
        for kind, view_name in _VIEW_NAMES.items():
            ctx.lists[kind] = ItemListViewModel(
                items_repo, bus, kind=kind, view_name=view_name,
                throttle_ms=settings["drag"]["throttle_ms"],
            )
        ctx.timeline = TimelineViewModel(blocks_repo, items_repo, day=date.today(), grid=grid)
        log.info("AppContext initialized with DB=%s", db.path)
        return ctx

    def reload_all(self) -> None:
        for vm in self.lists.values():
            vm.reload()
        if self.timeline is not None:
            self.timeline.reload()

    def close(self) -> None:
        self.db.close()
