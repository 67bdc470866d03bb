# Rev 0.2.0
# src/focuslog/services/sync_bus.py
# Typed completion channel shared by live views.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from PySide6.QtCore import QObject, Signal

from focuslog.models.entities import Item


@dataclass(frozen=True)
class CompletionEvent:
    item_id: str
    is_completed: bool
    completed_at: Optional[datetime]
    origin_view: str
    children_changed: bool = False

    @classmethod
    def from_item(cls, item: Item, origin_view: str, children_changed: bool = False) -> "CompletionEvent":
        return cls(item.id, item.is_completed, item.completed_at, origin_view, children_changed)


class CompletionBus(QObject):
    """
    One instance per app, passed to every view-model that caches items.
    Emits:
      completionChanged(CompletionEvent)
    Subscribers drop events whose origin_view is their own name.
    """

    completionChanged = Signal(object)

    def publish(self, event: CompletionEvent) -> None:
        self.completionChanged.emit(event)
