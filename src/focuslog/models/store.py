# Rev 0.2.0
"""In-memory item store (Rev 0.2.0)

Holds one view's copy of items and their parent/child relationships.
Ordering and cascade logic read and mutate items through this store; it
never talks to persistence itself.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .entities import Item, ItemKind, PriorityTier


@dataclass(frozen=True)
class SiblingFilter:
    """Identifies one sibling group: same parent, active, same tier if top-level."""
    parent_id: Optional[str]
    tier: Optional[PriorityTier] = None
    kind: ItemKind = ItemKind.TASK

    @classmethod
    def for_item(cls, item: Item) -> "SiblingFilter":
        if item.parent_id is not None:
            return cls(parent_id=item.parent_id)
        tier = item.priority_tier if item.uses_tiers else None
        return cls(parent_id=None, tier=tier, kind=item.kind)

    def matches(self, item: Item) -> bool:
        if item.is_completed or item.parent_id != self.parent_id:
            return False
        if self.parent_id is not None:
            return True
        if item.kind is not self.kind:
            return False
        return self.tier is None or item.priority_tier is self.tier


@dataclass(frozen=True)
class SortOrderUpdate:
    id: str
    sort_order: int


def _order_key(item: Item):
    return (item.sort_order, item.id)


class ItemStore:
    def __init__(self, items: Iterable[Item] = ()):
        self._items: Dict[str, Item] = {}
        self.load(items)

    # ---- bulk ----
    def load(self, items: Iterable[Item]) -> None:
        self._items = {it.id: it for it in items}

    def replace_children(self, parent_id: str, children: Iterable[Item]) -> None:
        for child in [c for c in self._items.values() if c.parent_id == parent_id]:
            del self._items[child.id]
        for child in children:
            self._items[child.id] = child

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def all(self) -> List[Item]:
        return sorted(self._items.values(), key=_order_key)

    # ---- single ----
    def get(self, item_id: Optional[str]) -> Optional[Item]:
        if item_id is None:
            return None
        return self._items.get(item_id)

    def upsert(self, item: Item) -> None:
        self._items[item.id] = item

    def remove(self, item_id: str) -> List[Item]:
        """Remove an item and its children; returns what was removed."""
        item = self._items.pop(item_id, None)
        if item is None:
            return []
        removed = [item]
        for child in self.children(item_id):
            removed.append(self._items.pop(child.id))
        return removed

    # ---- queries ----
    def children(self, parent_id: str, *, include_completed: bool = True) -> List[Item]:
        kids = [
            it for it in self._items.values()
            if it.parent_id == parent_id and (include_completed or not it.is_completed)
        ]
        return sorted(kids, key=_order_key)

    def completed_children(self, parent_id: str) -> List[Item]:
        return [c for c in self.children(parent_id) if c.is_completed]

    def top_level(self, kind: ItemKind = ItemKind.TASK, *, completed: Optional[bool] = None) -> List[Item]:
        out = [
            it for it in self._items.values()
            if it.parent_id is None and it.kind is kind
            and (completed is None or it.is_completed is completed)
        ]
        return sorted(out, key=_order_key)

    def sibling_group(self, flt: SiblingFilter) -> List[Item]:
        return sorted((it for it in self._items.values() if flt.matches(it)), key=_order_key)

    # ---- mutations ----
    def apply_sort_orders(self, updates: Iterable[SortOrderUpdate]) -> None:
        for upd in updates:
            item = self._items.get(upd.id)
            if item is not None:
                item.sort_order = upd.sort_order

    def set_tier(self, item_id: str, tier: PriorityTier) -> None:
        item = self._items.get(item_id)
        if item is not None:
            item.priority_tier = tier
