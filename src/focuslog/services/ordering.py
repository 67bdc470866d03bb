# Rev 0.2.1

"""Sibling ordering service (Rev 0.2.1)
Turns drag gestures into dense 0..n-1 sort orders per sibling group.

The engine only reads the ItemStore. Callers apply the returned updates
to the store optimistically and hand the same updates to persistence.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from focuslog.models.entities import Item, PriorityTier
from focuslog.models.store import ItemStore, SiblingFilter, SortOrderUpdate
from focuslog.utils.logging_setup import get_logger

log = get_logger("ordering")


@dataclass(frozen=True)
class TierChange:
    id: str
    old_tier: PriorityTier
    new_tier: PriorityTier


@dataclass
class ReorderResult:
    sort_order_updates: List[SortOrderUpdate] = field(default_factory=list)
    tier_change: Optional[TierChange] = None
    rejected: bool = False

    @classmethod
    def reject(cls, reason: str, *args) -> "ReorderResult":
        log.debug("reorder rejected: " + reason, *args)
        return cls(rejected=True)

    @property
    def is_noop(self) -> bool:
        return not self.sort_order_updates and self.tier_change is None

    def apply(self, store: ItemStore) -> None:
        if self.tier_change is not None:
            store.set_tier(self.tier_change.id, self.tier_change.new_tier)
        store.apply_sort_orders(self.sort_order_updates)


def _renumber(ordered: Sequence[Item], *, always: Optional[str] = None) -> List[SortOrderUpdate]:
    return [
        SortOrderUpdate(it.id, idx)
        for idx, it in enumerate(ordered)
        if it.sort_order != idx or it.id == always
    ]


class OrderingEngine:
    def __init__(self, store: ItemStore):
        self._store = store

    # ---- invariants ----
    def validate_group(self, flt: SiblingFilter) -> bool:
        group = self._store.sibling_group(flt)
        return [it.sort_order for it in group] == list(range(len(group)))

    def repair_group(self, flt: SiblingFilter) -> List[SortOrderUpdate]:
        return _renumber(self._store.sibling_group(flt))

    def insert_at_top(self, flt: SiblingFilter, new_id: str) -> List[SortOrderUpdate]:
        item = self._store.get(new_id)
        if item is None:
            return []
        rest = [it for it in self._store.sibling_group(flt) if it.id != new_id]
        return _renumber([item, *rest], always=new_id)

    def next_child_order(self, parent_id: str) -> int:
        orders = [c.sort_order for c in self._store.children(parent_id)]
        return max(orders) + 1 if orders else 0

    # ---- gestures ----
    def reorder(
        self,
        source_id: str,
        target_id: Optional[str],
        sibling_filter: Optional[SiblingFilter] = None,
    ) -> ReorderResult:
        """Move `source_id` to where `target_id` sits in the destination group.

        `target_id` is the nearest sibling the dragged row has crossed. When it
        is None the source is appended to the end of `sibling_filter`'s group.
        """
        source = self._store.get(source_id)
        target = self._store.get(target_id)
        if source is None or (target_id is not None and target is None):
            return ReorderResult()
        if target is None and sibling_filter is None:
            return ReorderResult.reject("no target and no group for %s", source_id)

        dest = sibling_filter or SiblingFilter.for_item(target)
        bad = self._check_move(source, dest, target)
        if bad:
            return ReorderResult.reject(bad, source_id)

        if dest == SiblingFilter.for_item(source):
            group = self._store.sibling_group(dest)
            from_idx = _index_of(group, source.id)
            to_idx = _index_of(group, target.id) if target is not None else len(group) - 1
            if from_idx == to_idx:
                return ReorderResult()
            moved = group.pop(from_idx)
            group.insert(to_idx, moved)
            return ReorderResult(sort_order_updates=_renumber(group))

        dest_group = self._store.sibling_group(dest)
        if target is None:
            insert_at = len(dest_group)
        else:
            moving_down = source.priority_tier.sort_index < dest.tier.sort_index
            insert_at = _index_of(dest_group, target.id) + (1 if moving_down else 0)
        return self._cross_tier(source, dest, insert_at)

    def move_to_offset(self, source_id: str, flt: SiblingFilter, offset: int) -> ReorderResult:
        """Apply a resolved flat-list move.

        Within one group `offset` follows list-move semantics (counted before
        the source is removed). Across tiers it is the insertion index into
        the destination group.
        """
        source = self._store.get(source_id)
        if source is None:
            return ReorderResult()
        bad = self._check_move(source, flt, None)
        if bad:
            return ReorderResult.reject(bad, source_id)

        if flt == SiblingFilter.for_item(source):
            group = self._store.sibling_group(flt)
            from_idx = _index_of(group, source.id)
            offset = max(0, min(offset, len(group)))
            if offset in (from_idx, from_idx + 1):
                return ReorderResult()
            moved = group.pop(from_idx)
            group.insert(offset - 1 if offset > from_idx else offset, moved)
            return ReorderResult(sort_order_updates=_renumber(group))

        return self._cross_tier(source, flt, offset)

    # ---- internals ----
    def _check_move(self, source: Item, dest: SiblingFilter, target: Optional[Item]) -> Optional[str]:
        if source.is_completed:
            return "%s is completed"
        if target is not None and not dest.matches(target):
            return "target outside destination group for %s"
        if source.parent_id is not None:
            if dest.parent_id != source.parent_id:
                return "cross-parent move of %s"
            return None
        if dest.parent_id is not None or dest.kind is not source.kind:
            return "top-level %s cannot change parent or kind"
        if (dest.tier is not None) != source.uses_tiers:
            return "tier mismatch for %s"
        return None

    def _cross_tier(self, source: Item, dest: SiblingFilter, insert_at: int) -> ReorderResult:
        dest_group = self._store.sibling_group(dest)
        insert_at = max(0, min(insert_at, len(dest_group)))
        dest_group.insert(insert_at, source)
        dest_updates = _renumber(dest_group, always=source.id)

        src_group = [
            it for it in self._store.sibling_group(SiblingFilter.for_item(source))
            if it.id != source.id
        ]
        src_updates = _renumber(src_group)

        log.debug("cross-tier move %s: %s -> %s at %d", source.id, source.priority_tier.value, dest.tier.value, insert_at)
        return ReorderResult(
            sort_order_updates=dest_updates + src_updates,
            tier_change=TierChange(source.id, source.priority_tier, dest.tier),
        )


def _index_of(group: Sequence[Item], item_id: str) -> int:
    for idx, it in enumerate(group):
        if it.id == item_id:
            return idx
    raise KeyError(item_id)
