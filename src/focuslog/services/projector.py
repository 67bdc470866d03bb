# Rev 0.2.1
"""Flattened display list (Rev 0.2.1)

tier header -> top-level active items -> (expanded) active children,
completed children, "add child" row. Empty tiers get no header.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set, Union

from focuslog.models.entities import Item, ItemKind, PriorityTier
from focuslog.models.store import ItemStore, SiblingFilter


@dataclass(frozen=True)
class HeaderRow:
    tier: PriorityTier

    @property
    def key(self) -> str:
        return f"tier-{self.tier.value}"

    @property
    def title(self) -> str:
        return self.tier.display_name


@dataclass(frozen=True)
class ItemRow:
    item: Item
    depth: int = 0

    @property
    def key(self) -> str:
        return self.item.id


@dataclass(frozen=True)
class AddChildRow:
    parent_id: str

    @property
    def key(self) -> str:
        return f"add-{self.parent_id}"


DisplayRow = Union[HeaderRow, ItemRow, AddChildRow]


@dataclass(frozen=True)
class GroupPosition:
    """Where a flat-list drop lands: a sibling group and an offset inside it."""
    filter: SiblingFilter
    offset: int


@dataclass
class DisplayProjector:
    store: ItemStore
    kind: ItemKind = ItemKind.TASK
    collapsed_tiers: Set[PriorityTier] = field(default_factory=set)
    expanded: Set[str] = field(default_factory=set)

    @property
    def uses_tiers(self) -> bool:
        return self.kind is ItemKind.TASK

    # ---- view state ----
    def toggle_tier(self, tier: PriorityTier) -> None:
        self.collapsed_tiers ^= {tier}

    def toggle_expanded(self, item_id: str) -> bool:
        self.expanded ^= {item_id}
        return item_id in self.expanded

    # ---- projection ----
    def flatten(self) -> List[DisplayRow]:
        rows: List[DisplayRow] = []
        if not self.uses_tiers:
            for item in self.store.sibling_group(SiblingFilter(None, None, self.kind)):
                rows.extend(self._item_rows(item))
            return rows

        for tier in PriorityTier:
            items = self.store.sibling_group(SiblingFilter(None, tier, self.kind))
            if not items:
                continue
            rows.append(HeaderRow(tier))
            if tier in self.collapsed_tiers:
                continue
            for item in items:
                rows.extend(self._item_rows(item))
        return rows

    def _item_rows(self, item: Item) -> List[DisplayRow]:
        rows: List[DisplayRow] = [ItemRow(item, 0)]
        if item.id not in self.expanded:
            return rows
        rows.extend(ItemRow(c, 1) for c in self.store.sibling_group(SiblingFilter(item.id)))
        rows.extend(ItemRow(c, 1) for c in self.store.completed_children(item.id))
        rows.append(AddChildRow(item.id))
        return rows

    # ---- index resolution ----
    def resolve_group_and_position(
        self,
        source_id: str,
        flat_index: int,
        rows: Optional[Sequence[DisplayRow]] = None,
    ) -> Optional[GroupPosition]:
        """Map a drop at `flat_index` (insert-before, pre-move indexing) to a group offset.

        Returns None for drops the source may not make, e.g. a child dropped
        outside its parent's block of rows.
        """
        rows = list(rows) if rows is not None else self.flatten()
        source = self.store.get(source_id)
        if source is None or source.is_completed:
            return None
        if source.parent_id is None:
            flt = SiblingFilter(None, self._tier_before(rows, flat_index), source.kind)
            return GroupPosition(flt, _offset_among(rows, flat_index, flt, depth=0))

        parent_idx = _row_index(rows, source.parent_id)
        if parent_idx is None:
            return None
        block_end = parent_idx + 1
        while block_end < len(rows) and _in_block(rows[block_end], source.parent_id):
            block_end += 1
        if not parent_idx < flat_index <= block_end:
            return None
        flt = SiblingFilter.for_item(source)
        return GroupPosition(flt, _offset_among(rows, flat_index, flt, depth=1))

    def _tier_before(self, rows: Sequence[DisplayRow], flat_index: int) -> Optional[PriorityTier]:
        if not self.uses_tiers:
            return None
        lookup = max(0, min(flat_index - 1, len(rows) - 1))
        for i in range(lookup, -1, -1):
            if isinstance(rows[i], HeaderRow):
                return rows[i].tier
        return PriorityTier.MEDIUM


def _row_index(rows: Sequence[DisplayRow], item_id: str) -> Optional[int]:
    for i, row in enumerate(rows):
        if isinstance(row, ItemRow) and row.item.id == item_id:
            return i
    return None


def _in_block(row: DisplayRow, parent_id: str) -> bool:
    if isinstance(row, AddChildRow):
        return row.parent_id == parent_id
    return isinstance(row, ItemRow) and row.item.parent_id == parent_id


def _offset_among(rows: Sequence[DisplayRow], flat_index: int, flt: SiblingFilter, depth: int) -> int:
    members = [
        i for i, row in enumerate(rows)
        if isinstance(row, ItemRow) and row.depth == depth and flt.matches(row.item)
    ]
    for offset, i in enumerate(members):
        if flat_index <= i:
            return offset
    return len(members)
