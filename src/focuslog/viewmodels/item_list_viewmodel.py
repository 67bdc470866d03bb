# Rev 0.2.3 - optimistic reorder/cascade + completion bus
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from PySide6.QtCore import QObject, Signal

from focuslog.models.entities import Item, ItemKind, PriorityTier, new_id
from focuslog.models.store import ItemStore, SiblingFilter, SortOrderUpdate
from focuslog.services.cascade import CascadeEngine, Clock, utc_now
from focuslog.services.ordering import OrderingEngine, ReorderResult
from focuslog.services.projector import DisplayProjector, DisplayRow, ItemRow
from focuslog.services.sync_bus import CompletionBus, CompletionEvent
from focuslog.utils.logging_setup import get_logger

log = get_logger("viewmodels.items")


@dataclass
class _DragSession:
    source_id: str
    target_id: Optional[str] = None
    last_eval: Optional[float] = None
    preview: Optional[ReorderResult] = None


class ItemListViewModel(QObject):
    """
    VM for one list view (tasks, lists or projects) and its children.
    Emits:
      - displayChanged()        flattened rows must be re-read
      - errorRaised(message)    a persistence call failed
    Every mutation is applied to the in-memory store first; persistence
    follows and never blocks the next gesture.
    """

    displayChanged = Signal()
    errorRaised = Signal(str)

    def __init__(
        self,
        items_repo,
        bus: Optional[CompletionBus] = None,
        *,
        kind: ItemKind = ItemKind.TASK,
        view_name: str = "log",
        clock: Clock = utc_now,
        throttle_ms: int = 250,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        super().__init__()
        self._items = items_repo
        self._bus = bus
        self.kind = kind
        self.view_name = view_name
        self._clock = clock
        self._throttle = throttle_ms / 1000.0
        self._monotonic = monotonic

        self.store = ItemStore()
        self.ordering = OrderingEngine(self.store)
        self.cascade = CascadeEngine(self.store, clock)
        self.projector = DisplayProjector(self.store, kind)
        self._drag: Optional[_DragSession] = None

        if bus is not None:
            bus.completionChanged.connect(self._on_completion_event)

    # ---- queries ----
    def reload(self) -> None:
        try:
            items = self._items.fetch_items(self.kind)
        except Exception as exc:
            log.error("fetch %s items failed: %s", self.kind.value, exc)
            self.errorRaised.emit(f"Failed to load items: {exc}")
            return
        self.store.load(items)
        updates = self._repair(self._all_groups())
        if updates:
            log.info("repaired %d sort orders after load", len(updates))
            self._persist_sort_orders(updates, reconcile=False)
        self.displayChanged.emit()

    def flattened_display(self) -> List[DisplayRow]:
        return self.projector.flatten()

    def get_item(self, item_id: str) -> Optional[Item]:
        return self.store.get(item_id)

    # ---- view state ----
    def toggle_expanded(self, item_id: str) -> None:
        if item_id not in self.store:
            return
        self.projector.toggle_expanded(item_id)
        self.displayChanged.emit()

    def toggle_tier_collapsed(self, tier: PriorityTier) -> None:
        self.projector.toggle_tier(tier)
        self.displayChanged.emit()

    # ---- drag: preview until commit ----
    def begin_drag(self, source_id: str) -> None:
        source = self.store.get(source_id)
        if source is None or source.is_completed:
            self._drag = None
            return
        self._drag = _DragSession(source_id)

    def drag_over(self, target_id: str) -> Optional[ReorderResult]:
        """Nearest sibling changed under the pointer; evaluated at most once per throttle window."""
        drag = self._drag
        if drag is None:
            return None
        now = self._monotonic()
        if drag.last_eval is not None and now - drag.last_eval < self._throttle:
            return drag.preview
        drag.last_eval = now
        drag.target_id = target_id
        drag.preview = self.ordering.reorder(drag.source_id, target_id)
        return drag.preview

    def cancel_drag(self) -> None:
        self._drag = None

    def end_drag(self) -> bool:
        drag, self._drag = self._drag, None
        if drag is None or drag.target_id is None:
            return False
        return self.on_drag_commit(drag.source_id, drag.target_id)

    # ---- commands: ordering ----
    def on_drag_commit(self, source_id: str, nearest_sibling_id: str) -> bool:
        self._drag = None
        return self._commit_reorder(self.ordering.reorder(source_id, nearest_sibling_id))

    def on_flat_move(self, from_index: int, to_index: int) -> bool:
        rows = self.projector.flatten()
        if not 0 <= from_index < len(rows):
            return False
        row = rows[from_index]
        if not isinstance(row, ItemRow) or row.item.is_completed:
            return False
        pos = self.projector.resolve_group_and_position(row.item.id, to_index, rows)
        if pos is None:
            log.debug("flat move %d -> %d rejected", from_index, to_index)
            return False
        return self._commit_reorder(self.ordering.move_to_offset(row.item.id, pos.filter, pos.offset))

    def set_item_tier(self, item_id: str, tier: PriorityTier) -> bool:
        item = self.store.get(item_id)
        if item is None or not item.uses_tiers or item.priority_tier is tier:
            return False
        if item.is_completed:
            item.priority_tier = tier
            self.displayChanged.emit()
            self._persist_item(item, reconcile=True)
            return True
        return self._commit_reorder(self.ordering.reorder(item_id, None, SiblingFilter(None, tier, item.kind)))

    def _commit_reorder(self, result: ReorderResult) -> bool:
        if result.rejected or result.is_noop:
            return False
        result.apply(self.store)
        self.displayChanged.emit()

        updates = result.sort_order_updates
        try:
            if result.tier_change is not None:
                moved = self.store.get(result.tier_change.id)
                self._items.update_item(moved)
                updates = [u for u in updates if u.id != moved.id]
            if updates:
                self._items.update_sort_orders(updates)
        except Exception as exc:
            log.warning("persisting reorder failed: %s", exc)
            self.errorRaised.emit(f"Failed to save order: {exc}")
            self.reload()
        return True

    # ---- commands: completion ----
    def on_toggle_completion(self, item_id: str) -> None:
        result = self.cascade.toggle(item_id)
        if result.is_noop:
            return
        toggled = self.store.get(result.toggled_id)
        groups = [SiblingFilter.for_item(toggled)]
        parent_id = toggled.parent_id or toggled.id
        groups.append(SiblingFilter(parent_id))
        if toggled.parent_id is not None:
            groups.append(SiblingFilter.for_item(self.store.get(parent_id) or toggled))
        self._rejoin(result.changed)
        repairs = self._repair(groups)
        self.displayChanged.emit()

        changed_ids = {it.id for it in result.changed}
        try:
            for item in result.changed:
                self._items.update_item(item)
            rest = [u for u in repairs if u.id not in changed_ids]
            if rest:
                self._items.update_sort_orders(rest)
        except Exception as exc:
            log.warning("persisting completion of %s failed: %s", item_id, exc)
            self.errorRaised.emit(f"Failed to update completion: {exc}")
            self.reload()
            return
        # announce only what storage already holds
        for item in result.announce:
            self._publish(item, result.children_changed and item.id == result.toggled_id)

    def _publish(self, item: Item, children_changed: bool) -> None:
        if self._bus is not None:
            self._bus.publish(CompletionEvent.from_item(item, self.view_name, children_changed))

    def _on_completion_event(self, event: CompletionEvent) -> None:
        if event.origin_view == self.view_name:
            return
        item = self.store.get(event.item_id)
        if item is None:
            return
        reopened = item.is_completed and not event.is_completed
        item.is_completed = event.is_completed
        item.completed_at = event.completed_at
        if event.children_changed:
            try:
                self.store.replace_children(item.id, self._items.fetch_children(item.id))
            except Exception as exc:
                log.warning("refreshing children of %s failed: %s", item.id, exc)
        # the sender already saved these orders; mirror them, write nothing
        if reopened:
            self._rejoin([item])
        groups = [SiblingFilter.for_item(item)]
        if item.is_top_level:
            groups.append(SiblingFilter(item.id))
        self._repair(groups)
        self.displayChanged.emit()

    # ---- commands: CRUD ----
    def create_item(self, title: str, tier: PriorityTier = PriorityTier.MEDIUM) -> Optional[str]:
        title = (title or "").strip()
        if not title:
            raise ValueError("title required")
        now = self._clock()
        item = Item(id=new_id(), title=title, kind=self.kind, priority_tier=tier,
                    created_at=now, modified_at=now)
        self.store.upsert(item)
        updates = self.ordering.insert_at_top(SiblingFilter.for_item(item), item.id)
        self.store.apply_sort_orders(updates)
        self.displayChanged.emit()
        try:
            self._items.create_item(item)
            self._items.update_sort_orders([u for u in updates if u.id != item.id])
        except Exception as exc:
            log.error("create item failed: %s", exc)
            self.errorRaised.emit(f"Failed to create item: {exc}")
            self.reload()
            return None
        return item.id

    def create_child(self, parent_id: str, title: str) -> Optional[str]:
        title = (title or "").strip()
        parent = self.store.get(parent_id)
        if not title or parent is None or parent.parent_id is not None:
            return None
        now = self._clock()
        child = Item(id=new_id(), title=title, kind=ItemKind.TASK, parent_id=parent_id,
                     sort_order=self.ordering.next_child_order(parent_id),
                     created_at=now, modified_at=now)
        self.store.upsert(child)
        self.displayChanged.emit()
        try:
            self._items.create_item(child)
        except Exception as exc:
            log.error("create child under %s failed: %s", parent_id, exc)
            self.errorRaised.emit(f"Failed to create item: {exc}")
            self.reload()
            return None
        return child.id

    def rename_item(self, item_id: str, title: str) -> bool:
        title = (title or "").strip()
        if not title:
            raise ValueError("title required")
        item = self.store.get(item_id)
        if item is None:
            return False
        item.title = title
        item.modified_at = self._clock()
        self.displayChanged.emit()
        try:
            self._items.update_item(item)
        except Exception as exc:
            # minor field: keep the local edit, no reconcile
            log.warning("rename of %s not saved: %s", item_id, exc)
        return True

    def delete_item(self, item_id: str) -> bool:
        item = self.store.get(item_id)
        if item is None:
            return False
        self.store.remove(item_id)
        self.projector.expanded.discard(item_id)
        updates = self.ordering.repair_group(SiblingFilter.for_item(item))
        self.store.apply_sort_orders(updates)
        self.displayChanged.emit()
        try:
            self._items.delete_item(item_id)
            if updates:
                self._items.update_sort_orders(updates)
        except Exception as exc:
            log.error("delete of %s failed: %s", item_id, exc)
            self.errorRaised.emit(f"Failed to delete: {exc}")
            self.reload()
        return True

    def clear_completed(self) -> int:
        done = self.store.top_level(self.kind, completed=True)
        for item in done:
            self.delete_item(item.id)
        return len(done)

    # ---- internals ----
    def _all_groups(self) -> List[SiblingFilter]:
        groups = {SiblingFilter.for_item(it) for it in self.store.all()}
        return sorted(groups, key=lambda f: (f.parent_id or "", f.tier.sort_index if f.tier else -1))

    def _rejoin(self, items: Iterable[Item]) -> None:
        """Items that just became active go to the end of their group, in their previous relative order."""
        back = [it for it in items if not it.is_completed]
        ids = {it.id for it in back}
        for flt in dict.fromkeys(SiblingFilter.for_item(it) for it in back):
            others = [it.sort_order for it in self.store.sibling_group(flt) if it.id not in ids]
            base = max(others, default=-1) + 1
            joining = sorted((it for it in back if SiblingFilter.for_item(it) == flt),
                             key=lambda it: (it.sort_order, it.id))
            for offset, it in enumerate(joining):
                it.sort_order = base + offset

    def _repair(self, groups: Iterable[SiblingFilter]) -> List[SortOrderUpdate]:
        updates: List[SortOrderUpdate] = []
        for flt in dict.fromkeys(groups):
            fix = self.ordering.repair_group(flt)
            self.store.apply_sort_orders(fix)
            updates.extend(fix)
        return updates

    def _persist_sort_orders(self, updates: List[SortOrderUpdate], *, reconcile: bool) -> None:
        try:
            self._items.update_sort_orders(updates)
        except Exception as exc:
            log.warning("persisting %d sort orders failed: %s", len(updates), exc)
            self.errorRaised.emit(f"Failed to save order: {exc}")
            if reconcile:
                self.reload()

    def _persist_item(self, item: Item, *, reconcile: bool) -> None:
        try:
            self._items.update_item(item)
        except Exception as exc:
            log.warning("persisting %s failed: %s", item.id, exc)
            self.errorRaised.emit(f"Failed to save: {exc}")
            if reconcile:
                self.reload()
