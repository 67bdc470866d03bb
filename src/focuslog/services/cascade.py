# Rev 0.2.0

"""Completion cascade service (Rev 0.2.0)
Active <-> Completed state machine for parents and their direct children.

- Completing a parent snapshots its children's flags, then completes them all.
- Uncompleting a parent restores the snapshot when one exists.
- A child toggle auto-completes the parent once every child is done (storing
  the pre-toggle flags as the snapshot) and auto-uncompletes a completed
  parent otherwise. The auto-uncomplete path leaves children untouched.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from focuslog.models.entities import Item
from focuslog.models.store import ItemStore
from focuslog.utils.logging_setup import get_logger

log = get_logger("cascade")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CascadeResult:
    toggled_id: Optional[str] = None
    changed: List[Item] = field(default_factory=list)
    children_changed: bool = False
    # items whose new state other views must hear about, toggled item first
    announce: List[Item] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return self.toggled_id is None


class CascadeEngine:
    def __init__(self, store: ItemStore, clock: Clock = utc_now):
        self._store = store
        self._clock = clock

    def toggle(self, item_id: str) -> CascadeResult:
        item = self._store.get(item_id)
        if item is None:
            return CascadeResult()
        if item.parent_id is None:
            return self._toggle_parent(item)
        return self._toggle_child(item)

    # ---- parent path ----
    def _toggle_parent(self, parent: Item) -> CascadeResult:
        now = self._clock()
        children = self._store.children(parent.id)
        result = CascadeResult(toggled_id=parent.id, changed=[parent], announce=[parent])

        if not parent.is_completed:
            parent.previous_child_snapshot = [c.is_completed for c in children]
            parent.mark_completed(now)
            for child in children:
                child.mark_completed(now)
            result.changed.extend(children)
            result.children_changed = bool(children)
            log.debug("completed %s with %d children", parent.id, len(children))
            return result

        snapshot = parent.previous_child_snapshot
        parent.mark_active()
        if snapshot is not None:
            for child, was_completed in zip(children, snapshot):
                if child.is_completed == was_completed:
                    continue
                if was_completed:
                    child.mark_completed(now)
                else:
                    child.mark_active()
                result.changed.append(child)
            result.children_changed = bool(children)
            log.debug("restored %d child states under %s", min(len(children), len(snapshot)), parent.id)
        return result

    # ---- child path ----
    def _toggle_child(self, child: Item) -> CascadeResult:
        now = self._clock()
        siblings = self._store.children(child.parent_id)
        before = [s.is_completed for s in siblings]

        if child.is_completed:
            child.mark_active()
        else:
            child.mark_completed(now)
        result = CascadeResult(toggled_id=child.id, changed=[child], announce=[child])

        parent = self._store.get(child.parent_id)
        if parent is None:
            return result

        all_done = bool(siblings) and all(s.is_completed for s in siblings)
        if all_done and not parent.is_completed:
            parent.previous_child_snapshot = before
            parent.mark_completed(now)
        elif not all_done and parent.is_completed:
            parent.mark_active()
        else:
            return result
        result.changed.append(parent)
        result.announce.append(parent)
        log.debug("parent %s auto-%s", parent.id, "completed" if parent.is_completed else "reopened")
        return result
