# Rev 0.2.2
from __future__ import annotations

from datetime import date, datetime, time
from typing import Dict, Iterable, List, Optional, Tuple

from PySide6.QtCore import QObject, Signal

from focuslog.models.entities import ScheduledBlock, Section, Timeframe, new_id
from focuslog.models.types import ResizeEdge
from focuslog.services.timegrid import MoveGesture, ResizeGesture, TimeGrid
from focuslog.utils.logging_setup import get_logger

log = get_logger("viewmodels.timeline")


class TimelineViewModel(QObject):
    """
    VM for the 24h calendar timeline of one date.
    Emits:
      - blocksChanged()         timed blocks must be re-read
      - errorRaised(message)    a persistence call failed
    Gestures only preview until their end call; a gesture that is never
    ended (or is cancelled) leaves blocks untouched.
    """

    blocksChanged = Signal()
    errorRaised = Signal(str)

    def __init__(self, blocks_repo, items_repo=None, *, day: Optional[date] = None, grid: Optional[TimeGrid] = None):
        super().__init__()
        self._blocks_repo = blocks_repo
        self._items_repo = items_repo
        self.day = day or date.today()
        self.grid = grid or TimeGrid()
        self.content_origin_y = 0.0
        self._blocks: Dict[str, ScheduledBlock] = {}
        self._move: Optional[MoveGesture] = None
        self._resize: Optional[ResizeGesture] = None

    # ---- queries ----
    def set_date(self, day: date) -> None:
        self.day = day
        self.reload()

    def reload(self) -> None:
        try:
            blocks = self._blocks_repo.fetch_timed_blocks(self.day)
        except Exception as exc:
            log.error("fetch timeline for %s failed: %s", self.day, exc)
            self.errorRaised.emit(f"Failed to load timeline: {exc}")
            return
        self._blocks = {b.id: b for b in blocks}
        self._cancel_gestures()
        self.blocksChanged.emit()

    def timed_blocks(self) -> List[ScheduledBlock]:
        return sorted(self._blocks.values(), key=lambda b: (b.scheduled_start, b.id))

    def block_geometry(self, block_id: str) -> Optional[Tuple[float, float]]:
        """(y, height) of a placed block in content coordinates."""
        block = self._blocks.get(block_id)
        if block is None or block.scheduled_start is None:
            return None
        return self.grid.time_to_position(block.scheduled_start), self.grid.block_height(block)

    def set_content_origin(self, y: float) -> None:
        self.content_origin_y = float(y)

    # ---- move ----
    def begin_move(self, block_id: str) -> bool:
        block = self._blocks.get(block_id)
        if block is None or block.scheduled_start is None:
            return False
        self._move = self.grid.begin_move(block)
        return True

    def update_move(self, translation: float) -> Optional[float]:
        if self._move is None:
            return None
        return self._move.preview_y(translation)

    def cancel_move(self) -> None:
        self._move = None

    def end_move(self, translation: float) -> Optional[datetime]:
        gesture, self._move = self._move, None
        if gesture is None:
            return None
        block = self._blocks.get(gesture.block_id)
        if block is None:
            return None
        new_start = gesture.end(translation, self.day)
        if new_start == block.scheduled_start:
            return new_start
        block.scheduled_start = new_start
        block.duration_minutes = gesture.duration_minutes
        self.blocksChanged.emit()
        self._persist(block.id, "move", scheduled_start=new_start, duration_minutes=gesture.duration_minutes)
        return new_start

    def on_schedule_move(self, block_id: str, pixel_delta: float) -> Optional[datetime]:
        if not self.begin_move(block_id):
            return None
        return self.end_move(pixel_delta)

    # ---- resize ----
    def begin_resize(self, block_id: str, edge: ResizeEdge) -> bool:
        block = self._blocks.get(block_id)
        if block is None or block.scheduled_start is None:
            return False
        self._resize = self.grid.begin_resize(block, edge)
        return True

    def update_resize(self, drag_delta: float) -> Optional[Tuple[Optional[datetime], int]]:
        if self._resize is None:
            return None
        return self._resize.preview(drag_delta)

    def cancel_resize(self) -> None:
        self._resize = None

    def end_resize(self, drag_delta: float) -> Optional[Tuple[Optional[datetime], int]]:
        gesture, self._resize = self._resize, None
        if gesture is None:
            return None
        block = self._blocks.get(gesture.block_id)
        if block is None:
            return None
        start, duration = gesture.end(drag_delta)
        if (start, duration) == (block.scheduled_start, block.duration_minutes):
            return start, duration
        block.scheduled_start = start
        block.duration_minutes = duration
        self.blocksChanged.emit()
        self._persist(block.id, "resize", scheduled_start=start, duration_minutes=duration)
        return start, duration

    def on_schedule_resize(self, block_id: str, edge: ResizeEdge, pixel_delta: float):
        if not self.begin_resize(block_id, edge):
            return None
        return self.end_resize(pixel_delta)

    # ---- drops ----
    def on_schedule_drop_create(self, item_id: str, pixel_y: float) -> Optional[ScheduledBlock]:
        """An item dragged in from a list: a new block owned by the drag."""
        start = self.grid.drop_time(pixel_y, self.content_origin_y, self.day)
        if start is None:
            log.debug("drop of %s above timeline content ignored", item_id)
            return None
        block = self.grid.drag_create_block(item_id, start)
        self._blocks[block.id] = block
        self.blocksChanged.emit()
        try:
            self._blocks_repo.create_scheduled_block(block)
        except Exception as exc:
            log.error("create block for %s failed: %s", item_id, exc)
            self.errorRaised.emit(f"Failed to schedule: {exc}")
            self.reload()
            return None
        return block

    def on_schedule_drop_existing(self, block_id: str, pixel_y: float) -> Optional[ScheduledBlock]:
        """A commitment (unplaced block) dropped onto the timeline keeps its duration."""
        start = self.grid.drop_time(pixel_y, self.content_origin_y, self.day)
        if start is None:
            return None
        block = self._blocks.get(block_id)
        if block is None:
            try:
                block = self._blocks_repo.get_block(block_id)
            except Exception as exc:
                log.error("lookup of block %s failed: %s", block_id, exc)
                self.errorRaised.emit(f"Failed to schedule: {exc}")
                return None
        if block is None:
            return None
        block.date = self.day
        block.scheduled_start = start
        block.duration_minutes = block.duration_minutes or self.grid.default_duration
        self._blocks[block.id] = block
        self.blocksChanged.emit()
        self._persist(block.id, "drop", date=self.day, scheduled_start=start,
                      duration_minutes=block.duration_minutes)
        return block

    # ---- commitments ----
    def commit_item(
        self,
        item_id: str,
        timeframe: Timeframe,
        section: Section,
        days: Iterable[date],
        start: Optional[time] = None,
    ) -> List[ScheduledBlock]:
        """Commit an item to a section on each of `days`; full sections are skipped."""
        created: List[ScheduledBlock] = []
        cap = section.max_items(timeframe)
        for day in days:
            try:
                count = self._blocks_repo.count_in_section(timeframe, section, day)
                if cap is not None and count >= cap:
                    log.info("%s/%s on %s is full (%d)", timeframe.value, section.value, day, cap)
                    self.errorRaised.emit(f"{section.value.capitalize()} for {day.isoformat()} is full")
                    continue
                block = ScheduledBlock(
                    id=new_id(),
                    item_id=item_id,
                    timeframe=timeframe,
                    section=section,
                    date=day,
                    scheduled_start=datetime.combine(day, start) if start is not None else None,
                    duration_minutes=self.grid.default_duration if start is not None else None,
                    sort_order=count,
                )
                self._blocks_repo.create_scheduled_block(block)
            except Exception as exc:
                log.error("commit of %s on %s failed: %s", item_id, day, exc)
                self.errorRaised.emit(f"Failed to commit: {exc}")
                continue
            created.append(block)
            if day == self.day and block.is_placed:
                self._blocks[block.id] = block
        if created:
            self.blocksChanged.emit()
        return created

    def unschedule(self, block_id: str) -> bool:
        block = self._blocks.pop(block_id, None)
        if block is None:
            return False
        self.blocksChanged.emit()
        kept = self.grid.unschedule(block)
        try:
            if kept is None:
                self._blocks_repo.delete_scheduled_block(block_id)
            else:
                self._blocks_repo.update_scheduled_block(block_id, scheduled_start=None, duration_minutes=None)
        except Exception as exc:
            log.error("unschedule of %s failed: %s", block_id, exc)
            self.errorRaised.emit(f"Failed to unschedule: {exc}")
            self.reload()
        return True

    def delete_item(self, item_id: str) -> bool:
        """Delete an item; its blocks go with it."""
        if self._items_repo is None:
            raise ValueError("TimelineViewModel has no item repository.")
        for bid in [b.id for b in self._blocks.values() if b.item_id == item_id]:
            del self._blocks[bid]
        self.blocksChanged.emit()
        try:
            return bool(self._items_repo.delete_item(item_id))
        except Exception as exc:
            log.error("delete of item %s failed: %s", item_id, exc)
            self.errorRaised.emit(f"Failed to delete: {exc}")
            self.reload()
            return False

    # ---- internals ----
    def _cancel_gestures(self) -> None:
        self._move = None
        self._resize = None

    def _persist(self, block_id: str, what: str, **fields) -> None:
        try:
            self._blocks_repo.update_scheduled_block(block_id, **fields)
        except Exception as exc:
            log.warning("%s of block %s failed: %s", what, block_id, exc)
            self.errorRaised.emit(f"Failed to save {what}: {exc}")
            self.reload()
