# Rev 0.2.2

"""Calendar timeline geometry (Rev 0.2.2)
Maps vertical pixel positions on a 24h timeline to wall-clock times snapped
to 15 minutes, and computes block move/resize/drop results.

Gesture objects only preview until `end()`; dropping one without calling
`end()` is a cancel and changes nothing.
"""
from __future__ import annotations
import dataclasses
import math
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

from focuslog.models.entities import ScheduledBlock, Section, Timeframe, new_id
from focuslog.models.types import ResizeEdge

QUANTUM_MINUTES = 15
MIN_BLOCK_MINUTES = 15
DEFAULT_DURATION_MINUTES = 30


def _round_half_away(x: float) -> int:
    return int(math.copysign(math.floor(abs(x) + 0.5), x))


class TimeGrid:
    def __init__(self, hour_height: float = 60.0, default_duration: int = DEFAULT_DURATION_MINUTES):
        if hour_height <= 0:
            raise ValueError("hour_height must be positive")
        self.hour_height = float(hour_height)
        self.default_duration = int(default_duration)

    # ---- position <-> time ----
    def position_to_time(self, y: float, day: date, tzinfo=None) -> datetime:
        minutes = (y / self.hour_height) * 60
        snapped = max(0, _round_half_away(minutes / QUANTUM_MINUTES) * QUANTUM_MINUTES)
        hour = min(snapped // 60, 23)
        minute = min(snapped % 60, 59)
        return datetime.combine(day, time(hour, minute), tzinfo=tzinfo)

    def time_to_position(self, t: datetime | time) -> float:
        return t.hour * self.hour_height + t.minute * (self.hour_height / 60.0)

    def snapped_delta_minutes(self, pixel_delta: float) -> int:
        """Signed drag distance in minutes, truncated toward zero to 15-minute steps."""
        raw = (pixel_delta / self.hour_height) * 60
        return int(raw / QUANTUM_MINUTES) * QUANTUM_MINUTES

    def block_height(self, block: ScheduledBlock) -> float:
        return (block.duration_minutes or self.default_duration) * (self.hour_height / 60.0)

    # ---- drops ----
    def drop_time(self, pixel_y: float, content_origin_y: float, day: date, tzinfo=None) -> Optional[datetime]:
        """Time for a drop at screen `pixel_y`; None when it lands above the timeline content."""
        content_y = pixel_y - content_origin_y
        if content_y < 0:
            return None
        return self.position_to_time(content_y, day, tzinfo)

    def drag_create_block(self, item_id: str, start: datetime) -> ScheduledBlock:
        return ScheduledBlock(
            id=new_id(),
            item_id=item_id,
            timeframe=Timeframe.DAILY,
            section=Section.TODO,
            date=start.date(),
            scheduled_start=start,
            duration_minutes=self.default_duration,
            created_from_drag=True,
        )

    @staticmethod
    def unschedule(block: ScheduledBlock) -> Optional[ScheduledBlock]:
        """Blocks created by a drag disappear (None); others keep their commitment, minus the time."""
        if block.created_from_drag:
            return None
        return dataclasses.replace(block, scheduled_start=None, duration_minutes=None)

    # ---- gestures ----
    def begin_move(self, block: ScheduledBlock) -> "MoveGesture":
        return MoveGesture(self, block)

    def begin_resize(self, block: ScheduledBlock, edge: ResizeEdge) -> "ResizeGesture":
        if edge not in ("top", "bottom"):
            raise ValueError(f"unknown resize edge: {edge!r}")
        return ResizeGesture(self, block, edge)


class MoveGesture:
    def __init__(self, grid: TimeGrid, block: ScheduledBlock):
        self._grid = grid
        self.block_id = block.id
        self.duration_minutes = block.duration_minutes or grid.default_duration
        start = block.scheduled_start
        self.original_y = grid.time_to_position(start) if start is not None else 0.0
        self.tzinfo = start.tzinfo if start is not None else None

    def preview_y(self, translation: float) -> float:
        return max(0.0, self.original_y + translation)

    def end(self, translation: float, day: date) -> datetime:
        return self._grid.position_to_time(self.preview_y(translation), day, self.tzinfo)


class ResizeGesture:
    def __init__(self, grid: TimeGrid, block: ScheduledBlock, edge: ResizeEdge):
        self._grid = grid
        self.block_id = block.id
        self.edge = edge
        self.original_duration = block.duration_minutes or grid.default_duration
        self.original_start = block.scheduled_start

    def preview(self, drag_delta: float) -> Tuple[Optional[datetime], int]:
        delta = self._grid.snapped_delta_minutes(drag_delta)
        if self.edge == "bottom":
            return self.original_start, max(MIN_BLOCK_MINUTES, self.original_duration + delta)

        # top handle: keep the bottom edge where it is
        if delta > 0 and self.original_duration - delta < MIN_BLOCK_MINUTES:
            delta = max(0, self.original_duration - MIN_BLOCK_MINUTES)
        if self.original_start is None:
            return None, max(MIN_BLOCK_MINUTES, self.original_duration - delta)
        midnight = self.original_start.replace(hour=0, minute=0, second=0, microsecond=0)
        since_midnight = int((self.original_start - midnight).total_seconds() // 60)
        delta = max(delta, -since_midnight)
        new_start = self.original_start + timedelta(minutes=delta)
        return new_start, max(MIN_BLOCK_MINUTES, self.original_duration - delta)

    end = preview
