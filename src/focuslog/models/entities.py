# Rev 0.2.0
"""Items and scheduled blocks (Rev 0.2.0)"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional
import uuid


def new_id() -> str:
    return uuid.uuid4().hex


class ItemKind(str, Enum):
    TASK = "task"
    LIST = "list"
    PROJECT = "project"


class PriorityTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def sort_index(self) -> int:
        return list(PriorityTier).index(self)


class Timeframe(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Section(str, Enum):
    TARGET = "target"
    TODO = "todo"

    def max_items(self, timeframe: Timeframe) -> Optional[int]:
        """Capacity of this section for a timeframe; None means unlimited."""
        if self is Section.TODO:
            return None
        if timeframe is Timeframe.DAILY:
            return 3
        if timeframe is Timeframe.YEARLY:
            return 10
        return 5


@dataclass
class Item:
    id: str
    title: str
    kind: ItemKind = ItemKind.TASK
    parent_id: Optional[str] = None
    priority_tier: PriorityTier = PriorityTier.MEDIUM
    sort_order: int = 0
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    previous_child_snapshot: Optional[List[bool]] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    @property
    def is_top_level(self) -> bool:
        return self.parent_id is None

    @property
    def uses_tiers(self) -> bool:
        # tiers only group top-level tasks
        return self.is_top_level and self.kind is ItemKind.TASK

    def mark_completed(self, now: datetime) -> None:
        self.is_completed = True
        self.completed_at = now

    def mark_active(self) -> None:
        self.is_completed = False
        self.completed_at = None


@dataclass
class ScheduledBlock:
    id: str
    item_id: str
    timeframe: Timeframe
    section: Section
    date: date
    scheduled_start: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    created_from_drag: bool = False
    sort_order: int = 0
    created_at: Optional[datetime] = field(default=None, compare=False)

    @property
    def is_placed(self) -> bool:
        return self.scheduled_start is not None

    def end_time(self, default_duration: int = 30) -> Optional[datetime]:
        if self.scheduled_start is None:
            return None
        return self.scheduled_start + timedelta(minutes=self.duration_minutes or default_duration)
