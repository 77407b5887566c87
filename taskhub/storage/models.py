from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProcedureMode(str, Enum):
    """Shape of a stored-procedure result: one row or a list of rows."""

    SINGLE = "single"
    MULTI = "multi"


class TaskPriority(int, Enum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2


class TaskStatus(int, Enum):
    PENDING = 0
    IN_PROGRESS = 1
    COMPLETED = 2
    CANCELLED = 3


@dataclass
class User:
    id: int
    account_id: int
    email: str
    role: str = "member"
    is_active: bool = True
    created_at: datetime = field(default_factory=_utcnow)
    meta: Dict | None = None


@dataclass
class CategoryRow:
    id_category: int
    id_account: int
    id_user: int
    name: str
    description: str = ""
    color: str = "#4287f5"
    icon: Optional[str] = None
    id_parent: Optional[int] = None
    is_default: bool = False
    sort_order: int = 0
    is_favorite: bool = False
    deleted: bool = False
    date_created: datetime = field(default_factory=_utcnow)
    date_modified: datetime = field(default_factory=_utcnow)


@dataclass
class TaskRow:
    id_task: int
    id_account: int
    id_user: int
    title: str
    due_date: date
    priority: int
    description: str = ""
    status: int = TaskStatus.PENDING.value
    time_estimate: Optional[int] = None
    recurrence_config: Optional[str] = None
    deleted: bool = False
    date_created: datetime = field(default_factory=_utcnow)
    date_modified: datetime = field(default_factory=_utcnow)
