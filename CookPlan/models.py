from __future__ import annotations
import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import List, Dict, Any, Optional, Iterable

from CookPlan.utils_time import ensure_aware, parse_datetime


def _opt_datetime(value) -> Optional[datetime]:
    return parse_datetime(value) if value else None


class TaskStatus(str, enum.Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    skipped = "skipped"


class ConflictType(str, enum.Enum):
    oven_overlap = "oven_overlap"
    dependency_cycle = "dependency_cycle"
    timing_error = "timing_error"
    missing_dependency = "missing_dependency"


class ConflictSeverity(str, enum.Enum):
    warning = "warning"
    error = "error"


class TimelineState(str, enum.Enum):
    not_started = "not_started"
    running = "running"
    ended = "ended"


# Statuses that still need the cook's attention
ACTIVE_STATUSES = (TaskStatus.pending, TaskStatus.in_progress)
DONE_STATUSES = (TaskStatus.completed, TaskStatus.skipped)


@dataclass
class Task:
    """
    One cooking step. Times are minutes relative to serve time (0 = serve),
    so they are usually negative. end_time_minutes is always derived.
    """
    id: str
    meal_id: str
    recipe_id: str
    title: str
    start_time_minutes: int
    duration_minutes: int
    instruction_id: Optional[str] = None
    description: Optional[str] = None
    requires_oven: bool = False
    oven_temp: Optional[int] = None
    depends_on: List[str] = field(default_factory=list)
    status: TaskStatus = TaskStatus.pending
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    is_valid: bool = True
    validation_errors: List[str] = field(default_factory=list)

    @property
    def end_time_minutes(self) -> int:
        return self.start_time_minutes + self.duration_minutes

    def shifted(self, delta_minutes: int) -> "Task":
        return replace(self, start_time_minutes=self.start_time_minutes + delta_minutes)

    def moved_to(self, start_time_minutes: int) -> "Task":
        return replace(self, start_time_minutes=start_time_minutes)

    def with_status(self, status: TaskStatus, completed_at: Optional[datetime] = None) -> "Task":
        return replace(self, status=status, completed_at=completed_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "meal_id": self.meal_id,
            "recipe_id": self.recipe_id,
            "instruction_id": self.instruction_id,
            "title": self.title,
            "description": self.description,
            "start_time_minutes": self.start_time_minutes,
            "duration_minutes": self.duration_minutes,
            "end_time_minutes": self.end_time_minutes,
            "requires_oven": self.requires_oven,
            "oven_temp": self.oven_temp,
            "depends_on": list(self.depends_on),
            "status": self.status.value,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "notes": self.notes,
            "is_valid": self.is_valid,
            "validation_errors": list(self.validation_errors),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=data["id"],
            meal_id=data["meal_id"],
            recipe_id=data["recipe_id"],
            instruction_id=data.get("instruction_id"),
            title=data["title"],
            description=data.get("description"),
            start_time_minutes=int(data["start_time_minutes"]),
            duration_minutes=int(data["duration_minutes"]),
            requires_oven=bool(data.get("requires_oven", False)),
            oven_temp=data.get("oven_temp"),
            depends_on=list(data.get("depends_on") or []),
            status=TaskStatus(data.get("status", TaskStatus.pending.value)),
            completed_at=_opt_datetime(data.get("completed_at")),
            notes=data.get("notes"),
            is_valid=bool(data.get("is_valid", True)),
            validation_errors=list(data.get("validation_errors") or []),
        )


@dataclass
class TimelineConflict:
    type: ConflictType
    severity: ConflictSeverity
    task_ids: List[str]
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "task_ids": list(self.task_ids),
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimelineConflict":
        return cls(
            type=ConflictType(data["type"]),
            severity=ConflictSeverity(data["severity"]),
            task_ids=list(data.get("task_ids", [])),
            message=data.get("message", ""),
        )


@dataclass
class Timeline:
    id: Optional[str]
    meal_id: str
    tasks: List[Task] = field(default_factory=list)
    has_conflicts: bool = False
    conflicts: List[TimelineConflict] = field(default_factory=list)
    is_running: bool = False
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    # Cache hint only; current_task() is the source of truth.
    current_task_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def state(self) -> TimelineState:
        if self.ended_at is not None:
            return TimelineState.ended
        if self.is_running:
            return TimelineState.running
        return TimelineState.not_started

    @property
    def is_valid(self) -> bool:
        return not any(c.severity == ConflictSeverity.error for c in self.conflicts)

    def task(self, task_id: str) -> Optional[Task]:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None

    def current_task(self) -> Optional[Task]:
        return current_task(self.tasks)

    def to_dict(self) -> Dict[str, Any]:
        current = self.current_task() if self.is_running else None
        return {
            "id": self.id,
            "meal_id": self.meal_id,
            "tasks": [t.to_dict() for t in self.tasks],
            "has_conflicts": self.has_conflicts,
            "is_valid": self.is_valid,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "is_running": self.is_running,
            "state": self.state.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "current_task_id": current.id if current else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Timeline":
        return cls(
            id=data.get("id"),
            meal_id=data["meal_id"],
            tasks=[Task.from_dict(t) for t in data.get("tasks", [])],
            has_conflicts=bool(data.get("has_conflicts", False)),
            conflicts=[TimelineConflict.from_dict(c) for c in data.get("conflicts", [])],
            is_running=bool(data.get("is_running", False)),
            started_at=_opt_datetime(data.get("started_at")),
            ended_at=_opt_datetime(data.get("ended_at")),
            current_task_id=data.get("current_task_id"),
            created_at=_opt_datetime(data.get("created_at")),
            updated_at=_opt_datetime(data.get("updated_at")),
        )


@dataclass
class RecalculationSuggestion:
    task_id: str
    new_start_time_minutes: int
    description: str
    affected_task_ids: List[str] = field(default_factory=list)
    tasks_shifted: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "new_start_time_minutes": self.new_start_time_minutes,
            "description": self.description,
            "affected_task_ids": list(self.affected_task_ids),
            "tasks_shifted": self.tasks_shifted,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecalculationSuggestion":
        return cls(
            task_id=data["task_id"],
            new_start_time_minutes=int(data["new_start_time_minutes"]),
            description=data.get("description", ""),
            affected_task_ids=list(data.get("affected_task_ids") or []),
            tasks_shifted=int(data.get("tasks_shifted", 0)),
        )


@dataclass
class UndoableAction:
    """Something the cook may take back until expires_at (wall clock)."""
    task_id: str
    previous_status: TaskStatus
    expires_at: datetime

    @classmethod
    def for_checkoff(cls, task_id: str, previous_status: TaskStatus,
                     completed_at: datetime, window_seconds: int) -> "UndoableAction":
        return cls(
            task_id=task_id,
            previous_status=previous_status,
            expires_at=ensure_aware(completed_at) + timedelta(seconds=window_seconds),
        )

    def is_valid(self, now: datetime) -> bool:
        return ensure_aware(now) < self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "previous_status": self.previous_status.value,
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UndoableAction":
        return cls(
            task_id=data["task_id"],
            previous_status=TaskStatus(data["previous_status"]),
            expires_at=parse_datetime(data["expires_at"]),
        )


@dataclass
class ScalingFactor:
    recipe_id: str
    original_serving_size: int
    target_serving_size: int
    review_notes: Optional[str] = None

    @property
    def multiplier(self) -> float:
        if self.original_serving_size <= 0:
            raise ValueError("Recipe baseline servings must be > 0")
        return round(self.target_serving_size / self.original_serving_size, 3)


@dataclass
class MealRecipe:
    """Snapshot of a recipe as it is used in one meal."""
    recipe_id: str
    name: str
    serving_size: int
    scaling: ScalingFactor
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None
    ingredients: List[Dict[str, Any]] = field(default_factory=list)
    instructions: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class Meal:
    id: Optional[str]
    name: str
    serve_time: Optional[datetime]
    guest_count: int
    recipes: List[MealRecipe] = field(default_factory=list)


def sort_by_start(tasks: Iterable[Task]) -> List[Task]:
    """Time order; ties keep display order."""
    return sorted(tasks, key=lambda t: t.start_time_minutes)


def current_task(tasks: Iterable[Task]) -> Optional[Task]:
    """
    The task the cook should be on: the earliest pending or in-progress task
    by start time. None once everything is completed or skipped.
    """
    remaining = sort_by_start(t for t in tasks if t.status in ACTIVE_STATUSES)
    return remaining[0] if remaining else None
