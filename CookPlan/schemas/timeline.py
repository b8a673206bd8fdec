from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from CookPlan import config
from CookPlan.models import TaskStatus
from CookPlan.utils_time import ensure_aware


class GenerateTimelineRequest(BaseModel):
    meal_id: str = Field(..., description="Meal to plan")

    @field_validator('meal_id')
    @classmethod
    def meal_id_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('meal_id is required')
        return v.strip()


class TaskUpdate(BaseModel):
    """Manual edit of a task. End time is always derived, so it is not accepted."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_time_minutes: Optional[int] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    requires_oven: Optional[bool] = None
    oven_temp: Optional[int] = Field(None, gt=0)
    depends_on: Optional[List[str]] = None
    notes: Optional[str] = None


class TaskInput(BaseModel):
    """One task in a full timeline replacement."""
    id: Optional[str] = None
    recipe_id: Optional[str] = None
    instruction_id: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    start_time_minutes: int
    duration_minutes: int = Field(..., gt=0)
    requires_oven: bool = False
    oven_temp: Optional[int] = Field(None, gt=0)
    depends_on: List[str] = []
    status: TaskStatus = TaskStatus.pending
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None


class TimelineReplace(BaseModel):
    tasks: List[TaskInput] = Field(..., min_length=1)


class ReorderRequest(BaseModel):
    task_ids: List[str] = Field(..., min_length=1)


class TaskStatusUpdate(BaseModel):
    status: TaskStatus
    notes: Optional[str] = None
    previous_status: Optional[TaskStatus] = Field(
        None, description="Status captured before the checkoff; restored on undo"
    )


class RecalculateRequest(BaseModel):
    current_time: Optional[datetime] = None
    context: Optional[str] = Field(None, max_length=500)

    @field_validator('current_time')
    @classmethod
    def current_time_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(v)


class ShiftRequest(BaseModel):
    minutes: int = Field(config.OFFLINE_SHIFT_MINUTES, gt=0, le=240)
