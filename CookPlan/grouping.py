"""
Now / Next / Later projection of a timeline, plus the small live-view
helpers built on the same present-minute arithmetic.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from CookPlan import config
from CookPlan.models import ACTIVE_STATUSES, DONE_STATUSES, Task, TaskStatus, sort_by_start
from CookPlan.utils_time import minutes_from_serve

EQUIPMENT_KEYWORDS = {
    "oven": "Oven",
    "preheat": "Oven",
    "bake": "Oven",
    "roast": "Oven",
    "broil": "Oven",
    "mixer": "Stand Mixer",
    "whisk": "Whisk",
    "blender": "Blender",
    "food processor": "Food Processor",
    "processor": "Food Processor",
    "skillet": "Skillet",
    "pan": "Pan",
    "pot": "Large Pot",
    "saucepan": "Saucepan",
    "dutch oven": "Dutch Oven",
    "sheet pan": "Sheet Pan",
    "baking sheet": "Baking Sheet",
    "cutting board": "Cutting Board",
    "knife": "Knife",
    "stand mixer": "Stand Mixer",
    "thermometer": "Thermometer",
    "grill": "Grill",
    "colander": "Colander",
    "strainer": "Strainer",
}


@dataclass
class TaskGroups:
    now: List[Task] = field(default_factory=list)
    next: List[Task] = field(default_factory=list)
    later: List[Task] = field(default_factory=list)
    completed: List[Task] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "now": [t.to_dict() for t in self.now],
            "next": [t.to_dict() for t in self.next],
            "later": [t.to_dict() for t in self.later],
            "completed": [t.to_dict() for t in self.completed],
        }


def group_tasks(
    tasks: Iterable[Task],
    present_minute: Optional[int] = None,
    current_task_id: Optional[str] = None,
    next_window: int = config.NEXT_WINDOW_MINUTES,
    max_next: int = config.MAX_NEXT_TASKS,
) -> TaskGroups:
    """
    Bucket tasks for display.

    NOW is the stored current task if it is still active, else the task whose
    [start, end) holds the present minute, else the earliest remaining task.
    NEXT holds up to `max_next` remaining tasks starting no later than
    NOW.end + `next_window` (or present + `next_window` when nothing is NOW).
    present_minute is serve-relative; None means a planning view with no clock.
    """
    tasks = list(tasks)
    completed = [t for t in tasks if t.status in DONE_STATUSES]
    remaining = sort_by_start(t for t in tasks if t.status in ACTIVE_STATUSES)

    now_task = None
    if current_task_id:
        now_task = next((t for t in remaining if t.id == current_task_id), None)
    if now_task is None and present_minute is not None:
        now_task = next(
            (t for t in remaining
             if t.start_time_minutes <= present_minute < t.end_time_minutes),
            None,
        )
    if now_task is None and remaining:
        now_task = remaining[0]

    rest = [t for t in remaining if now_task is None or t.id != now_task.id]

    if now_task is not None:
        threshold = now_task.end_time_minutes + next_window
    elif present_minute is not None:
        threshold = present_minute + next_window
    else:
        threshold = next_window

    upcoming = [t for t in rest if t.start_time_minutes <= threshold][:max_next]
    upcoming_ids = {t.id for t in upcoming}

    return TaskGroups(
        now=[now_task] if now_task else [],
        next=upcoming,
        later=[t for t in rest if t.id not in upcoming_ids],
        completed=completed,
    )


def group_tasks_for_live(
    tasks: Iterable[Task],
    serve_time: datetime,
    now: datetime,
    current_task_id: Optional[str] = None,
) -> TaskGroups:
    return group_tasks(tasks, minutes_from_serve(now, serve_time), current_task_id)


def calculate_progress(tasks: Iterable[Task]) -> Dict[str, int]:
    tasks = list(tasks)
    done = sum(1 for t in tasks if t.status in DONE_STATUSES)
    total = len(tasks)
    # round-half-up, so 1 of 8 reads as 13%
    percentage = int(done * 100 / total + 0.5) if total else 0
    return {"completed": done, "total": total, "percentage": percentage}


def overdue_tasks(tasks: Iterable[Task], serve_time: datetime, now: datetime) -> List[Task]:
    """Pending tasks whose start is already behind the present minute."""
    present = minutes_from_serve(now, serve_time)
    return [
        t for t in tasks
        if t.status == TaskStatus.pending and t.start_time_minutes < present
    ]


def equipment_needs(tasks: Iterable[Task], serve_time: datetime, now: datetime,
                    horizon_minutes: int = 60) -> List[str]:
    """Sorted equipment names mentioned by tasks starting within the next hour."""
    present = minutes_from_serve(now, serve_time)
    equipment = set()
    for task in tasks:
        if task.start_time_minutes - present > horizon_minutes:
            continue
        text = f"{task.title} {task.description or ''}".lower()
        for keyword, name in EQUIPMENT_KEYWORDS.items():
            if keyword in text:
                equipment.add(name)
        if task.requires_oven:
            equipment.add(f"Oven ({task.oven_temp}°F)" if task.oven_temp else "Oven")
    return sorted(equipment)
