"""
Shift arithmetic for "running behind" recovery.

Both operations return new task lists and never touch tasks they are not
asked to move, so a caller can diff before/after to persist only the changes.
"""

from typing import Iterable, List

from CookPlan.exceptions import NotFoundError, ValidationError
from CookPlan.models import RecalculationSuggestion, Task, TaskStatus


def apply_suggestion(tasks: Iterable[Task], suggestion: RecalculationSuggestion) -> List[Task]:
    """
    Move the named task to the suggested start and shift every affected task
    by the same delta. Unlisted tasks are returned as the very same objects.
    """
    tasks = list(tasks)
    by_id = {t.id: t for t in tasks}
    moved = by_id.get(suggestion.task_id)
    if moved is None:
        raise NotFoundError(f"Task not found: {suggestion.task_id}")

    delta = suggestion.new_start_time_minutes - moved.start_time_minutes
    affected = set(suggestion.affected_task_ids) - {suggestion.task_id}

    result = []
    for task in tasks:
        if task.id == suggestion.task_id:
            result.append(task.moved_to(suggestion.new_start_time_minutes))
        elif task.id in affected:
            result.append(task.shifted(delta))
        else:
            result.append(task)
    return result


def shift_pending(tasks: Iterable[Task], minutes: int) -> List[Task]:
    """Push every pending task later by `minutes`; all other statuses stay put."""
    if minutes <= 0:
        raise ValidationError("Shift must be a positive number of minutes")
    return [
        task.shifted(minutes) if task.status == TaskStatus.pending else task
        for task in tasks
    ]
