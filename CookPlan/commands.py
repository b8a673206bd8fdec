"""
Task mutations as commands that carry their own inverse.

A command is built against a snapshot of the task list and records the exact
task values it replaces, so reverting it restores those values verbatim
instead of recomputing an approximation.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from CookPlan.exceptions import InvalidTransition, NotFoundError
from CookPlan.models import RecalculationSuggestion, Task, TaskStatus
from CookPlan import recalculation

# target status -> statuses a task may leave for it
ALLOWED_TRANSITIONS = {
    TaskStatus.in_progress: (TaskStatus.pending,),
    TaskStatus.completed: (TaskStatus.pending, TaskStatus.in_progress, TaskStatus.skipped),
    TaskStatus.skipped: (TaskStatus.pending, TaskStatus.in_progress),
    TaskStatus.pending: (TaskStatus.completed,),
}


def check_transition(task: Task, target: TaskStatus) -> None:
    if task.status not in ALLOWED_TRANSITIONS[target]:
        raise InvalidTransition(
            f'Cannot move "{task.title}" from {task.status.value} to {target.value}'
        )


@dataclass
class TaskCommand:
    name: str
    before: Dict[str, Task]
    after: Dict[str, Task]
    # Set for status changes the cook may take back
    undo_status: Optional[TaskStatus] = None

    @property
    def task_ids(self) -> List[str]:
        return list(self.after)

    def apply(self, tasks: Iterable[Task]) -> List[Task]:
        return _swap(tasks, self.after)

    def revert(self, tasks: Iterable[Task]) -> List[Task]:
        return _swap(tasks, self.before)

    def inverse(self, name: Optional[str] = None) -> "TaskCommand":
        return TaskCommand(name or f"revert {self.name}", before=dict(self.after), after=dict(self.before))

    def changed_tasks(self) -> List[Task]:
        return list(self.after.values())


def _swap(tasks: Iterable[Task], replacements: Dict[str, Task]) -> List[Task]:
    return [replacements.get(t.id, t) for t in tasks]


def _find(tasks: Iterable[Task], task_id: str) -> Task:
    for task in tasks:
        if task.id == task_id:
            return task
    raise NotFoundError(f"Task not found: {task_id}")


def check_off(tasks: Iterable[Task], task_id: str, now: datetime) -> TaskCommand:
    task = _find(tasks, task_id)
    check_transition(task, TaskStatus.completed)
    return TaskCommand(
        "checkoff",
        before={task.id: task},
        after={task.id: task.with_status(TaskStatus.completed, completed_at=now)},
        undo_status=task.status,
    )


def uncheck(tasks: Iterable[Task], task_id: str,
            previous_status: TaskStatus = TaskStatus.pending) -> TaskCommand:
    task = _find(tasks, task_id)
    check_transition(task, TaskStatus.pending)
    if previous_status not in (TaskStatus.pending, TaskStatus.in_progress):
        previous_status = TaskStatus.pending
    return TaskCommand(
        "undo",
        before={task.id: task},
        after={task.id: task.with_status(previous_status, completed_at=None)},
    )


def skip(tasks: Iterable[Task], task_id: str) -> TaskCommand:
    task = _find(tasks, task_id)
    check_transition(task, TaskStatus.skipped)
    return TaskCommand(
        "skip",
        before={task.id: task},
        after={task.id: task.with_status(TaskStatus.skipped)},
    )


def accept_suggestion(tasks: Iterable[Task], suggestion: RecalculationSuggestion) -> TaskCommand:
    tasks = list(tasks)
    return _diff("accept suggestion", tasks, recalculation.apply_suggestion(tasks, suggestion))


def shift_pending(tasks: Iterable[Task], minutes: int) -> TaskCommand:
    tasks = list(tasks)
    return _diff("shift pending", tasks, recalculation.shift_pending(tasks, minutes))


def _diff(name: str, before: List[Task], after: List[Task]) -> TaskCommand:
    old = {t.id: t for t in before}
    changed = {t.id: t for t in after if old.get(t.id) is not t}
    return TaskCommand(
        name,
        before={task_id: old[task_id] for task_id in changed},
        after=changed,
    )
