"""
Live cooking state machine.

Timeline: not_started -> running -> ended, never back.
Task:     pending -> in_progress -> completed, pending -> skipped,
          completed -> pending/in_progress (undo, server clock, 30 s).

The current task is derived from statuses (earliest pending/in-progress task
by start time); the stored pointer is only a cache the repository rewrites.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from CookPlan import commands, config
from CookPlan.exceptions import InvalidTransition, NotFoundError, UndoExpired, ValidationError
from CookPlan.grouping import (
    calculate_progress, equipment_needs, group_tasks, group_tasks_for_live, overdue_tasks,
)
from CookPlan.models import (
    Task, TaskStatus, Timeline, TimelineState, UndoableAction, current_task, sort_by_start,
)
from CookPlan.repository_postgres import PostgresMealRepository, PostgresTimelineRepository
from CookPlan.utils_time import (
    ensure_aware, format_relative_time, format_time_remaining, minutes_from_serve, utc_now,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class ExecutionService:
    def __init__(self, db: Session, clock: Clock = utc_now,
                 undo_window_seconds: int = config.UNDO_WINDOW_SECONDS):
        self.db = db
        self.clock = clock
        self.undo_window_seconds = undo_window_seconds
        self.repo = PostgresTimelineRepository(db)
        self.meals = PostgresMealRepository(db)

    def _timeline(self, meal_id: str) -> Timeline:
        timeline = self.repo.get_by_meal_id(meal_id)
        if timeline is None:
            raise NotFoundError(f"No timeline for meal: {meal_id}")
        return timeline

    def _task(self, timeline: Timeline, task_id: str) -> Task:
        task = timeline.task(task_id)
        if task is None:
            raise NotFoundError(f"Task not found: {task_id}")
        return task

    def _advance(self, timeline: Timeline, updates: Dict[str, Dict[str, Any]]) -> None:
        """When running, mark the next derived current task in_progress."""
        if timeline.state != TimelineState.running:
            return
        projected = [
            t.with_status(TaskStatus(updates[t.id]["status"]), t.completed_at)
            if t.id in updates and "status" in updates[t.id] else t
            for t in timeline.tasks
        ]
        upcoming = current_task(projected)
        if upcoming is not None and upcoming.status == TaskStatus.pending:
            updates.setdefault(upcoming.id, {})["status"] = TaskStatus.in_progress.value

    # --- timeline transitions --------------------------------------------

    def start(self, meal_id: str) -> Timeline:
        timeline = self._timeline(meal_id)
        if timeline.state == TimelineState.running:
            raise InvalidTransition("Cooking has already started")
        if timeline.state == TimelineState.ended:
            raise InvalidTransition("Cooking has already ended for this timeline")

        pending = sort_by_start(t for t in timeline.tasks if t.status == TaskStatus.pending)
        task_updates = {}
        if pending:
            task_updates[pending[0].id] = {"status": TaskStatus.in_progress.value}
        now = self.clock()
        logger.info("[live] start meal=%s first_task=%s", meal_id, pending[0].id if pending else None)
        return self.repo.update_timeline(
            timeline.id, {"is_running": True, "started_at": now}, task_updates
        )

    def end(self, meal_id: str) -> Timeline:
        timeline = self._timeline(meal_id)
        if timeline.state != TimelineState.running:
            raise InvalidTransition(f"Cannot end cooking from state {timeline.state.value}")
        logger.info("[live] end meal=%s", meal_id)
        return self.repo.update_timeline(timeline.id, {"is_running": False, "ended_at": self.clock()})

    # --- task transitions ------------------------------------------------

    def checkoff(self, meal_id: str, task_id: str, notes: Optional[str] = None) -> Tuple[Timeline, UndoableAction]:
        timeline = self._timeline(meal_id)
        now = self.clock()
        command = commands.check_off(timeline.tasks, task_id, now)

        fields = {"status": TaskStatus.completed.value, "completed_at": now}
        if notes is not None:
            fields["notes"] = notes
        updates = {task_id: fields}
        self._advance(timeline, updates)

        refreshed = self.repo.update_tasks(timeline.id, updates)
        action = UndoableAction.for_checkoff(task_id, command.undo_status, now, self.undo_window_seconds)
        logger.info("[checkoff] meal=%s task=%s undo_until=%s", meal_id, task_id, action.expires_at.isoformat())
        return refreshed, action

    def undo(self, meal_id: str, task_id: str,
             previous_status: TaskStatus = TaskStatus.pending) -> Timeline:
        """
        Revert a checkoff. Only inside the undo window measured from the stored
        completedAt with the server clock; an expired undo changes nothing.
        The current-task cache is re-derived, not rewound.
        """
        timeline = self._timeline(meal_id)
        task = self._task(timeline, task_id)
        command = commands.uncheck(timeline.tasks, task_id, previous_status)

        now = self.clock()
        completed_at = ensure_aware(task.completed_at)
        if completed_at is None or not UndoableAction.for_checkoff(
                task_id, task.status, completed_at, self.undo_window_seconds).is_valid(now):
            logger.warning("[undo] rejected for task %s: window of %ss has passed",
                           task_id, self.undo_window_seconds)
            raise UndoExpired(f"Undo window of {self.undo_window_seconds} seconds has passed")

        restored = command.after[task_id]
        logger.info("[undo] meal=%s task=%s -> %s", meal_id, task_id, restored.status.value)
        return self.repo.update_task(
            timeline.id, task_id, {"status": restored.status.value, "completed_at": None}
        )

    def skip(self, meal_id: str, task_id: str, notes: Optional[str] = None) -> Timeline:
        timeline = self._timeline(meal_id)
        commands.skip(timeline.tasks, task_id)
        fields = {"status": TaskStatus.skipped.value, "completed_at": None}
        if notes is not None:
            fields["notes"] = notes
        updates = {task_id: fields}
        self._advance(timeline, updates)
        logger.info("[live] skip meal=%s task=%s", meal_id, task_id)
        return self.repo.update_tasks(timeline.id, updates)

    def mark_in_progress(self, meal_id: str, task_id: str, notes: Optional[str] = None) -> Timeline:
        timeline = self._timeline(meal_id)
        commands.check_transition(self._task(timeline, task_id), TaskStatus.in_progress)
        fields = {"status": TaskStatus.in_progress.value}
        if notes is not None:
            fields["notes"] = notes
        return self.repo.update_task(timeline.id, task_id, fields)

    def set_status(self, meal_id: str, task_id: str, status: TaskStatus,
                   notes: Optional[str] = None,
                   previous_status: Optional[TaskStatus] = None) -> Dict[str, Any]:
        """Dispatch a status change from the live view to the matching transition."""
        undo = None
        if status == TaskStatus.completed:
            timeline, undo = self.checkoff(meal_id, task_id, notes)
        elif status == TaskStatus.pending:
            timeline = self.undo(meal_id, task_id, previous_status or TaskStatus.pending)
        elif status == TaskStatus.skipped:
            timeline = self.skip(meal_id, task_id, notes)
        elif status == TaskStatus.in_progress:
            timeline = self.mark_in_progress(meal_id, task_id, notes)
        else:
            raise ValidationError(f"Unknown status: {status}")
        return {"timeline": timeline, "undo": undo}

    # --- projection ------------------------------------------------------

    def live_view(self, meal_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        timeline = self._timeline(meal_id)
        meal = self.meals.get(meal_id)
        now = ensure_aware(now) if now else self.clock()
        current = timeline.current_task() if timeline.is_running else None

        view = {
            "timeline": timeline.to_dict(),
            "state": timeline.state.value,
            "current_task": current.to_dict() if current else None,
            "progress": calculate_progress(timeline.tasks),
            "now": now.isoformat(),
        }
        if meal is not None and meal.serve_time is not None:
            present = minutes_from_serve(now, meal.serve_time)
            view.update({
                "serve_time": meal.serve_time.isoformat(),
                "present_minute": present,
                "present_label": format_relative_time(present),
                "time_remaining": format_time_remaining(meal.serve_time, now),
                "groups": group_tasks_for_live(
                    timeline.tasks, meal.serve_time, now, current.id if current else None
                ).to_dict(),
                "overdue_task_ids": [t.id for t in overdue_tasks(timeline.tasks, meal.serve_time, now)],
                "equipment": equipment_needs(timeline.tasks, meal.serve_time, now),
            })
        else:
            view["groups"] = group_tasks(timeline.tasks, None, current.id if current else None).to_dict()
        return view
