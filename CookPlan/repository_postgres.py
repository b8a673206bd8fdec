"""
PostgreSQL-based repository implementation for CookPlan.

Every write re-runs the timeline validator over the refreshed task set and
stores the conflict summary in the same transaction as the change itself.
"""
import logging
import uuid
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from CookPlan.database import (
    Meal as DBMeal, MealRecipe as DBMealRecipe,
    Timeline as DBTimeline, TimelineTask as DBTask,
)
from CookPlan.dependency_graph import DependencyGraph
from CookPlan.exceptions import NotFoundError, StorageFailure, ValidationError
from CookPlan.models import (
    Meal, MealRecipe, ScalingFactor, Task, TaskStatus, Timeline, TimelineConflict, current_task,
)
from CookPlan.repository import MealRepository, TimelineRepository
from CookPlan.utils_time import ensure_aware, utc_now
from CookPlan.validator import validate_timeline

logger = logging.getLogger(__name__)

EDITABLE_TASK_FIELDS = {
    "title", "description", "instruction_id", "start_time_minutes", "duration_minutes",
    "requires_oven", "oven_temp", "depends_on", "notes", "status", "completed_at",
}
TIMELINE_STATE_FIELDS = {"is_running", "started_at", "ended_at"}


@contextmanager
def unit_of_work(db: Session, operation: str):
    """Commit on success; roll back and surface StorageFailure on database errors."""
    try:
        yield
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("[storage] %s failed, rolled back: %s", operation, e)
        raise StorageFailure(f"Could not {operation}. Please try again.") from e
    except Exception:
        db.rollback()
        raise


def task_to_model(row: DBTask) -> Task:
    return Task(
        id=row.task_id,
        meal_id=row.meal_id,
        recipe_id=row.recipe_id,
        instruction_id=row.instruction_id,
        title=row.title,
        description=row.description,
        start_time_minutes=row.start_time_minutes,
        duration_minutes=row.duration_minutes,
        requires_oven=bool(row.requires_oven),
        oven_temp=row.oven_temp,
        depends_on=list(row.depends_on or []),
        status=TaskStatus(row.status),
        completed_at=ensure_aware(row.completed_at),
        notes=row.notes,
        is_valid=True if row.is_valid is None else bool(row.is_valid),
        validation_errors=list(row.validation_errors or []),
    )


def task_to_row(task: Task, timeline_id: str, sort_order: int) -> DBTask:
    return DBTask(
        task_id=task.id,
        timeline_id=timeline_id,
        meal_id=task.meal_id,
        recipe_id=task.recipe_id,
        instruction_id=task.instruction_id,
        title=task.title,
        description=task.description,
        start_time_minutes=task.start_time_minutes,
        duration_minutes=task.duration_minutes,
        end_time_minutes=task.end_time_minutes,
        requires_oven=task.requires_oven,
        oven_temp=task.oven_temp,
        depends_on=list(task.depends_on),
        status=task.status.value,
        completed_at=task.completed_at,
        notes=task.notes,
        is_valid=task.is_valid,
        validation_errors=list(task.validation_errors),
        sort_order=sort_order,
    )


def timeline_to_model(row: DBTimeline) -> Timeline:
    return Timeline(
        id=row.timeline_id,
        meal_id=row.meal_id,
        tasks=[task_to_model(t) for t in sorted(row.tasks, key=lambda t: t.sort_order)],
        has_conflicts=bool(row.has_conflicts),
        conflicts=[TimelineConflict.from_dict(c) for c in (row.conflicts or [])],
        is_running=bool(row.is_running),
        started_at=ensure_aware(row.started_at),
        ended_at=ensure_aware(row.ended_at),
        current_task_id=row.current_task_id,
        created_at=ensure_aware(row.created_at),
        updated_at=ensure_aware(row.updated_at),
    )


class PostgresTimelineRepository(TimelineRepository):
    def __init__(self, db: Session):
        self.db = db

    # --- reads -----------------------------------------------------------

    def _row(self, timeline_id: str) -> DBTimeline:
        row = self.db.query(DBTimeline).filter(DBTimeline.timeline_id == timeline_id).first()
        if not row:
            raise NotFoundError(f"Timeline not found: {timeline_id}")
        return row

    def get(self, timeline_id: str) -> Optional[Timeline]:
        try:
            row = self.db.query(DBTimeline).filter(DBTimeline.timeline_id == timeline_id).first()
        except SQLAlchemyError as e:
            raise StorageFailure("Could not load timeline") from e
        return timeline_to_model(row) if row else None

    def get_by_meal_id(self, meal_id: str) -> Optional[Timeline]:
        try:
            row = self.db.query(DBTimeline).filter(DBTimeline.meal_id == meal_id).first()
        except SQLAlchemyError as e:
            raise StorageFailure("Could not load timeline") from e
        return timeline_to_model(row) if row else None

    # --- derived state ---------------------------------------------------

    def _refresh_derived(self, row: DBTimeline) -> None:
        """Re-validate the stored tasks and rewrite conflicts and the current-task cache."""
        tasks = [task_to_model(t) for t in row.tasks]
        result = validate_timeline(tasks)
        row.conflicts = [c.to_dict() for c in result.conflicts]
        row.has_conflicts = result.has_conflicts
        for task_row in row.tasks:
            errors = result.invalid_tasks.get(task_row.task_id, [])
            task_row.is_valid = not errors
            task_row.validation_errors = list(errors)
        active = current_task(tasks) if row.is_running else None
        row.current_task_id = active.id if active else None
        row.updated_at = utc_now()

    # --- writes ----------------------------------------------------------

    def save(self, timeline: Timeline) -> Timeline:
        with unit_of_work(self.db, "save timeline"):
            row = self.db.query(DBTimeline).filter(DBTimeline.meal_id == timeline.meal_id).first()
            now = utc_now()
            if row is None:
                row = DBTimeline(
                    timeline_id=timeline.id or str(uuid.uuid4()),
                    meal_id=timeline.meal_id,
                    created_at=now,
                )
                self.db.add(row)
                # Flush the parent first; a task failure below rolls this back too
                self.db.flush()
                logger.info("[storage] inserting timeline %s for meal %s", row.timeline_id, timeline.meal_id)
            else:
                row.tasks.clear()
                self.db.flush()
                logger.info("[storage] replacing tasks of timeline %s", row.timeline_id)

            row.is_running = timeline.is_running
            row.started_at = timeline.started_at
            row.ended_at = timeline.ended_at
            for order, task in enumerate(timeline.tasks):
                row.tasks.append(task_to_row(task, row.timeline_id, order))
            self.db.flush()
            self._refresh_derived(row)
        return timeline_to_model(self._row(row.timeline_id))

    def update_task(self, timeline_id: str, task_id: str, updates: Dict[str, Any]) -> Timeline:
        return self.update_tasks(timeline_id, {task_id: updates})

    def update_tasks(self, timeline_id: str, updates: Dict[str, Dict[str, Any]]) -> Timeline:
        with unit_of_work(self.db, "update tasks"):
            row = self._row(timeline_id)
            by_id = {t.task_id: t for t in row.tasks}
            for task_id, fields in updates.items():
                task_row = by_id.get(task_id)
                if task_row is None:
                    raise NotFoundError(f"Task not found: {task_id}")
                self._apply_task_update(task_row, fields)
            self._refresh_derived(row)
        return timeline_to_model(self._row(timeline_id))

    def _apply_task_update(self, task_row: DBTask, fields: Dict[str, Any]) -> None:
        unknown = set(fields) - EDITABLE_TASK_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        if "title" in fields and not (fields["title"] or "").strip():
            raise ValidationError("Task title cannot be empty")
        if "duration_minutes" in fields and (fields["duration_minutes"] is None or fields["duration_minutes"] <= 0):
            raise ValidationError("Duration must be a positive number of minutes")
        if "start_time_minutes" in fields and fields["start_time_minutes"] is None:
            raise ValidationError("Start time is required")
        if "depends_on" in fields:
            deps = list(dict.fromkeys(fields["depends_on"] or []))
            if task_row.task_id in deps:
                raise ValidationError("A task cannot depend on itself")
            fields = dict(fields, depends_on=deps)

        for key, value in fields.items():
            if key == "status":
                value = TaskStatus(value).value
            setattr(task_row, key, value)
        # end is never taken from the caller
        task_row.end_time_minutes = task_row.start_time_minutes + task_row.duration_minutes

    def delete_task(self, timeline_id: str, task_id: str) -> Timeline:
        with unit_of_work(self.db, "delete task"):
            row = self._row(timeline_id)
            target = next((t for t in row.tasks if t.task_id == task_id), None)
            if target is None:
                raise NotFoundError(f"Task not found: {task_id}")
            graph = DependencyGraph({t.task_id: list(t.depends_on or []) for t in row.tasks})
            dependents = set(graph.dependents_of(task_id))
            scrubbed = graph.without(task_id)
            row.tasks.remove(target)
            for task_row in row.tasks:
                if task_row.task_id in dependents:
                    task_row.depends_on = scrubbed.adjacency[task_row.task_id]
            self.db.flush()
            self._refresh_derived(row)
        return timeline_to_model(self._row(timeline_id))

    def reorder_tasks(self, timeline_id: str, ordered_ids: List[str]) -> Timeline:
        with unit_of_work(self.db, "reorder tasks"):
            row = self._row(timeline_id)
            by_id = {t.task_id: t for t in row.tasks}
            unknown = [i for i in ordered_ids if i not in by_id]
            if unknown:
                raise ValidationError(f"Unknown task ids: {', '.join(unknown)}")
            if len(set(ordered_ids)) != len(ordered_ids):
                raise ValidationError("Task order contains duplicates")
            # Unlisted tasks keep their relative order after the listed ones
            listed = set(ordered_ids)
            rest = [t.task_id for t in sorted(row.tasks, key=lambda t: t.sort_order) if t.task_id not in listed]
            for order, task_id in enumerate(list(ordered_ids) + rest):
                by_id[task_id].sort_order = order
            row.updated_at = utc_now()
        return timeline_to_model(self._row(timeline_id))

    def update_timeline(self, timeline_id: str, updates: Dict[str, Any],
                        task_updates: Optional[Dict[str, Dict[str, Any]]] = None) -> Timeline:
        unknown = set(updates) - TIMELINE_STATE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        with unit_of_work(self.db, "update timeline"):
            row = self._row(timeline_id)
            for key, value in updates.items():
                setattr(row, key, value)
            by_id = {t.task_id: t for t in row.tasks}
            for task_id, fields in (task_updates or {}).items():
                if task_id not in by_id:
                    raise NotFoundError(f"Task not found: {task_id}")
                self._apply_task_update(by_id[task_id], fields)
            self._refresh_derived(row)
        return timeline_to_model(self._row(timeline_id))

    def delete(self, timeline_id: str) -> None:
        with unit_of_work(self.db, "delete timeline"):
            self.db.delete(self._row(timeline_id))


class PostgresMealRepository(MealRepository):
    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _to_model(row: DBMeal) -> Meal:
        return Meal(
            id=row.meal_id,
            name=row.name,
            serve_time=ensure_aware(row.serve_time),
            guest_count=row.guest_count,
            recipes=[
                MealRecipe(
                    recipe_id=r.recipe_id,
                    name=r.name,
                    serving_size=r.serving_size,
                    scaling=ScalingFactor(
                        recipe_id=r.recipe_id,
                        original_serving_size=r.serving_size,
                        target_serving_size=r.target_servings,
                        review_notes=r.review_notes,
                    ),
                    prep_time_minutes=r.prep_time_minutes,
                    cook_time_minutes=r.cook_time_minutes,
                    ingredients=list(r.ingredients or []),
                    instructions=list(r.instructions or []),
                )
                for r in sorted(row.recipes, key=lambda r: r.position or 0)
            ],
        )

    def create(self, meal: Meal) -> Meal:
        meal_id = meal.id or str(uuid.uuid4())
        with unit_of_work(self.db, "save meal"):
            now = utc_now()
            row = DBMeal(
                meal_id=meal_id,
                name=meal.name,
                serve_time=meal.serve_time,
                guest_count=meal.guest_count,
                created_at=now,
                updated_at=now,
            )
            for position, recipe in enumerate(meal.recipes):
                row.recipes.append(DBMealRecipe(
                    meal_recipe_id=str(uuid.uuid4()),
                    recipe_id=recipe.recipe_id,
                    name=recipe.name,
                    position=position,
                    serving_size=recipe.serving_size,
                    target_servings=recipe.scaling.target_serving_size,
                    scale_multiplier=recipe.scaling.multiplier,
                    review_notes=recipe.scaling.review_notes,
                    prep_time_minutes=recipe.prep_time_minutes,
                    cook_time_minutes=recipe.cook_time_minutes,
                    ingredients=list(recipe.ingredients),
                    instructions=list(recipe.instructions),
                ))
            self.db.add(row)
        return self.get(meal_id)

    def get(self, meal_id: str) -> Optional[Meal]:
        try:
            row = self.db.query(DBMeal).filter(DBMeal.meal_id == meal_id).first()
        except SQLAlchemyError as e:
            raise StorageFailure("Could not load meal") from e
        return self._to_model(row) if row else None

    def delete(self, meal_id: str) -> None:
        with unit_of_work(self.db, "delete meal"):
            row = self.db.query(DBMeal).filter(DBMeal.meal_id == meal_id).first()
            if not row:
                raise NotFoundError(f"Meal not found: {meal_id}")
            self.db.delete(row)
