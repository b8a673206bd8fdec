import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from CookPlan.ai_planner import TaskGenerator
from CookPlan.exceptions import CollaboratorFailure, NotFoundError, ValidationError
from CookPlan.models import Meal, Timeline
from CookPlan.normalizer import NormalizationStatus, normalize_tasks
from CookPlan.repository_postgres import PostgresMealRepository, PostgresTimelineRepository
from CookPlan.validator import annotate_tasks, validate_timeline

logger = logging.getLogger(__name__)


class TimelineService:
    """Generation orchestrator plus manual timeline edits."""

    def __init__(self, db: Session, generator: Optional[TaskGenerator] = None):
        self.db = db
        self.generator = generator
        self.repo = PostgresTimelineRepository(db)
        self.meals = PostgresMealRepository(db)

    # --- generation ------------------------------------------------------

    def generate_for_meal_id(self, meal_id: str) -> Timeline:
        if not meal_id or not str(meal_id).strip():
            raise ValidationError("meal_id is required")
        meal = self.meals.get(meal_id)
        if meal is None:
            raise NotFoundError(f"Meal not found: {meal_id}")
        return self.generate(meal)

    def generate(self, meal: Meal) -> Timeline:
        """
        Build and persist the meal's timeline.

        Input problems are rejected before the generator is contacted.
        Conflicts found in the generated plan are attached, never fatal.
        An existing timeline for the meal is replaced, not merged.
        """
        if not meal.id:
            raise ValidationError("Meal must have an id before a timeline can be generated")
        if not meal.recipes:
            raise ValidationError("Meal has no recipes. Add at least one recipe first.")
        if not isinstance(meal.serve_time, datetime):
            raise ValidationError("Meal needs a valid serve time")
        if self.generator is None:
            raise CollaboratorFailure("No task generator configured")

        logger.info("[generate] meal=%s recipes=%d guests=%d", meal.id, len(meal.recipes), meal.guest_count)
        try:
            raw = self.generator.generate_tasks(meal)
        except CollaboratorFailure:
            raise
        except Exception as e:
            logger.warning("[generate] generator error for meal %s: %s", meal.id, e)
            raise CollaboratorFailure(f"Timeline generation failed: {e}") from e

        result = normalize_tasks(raw, meal, assign_ids=True)
        if not result.ok:
            raise CollaboratorFailure(
                "Timeline generation returned no usable tasks: " + "; ".join(result.dropped)
            )
        if result.status == NormalizationStatus.partial:
            logger.warning("[generate] meal=%s kept %d tasks, dropped %d",
                           meal.id, len(result.tasks), len(result.dropped))

        validation = validate_timeline(result.tasks)
        if validation.conflicts:
            logger.info("[generate] meal=%s conflicts: %d errors, %d warnings",
                        meal.id, len(validation.errors), len(validation.warnings))

        timeline = Timeline(
            id=None,
            meal_id=meal.id,
            tasks=annotate_tasks(result.tasks, validation),
            has_conflicts=validation.has_conflicts,
            conflicts=validation.conflicts,
        )
        return self.repo.save(timeline)

    # --- reads -----------------------------------------------------------

    def get(self, timeline_id: str) -> Timeline:
        timeline = self.repo.get(timeline_id)
        if timeline is None:
            raise NotFoundError(f"Timeline not found: {timeline_id}")
        return timeline

    def get_by_meal(self, meal_id: str) -> Timeline:
        timeline = self.repo.get_by_meal_id(meal_id)
        if timeline is None:
            raise NotFoundError(f"No timeline for meal: {meal_id}")
        return timeline

    # --- edits -----------------------------------------------------------

    def replace_tasks(self, timeline_id: str, raw_tasks: List[Dict[str, Any]]) -> Timeline:
        """Swap the whole task list for a caller-edited one; run state is kept."""
        existing = self.get(timeline_id)
        meal = self.meals.get(existing.meal_id)
        if meal is None or not meal.recipes:
            raise ValidationError("Timeline's meal has no recipes")

        result = normalize_tasks(raw_tasks, meal, assign_ids=False)
        if result.status != NormalizationStatus.success:
            raise ValidationError("Invalid tasks: " + "; ".join(result.dropped or ["no tasks given"]))

        existing.tasks = result.tasks
        logger.info("[timeline] replacing %s with %d tasks", timeline_id, len(result.tasks))
        return self.repo.save(existing)

    def edit_task(self, timeline_id: str, task_id: str, updates: Dict[str, Any]) -> Timeline:
        if not updates:
            raise ValidationError("No fields to update")
        return self.repo.update_task(timeline_id, task_id, updates)

    def delete_task(self, timeline_id: str, task_id: str) -> Timeline:
        logger.info("[timeline] deleting task %s from %s", task_id, timeline_id)
        return self.repo.delete_task(timeline_id, task_id)

    def reorder_tasks(self, timeline_id: str, ordered_ids: List[str]) -> Timeline:
        return self.repo.reorder_tasks(timeline_id, ordered_ids)

    def delete(self, timeline_id: str) -> None:
        self.get(timeline_id)
        self.repo.delete(timeline_id)
