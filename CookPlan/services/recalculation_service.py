import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from CookPlan import commands, config
from CookPlan.ai_planner import Recalculator
from CookPlan.exceptions import CollaboratorFailure, NotFoundError
from CookPlan.models import RecalculationSuggestion, Timeline
from CookPlan.normalizer import normalize_suggestion
from CookPlan.repository_postgres import PostgresMealRepository, PostgresTimelineRepository
from CookPlan.utils_time import ensure_aware, utc_now

logger = logging.getLogger(__name__)


class RecalculationService:
    """
    "Running behind" help: one suggestion per request, and a uniform shift of
    pending tasks that needs no collaborator at all.
    """

    def __init__(self, db: Session, recalculator: Optional[Recalculator] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.recalculator = recalculator
        self.clock = clock
        self.repo = PostgresTimelineRepository(db)
        self.meals = PostgresMealRepository(db)

    def _timeline(self, meal_id: str) -> Timeline:
        timeline = self.repo.get_by_meal_id(meal_id)
        if timeline is None:
            raise NotFoundError(f"No timeline for meal: {meal_id}")
        return timeline

    def suggest(self, meal_id: str, current_time: Optional[datetime] = None,
                context: Optional[str] = None) -> RecalculationSuggestion:
        """
        Ask for exactly one adjustment against the stored snapshot. Each call
        is independent; earlier rejected suggestions are not fed back in.
        """
        timeline = self._timeline(meal_id)
        if self.recalculator is None:
            raise CollaboratorFailure("No recalculation service configured")
        meal = self.meals.get(meal_id)
        serve_time = meal.serve_time if meal else None
        now = ensure_aware(current_time) if current_time else self.clock()

        logger.info("[recalc] suggest meal=%s context=%r", meal_id, context)
        try:
            raw = self.recalculator.suggest_recalculation(timeline, now, context, serve_time)
        except CollaboratorFailure:
            raise
        except Exception as e:
            logger.warning("[recalc] recalculator error for meal %s: %s", meal_id, e)
            raise CollaboratorFailure(f"Recalculation failed: {e}") from e

        suggestion = normalize_suggestion(raw, timeline)
        logger.info("[recalc] meal=%s move %s to %d (%d shifted)", meal_id,
                    suggestion.task_id, suggestion.new_start_time_minutes, suggestion.tasks_shifted)
        return suggestion

    def shift_pending(self, meal_id: str, minutes: int = config.OFFLINE_SHIFT_MINUTES) -> Timeline:
        """Push every pending task later by `minutes` in one transaction."""
        timeline = self._timeline(meal_id)
        command = commands.shift_pending(timeline.tasks, minutes)
        updates = {
            task.id: {"start_time_minutes": task.start_time_minutes}
            for task in command.changed_tasks()
        }
        logger.info("[recalc] shift meal=%s +%d min (%d tasks)", meal_id, minutes, len(updates))
        if not updates:
            return timeline
        return self.repo.update_tasks(timeline.id, updates)
