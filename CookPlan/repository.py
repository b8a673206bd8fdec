"""
Repository interfaces for CookPlan.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from CookPlan.models import Meal, Timeline


class TimelineRepository(ABC):
    """
    Persistence contract for timelines. Every method returns the refreshed
    Timeline so callers always see the conflict set that matches the tasks.
    """

    @abstractmethod
    def save(self, timeline: Timeline) -> Timeline:
        """Insert the meal's timeline, or replace all of its tasks atomically."""

    @abstractmethod
    def get(self, timeline_id: str) -> Optional[Timeline]:
        pass

    @abstractmethod
    def get_by_meal_id(self, meal_id: str) -> Optional[Timeline]:
        pass

    @abstractmethod
    def update_task(self, timeline_id: str, task_id: str, updates: Dict[str, Any]) -> Timeline:
        pass

    @abstractmethod
    def update_tasks(self, timeline_id: str, updates: Dict[str, Dict[str, Any]]) -> Timeline:
        """Several task patches in one transaction (task id -> fields)."""

    @abstractmethod
    def delete_task(self, timeline_id: str, task_id: str) -> Timeline:
        pass

    @abstractmethod
    def reorder_tasks(self, timeline_id: str, ordered_ids: List[str]) -> Timeline:
        pass

    @abstractmethod
    def update_timeline(self, timeline_id: str, updates: Dict[str, Any],
                        task_updates: Optional[Dict[str, Dict[str, Any]]] = None) -> Timeline:
        """Patch run-state fields (is_running, started_at, ended_at), optionally with task patches."""

    @abstractmethod
    def delete(self, timeline_id: str) -> None:
        pass


class MealRepository(ABC):
    @abstractmethod
    def create(self, meal: Meal) -> Meal:
        pass

    @abstractmethod
    def get(self, meal_id: str) -> Optional[Meal]:
        pass

    @abstractmethod
    def delete(self, meal_id: str) -> None:
        pass
