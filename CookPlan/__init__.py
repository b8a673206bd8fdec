"""
CookPlan - cooking-session timeline planner.

This package provides:
- Timeline generation from a meal's recipes via a language model
- Conflict validation (oven clashes, dependency cycles, timing errors)
- Live cooking execution with a short undo window
- Behind-schedule recalculation and offline push-back
- Now / next / later task grouping for the live view
"""

from .models import (
    Meal, MealRecipe, RecalculationSuggestion, ScalingFactor, Task, TaskStatus,
    Timeline, TimelineConflict, UndoableAction,
)
from .validator import ValidationResult, validate_timeline
from .grouping import TaskGroups, group_tasks
from .live_session import LiveSession

__version__ = '1.0.0'
__author__ = 'CookPlan Team'

__all__ = [
    'Meal',
    'MealRecipe',
    'RecalculationSuggestion',
    'ScalingFactor',
    'Task',
    'TaskStatus',
    'Timeline',
    'TimelineConflict',
    'UndoableAction',
    'ValidationResult',
    'validate_timeline',
    'TaskGroups',
    'group_tasks',
    'LiveSession',
]
