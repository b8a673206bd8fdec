"""
Normalization of untrusted collaborator output.

The task generator and the recalculator return loosely shaped JSON. Nothing
here trusts it: every field is coerced or defaulted explicitly, bad items are
dropped (making the result partial), and a result with no usable task is a
failure.
"""

import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from CookPlan.exceptions import CollaboratorFailure
from CookPlan.models import (
    Meal, MealRecipe, RecalculationSuggestion, Task, TaskStatus, Timeline,
)
from CookPlan.utils_time import parse_datetime

logger = logging.getLogger(__name__)


class NormalizationStatus(str, enum.Enum):
    success = "success"
    partial = "partial"
    failure = "failure"


@dataclass
class NormalizationResult:
    status: NormalizationStatus
    tasks: List[Task] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status != NormalizationStatus.failure


def _pick(item: Dict[str, Any], *keys: str) -> Any:
    """First present key; the generator speaks camelCase, callers snake_case."""
    for key in keys:
        if key in item and item[key] is not None:
            return item[key]
    return None


def to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(round(value))
    if isinstance(value, str):
        try:
            return int(round(float(value.strip())))
        except ValueError:
            return None
    return None


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def to_status(value: Any) -> TaskStatus:
    if isinstance(value, TaskStatus):
        return value
    try:
        return TaskStatus(str(value).strip().lower())
    except ValueError:
        return TaskStatus.pending


def resolve_recipe_id(reference: Any, recipes: List[MealRecipe]) -> str:
    """
    Map the generator's recipe reference onto a real recipe id: exact id,
    then case-insensitive name, then the meal's first recipe.
    """
    if isinstance(reference, str) and reference.strip():
        ref = reference.strip()
        for recipe in recipes:
            if recipe.recipe_id == ref:
                return recipe.recipe_id
        lowered = ref.lower()
        for recipe in recipes:
            if recipe.name and recipe.name.strip().lower() == lowered:
                return recipe.recipe_id
    return recipes[0].recipe_id


def normalize_tasks(raw: Any, meal: Meal, assign_ids: bool = True) -> NormalizationResult:
    """
    Turn raw task dicts into Task objects for `meal`.

    assign_ids=True (generator output): every task gets a fresh uuid and the
    generator's temporary ids ("task-1") inside dependsOn are remapped.
    assign_ids=False (caller edits): supplied ids are kept.
    References that match no task are left in place for the validator to flag.
    """
    if not isinstance(raw, list):
        return NormalizationResult(NormalizationStatus.failure, dropped=["response is not a list of tasks"])
    if not meal.recipes:
        return NormalizationResult(NormalizationStatus.failure, dropped=["meal has no recipes"])

    id_map: Dict[str, str] = {}
    staged = []
    dropped = []

    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            dropped.append(f"item {index}: not an object")
            continue

        title = _pick(item, "title")
        if not isinstance(title, str) or not title.strip():
            dropped.append(f"item {index}: missing title")
            continue

        start = to_int(_pick(item, "startTimeMinutes", "start_time_minutes"))
        if start is None:
            dropped.append(f"item {index}: missing start time")
            continue

        duration = to_int(_pick(item, "durationMinutes", "duration_minutes"))
        if duration is None:
            end = to_int(_pick(item, "endTimeMinutes", "end_time_minutes"))
            duration = end - start if end is not None else None
        if duration is None or duration <= 0:
            dropped.append(f'item {index} ("{title.strip()}"): duration must be positive')
            continue

        supplied_id = _pick(item, "id", "tempId", "temp_id")
        supplied_id = str(supplied_id) if supplied_id is not None else None
        if assign_ids or not supplied_id or supplied_id in id_map:
            task_id = str(uuid.uuid4())
        else:
            task_id = supplied_id
        # First occurrence wins for duplicated ids
        if supplied_id and supplied_id not in id_map:
            id_map[supplied_id] = task_id

        requires_oven = to_bool(_pick(item, "requiresOven", "requires_oven") or False)
        depends_on = _pick(item, "dependsOn", "depends_on") or []
        if not isinstance(depends_on, (list, tuple)):
            depends_on = [depends_on]

        staged.append((index, supplied_id, Task(
            id=task_id,
            meal_id=meal.id,
            recipe_id=resolve_recipe_id(_pick(item, "recipeId", "recipe_id"), meal.recipes),
            instruction_id=_str_or_none(_pick(item, "instructionId", "instruction_id")),
            title=title.strip(),
            description=_str_or_none(_pick(item, "description")),
            start_time_minutes=start,
            duration_minutes=duration,
            requires_oven=requires_oven,
            oven_temp=to_int(_pick(item, "ovenTemp", "oven_temp")) if requires_oven else None,
            depends_on=[str(d) for d in depends_on if d is not None],
            status=to_status(_pick(item, "status")),
            completed_at=_completed_at(item),
            notes=_str_or_none(_pick(item, "notes")),
        )))

    # Generators number tasks positionally ("task-1") when they omit ids
    for index, supplied_id, task in staged:
        if not supplied_id:
            id_map.setdefault(f"task-{index + 1}", task.id)

    tasks = []
    for _, _, task in staged:
        remapped = [id_map.get(dep, dep) for dep in task.depends_on]
        task.depends_on = list(dict.fromkeys(remapped))
        tasks.append(task)

    if not tasks:
        logger.warning("[normalize] no usable tasks (%d dropped)", len(dropped))
        return NormalizationResult(NormalizationStatus.failure, dropped=dropped)

    if dropped:
        logger.warning("[normalize] dropped %d of %d tasks: %s", len(dropped), len(raw), "; ".join(dropped))
        return NormalizationResult(NormalizationStatus.partial, tasks=tasks, dropped=dropped)
    return NormalizationResult(NormalizationStatus.success, tasks=tasks)


def _completed_at(item: Dict[str, Any]) -> Optional[datetime]:
    if to_status(_pick(item, "status")) != TaskStatus.completed:
        return None
    value = _pick(item, "completedAt", "completed_at")
    if value is None:
        return None
    try:
        return parse_datetime(value)
    except ValueError:
        return None


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_suggestion(raw: Any, timeline: Timeline) -> RecalculationSuggestion:
    """
    Validate a recalculator reply against the timeline it was asked about.
    The named task must exist; affected ids are kept only if they exist and
    are not the moved task itself.
    """
    if not isinstance(raw, dict):
        raise CollaboratorFailure("Recalculation response is not an object")

    task_id = _pick(raw, "taskId", "task_id")
    if task_id is None or timeline.task(str(task_id)) is None:
        raise CollaboratorFailure(f"Recalculation suggested an unknown task: {task_id!r}")
    task_id = str(task_id)

    new_start = to_int(_pick(raw, "newStartTimeMinutes", "new_start_time_minutes"))
    if new_start is None:
        raise CollaboratorFailure("Recalculation response has no newStartTimeMinutes")

    affected = _pick(raw, "affectedTaskIds", "affected_task_ids") or []
    if not isinstance(affected, (list, tuple)):
        affected = [affected]
    known = {t.id for t in timeline.tasks}
    affected_ids = list(dict.fromkeys(
        str(a) for a in affected if a is not None and str(a) in known and str(a) != task_id
    ))

    description = _str_or_none(_pick(raw, "description"))
    if description is None:
        moved = timeline.task(task_id)
        description = f'Move "{moved.title}" to {new_start} min relative to serve'

    return RecalculationSuggestion(
        task_id=task_id,
        new_start_time_minutes=new_start,
        description=description,
        affected_task_ids=affected_ids,
        tasks_shifted=len(affected_ids),
    )
