import json
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Optional

import openai

from CookPlan import config
from CookPlan.exceptions import CollaboratorFailure
from CookPlan.models import Meal, MealRecipe, ScalingFactor, TaskStatus, Timeline
from CookPlan.prompts import RECALCULATION_PROMPT, SCALING_REVIEW_PROMPT, TIMELINE_GENERATION_PROMPT
from CookPlan.utils_time import format_clock, real_time

logger = logging.getLogger(__name__)

# Planning collaborators. Their output is untrusted and goes through
# CookPlan.normalizer before anything is stored.


class TaskGenerator(ABC):
    @abstractmethod
    def generate_tasks(self, meal: Meal) -> Any:
        """Raw task dicts for the meal, in any shape the generator likes."""


class Recalculator(ABC):
    @abstractmethod
    def suggest_recalculation(self, timeline: Timeline, current_time: datetime,
                              context: Optional[str] = None,
                              serve_time: Optional[datetime] = None) -> Any:
        """One raw suggestion dict for the timeline snapshot."""


class ScalingReviewer(ABC):
    @abstractmethod
    def review_scaling(self, recipe: MealRecipe, scaling: ScalingFactor) -> str:
        pass


def parse_json_response(text: Optional[str]) -> Any:
    """Parse a model reply that may be wrapped in a ```json fence."""
    if not text or not text.strip():
        raise CollaboratorFailure("Empty response from planner")
    text = text.strip()
    match = re.search(r"```(?:json)?\s*\n?([\s\S]*?)\n?```", text)
    payload = match.group(1).strip() if match else text
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise CollaboratorFailure(f"Planner returned invalid JSON: {text[:200]}") from e


def summarize_recipes(recipes: List[MealRecipe]) -> str:
    blocks = []
    for recipe in recipes:
        lines = [
            f"### {recipe.name} (recipeId: {recipe.recipe_id})",
            f"Servings: {recipe.serving_size} -> {recipe.scaling.target_serving_size} "
            f"(x{recipe.scaling.multiplier})",
        ]
        if recipe.prep_time_minutes:
            lines.append(f"Prep time: {recipe.prep_time_minutes} min")
        if recipe.cook_time_minutes:
            lines.append(f"Cook time: {recipe.cook_time_minutes} min")
        if recipe.scaling.review_notes:
            lines.append(f"Scaling notes: {recipe.scaling.review_notes}")
        for n, step in enumerate(recipe.instructions, start=1):
            if not isinstance(step, dict):
                lines.append(f"{n}. {step}")
                continue
            extras = []
            if step.get("durationMinutes") or step.get("duration_minutes"):
                extras.append(f"{step.get('durationMinutes') or step.get('duration_minutes')} min")
            if step.get("ovenRequired") or step.get("oven_required"):
                temp = step.get("ovenTemp") or step.get("oven_temp")
                extras.append(f"oven {temp}°F" if temp else "oven")
            if step.get("id"):
                extras.append(f"instructionId: {step['id']}")
            suffix = f" ({', '.join(extras)})" if extras else ""
            lines.append(f"{n}. {step.get('description', '')}{suffix}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


class OpenAIPlanner(TaskGenerator, Recalculator, ScalingReviewer):
    """Task generation, recalculation and scaling review through OpenAI chat completions."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client=None):
        self.api_key = api_key or config.OPENAI_API_KEY
        self.model = model or config.OPENAI_MODEL
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise CollaboratorFailure("OpenAI API key not set in environment.")
            self._client = openai.OpenAI(api_key=self.api_key, timeout=config.OPENAI_TIMEOUT_SECONDS)
        return self._client

    def _complete(self, system: str, prompt: str, max_tokens: int, json_mode: bool) -> str:
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "system", "content": system},
                          {"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=0.2,
                **kwargs,
            )
        except openai.OpenAIError as e:
            logger.warning("[planner] OpenAI call failed: %s", e)
            raise CollaboratorFailure(f"Planner service error: {e}") from e
        if not response.choices:
            raise CollaboratorFailure("Planner returned no choices")
        return response.choices[0].message.content or ""

    def generate_tasks(self, meal: Meal) -> Any:
        prompt = f"""Create a cooking timeline for this meal.

Serve time: {meal.serve_time.isoformat()}
Guest count: {meal.guest_count}
Meal ID: {meal.id}

{summarize_recipes(meal.recipes)}

Work backwards from the serve time and output ONLY the JSON object with the "tasks" array."""
        logger.info("[planner] generating tasks for meal %s (%d recipes)", meal.id, len(meal.recipes))
        parsed = parse_json_response(
            self._complete(TIMELINE_GENERATION_PROMPT, prompt, config.OPENAI_MAX_TOKENS, json_mode=True)
        )
        if isinstance(parsed, dict):
            parsed = parsed.get("tasks")
        if not isinstance(parsed, list):
            raise CollaboratorFailure("Planner response has no task list")
        return parsed

    def suggest_recalculation(self, timeline: Timeline, current_time: datetime,
                              context: Optional[str] = None,
                              serve_time: Optional[datetime] = None) -> Any:
        def when(minutes):
            if serve_time is None:
                return f"{minutes} min relative to serve"
            return format_clock(real_time(minutes, serve_time))

        pending = sorted((t for t in timeline.tasks if t.status == TaskStatus.pending),
                         key=lambda t: t.start_time_minutes)
        completed = [t for t in timeline.tasks if t.status == TaskStatus.completed]
        current = timeline.current_task()

        completed_lines = "\n".join(f"- {t.title}" for t in completed[-3:]) or "- None yet"
        pending_lines = "\n".join(
            f"- [{t.id}] {t.title} (starts {when(t.start_time_minutes)}, {t.duration_minutes} min)"
            f"{' [OVEN]' if t.requires_oven else ''}"
            f"{' depends on ' + ', '.join(t.depends_on) if t.depends_on else ''}"
            for t in pending[:8]
        ) or "- None"
        prompt = f"""The cook is running behind schedule and needs help adjusting the timeline.

Current time: {format_clock(current_time)}
Context: {context or "Cook indicated they are behind schedule"}

Current task: {f"{current.title} (planned start {when(current.start_time_minutes)})" if current else "None active"}

Completed tasks ({len(completed)}):
{completed_lines}

Pending tasks ({len(pending)}):
{pending_lines}

Suggest ONE adjustment. Output ONLY the JSON suggestion."""
        logger.info("[planner] requesting recalculation for timeline %s", timeline.id)
        return parse_json_response(self._complete(RECALCULATION_PROMPT, prompt, 500, json_mode=True))

    def review_scaling(self, recipe: MealRecipe, scaling: ScalingFactor) -> str:
        ingredients = "\n".join(
            f"- {ing.get('quantity', '?')} {ing.get('unit') or ''} {ing.get('name', '')}".rstrip()
            for ing in recipe.ingredients if isinstance(ing, dict)
        ) or "- (not listed)"
        prompt = f"""Review this scaling request:

Recipe: {recipe.name}
Original serving size: {scaling.original_serving_size}
Scaling factor: {scaling.multiplier}x
Target servings: {scaling.target_serving_size}

Ingredients:
{ingredients}

Flag any scaling concerns. If none, respond with an empty string."""
        text = self._complete(SCALING_REVIEW_PROMPT, prompt, 500, json_mode=False).strip()
        # Models sometimes answer the "empty string" instruction literally
        return "" if text in ('""', "''") else text
