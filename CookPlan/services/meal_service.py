import logging
from typing import Optional

from sqlalchemy.orm import Session

from CookPlan.ai_planner import ScalingReviewer
from CookPlan.exceptions import NotFoundError, ValidationError
from CookPlan.models import Meal, MealRecipe, ScalingFactor
from CookPlan.repository_postgres import PostgresMealRepository
from CookPlan.schemas.meal import MealCreate, MealRecipeCreate

logger = logging.getLogger(__name__)


class MealService:
    """Service for the meals the timeline planner reads."""

    def __init__(self, db: Session, reviewer: Optional[ScalingReviewer] = None):
        self.db = db
        self.reviewer = reviewer
        self.repo = PostgresMealRepository(db)

    def _review(self, recipe: MealRecipe) -> str:
        """Advisory only: any failure degrades to no notes."""
        if self.reviewer is None or recipe.scaling.multiplier == 1:
            return ""
        try:
            return self.reviewer.review_scaling(recipe, recipe.scaling) or ""
        except Exception as e:
            logger.warning("[meal] scaling review failed for %s: %s", recipe.name, e)
            return ""

    def _to_recipe(self, data: MealRecipeCreate, guest_count: int) -> MealRecipe:
        target = data.target_servings or guest_count
        scaling = ScalingFactor(
            recipe_id=data.recipe_id,
            original_serving_size=data.serving_size,
            target_serving_size=target,
        )
        recipe = MealRecipe(
            recipe_id=data.recipe_id,
            name=data.name,
            serving_size=data.serving_size,
            scaling=scaling,
            prep_time_minutes=data.prep_time_minutes,
            cook_time_minutes=data.cook_time_minutes,
            ingredients=[i.model_dump() for i in data.ingredients],
            instructions=[i.model_dump() for i in data.instructions],
        )
        scaling.review_notes = self._review(recipe) or None
        return recipe

    def create_meal(self, request: MealCreate) -> Meal:
        ids = [r.recipe_id for r in request.recipes]
        if len(set(ids)) != len(ids):
            raise ValidationError("Each recipe can only be added to a meal once")
        meal = Meal(
            id=None,
            name=request.name,
            serve_time=request.serve_time,
            guest_count=request.guest_count,
            recipes=[self._to_recipe(r, request.guest_count) for r in request.recipes],
        )
        created = self.repo.create(meal)
        logger.info("[meal] created %s with %d recipes", created.id, len(created.recipes))
        return created

    def get_meal(self, meal_id: str) -> Meal:
        meal = self.repo.get(meal_id)
        if meal is None:
            raise NotFoundError(f"Meal not found: {meal_id}")
        return meal

    def delete_meal(self, meal_id: str) -> None:
        self.repo.delete(meal_id)
        logger.info("[meal] deleted %s and its timeline", meal_id)
