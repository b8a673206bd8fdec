from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from CookPlan.utils_time import ensure_aware


class IngredientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    quantity: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None


class InstructionCreate(BaseModel):
    id: Optional[str] = None
    step_number: Optional[int] = Field(None, ge=1)
    description: str = Field(..., min_length=1)
    duration_minutes: Optional[int] = Field(None, ge=0)
    oven_required: bool = False
    oven_temp: Optional[int] = Field(None, gt=0)


class MealRecipeCreate(BaseModel):
    """A recipe as it is added to one meal, with its scaling target."""
    recipe_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    serving_size: int = Field(..., ge=1, le=500, description="Servings the recipe makes as written")
    target_servings: Optional[int] = Field(None, ge=1, le=500, description="Defaults to the meal's guest count")
    prep_time_minutes: Optional[int] = Field(None, ge=0)
    cook_time_minutes: Optional[int] = Field(None, ge=0)
    ingredients: List[IngredientCreate] = []
    instructions: List[InstructionCreate] = []


class MealCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    serve_time: datetime
    guest_count: int = Field(..., ge=1, le=500)
    recipes: List[MealRecipeCreate] = []

    @field_validator('serve_time')
    @classmethod
    def serve_time_aware(cls, v: datetime) -> datetime:
        """Naive serve times are taken as UTC."""
        return ensure_aware(v)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Meal name cannot be blank')
        return v.strip()


def meal_to_dict(meal) -> dict:
    return {
        "id": meal.id,
        "name": meal.name,
        "serve_time": meal.serve_time.isoformat() if meal.serve_time else None,
        "guest_count": meal.guest_count,
        "recipes": [
            {
                "recipe_id": r.recipe_id,
                "name": r.name,
                "serving_size": r.serving_size,
                "target_servings": r.scaling.target_serving_size,
                "multiplier": r.scaling.multiplier,
                "review_notes": r.scaling.review_notes,
                "prep_time_minutes": r.prep_time_minutes,
                "cook_time_minutes": r.cook_time_minutes,
                "ingredients": r.ingredients,
                "instructions": r.instructions,
            }
            for r in meal.recipes
        ],
    }
