import logging

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from CookPlan.ai_planner import ScalingReviewer
from CookPlan.database import get_db
from CookPlan.exceptions import PlannerError
from CookPlan.routers.base import api_router, get_scaling_reviewer, internal_error, to_http_exception
from CookPlan.schemas.meal import MealCreate, meal_to_dict
from CookPlan.schemas.response import ApiResponse
from CookPlan.services.meal_service import MealService
from CookPlan.services.timeline_service import TimelineService

logger = logging.getLogger(__name__)


@api_router.post("/meals", response_model=ApiResponse, status_code=201)
def create_meal(
    request: MealCreate,
    db: Session = Depends(get_db),
    reviewer: ScalingReviewer = Depends(get_scaling_reviewer),
):
    try:
        meal = MealService(db, reviewer).create_meal(request)
        return ApiResponse(status=True, message="Meal created successfully.", data=meal_to_dict(meal))
    except HTTPException:
        raise
    except PlannerError as e:
        raise to_http_exception(e)
    except Exception:
        logger.exception("[api] create_meal failed")
        raise internal_error("An error occurred while creating the meal. Please try again.")


@api_router.get("/meals/{meal_id}", response_model=ApiResponse)
def get_meal(meal_id: str, db: Session = Depends(get_db)):
    try:
        meal = MealService(db).get_meal(meal_id)
        return ApiResponse(status=True, message="Meal fetched successfully.", data=meal_to_dict(meal))
    except PlannerError as e:
        raise to_http_exception(e)


@api_router.delete("/meals/{meal_id}", response_model=ApiResponse)
def delete_meal(meal_id: str, db: Session = Depends(get_db)):
    try:
        MealService(db).delete_meal(meal_id)
        return ApiResponse(status=True, message="Meal deleted successfully.", data={"id": meal_id})
    except PlannerError as e:
        raise to_http_exception(e)


@api_router.get("/meals/{meal_id}/timeline", response_model=ApiResponse)
def get_meal_timeline(meal_id: str, db: Session = Depends(get_db)):
    try:
        timeline = TimelineService(db).get_by_meal(meal_id)
        return ApiResponse(status=True, message="Timeline fetched successfully.", data=timeline.to_dict())
    except PlannerError as e:
        raise to_http_exception(e)
