import logging
from datetime import datetime

from fastapi import APIRouter, HTTPException

from CookPlan.ai_planner import OpenAIPlanner, Recalculator, ScalingReviewer, TaskGenerator
from CookPlan.exceptions import (
    CollaboratorFailure, InvalidTransition, NotFoundError, PlannerError,
    StorageFailure, UndoExpired, ValidationError,
)
from CookPlan.utils_time import utc_now

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/api")

# Most specific first: InvalidTransition is also a ValidationError
STATUS_BY_ERROR = (
    (InvalidTransition, 409),
    (UndoExpired, 409),
    (ValidationError, 400),
    (NotFoundError, 404),
    (CollaboratorFailure, 503),
    (StorageFailure, 500),
)


def to_http_exception(error: PlannerError) -> HTTPException:
    status_code = next((code for cls, code in STATUS_BY_ERROR if isinstance(error, cls)), 500)
    return HTTPException(status_code=status_code, detail={"message": str(error), "error": error.code})


def internal_error(message: str) -> HTTPException:
    return HTTPException(status_code=500, detail={"message": message, "error": "internal_error"})


_planner = None


def get_planner() -> OpenAIPlanner:
    global _planner
    if _planner is None:
        _planner = OpenAIPlanner()
    return _planner


# Overridden in tests through app.dependency_overrides
def get_task_generator() -> TaskGenerator:
    return get_planner()


def get_recalculator() -> Recalculator:
    return get_planner()


def get_scaling_reviewer() -> ScalingReviewer:
    return get_planner()


def get_clock():
    return utc_now
