import logging
from datetime import datetime
from typing import Optional

from fastapi import Depends, HTTPException, Query
from sqlalchemy.orm import Session

from CookPlan.ai_planner import Recalculator
from CookPlan.database import get_db
from CookPlan.exceptions import PlannerError
from CookPlan.routers.base import (
    api_router, get_clock, get_recalculator, internal_error, to_http_exception,
)
from CookPlan.schemas.response import ApiResponse
from CookPlan.schemas.timeline import RecalculateRequest, ShiftRequest, TaskStatusUpdate
from CookPlan.services.execution_service import ExecutionService
from CookPlan.services.recalculation_service import RecalculationService

logger = logging.getLogger(__name__)


@api_router.get("/live/{meal_id}", response_model=ApiResponse)
def get_live_state(
    meal_id: str,
    now: Optional[datetime] = Query(None, description="Render the view at this time instead of server now"),
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
):
    try:
        view = ExecutionService(db, clock).live_view(meal_id, now)
        return ApiResponse(status=True, message="Live state fetched.", data=view)
    except PlannerError as e:
        raise to_http_exception(e)


@api_router.post("/live/{meal_id}/start", response_model=ApiResponse)
def start_cooking(meal_id: str, db: Session = Depends(get_db), clock=Depends(get_clock)):
    try:
        timeline = ExecutionService(db, clock).start(meal_id)
        return ApiResponse(status=True, message="Cooking started.", data=timeline.to_dict())
    except PlannerError as e:
        raise to_http_exception(e)


@api_router.post("/live/{meal_id}/end", response_model=ApiResponse)
def end_cooking(meal_id: str, db: Session = Depends(get_db), clock=Depends(get_clock)):
    try:
        timeline = ExecutionService(db, clock).end(meal_id)
        return ApiResponse(status=True, message="Cooking ended.", data=timeline.to_dict())
    except PlannerError as e:
        raise to_http_exception(e)


@api_router.patch("/live/{meal_id}/tasks/{task_id}", response_model=ApiResponse)
def update_task_status(
    meal_id: str,
    task_id: str,
    request: TaskStatusUpdate,
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
):
    try:
        result = ExecutionService(db, clock).set_status(
            meal_id, task_id, request.status, request.notes, request.previous_status
        )
        undo = result["undo"]
        return ApiResponse(
            status=True,
            message=f"Task marked {request.status.value}.",
            data={
                "timeline": result["timeline"].to_dict(),
                "undo": undo.to_dict() if undo else None,
            },
        )
    except HTTPException:
        raise
    except PlannerError as e:
        raise to_http_exception(e)
    except Exception:
        logger.exception("[api] update_task_status failed")
        raise internal_error("An error occurred while updating the task.")


@api_router.post("/live/{meal_id}/recalculate", response_model=ApiResponse)
def recalculate(
    meal_id: str,
    request: Optional[RecalculateRequest] = None,
    db: Session = Depends(get_db),
    recalculator: Recalculator = Depends(get_recalculator),
    clock=Depends(get_clock),
):
    try:
        request = request or RecalculateRequest()
        service = RecalculationService(db, recalculator, clock)
        suggestion = service.suggest(meal_id, request.current_time, request.context)
        return ApiResponse(status=True, message="Suggestion ready.", data=suggestion.to_dict())
    except PlannerError as e:
        raise to_http_exception(e)
    except Exception:
        logger.exception("[api] recalculate failed")
        raise internal_error("An error occurred while recalculating. Try editing the timeline manually.")


@api_router.post("/live/{meal_id}/shift", response_model=ApiResponse)
def shift_pending(
    meal_id: str,
    request: Optional[ShiftRequest] = None,
    db: Session = Depends(get_db),
):
    try:
        request = request or ShiftRequest()
        timeline = RecalculationService(db).shift_pending(meal_id, request.minutes)
        return ApiResponse(
            status=True, message=f"Pending tasks pushed back {request.minutes} min.", data=timeline.to_dict()
        )
    except PlannerError as e:
        raise to_http_exception(e)
