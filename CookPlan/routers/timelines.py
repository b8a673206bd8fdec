import logging

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from CookPlan.ai_planner import TaskGenerator
from CookPlan.database import get_db
from CookPlan.exceptions import PlannerError
from CookPlan.routers.base import api_router, get_task_generator, internal_error, to_http_exception
from CookPlan.schemas.response import ApiResponse
from CookPlan.schemas.timeline import (
    GenerateTimelineRequest, ReorderRequest, TaskUpdate, TimelineReplace,
)
from CookPlan.services.timeline_service import TimelineService

logger = logging.getLogger(__name__)


@api_router.post("/timeline/generate", response_model=ApiResponse, status_code=201)
def generate_timeline(
    request: GenerateTimelineRequest,
    db: Session = Depends(get_db),
    generator: TaskGenerator = Depends(get_task_generator),
):
    try:
        timeline = TimelineService(db, generator).generate_for_meal_id(request.meal_id)
        message = "Timeline generated with conflicts to review." if timeline.has_conflicts \
            else "Timeline generated successfully."
        return ApiResponse(status=True, message=message, data=timeline.to_dict())
    except HTTPException:
        raise
    except PlannerError as e:
        raise to_http_exception(e)
    except Exception:
        logger.exception("[api] generate_timeline failed")
        raise internal_error("An unexpected error occurred while generating the timeline.")


@api_router.get("/timeline/{timeline_id}", response_model=ApiResponse)
def get_timeline(timeline_id: str, db: Session = Depends(get_db)):
    try:
        timeline = TimelineService(db).get(timeline_id)
        return ApiResponse(status=True, message="Timeline fetched successfully.", data=timeline.to_dict())
    except PlannerError as e:
        raise to_http_exception(e)


@api_router.put("/timeline/{timeline_id}", response_model=ApiResponse)
def replace_timeline(timeline_id: str, request: TimelineReplace, db: Session = Depends(get_db)):
    try:
        raw = [t.model_dump() for t in request.tasks]
        timeline = TimelineService(db).replace_tasks(timeline_id, raw)
        return ApiResponse(status=True, message="Timeline updated successfully.", data=timeline.to_dict())
    except PlannerError as e:
        raise to_http_exception(e)
    except Exception:
        logger.exception("[api] replace_timeline failed")
        raise internal_error("An error occurred while updating the timeline.")


@api_router.delete("/timeline/{timeline_id}", response_model=ApiResponse)
def delete_timeline(timeline_id: str, db: Session = Depends(get_db)):
    try:
        TimelineService(db).delete(timeline_id)
        return ApiResponse(status=True, message="Timeline deleted successfully.", data={"id": timeline_id})
    except PlannerError as e:
        raise to_http_exception(e)


@api_router.put("/timeline/{timeline_id}/tasks/order", response_model=ApiResponse)
def reorder_tasks(timeline_id: str, request: ReorderRequest, db: Session = Depends(get_db)):
    try:
        timeline = TimelineService(db).reorder_tasks(timeline_id, request.task_ids)
        return ApiResponse(status=True, message="Tasks reordered.", data=timeline.to_dict())
    except PlannerError as e:
        raise to_http_exception(e)


@api_router.patch("/timeline/{timeline_id}/tasks/{task_id}", response_model=ApiResponse)
def edit_task(timeline_id: str, task_id: str, request: TaskUpdate, db: Session = Depends(get_db)):
    try:
        updates = request.model_dump(exclude_unset=True)
        timeline = TimelineService(db).edit_task(timeline_id, task_id, updates)
        return ApiResponse(status=True, message="Task updated successfully.", data=timeline.to_dict())
    except PlannerError as e:
        raise to_http_exception(e)
    except Exception:
        logger.exception("[api] edit_task failed")
        raise internal_error("An error occurred while updating the task.")


@api_router.delete("/timeline/{timeline_id}/tasks/{task_id}", response_model=ApiResponse)
def delete_task(timeline_id: str, task_id: str, db: Session = Depends(get_db)):
    try:
        timeline = TimelineService(db).delete_task(timeline_id, task_id)
        return ApiResponse(status=True, message="Task deleted successfully.", data=timeline.to_dict())
    except PlannerError as e:
        raise to_http_exception(e)
