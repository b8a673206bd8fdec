"""
Caller-side access to the CookPlan HTTP API, used by LiveSession.

Error bodies carry a stable code, so a failed call is raised here as the same
exception class the service raised. Transport errors become ConnectivityError.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from CookPlan.exceptions import (
    ERRORS_BY_CODE, ConnectivityError, StorageFailure, ValidationError,
)
from CookPlan.models import RecalculationSuggestion, TaskStatus, Timeline, UndoableAction

logger = logging.getLogger(__name__)


class TimelineGateway(ABC):
    @abstractmethod
    async def fetch_timeline(self, meal_id: str) -> Timeline:
        pass

    @abstractmethod
    async def update_task_status(self, meal_id: str, task_id: str, status: TaskStatus,
                                 previous_status: Optional[TaskStatus] = None,
                                 notes: Optional[str] = None) -> Dict[str, Any]:
        """Returns {"timeline": Timeline, "undo": UndoableAction | None}."""

    @abstractmethod
    async def update_task(self, timeline_id: str, task_id: str, updates: Dict[str, Any]) -> Timeline:
        pass

    @abstractmethod
    async def request_suggestion(self, meal_id: str, current_time: datetime,
                                 context: Optional[str] = None) -> RecalculationSuggestion:
        pass


def api_client(base_url: str, timeout: float = 30) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=base_url.rstrip("/") + "/api/", timeout=timeout)


class HttpTimelineGateway(TimelineGateway):
    def __init__(self, base_url: str = "http://localhost:8000",
                 client: Optional[httpx.AsyncClient] = None):
        self._client = api_client(base_url) if client is None else client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.warning("[gateway] %s %s unreachable: %s", method, path, e)
            raise ConnectivityError(f"Could not reach the server: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.is_success:
            return body.get("data") if isinstance(body, dict) else body

        code = body.get("error") if isinstance(body, dict) else None
        message = body.get("message") if isinstance(body, dict) else None
        default = StorageFailure if resp.status_code >= 500 else ValidationError
        error_cls = ERRORS_BY_CODE.get(code, default)
        raise error_cls(message or f"{method} {path} failed with {resp.status_code}")

    async def fetch_timeline(self, meal_id: str) -> Timeline:
        return Timeline.from_dict(await self._call("GET", f"meals/{meal_id}/timeline"))

    async def update_task_status(self, meal_id, task_id, status, previous_status=None, notes=None):
        payload = {"status": TaskStatus(status).value}
        if previous_status is not None:
            payload["previous_status"] = TaskStatus(previous_status).value
        if notes is not None:
            payload["notes"] = notes
        data = await self._call("PATCH", f"live/{meal_id}/tasks/{task_id}", json=payload)
        return {
            "timeline": Timeline.from_dict(data["timeline"]),
            "undo": UndoableAction.from_dict(data["undo"]) if data.get("undo") else None,
        }

    async def update_task(self, timeline_id, task_id, updates):
        data = await self._call("PATCH", f"timeline/{timeline_id}/tasks/{task_id}", json=updates)
        return Timeline.from_dict(data)

    async def request_suggestion(self, meal_id, current_time, context=None):
        payload = {"current_time": current_time.isoformat()}
        if context:
            payload["context"] = context
        data = await self._call("POST", f"live/{meal_id}/recalculate", json=payload)
        return RecalculationSuggestion.from_dict(data)
