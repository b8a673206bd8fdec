from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar('T')


class ApiResponse(BaseModel, Generic[T]):
    """Generic API response wrapper."""
    status: bool = Field(..., description="Response status: True on success, False on error")
    message: Optional[str] = Field(None, description="Optional message")
    data: Optional[Any] = Field(None, description="Response data (only present on success)")


class ErrorResponse(BaseModel):
    status: bool = False
    message: str
    error: str = Field(..., description="Stable error code, e.g. undo_expired")
