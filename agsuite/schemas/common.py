"""
Common schemas used across the application.
"""
from typing import Any, Generic, TypeVar, Optional
from pydantic import BaseModel
from datetime import datetime

T = TypeVar("T")


class ListResponse(BaseModel, Generic[T]):
    """List response with total count."""
    items: list[T]
    total: int


class MessageResponse(BaseModel):
    """Simple message response."""
    message: str


class HealthResponse(BaseModel):
    """Health check response."""
    code: int = 200
    message: str = "API is healthy."


class ErrorResponse(BaseModel):
    """Body of every domain error response."""
    detail: str
    code: str
    context: dict[str, Any] = {}


class BaseResponse(BaseModel):
    """Base response with common fields."""
    id: str
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class BulkItemResult(BaseModel):
    """Outcome of one item in a bulk operation."""
    id: str
    ok: bool
    code: Optional[str] = None
    detail: Optional[str] = None
