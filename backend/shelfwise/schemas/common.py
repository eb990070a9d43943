"""Shelfwise — Common response envelope."""
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Meta(BaseModel):
    """Pagination, plus any non-fatal warnings an operation produced."""

    page: int = 1
    page_size: int = 50
    total_count: int | None = None
    warnings: list[str] | None = None


class ApiResponse(BaseModel, Generic[T]):
    """Standard response envelope: {data, error, meta}."""

    data: T | None = None
    error: dict[str, Any] | None = None
    meta: Meta | None = None


def error_response(code: str, message: str, field_errors: list[dict] | None = None, details: dict | None = None) -> dict:
    return {
        "data": None,
        "error": {
            "code": code,
            "message": message,
            "field_errors": field_errors or [],
            "details": details or {},
        },
        "meta": None,
    }
