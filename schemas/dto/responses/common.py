"""
Common response DTOs shared across multiple endpoints.

ErrorResponse     — standard error shape from AppError.to_dict()
HealthResponse    — GET /health
AcceptedResponse  — POST /api/v1/views (202)
PaginationMeta    — pagination block inside list responses
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ErrorResponse(BaseModel):
    """Standard error JSON body produced by the AppError exception handler."""

    model_config = ConfigDict(populate_by_name=True)

    error: str
    code: str
    field: Optional[str] = None
    details: Optional[Any] = None


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    checks: dict[str, str]


class AcceptedResponse(BaseModel):
    """Ingest acknowledgement. Says nothing about how the view was classified."""

    model_config = ConfigDict(populate_by_name=True)

    accepted: bool = True


class PaginationMeta(BaseModel):
    """Reusable pagination metadata included in list responses."""

    model_config = ConfigDict(populate_by_name=True)

    page: int
    page_size: int
    total: int
    pages: int
    has_next: bool
