"""Request/response models for the monitoring API."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from .models import Issue


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    code: str
    message: str
    detail: str | None = None


class IssueStatusFilter(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"
    ALL = "all"


class ResolveRequest(BaseModel):
    """Request body for POST /api/v1/issues/{issue_id}/resolve."""

    admin_id: str = Field(min_length=1)


class IssueListResponse(BaseModel):
    issues: list[Issue]
    total: int


class InsightsResponse(BaseModel):
    insights: list[str]


class HealthComponentResponse(BaseModel):
    name: str
    status: str
    value: str
    description: str


class HealthScoreResponse(BaseModel):
    score: int = Field(ge=0, le=100)
    overall: str
    components: list[HealthComponentResponse]


class StatsResponse(BaseModel):
    total_issues: int
    open_issues: int
    resolved_issues: int
    resolution_rate: float
    completed_cycles: int
    failed_cycles: int


class HealthResponse(BaseModel):
    """Response for GET /health."""

    status: str = "ok"
    version: str
    scanning: bool
    scheduler_running: bool
    dev_mode: bool = False
