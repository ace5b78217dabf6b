"""Job listing and detail response schemas."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from marketplace_admin.schemas.base import CamelModel


class JobSummary(CamelModel):
    id: str
    type: str
    queue: str
    status: str
    site_id: Optional[str] = None
    site_name: Optional[str] = None
    priority: int
    attempts: int
    max_attempts: int
    error: Optional[str] = None
    has_result: bool
    created_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_ms: Optional[int] = None


class JobDetail(JobSummary):
    payload: dict = {}
    result: Optional[dict] = None
    scheduled_for: Optional[str] = None


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class JobStats(CamelModel):
    pending: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0


class JobListResponse(CamelModel):
    jobs: list[JobSummary]
    pagination: Pagination
    stats: JobStats


class JobActionResponse(CamelModel):
    id: str
    status: str


class BulkRetryRequest(CamelModel):
    """Which FAILED jobs to re-queue. Omitted fields do not filter."""
    type: Optional[str] = None
    site_id: Optional[UUID] = None
    from_: Optional[datetime] = Field(None, alias="from")


class BulkRetryResponse(CamelModel):
    success: bool = True
    message: str
    retried: int
    total: int
