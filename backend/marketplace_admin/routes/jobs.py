"""Jobs API - list, inspect, retry and cancel recorded jobs."""
import logging
import math
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import String, asc, cast, desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_admin.database import get_db
from marketplace_admin.models.job import Job
from marketplace_admin.schemas.base import iso_utc
from marketplace_admin.schemas.job import (
    BulkRetryRequest,
    BulkRetryResponse,
    JobActionResponse,
    JobDetail,
    JobListResponse,
    JobStats,
    JobSummary,
    Pagination,
)
from marketplace_admin.services.job_types import JobStatus, TERMINAL_STATUSES, parse_job_type
from marketplace_admin.services.queue_backend import enqueue_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/operations/jobs", tags=["jobs"])

BULK_RETRY_LIMIT = 100

_SORT_COLUMNS = {
    "createdAt": Job.created_at,
    "startedAt": Job.started_at,
    "completedAt": Job.completed_at,
    "type": Job.type,
    "status": Job.status,
    "priority": Job.priority,
}


def _duration_ms(job: Job) -> Optional[int]:
    if job.started_at and job.completed_at:
        return int((job.completed_at - job.started_at).total_seconds() * 1000)
    if job.started_at and job.status == JobStatus.RUNNING.value:
        started = job.started_at if job.started_at.tzinfo else job.started_at.replace(tzinfo=timezone.utc)
        return int((datetime.now(timezone.utc) - started).total_seconds() * 1000)
    return None


def _summary_fields(job: Job) -> dict:
    return dict(
        id=str(job.id),
        type=job.type,
        queue=job.queue,
        status=job.status,
        site_id=str(job.site_id) if job.site_id else None,
        site_name=job.site.name if job.site else None,
        priority=job.priority,
        attempts=job.attempts,
        max_attempts=job.max_attempts,
        has_result=job.result is not None,
        created_at=iso_utc(job.created_at),
        started_at=iso_utc(job.started_at),
        completed_at=iso_utc(job.completed_at),
        duration_ms=_duration_ms(job),
    )


@router.get("", response_model=JobListResponse)
async def list_jobs(
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1),
    status: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    site_id: Optional[UUID] = Query(None, alias="siteId"),
    queue: Optional[str] = Query(None),
    from_: Optional[datetime] = Query(None, alias="from"),
    to: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_dir: str = Query("desc", alias="sortDir"),
    db: AsyncSession = Depends(get_db),
):
    """Paginated job list with filtering, sorting and per-status counts.

    `search` matches any part of the job id.
    """
    limit = min(limit, 100)

    filters = []
    if status:
        filters.append(Job.status.in_(status.split(",")))
    if type:
        filters.append(Job.type == type)
    if site_id:
        filters.append(Job.site_id == site_id)
    if queue:
        filters.append(Job.queue == queue)
    if from_:
        filters.append(Job.created_at >= from_)
    if to:
        filters.append(Job.created_at <= to)
    if search:
        # Matches with or without dashes; SQLite stores UUIDs as bare hex
        job_id_text = func.replace(cast(Job.id, String), "-", "")
        filters.append(job_id_text.contains(search.replace("-", "").lower()))

    if sort_by not in _SORT_COLUMNS:
        sort_by, sort_dir = "createdAt", "desc"
    column = _SORT_COLUMNS[sort_by]
    order = asc(column) if sort_dir == "asc" else desc(column)

    result = await db.execute(
        select(Job).where(*filters).order_by(order).offset((page - 1) * limit).limit(limit)
    )
    jobs = result.scalars().unique().all()

    grouped = await db.execute(select(Job.status, func.count()).where(*filters).group_by(Job.status))
    by_status = {s: c for s, c in grouped.all()}
    total = sum(by_status.values())

    return JobListResponse(
        jobs=[JobSummary(**_summary_fields(j), error=j.error[:200] if j.error else None) for j in jobs],
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)),
        stats=JobStats(
            pending=by_status.get(JobStatus.PENDING.value, 0),
            running=by_status.get(JobStatus.RUNNING.value, 0),
            completed=by_status.get(JobStatus.COMPLETED.value, 0),
            failed=by_status.get(JobStatus.FAILED.value, 0),
            total=total,
        ),
    )


@router.post("/bulk-retry", response_model=BulkRetryResponse)
async def bulk_retry(body: BulkRetryRequest, db: AsyncSession = Depends(get_db)):
    """Re-queue FAILED jobs matching the filter as new jobs and cancel the originals.

    At most BULK_RETRY_LIMIT jobs are handled per call. A job that cannot be
    re-queued is skipped and left FAILED.
    """
    filters = [Job.status == JobStatus.FAILED.value]
    if body.type:
        filters.append(Job.type == body.type)
    if body.site_id:
        filters.append(Job.site_id == body.site_id)
    if body.from_:
        filters.append(Job.updated_at >= body.from_)

    result = await db.execute(
        select(Job.id, Job.type, Job.payload, Job.site_id)
        .where(*filters)
        .order_by(desc(Job.updated_at))
        .limit(BULK_RETRY_LIMIT)
    )
    failed = result.all()

    retried = 0
    for row in failed:
        job_type = parse_job_type(row.type)
        if job_type is None:
            logger.warning(f"Bulk retry skipped job {row.id}: unknown job type {row.type}")
            continue
        try:
            new_id = await enqueue_job(db, job_type, row.payload or {}, site_id=row.site_id)
            await db.execute(
                update(Job).where(Job.id == row.id).values(status=JobStatus.CANCELLED.value)
            )
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.warning(f"Bulk retry skipped job {row.id}: {e}")
            continue
        logger.info(f"Bulk retry re-queued job {row.id} as {new_id}")
        retried += 1

    return BulkRetryResponse(
        message=f"{retried} of {len(failed)} failed jobs re-queued",
        retried=retried,
        total=len(failed),
    )


@router.get("/{job_id}", response_model=JobDetail)
async def get_job(job_id: UUID, db: AsyncSession = Depends(get_db)):
    """Full job detail including payload and result."""
    job = await db.get(Job, job_id)
    if not job:
        raise HTTPException(404, "Job not found")
    return JobDetail(
        **_summary_fields(job),
        error=job.error,
        payload=job.payload or {},
        result=job.result,
        scheduled_for=iso_utc(job.scheduled_for),
    )


@router.post("/{job_id}/retry", response_model=JobActionResponse)
async def retry_job(job_id: UUID, db: AsyncSession = Depends(get_db)):
    """Re-queue a failed or cancelled job."""
    job = await db.get(Job, job_id)
    if not job:
        raise HTTPException(404, "Job not found")
    if job.status not in (JobStatus.FAILED.value, JobStatus.CANCELLED.value):
        raise HTTPException(400, f"Cannot retry job in '{job.status}' state")
    job.status = JobStatus.PENDING.value
    job.attempts = 0
    job.error = None
    job.started_at = None
    job.completed_at = None
    await db.commit()
    return JobActionResponse(id=str(job_id), status=job.status)


@router.post("/{job_id}/cancel", response_model=JobActionResponse)
async def cancel_job(job_id: UUID, db: AsyncSession = Depends(get_db)):
    """Cancel a job that has not finished yet."""
    job = await db.get(Job, job_id)
    if not job:
        raise HTTPException(404, "Job not found")
    if job.status in [s.value for s in TERMINAL_STATUSES]:
        raise HTTPException(400, f"Cannot cancel job in '{job.status}' state")
    job.status = JobStatus.CANCELLED.value
    job.completed_at = datetime.now(timezone.utc)
    await db.commit()
    return JobActionResponse(id=str(job_id), status=job.status)
