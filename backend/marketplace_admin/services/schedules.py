"""Scheduled job history and manual triggering."""
import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_admin.exceptions import TriggerError
from marketplace_admin.models.job import Job
from marketplace_admin.schemas.base import iso_utc
from marketplace_admin.schemas.operations import (
    ExecutionHistoryEntry,
    ExecutionSummary,
    ScheduleWithHistory,
)
from marketplace_admin.services.job_history import JobHistoryStore
from marketplace_admin.services.job_types import JobStatus, JobType, parse_job_type
from marketplace_admin.services.queue_backend import enqueue_job
from marketplace_admin.services.scheduler import ScheduledJob, ScheduleRegistry, next_cron_run

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 10
HISTORY_ERROR_CHARS = 100
LAST_ERROR_CHARS = 200
# A PENDING job newer than this is treated as about to run
PENDING_GRACE = timedelta(minutes=5)

# Payload used when a schedule is triggered by hand
DEFAULT_PAYLOADS: dict[JobType, dict] = {
    JobType.GSC_SYNC: {"siteId": "all", "dimensions": ["query", "page", "country", "device"]},
    JobType.SEO_OPPORTUNITY_SCAN: {"forceRescan": False},
    JobType.SEO_ANALYZE: {"siteId": "all", "fullSiteAudit": False, "triggerOptimizations": True},
    JobType.SEO_AUTO_OPTIMIZE: {"siteId": "all", "scope": "all"},
    JobType.METRICS_AGGREGATE: {"aggregationType": "daily"},
    JobType.PERFORMANCE_REPORT: {"reportType": "weekly"},
    JobType.ABTEST_REBALANCE: {"abTestId": "all", "algorithm": "thompson_sampling"},
    JobType.LINK_OPPORTUNITY_SCAN: {"siteId": "all"},
    JobType.LINK_BACKLINK_MONITOR: {"siteId": "all"},
}


def _duration_ms(job: Job) -> int | None:
    if job.started_at and job.completed_at:
        return int((job.completed_at - job.started_at).total_seconds() * 1000)
    return None


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_running(executions: list[Job], now: datetime) -> bool:
    cutoff = now - PENDING_GRACE
    return any(
        e.status == JobStatus.RUNNING.value
        or (e.status == JobStatus.PENDING.value and _as_utc(e.created_at) > cutoff)
        for e in executions
    )


def _summarize(job: Job) -> ExecutionSummary:
    return ExecutionSummary(
        id=str(job.id),
        status=job.status,
        error=job.error[:LAST_ERROR_CHARS] if job.error else None,
        created_at=iso_utc(job.created_at),
        started_at=iso_utc(job.started_at),
        completed_at=iso_utc(job.completed_at),
        duration_ms=_duration_ms(job),
    )


def _history_entry(job: Job) -> ExecutionHistoryEntry:
    return ExecutionHistoryEntry(
        id=str(job.id),
        status=job.status,
        site_name=job.site.name if job.site else None,
        error=job.error[:HISTORY_ERROR_CHARS] if job.error else None,
        created_at=iso_utc(job.created_at),
        duration_ms=_duration_ms(job),
    )


async def _with_history(history: JobHistoryStore, sj: ScheduledJob, now: datetime) -> ScheduleWithHistory:
    executions: list[Job] = []
    job_type = sj.history_type
    if job_type is not None:
        try:
            executions = await history.executions(job_type, HISTORY_LIMIT)
        except Exception as e:
            logger.warning(f"Could not load history for schedule {sj.job_type}: {e}")

    return ScheduleWithHistory(
        job_type=sj.job_type,
        schedule=sj.schedule,
        description=sj.description,
        next_run=iso_utc(next_cron_run(sj.schedule, now)),
        is_running=is_running(executions, now),
        last_execution=_summarize(executions[0]) if executions else None,
        recent_history=[_history_entry(e) for e in executions],
    )


async def list_schedules(
    registry: ScheduleRegistry,
    history: JobHistoryStore,
    now: datetime | None = None,
) -> list[ScheduleWithHistory]:
    now = now or datetime.now(timezone.utc)
    schedules = registry.get_scheduled_jobs()
    return list(await asyncio.gather(*(_with_history(history, sj, now) for sj in schedules)))


async def trigger_schedule(db: AsyncSession, registry: ScheduleRegistry, job_type: str) -> uuid.UUID:
    """Queue an immediate run of a scheduled job type with its default payload."""
    sj = registry.find(job_type)
    if sj is not None and sj.tracking != "tracked":
        raise TriggerError(f"{job_type} runs automatically and cannot be manually triggered from here")

    base_type = sj.base_type if sj else job_type.replace(" (deep)", "")
    resolved = parse_job_type(base_type)
    if resolved is None or resolved not in DEFAULT_PAYLOADS:
        raise TriggerError(f"Cannot trigger job type: {job_type}")

    payload = dict(DEFAULT_PAYLOADS[resolved])
    if (sj and sj.is_deep) or job_type.endswith(" (deep)"):
        payload["fullSiteAudit"] = True
        payload["forceAudit"] = True

    job_id = await enqueue_job(db, resolved, payload)
    logger.info(f"Manually triggered {job_type} as job {job_id}")
    return job_id
