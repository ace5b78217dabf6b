"""Operations dashboard aggregation.

Builds one health snapshot from several independent sources:

- job metrics from the history store (fatal if unavailable)
- recent failures from the history store (fatal if unavailable)
- live queue counters, per queue (each falls back to zeros)
- circuit breaker states (falls back to an empty map)
- last run of each scheduled job (each falls back to None)

Non-fatal sources are captured as `Unavailable` and replaced with their
defaults in `merge_snapshot` only.
"""
import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, TypeVar, Union

from marketplace_admin.context import OpsContext
from marketplace_admin.models.job import Job
from marketplace_admin.schemas.base import iso_utc
from marketplace_admin.schemas.operations import (
    CircuitBreakerStatus,
    DashboardMetrics,
    DashboardSnapshot,
    LastRun,
    QueueCounts,
    QueueHealth,
    QueueSnapshot,
    QueueStats,
    RecentFailure,
    ScheduledJobSnapshot,
    SystemHealth,
)
from marketplace_admin.services.job_history import JobHistoryStore
from marketplace_admin.services.job_types import JobStatus
from marketplace_admin.services.queue_backend import QueueBackend
from marketplace_admin.services.scheduler import ScheduledJob

logger = logging.getLogger(__name__)

T = TypeVar("T")

ERROR_PREVIEW_CHARS = 200
RECENT_FAILURE_LIMIT = 10
DURATION_SAMPLE_LIMIT = 100

# Health thresholds
CRITICAL_FAILED_TODAY = 50
DEGRADED_FAILED_TODAY = 10
CRITICAL_OPEN_CIRCUITS = 1
MIN_HEALTHY_SUCCESS_RATE = 90
QUEUE_CRITICAL_FAILED = 10
QUEUE_WARNING_WAITING = 100


@dataclass(frozen=True)
class Unavailable:
    """A source that could not be read for this snapshot."""
    source: str
    error: str


SourceResult = Union[T, Unavailable]


async def capture(source: str, awaitable: Awaitable[T]) -> SourceResult[T]:
    """Await a non-fatal source, turning any failure into `Unavailable`."""
    try:
        return await awaitable
    except Exception as e:
        logger.warning(f"Operations dashboard source '{source}' unavailable: {e}")
        return Unavailable(source=source, error=str(e) or type(e).__name__)


@dataclass(frozen=True)
class JobMetrics:
    active_now: int
    completed_today: int
    failed_today: int
    completed_24h: int
    failed_24h: int
    durations_ms: list[int]
    completed_last_hour: int


# ── Derived values ──

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def success_rate(completed: int, failed: int) -> int:
    """Percentage of finished jobs that completed. No finished jobs counts as 100."""
    total = completed + failed
    if total == 0:
        return 100
    return _round_half_up(completed / total * 100)


def average_duration_ms(durations_ms: list[int]) -> int:
    if not durations_ms:
        return 0
    return _round_half_up(sum(durations_ms) / len(durations_ms))


def count_open_circuits(statuses: dict[str, CircuitBreakerStatus]) -> int:
    return sum(1 for s in statuses.values() if s.state == "OPEN")


def classify_health(failed_today: int, open_circuits: int, rate: int) -> SystemHealth:
    if failed_today > CRITICAL_FAILED_TODAY or open_circuits > CRITICAL_OPEN_CIRCUITS:
        return "critical"
    if failed_today > DEGRADED_FAILED_TODAY or open_circuits > 0 or rate < MIN_HEALTHY_SUCCESS_RATE:
        return "degraded"
    return "healthy"


def queue_health(stats: QueueStats) -> QueueHealth:
    if stats.paused:
        return "paused"
    if stats.failed > QUEUE_CRITICAL_FAILED:
        return "critical"
    if stats.waiting > QUEUE_WARNING_WAITING:
        return "warning"
    return "healthy"


def sum_queue_totals(stats: list[QueueStats]) -> QueueCounts:
    return QueueCounts(
        waiting=sum(q.waiting for q in stats),
        active=sum(q.active for q in stats),
        completed=sum(q.completed for q in stats),
        failed=sum(q.failed for q in stats),
        delayed=sum(q.delayed for q in stats),
    )


def resolve_queue_stats(
    queue_names: list[str], queue_results: list[SourceResult[QueueStats]]
) -> list[QueueStats]:
    """Replace unreadable queues with all-zero, unpaused counters."""
    return [
        QueueStats(name=name) if isinstance(result, Unavailable) else result
        for name, result in zip(queue_names, queue_results)
    ]


def snapshot_queue(stats: QueueStats) -> QueueSnapshot:
    return QueueSnapshot(**stats.model_dump(), health=queue_health(stats))


def truncate_error(error: str | None, limit: int = ERROR_PREVIEW_CHARS) -> str | None:
    if error is None:
        return None
    return error[:limit]


def to_recent_failure(job: Job) -> RecentFailure:
    return RecentFailure(
        id=str(job.id),
        type=job.type,
        error=truncate_error(job.error),
        attempts=job.attempts,
        site_name=job.site.name if job.site else None,
        failed_at=iso_utc(job.updated_at),
    )


# ── Sources ──

async def collect_job_metrics(history: JobHistoryStore, now: datetime) -> JobMetrics:
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    last_24h = now - timedelta(hours=24)
    last_hour = now - timedelta(hours=1)

    (
        active_now,
        completed_today,
        failed_today,
        completed_24h,
        failed_24h,
        durations_ms,
        completed_last_hour,
    ) = await asyncio.gather(
        history.count(JobStatus.RUNNING),
        history.count(JobStatus.COMPLETED, "completed_at", today_start),
        history.count(JobStatus.FAILED, "updated_at", today_start),
        history.count(JobStatus.COMPLETED, "completed_at", last_24h),
        history.count(JobStatus.FAILED, "updated_at", last_24h),
        history.completed_durations(last_24h, DURATION_SAMPLE_LIMIT),
        history.count(JobStatus.COMPLETED, "completed_at", last_hour),
    )
    return JobMetrics(
        active_now=active_now,
        completed_today=completed_today,
        failed_today=failed_today,
        completed_24h=completed_24h,
        failed_24h=failed_24h,
        durations_ms=durations_ms,
        completed_last_hour=completed_last_hour,
    )


async def collect_queue_stats(queues: QueueBackend) -> list[SourceResult[QueueStats]]:
    """Counters for every queue; each queue fails independently."""

    async def one(name: str) -> QueueStats:
        return await queues.get_queue(name).get_job_counts()

    return list(await asyncio.gather(*(capture(f"queue:{name}", one(name)) for name in queues.names)))


async def _last_run(history: JobHistoryStore, sj: ScheduledJob) -> ScheduledJobSnapshot:
    last_run = None
    job_type = sj.tracked_type
    if job_type is None and sj.tracking == "tracked":
        logger.warning(f"Scheduled job {sj.job_type} has no known job type; lastRun left empty")
    if job_type is not None:
        result = await capture(f"last_run:{sj.job_type}", history.last_run(job_type))
        if result is not None and not isinstance(result, Unavailable):
            last_run = LastRun(
                status=result.status,
                created_at=iso_utc(result.created_at),
                completed_at=iso_utc(result.completed_at),
            )
    return ScheduledJobSnapshot(
        job_type=sj.job_type,
        schedule=sj.schedule,
        description=sj.description,
        last_run=last_run,
    )


async def collect_last_runs(history: JobHistoryStore, schedules: list[ScheduledJob]) -> list[ScheduledJobSnapshot]:
    """Most recent execution of each tracked schedule. Aliased and untracked entries get None."""
    return list(await asyncio.gather(*(_last_run(history, sj) for sj in schedules)))


# ── Merge ──

def merge_snapshot(
    metrics: JobMetrics,
    queue_results: list[SourceResult[QueueStats]],
    queue_names: list[str],
    failures: list[Job],
    breaker_result: SourceResult[dict[str, CircuitBreakerStatus]],
    scheduled_jobs: list[ScheduledJobSnapshot],
) -> DashboardSnapshot:
    queue_stats = resolve_queue_stats(queue_names, queue_results)

    if isinstance(breaker_result, Unavailable):
        # Reads as zero open circuits to the classifier
        logger.warning("Circuit breaker status unavailable; health computed without breaker data")
        circuit_breakers: dict[str, CircuitBreakerStatus] = {}
    else:
        circuit_breakers = breaker_result

    rate = success_rate(metrics.completed_24h, metrics.failed_24h)
    health = classify_health(metrics.failed_today, count_open_circuits(circuit_breakers), rate)

    return DashboardSnapshot(
        health=health,
        metrics=DashboardMetrics(
            active_now=metrics.active_now,
            completed_today=metrics.completed_today,
            failed_today=metrics.failed_today,
            success_rate=rate,
            avg_duration_ms=average_duration_ms(metrics.durations_ms),
            throughput_per_hour=metrics.completed_last_hour,
        ),
        queues=[snapshot_queue(q) for q in queue_stats],
        queue_totals=sum_queue_totals(queue_stats),
        recent_failures=[to_recent_failure(job) for job in failures],
        scheduled_jobs=scheduled_jobs,
        circuit_breakers=circuit_breakers,
    )


async def build_dashboard(ctx: OpsContext, now: datetime | None = None) -> DashboardSnapshot:
    """Assemble the dashboard. Raises if job metrics or recent failures cannot be read."""
    now = now or datetime.now(timezone.utc)

    async def scheduled() -> list[ScheduledJob]:
        return ctx.schedules.get_scheduled_jobs()

    metrics, failures, queue_results, breaker_result, schedules = await asyncio.gather(
        collect_job_metrics(ctx.history, now),
        ctx.history.recent_failures(RECENT_FAILURE_LIMIT),
        collect_queue_stats(ctx.queues),
        capture("circuit_breakers", ctx.circuit_breakers.get_all_status()),
        scheduled(),
    )

    scheduled_jobs = await collect_last_runs(ctx.history, schedules)

    return merge_snapshot(
        metrics,
        queue_results,
        ctx.queues.names,
        failures,
        breaker_result,
        scheduled_jobs,
    )
