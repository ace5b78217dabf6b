"""Job queues backed by the jobs table.

A queue is the set of job rows routed to it (see JOB_TYPE_TO_QUEUE). Counts
are derived from row status; the pause flag lives in queue_states.
"""
import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketplace_admin.exceptions import UnknownQueueError
from marketplace_admin.models.job import Job
from marketplace_admin.models.queue_state import QueueState
from marketplace_admin.schemas.operations import QueueStats
from marketplace_admin.services.job_types import (
    ACTIVE_STATUSES,
    JOB_TYPE_TO_QUEUE,
    QUEUE_NAMES,
    JobStatus,
    JobType,
)

logger = logging.getLogger(__name__)

# Which job statuses count towards each queue bucket
STATUS_BUCKETS: dict[str, tuple[JobStatus, ...]] = {
    "waiting": (JobStatus.PENDING, JobStatus.RETRYING),
    "active": (JobStatus.RUNNING,),
    "completed": (JobStatus.COMPLETED,),
    "failed": (JobStatus.FAILED,),
    "delayed": (JobStatus.SCHEDULED,),
}


class JobQueue(ABC):
    """Read access to one named queue."""

    name: str

    @abstractmethod
    async def get_waiting_count(self) -> int: ...

    @abstractmethod
    async def get_active_count(self) -> int: ...

    @abstractmethod
    async def get_completed_count(self) -> int: ...

    @abstractmethod
    async def get_failed_count(self) -> int: ...

    @abstractmethod
    async def get_delayed_count(self) -> int: ...

    @abstractmethod
    async def is_paused(self) -> bool: ...

    async def get_job_counts(self) -> QueueStats:
        """All counters for this queue. Backends may override with a single round-trip."""
        waiting, active, completed, failed, delayed, paused = await asyncio.gather(
            self.get_waiting_count(),
            self.get_active_count(),
            self.get_completed_count(),
            self.get_failed_count(),
            self.get_delayed_count(),
            self.is_paused(),
        )
        return QueueStats(
            name=self.name,
            waiting=waiting,
            active=active,
            completed=completed,
            failed=failed,
            delayed=delayed,
            paused=paused,
        )


class QueueBackend(ABC):
    """Resolves queue names to JobQueue handles and controls pausing."""

    names: list[str]

    @abstractmethod
    def get_queue(self, name: str) -> JobQueue: ...

    @abstractmethod
    async def pause(self, name: str) -> None: ...

    @abstractmethod
    async def resume(self, name: str) -> None: ...


class DatabaseJobQueue(JobQueue):
    def __init__(self, name: str, session_factory: async_sessionmaker[AsyncSession]):
        self.name = name
        self._session_factory = session_factory

    async def _count(self, bucket: str) -> int:
        async with self._session_factory() as db:
            result = await db.execute(
                select(func.count())
                .select_from(Job)
                .where(Job.queue == self.name, Job.status.in_([s.value for s in STATUS_BUCKETS[bucket]]))
            )
            return result.scalar_one()

    async def get_waiting_count(self) -> int:
        return await self._count("waiting")

    async def get_active_count(self) -> int:
        return await self._count("active")

    async def get_completed_count(self) -> int:
        return await self._count("completed")

    async def get_failed_count(self) -> int:
        return await self._count("failed")

    async def get_delayed_count(self) -> int:
        return await self._count("delayed")

    async def is_paused(self) -> bool:
        async with self._session_factory() as db:
            state = await db.get(QueueState, self.name)
            return bool(state and state.paused)

    async def get_job_counts(self) -> QueueStats:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Job.status, func.count())
                .where(Job.queue == self.name)
                .group_by(Job.status)
            )
            by_status = {status: count for status, count in result.all()}
            state = await db.get(QueueState, self.name)

        counts = {
            bucket: sum(by_status.get(s.value, 0) for s in statuses)
            for bucket, statuses in STATUS_BUCKETS.items()
        }
        return QueueStats(name=self.name, paused=bool(state and state.paused), **counts)


class DatabaseQueueBackend(QueueBackend):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], names: list[str] | None = None):
        self._session_factory = session_factory
        self.names = list(names or QUEUE_NAMES)

    def get_queue(self, name: str) -> JobQueue:
        if name not in self.names:
            raise UnknownQueueError(name)
        return DatabaseJobQueue(name, self._session_factory)

    async def _set_paused(self, name: str, paused: bool) -> None:
        if name not in self.names:
            raise UnknownQueueError(name)
        async with self._session_factory() as db:
            state = await db.get(QueueState, name)
            if state is None:
                db.add(QueueState(name=name, paused=paused))
            else:
                state.paused = paused
            await db.commit()
        logger.info(f"Queue {name} {'paused' if paused else 'resumed'}")

    async def pause(self, name: str) -> None:
        await self._set_paused(name, True)

    async def resume(self, name: str) -> None:
        await self._set_paused(name, False)


async def enqueue_job(
    db: AsyncSession,
    job_type: JobType,
    payload: dict,
    site_id: uuid.UUID | None = None,
    priority: int = 5,
    max_attempts: int = 3,
    delay_seconds: float | None = None,
) -> uuid.UUID:
    """Record a job for its queue and return its id.

    If a job of the same type for the same site is still waiting or running,
    its id is returned instead of creating a duplicate.
    """
    if site_id is not None:
        result = await db.execute(
            select(Job.id, Job.status).where(
                Job.site_id == site_id,
                Job.type == job_type.value,
                Job.status.in_([s.value for s in ACTIVE_STATUSES]),
            ).limit(1)
        )
        existing = result.first()
        if existing:
            logger.info(
                f"Skipping duplicate {job_type.value} for site {site_id} - "
                f"existing job {existing.id} is {existing.status}"
            )
            return existing.id

    scheduled_for = None
    status = JobStatus.PENDING
    if delay_seconds:
        scheduled_for = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        status = JobStatus.SCHEDULED

    job = Job(
        type=job_type.value,
        queue=JOB_TYPE_TO_QUEUE[job_type].value,
        status=status.value,
        payload=payload,
        priority=priority,
        max_attempts=max_attempts,
        site_id=site_id,
        scheduled_for=scheduled_for,
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    logger.info(f"Queued job {job.id} (type={job.type}, queue={job.queue})")
    return job.id
