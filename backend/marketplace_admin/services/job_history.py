"""Read-only queries over recorded job executions."""
from datetime import datetime
from typing import Literal

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketplace_admin.models.job import Job
from marketplace_admin.services.job_types import JobStatus, JobType

SinceField = Literal["created_at", "completed_at", "updated_at"]


class JobHistoryStore:
    """Each query runs in its own session so callers can issue them concurrently."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def count(
        self,
        status: JobStatus,
        since_field: SinceField | None = None,
        since: datetime | None = None,
    ) -> int:
        query = select(func.count()).select_from(Job).where(Job.status == status.value)
        if since_field and since is not None:
            query = query.where(getattr(Job, since_field) >= since)
        async with self._session_factory() as db:
            result = await db.execute(query)
            return result.scalar_one()

    async def completed_durations(self, since: datetime, limit: int = 100) -> list[int]:
        """Run time in ms of the most recent jobs completed since `since`."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(Job.started_at, Job.completed_at)
                .where(
                    Job.status == JobStatus.COMPLETED.value,
                    Job.completed_at >= since,
                    Job.started_at.is_not(None),
                )
                .order_by(desc(Job.completed_at))
                .limit(limit)
            )
            rows = result.all()
        return [
            int((completed_at - started_at).total_seconds() * 1000)
            for started_at, completed_at in rows
            if started_at and completed_at
        ]

    async def recent_failures(self, limit: int = 10) -> list[Job]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Job)
                .where(Job.status == JobStatus.FAILED.value)
                .order_by(desc(Job.updated_at))
                .limit(limit)
            )
            return list(result.scalars().unique().all())

    async def last_run(self, job_type: JobType) -> Job | None:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Job)
                .where(Job.type == job_type.value)
                .order_by(desc(Job.created_at))
                .limit(1)
            )
            return result.scalars().first()

    async def executions(self, job_type: JobType, limit: int = 10) -> list[Job]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Job)
                .where(Job.type == job_type.value)
                .order_by(desc(Job.created_at))
                .limit(limit)
            )
            return list(result.scalars().unique().all())
