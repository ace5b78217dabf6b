"""Shared fixtures: a temp-file SQLite database behind a real OpsContext."""
import uuid
from datetime import datetime, timezone

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from marketplace_admin.context import OpsContext
from marketplace_admin.database import create_engine, create_session_factory
from marketplace_admin.main import create_app
from marketplace_admin.models import Base, Job, Site
from marketplace_admin.services.circuit_breaker import CircuitBreakerRegistry
from marketplace_admin.services.job_history import JobHistoryStore
from marketplace_admin.services.job_types import JOB_TYPE_TO_QUEUE, JobType
from marketplace_admin.services.queue_backend import DatabaseQueueBackend
from marketplace_admin.services.scheduler import ScheduleRegistry

# Midday, so "today" and "last 24h" windows never straddle midnight in tests
FIXED_NOW = datetime(2024, 1, 20, 12, 0, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def ctx(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'ops.db'}")
    session_factory = create_session_factory(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    context = OpsContext(
        engine=engine,
        session_factory=session_factory,
        queues=DatabaseQueueBackend(session_factory),
        circuit_breakers=CircuitBreakerRegistry(),
        schedules=ScheduleRegistry(),
        history=JobHistoryStore(session_factory),
    )
    yield context
    await engine.dispose()


@pytest_asyncio.fixture
async def client(ctx):
    app = create_app(ctx)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def add_site(ctx: OpsContext, name: str) -> uuid.UUID:
    async with ctx.session_factory() as db:
        site = Site(name=name)
        db.add(site)
        await db.commit()
        return site.id


async def add_job(
    ctx: OpsContext,
    type: JobType = JobType.CONTENT_GENERATE,
    status: str = "COMPLETED",
    created_at: datetime = FIXED_NOW,
    updated_at: datetime | None = None,
    **fields,
) -> uuid.UUID:
    """Insert a job row. Queue defaults to the type's queue."""
    fields.setdefault("queue", JOB_TYPE_TO_QUEUE[type].value)
    async with ctx.session_factory() as db:
        job = Job(
            type=type.value,
            status=status,
            created_at=created_at,
            updated_at=updated_at or created_at,
            **fields,
        )
        db.add(job)
        await db.commit()
        return job.id
