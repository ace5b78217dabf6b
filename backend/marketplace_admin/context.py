"""Process-wide collaborators, built once at startup and passed to routes."""
from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from marketplace_admin.config import Settings
from marketplace_admin.database import create_engine, create_session_factory
from marketplace_admin.services.circuit_breaker import BreakerConfig, CircuitBreakerRegistry
from marketplace_admin.services.job_history import JobHistoryStore
from marketplace_admin.services.queue_backend import DatabaseQueueBackend, QueueBackend
from marketplace_admin.services.scheduler import ScheduleRegistry


@dataclass
class OpsContext:
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    queues: QueueBackend
    circuit_breakers: CircuitBreakerRegistry
    schedules: ScheduleRegistry
    history: JobHistoryStore

    async def dispose(self) -> None:
        await self.engine.dispose()


def build_context(settings: Settings) -> OpsContext:
    engine = create_engine(settings.DATABASE_URL, settings.DB_POOL_SIZE, settings.DB_MAX_OVERFLOW)
    session_factory = create_session_factory(engine)

    breakers = CircuitBreakerRegistry(
        BreakerConfig(
            failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
            success_threshold=settings.CIRCUIT_SUCCESS_THRESHOLD,
            timeout=settings.CIRCUIT_TIMEOUT_SECONDS,
            window=settings.CIRCUIT_WINDOW_SECONDS,
        )
    )
    for service in (s.strip() for s in settings.SERVICE_BREAKERS.split(",")):
        if service:
            breakers.get_breaker(service)

    return OpsContext(
        engine=engine,
        session_factory=session_factory,
        queues=DatabaseQueueBackend(session_factory),
        circuit_breakers=breakers,
        schedules=ScheduleRegistry(),
        history=JobHistoryStore(session_factory),
    )


def get_context(request: Request) -> OpsContext:
    """FastAPI dependency returning the app's OpsContext."""
    return request.app.state.ops
