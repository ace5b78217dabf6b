"""Operations dashboard, queue, schedule and circuit breaker response schemas."""
from typing import Literal, Optional
from marketplace_admin.schemas.base import CamelModel

SystemHealth = Literal["healthy", "degraded", "critical"]
QueueHealth = Literal["healthy", "warning", "critical", "paused"]


# ── Queues ──

class QueueCounts(CamelModel):
    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0


class QueueStats(QueueCounts):
    name: str
    paused: bool = False


class QueueSnapshot(QueueStats):
    health: QueueHealth


class QueueListResponse(CamelModel):
    queues: list[QueueSnapshot]
    totals: QueueCounts


class QueueActionResponse(CamelModel):
    success: bool = True
    message: str


# ── Circuit breakers ──

class CircuitMetrics(CamelModel):
    failures: int = 0
    successes: int = 0
    last_failure_time: float = 0.0
    last_success_time: float = 0.0


class CircuitBreakerStatus(CamelModel):
    state: str
    metrics: CircuitMetrics
    next_attempt_time: float = 0.0


# ── Dashboard ──

class DashboardMetrics(CamelModel):
    active_now: int
    completed_today: int
    failed_today: int
    success_rate: int
    avg_duration_ms: int
    throughput_per_hour: int


class RecentFailure(CamelModel):
    id: str
    type: str
    error: Optional[str] = None
    attempts: int
    site_name: Optional[str] = None
    failed_at: str


class LastRun(CamelModel):
    status: str
    created_at: str
    completed_at: Optional[str] = None


class ScheduledJobSnapshot(CamelModel):
    job_type: str
    schedule: str
    description: str
    last_run: Optional[LastRun] = None


class DashboardSnapshot(CamelModel):
    health: SystemHealth
    metrics: DashboardMetrics
    queues: list[QueueSnapshot]
    queue_totals: QueueCounts
    recent_failures: list[RecentFailure]
    scheduled_jobs: list[ScheduledJobSnapshot]
    circuit_breakers: dict[str, CircuitBreakerStatus]


# ── Schedules ──

class ExecutionSummary(CamelModel):
    id: str
    status: str
    error: Optional[str] = None
    created_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_ms: Optional[int] = None


class ExecutionHistoryEntry(CamelModel):
    id: str
    status: str
    site_name: Optional[str] = None
    error: Optional[str] = None
    created_at: str
    duration_ms: Optional[int] = None


class ScheduleWithHistory(CamelModel):
    job_type: str
    schedule: str
    description: str
    next_run: str
    is_running: bool
    last_execution: Optional[ExecutionSummary] = None
    recent_history: list[ExecutionHistoryEntry] = []


class SchedulesResponse(CamelModel):
    schedules: list[ScheduleWithHistory]


class TriggerRequest(CamelModel):
    job_type: str


class TriggerResponse(CamelModel):
    success: bool = True
    message: str
    job_id: str
