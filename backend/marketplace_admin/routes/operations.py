"""Operations API - dashboard, schedules and circuit breakers."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_admin.context import OpsContext, get_context
from marketplace_admin.database import get_db
from marketplace_admin.exceptions import TriggerError, UnknownServiceError
from marketplace_admin.schemas.operations import (
    CircuitBreakerStatus,
    DashboardSnapshot,
    SchedulesResponse,
    TriggerRequest,
    TriggerResponse,
)
from marketplace_admin.services.operations_dashboard import build_dashboard
from marketplace_admin.services.schedules import list_schedules, trigger_schedule

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/operations", tags=["operations"])


@router.get("/dashboard", response_model=DashboardSnapshot)
async def get_dashboard(ctx: OpsContext = Depends(get_context)):
    """System health overview, queue stats, recent failures and scheduled jobs."""
    try:
        return await build_dashboard(ctx)
    except Exception:
        logger.exception("Error fetching operations dashboard")
        return JSONResponse(status_code=500, content={"error": "Failed to fetch operations dashboard"})


@router.get("/schedules", response_model=SchedulesResponse)
async def get_schedules(ctx: OpsContext = Depends(get_context)):
    """All scheduled jobs with execution history and next run times."""
    try:
        schedules = await list_schedules(ctx.schedules, ctx.history)
    except Exception:
        logger.exception("Error fetching schedules")
        return JSONResponse(status_code=500, content={"error": "Failed to fetch schedules"})
    return SchedulesResponse(schedules=schedules)


@router.post("/schedules/trigger", response_model=TriggerResponse)
async def trigger(
    body: TriggerRequest,
    ctx: OpsContext = Depends(get_context),
    db: AsyncSession = Depends(get_db),
):
    """Queue an immediate run of a scheduled job type."""
    try:
        job_id = await trigger_schedule(db, ctx.schedules, body.job_type)
    except TriggerError as e:
        raise HTTPException(400, str(e))
    return TriggerResponse(message=f"Triggered {body.job_type} manually", job_id=str(job_id))


@router.get("/circuit-breakers", response_model=dict[str, CircuitBreakerStatus])
async def get_circuit_breakers(ctx: OpsContext = Depends(get_context)):
    return await ctx.circuit_breakers.get_all_status()


@router.post("/circuit-breakers/reset")
async def reset_all_circuit_breakers(ctx: OpsContext = Depends(get_context)):
    """Close every circuit breaker and clear its counters."""
    await ctx.circuit_breakers.reset_all()
    logger.info("All circuit breakers reset")
    return {"success": True, "message": "All circuit breakers reset"}


@router.post("/circuit-breakers/{service}/reset")
async def reset_circuit_breaker(service: str, ctx: OpsContext = Depends(get_context)):
    try:
        await ctx.circuit_breakers.reset(service)
    except UnknownServiceError as e:
        raise HTTPException(404, str(e))
    return {"success": True, "message": f"Circuit breaker for {service} reset"}
