"""Queues API - live counters and pause/resume."""
from fastapi import APIRouter, Depends, HTTPException

from marketplace_admin.context import OpsContext, get_context
from marketplace_admin.exceptions import UnknownQueueError
from marketplace_admin.schemas.operations import QueueActionResponse, QueueListResponse, QueueSnapshot
from marketplace_admin.services.operations_dashboard import (
    capture,
    collect_queue_stats,
    resolve_queue_stats,
    snapshot_queue,
    sum_queue_totals,
)

router = APIRouter(prefix="/api/queues", tags=["queues"])


@router.get("", response_model=QueueListResponse)
async def list_queues(ctx: OpsContext = Depends(get_context)):
    """Counters for every queue. Unreachable queues report zeros."""
    stats = resolve_queue_stats(ctx.queues.names, await collect_queue_stats(ctx.queues))
    return QueueListResponse(
        queues=[snapshot_queue(q) for q in stats],
        totals=sum_queue_totals(stats),
    )


@router.get("/{name}", response_model=QueueSnapshot)
async def get_queue(name: str, ctx: OpsContext = Depends(get_context)):
    """Counters for one queue. An unreachable queue reports zeros, like the list."""
    try:
        queue = ctx.queues.get_queue(name)
    except UnknownQueueError as e:
        raise HTTPException(404, str(e))
    result = await capture(f"queue:{name}", queue.get_job_counts())
    return snapshot_queue(resolve_queue_stats([name], [result])[0])


@router.post("/{name}/pause", response_model=QueueActionResponse)
async def pause_queue(name: str, ctx: OpsContext = Depends(get_context)):
    try:
        await ctx.queues.pause(name)
    except UnknownQueueError as e:
        raise HTTPException(404, str(e))
    return QueueActionResponse(message=f"Queue {name} paused")


@router.post("/{name}/resume", response_model=QueueActionResponse)
async def resume_queue(name: str, ctx: OpsContext = Depends(get_context)):
    try:
        await ctx.queues.resume(name)
    except UnknownQueueError as e:
        raise HTTPException(404, str(e))
    return QueueActionResponse(message=f"Queue {name} resumed")
