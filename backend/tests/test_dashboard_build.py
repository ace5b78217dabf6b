"""Dashboard aggregation against a real (SQLite) job history."""
from datetime import timedelta

import pytest

from marketplace_admin.services.job_types import JobType
from marketplace_admin.services.operations_dashboard import build_dashboard
from marketplace_admin.services.scheduler import ScheduledJob, ScheduleRegistry, aliased, tracked, untracked

from conftest import FIXED_NOW, add_job, add_site


@pytest.mark.asyncio
async def test_metrics_from_job_history(ctx):
    for _ in range(2):
        await add_job(ctx, status="RUNNING", started_at=FIXED_NOW - timedelta(minutes=1))
    # Completed in the last hour, with 1, 2 and 3 minute run times
    for minutes in (1, 2, 3):
        done = FIXED_NOW - timedelta(minutes=10)
        await add_job(
            ctx,
            status="COMPLETED",
            started_at=done - timedelta(minutes=minutes),
            completed_at=done,
        )
    # Completed yesterday evening: counts for 24h, not for today
    await add_job(
        ctx,
        status="COMPLETED",
        completed_at=FIXED_NOW - timedelta(hours=14),
    )
    await add_job(ctx, status="FAILED", updated_at=FIXED_NOW - timedelta(hours=2))

    snapshot = await build_dashboard(ctx, now=FIXED_NOW)

    assert snapshot.metrics.active_now == 2
    assert snapshot.metrics.completed_today == 3
    assert snapshot.metrics.failed_today == 1
    assert snapshot.metrics.throughput_per_hour == 3
    # 4 completed / 5 finished in the last 24h
    assert snapshot.metrics.success_rate == 80
    # The job without started_at is excluded from the average
    assert snapshot.metrics.avg_duration_ms == 120000
    assert snapshot.health == "degraded"


@pytest.mark.asyncio
async def test_empty_history_is_healthy(ctx):
    snapshot = await build_dashboard(ctx, now=FIXED_NOW)

    assert snapshot.health == "healthy"
    assert snapshot.metrics.success_rate == 100
    assert snapshot.metrics.avg_duration_ms == 0
    assert snapshot.recent_failures == []
    assert len(snapshot.queues) == 7
    assert snapshot.circuit_breakers == {}


@pytest.mark.asyncio
async def test_many_failures_today_is_critical(ctx):
    for _ in range(55):
        await add_job(ctx, status="FAILED", updated_at=FIXED_NOW - timedelta(hours=1))

    snapshot = await build_dashboard(ctx, now=FIXED_NOW)

    assert snapshot.metrics.failed_today == 55
    assert snapshot.health == "critical"


@pytest.mark.asyncio
async def test_recent_failures_are_newest_ten_with_truncated_errors(ctx):
    site_id = await add_site(ctx, "My Tourism Site")
    for i in range(12):
        await add_job(
            ctx,
            type=JobType.SEO_ANALYZE,
            status="FAILED",
            updated_at=FIXED_NOW - timedelta(minutes=i),
            error="API timeout after 30000ms " + "x" * 300,
            attempts=3,
            site_id=site_id,
        )
    await add_job(
        ctx,
        status="FAILED",
        updated_at=FIXED_NOW - timedelta(seconds=30),
        error=None,
    )

    snapshot = await build_dashboard(ctx, now=FIXED_NOW)
    failures = snapshot.recent_failures

    assert len(failures) == 10
    assert failures[0].failed_at == "2024-01-20T12:00:00.000Z"
    assert failures[1].error is None
    assert failures[1].site_name is None
    assert failures[0].site_name == "My Tourism Site"
    assert failures[0].type == "SEO_ANALYZE"
    assert failures[0].attempts == 3
    assert all(f.error is None or len(f.error) <= 200 for f in failures)
    assert failures[0].error.startswith("API timeout after 30000ms")


@pytest.mark.asyncio
async def test_queue_counts_from_job_rows(ctx):
    for _ in range(3):
        await add_job(ctx, type=JobType.CONTENT_GENERATE, status="PENDING")
    await add_job(ctx, type=JobType.CONTENT_REVIEW, status="RETRYING")
    await add_job(ctx, type=JobType.GSC_SYNC, status="SCHEDULED")
    await add_job(ctx, type=JobType.GSC_SYNC, status="FAILED")
    await ctx.queues.pause("abtest")

    snapshot = await build_dashboard(ctx, now=FIXED_NOW)
    queues = {q.name: q for q in snapshot.queues}

    assert queues["content"].waiting == 4
    assert queues["gsc"].delayed == 1
    assert queues["gsc"].failed == 1
    assert queues["abtest"].paused is True
    assert queues["abtest"].health == "paused"
    assert snapshot.queue_totals.waiting == 4
    assert snapshot.queue_totals.failed == 1


class TestScheduledJobs:
    @pytest.mark.asyncio
    async def test_last_run_of_tracked_schedules(self, ctx):
        await add_job(
            ctx,
            type=JobType.SEO_ANALYZE,
            status="COMPLETED",
            created_at=FIXED_NOW - timedelta(hours=9),
            started_at=FIXED_NOW - timedelta(hours=9),
            completed_at=FIXED_NOW - timedelta(hours=8, minutes=55),
        )
        await add_job(ctx, type=JobType.SEO_ANALYZE, status="RUNNING", created_at=FIXED_NOW - timedelta(hours=1))

        snapshot = await build_dashboard(ctx, now=FIXED_NOW)
        by_type = {sj.job_type: sj for sj in snapshot.scheduled_jobs}

        seo = by_type["SEO_ANALYZE"]
        assert seo.last_run.status == "RUNNING"
        assert seo.last_run.created_at == "2024-01-20T11:00:00.000Z"
        assert seo.last_run.completed_at is None
        # " (deep)" variant reads the same job type
        assert by_type["SEO_ANALYZE (deep)"].last_run.status == "RUNNING"
        assert by_type["GSC_SYNC"].last_run is None

    @pytest.mark.asyncio
    async def test_untracked_and_aliased_schedules_are_not_looked_up(self, ctx, monkeypatch):
        ctx.schedules = ScheduleRegistry([
            tracked("SEO_ANALYZE", "0 3 * * *", "Daily SEO analysis"),
            untracked("AUTONOMOUS_ROADMAP", "*/5 * * * *", "Process roadmaps"),
            aliased("WEEKLY_BLOG_GENERATE", JobType.CONTENT_GENERATE, "0 4 * * 1,4", "Generate blogs"),
            tracked("GSC_SYNC", "0 */6 * * *", "Sync GSC data"),
        ])
        await add_job(ctx, type=JobType.CONTENT_GENERATE, status="COMPLETED")

        looked_up = []
        original = ctx.history.last_run

        async def spy(job_type):
            looked_up.append(job_type)
            return await original(job_type)

        monkeypatch.setattr(ctx.history, "last_run", spy)

        snapshot = await build_dashboard(ctx, now=FIXED_NOW)
        by_type = {sj.job_type: sj for sj in snapshot.scheduled_jobs}

        assert [sj.job_type for sj in snapshot.scheduled_jobs] == [
            "SEO_ANALYZE", "AUTONOMOUS_ROADMAP", "WEEKLY_BLOG_GENERATE", "GSC_SYNC",
        ]
        assert by_type["AUTONOMOUS_ROADMAP"].last_run is None
        assert by_type["WEEKLY_BLOG_GENERATE"].last_run is None
        assert sorted(looked_up) == [JobType.GSC_SYNC, JobType.SEO_ANALYZE]

    @pytest.mark.asyncio
    async def test_failed_lookup_only_blanks_that_entry(self, ctx, monkeypatch):
        ctx.schedules = ScheduleRegistry([
            tracked("SEO_ANALYZE", "0 3 * * *", "Daily SEO analysis"),
            tracked("LINK_OPPORTUNITY_SCAN", "0 2 * * 2", "Scan links"),
        ])
        await add_job(ctx, type=JobType.SEO_ANALYZE, status="COMPLETED")
        original = ctx.history.last_run

        async def flaky(job_type):
            if job_type == JobType.LINK_OPPORTUNITY_SCAN:
                raise ValueError("Invalid enum value")
            return await original(job_type)

        monkeypatch.setattr(ctx.history, "last_run", flaky)

        snapshot = await build_dashboard(ctx, now=FIXED_NOW)
        by_type = {sj.job_type: sj for sj in snapshot.scheduled_jobs}

        assert by_type["SEO_ANALYZE"].last_run.status == "COMPLETED"
        assert by_type["LINK_OPPORTUNITY_SCAN"].last_run is None

    @pytest.mark.asyncio
    async def test_unknown_job_type_only_blanks_that_entry(self, ctx):
        ctx.schedules = ScheduleRegistry([
            tracked("SEO_ANALYZE", "0 3 * * *", "Daily SEO analysis"),
            ScheduledJob("MICROSITE_HEALTH_CHECK", "0 7 * * *", "Check microsite health"),
        ])
        await add_job(ctx, type=JobType.SEO_ANALYZE, status="COMPLETED")

        snapshot = await build_dashboard(ctx, now=FIXED_NOW)
        by_type = {sj.job_type: sj for sj in snapshot.scheduled_jobs}

        assert by_type["SEO_ANALYZE"].last_run.status == "COMPLETED"
        assert by_type["MICROSITE_HEALTH_CHECK"].last_run is None
        assert by_type["MICROSITE_HEALTH_CHECK"].schedule == "0 7 * * *"


@pytest.mark.asyncio
async def test_job_metrics_failure_is_raised(ctx, monkeypatch):
    async def lost(*args, **kwargs):
        raise ConnectionError("Database connection lost")

    monkeypatch.setattr(ctx.history, "count", lost)

    with pytest.raises(ConnectionError):
        await build_dashboard(ctx, now=FIXED_NOW)
