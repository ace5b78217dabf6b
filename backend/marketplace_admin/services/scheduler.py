"""Scheduled job registry.

Static, code-registered definitions of recurring tasks. Each entry declares
how its executions are tracked in the jobs table:

- tracked:   history is stored under the entry's own JobType
- alias:     history is stored under another JobType (orchestrators that
             fan out into e.g. CONTENT_GENERATE jobs)
- untracked: never persisted; there is no history to look up
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

from croniter import croniter

from marketplace_admin.services.job_types import JobType, parse_job_type

Tracking = Literal["tracked", "alias", "untracked"]

DEEP_SUFFIX = " (deep)"


@dataclass(frozen=True)
class ScheduledJob:
    job_type: str
    schedule: str
    description: str
    tracking: Tracking = "tracked"
    alias_of: JobType | None = None

    @property
    def base_type(self) -> str:
        """Job type label with the " (deep)" variant marker removed."""
        if self.job_type.endswith(DEEP_SUFFIX):
            return self.job_type[: -len(DEEP_SUFFIX)]
        return self.job_type

    @property
    def is_deep(self) -> bool:
        return self.job_type.endswith(DEEP_SUFFIX)

    @property
    def tracked_type(self) -> JobType | None:
        """JobType recorded under this entry's own name, if it is tracked and known."""
        if self.tracking != "tracked":
            return None
        return parse_job_type(self.base_type)

    @property
    def history_type(self) -> JobType | None:
        """JobType whose rows represent this schedule's executions."""
        if self.tracking == "alias":
            return self.alias_of
        return self.tracked_type


def tracked(job_type: str, schedule: str, description: str) -> ScheduledJob:
    JobType(job_type.replace(DEEP_SUFFIX, ""))  # reject unknown types at import time
    return ScheduledJob(job_type, schedule, description)


def aliased(job_type: str, alias_of: JobType, schedule: str, description: str) -> ScheduledJob:
    return ScheduledJob(job_type, schedule, description, tracking="alias", alias_of=alias_of)


def untracked(job_type: str, schedule: str, description: str) -> ScheduledJob:
    return ScheduledJob(job_type, schedule, description, tracking="untracked")


DEFAULT_SCHEDULES: list[ScheduledJob] = [
    tracked("METRICS_AGGREGATE", "0 1 * * *", "Aggregate daily performance metrics and detect issues"),
    tracked("SEO_OPPORTUNITY_SCAN", "0 2 * * *", "Scan for new SEO opportunities across all sites"),
    tracked("SEO_ANALYZE", "0 3 * * *", "Daily SEO health audit with auto-optimization"),
    aliased(
        "DAILY_BLOG_GENERATE", JobType.CONTENT_GENERATE, "0 4 * * *",
        "Generate 1 blog post per site daily for SEO authority",
    ),
    aliased(
        "WEEKLY_BLOG_GENERATE", JobType.CONTENT_GENERATE, "0 4 * * 1,4",
        "Generate blog posts for microsites twice a week",
    ),
    tracked("SEO_ANALYZE (deep)", "0 5 * * 0", "Comprehensive full-site SEO audit"),
    tracked("SEO_AUTO_OPTIMIZE", "0 6 * * 0", "Auto-fix metadata, structured data, and thin content"),
    tracked("GSC_SYNC", "0 */6 * * *", "Sync Google Search Console data for all sites"),
    tracked("PERFORMANCE_REPORT", "0 9 * * 1", "Generate weekly performance report"),
    tracked("LINK_OPPORTUNITY_SCAN", "0 2 * * 2", "Scan competitor backlinks for link building opportunities"),
    tracked("LINK_BACKLINK_MONITOR", "0 3 * * 3", "Monitor existing backlinks for lost or broken links"),
    tracked("ABTEST_REBALANCE", "0 * * * *", "Rebalance A/B test traffic using Thompson sampling"),
    untracked("AUTONOMOUS_ROADMAP", "*/5 * * * *", "Process site roadmaps and queue next lifecycle tasks"),
]


class ScheduleRegistry:
    """Holds the recurring job definitions for this deployment."""

    def __init__(self, schedules: list[ScheduledJob] | None = None):
        self._schedules = list(DEFAULT_SCHEDULES if schedules is None else schedules)

    def get_scheduled_jobs(self) -> list[ScheduledJob]:
        return list(self._schedules)

    def find(self, job_type: str) -> ScheduledJob | None:
        for sj in self._schedules:
            if sj.job_type == job_type:
                return sj
        return None


def next_cron_run(schedule: str, now: datetime | None = None) -> datetime:
    """Next UTC fire time of a five-field cron expression."""
    base = now or datetime.now(timezone.utc)
    return croniter(schedule, base).get_next(datetime)
