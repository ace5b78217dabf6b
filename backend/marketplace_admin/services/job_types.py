"""Job types, statuses and queue names shared by the scheduler, queues and history store."""
from enum import Enum


class JobStatus(str, Enum):
    PENDING = "PENDING"
    SCHEDULED = "SCHEDULED"
    RUNNING = "RUNNING"
    RETRYING = "RETRYING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


# Statuses a job can still leave
ACTIVE_STATUSES = (
    JobStatus.PENDING,
    JobStatus.RUNNING,
    JobStatus.SCHEDULED,
    JobStatus.RETRYING,
)
TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class QueueName(str, Enum):
    CONTENT = "content"
    SEO = "seo"
    GSC = "gsc"
    SITE = "site"
    DOMAIN = "domain"
    ANALYTICS = "analytics"
    ABTEST = "abtest"


QUEUE_NAMES: list[str] = [q.value for q in QueueName]


class JobType(str, Enum):
    """Every job type that is persisted to the jobs table."""
    CONTENT_GENERATE = "CONTENT_GENERATE"
    CONTENT_OPTIMIZE = "CONTENT_OPTIMIZE"
    CONTENT_REVIEW = "CONTENT_REVIEW"
    SEO_ANALYZE = "SEO_ANALYZE"
    SEO_AUTO_OPTIMIZE = "SEO_AUTO_OPTIMIZE"
    SEO_OPPORTUNITY_SCAN = "SEO_OPPORTUNITY_SCAN"
    SEO_OPPORTUNITY_OPTIMIZE = "SEO_OPPORTUNITY_OPTIMIZE"
    GSC_SYNC = "GSC_SYNC"
    GSC_VERIFY = "GSC_VERIFY"
    GSC_SETUP = "GSC_SETUP"
    GA4_SETUP = "GA4_SETUP"
    SITE_CREATE = "SITE_CREATE"
    SITE_DEPLOY = "SITE_DEPLOY"
    DOMAIN_REGISTER = "DOMAIN_REGISTER"
    DOMAIN_VERIFY = "DOMAIN_VERIFY"
    SSL_PROVISION = "SSL_PROVISION"
    METRICS_AGGREGATE = "METRICS_AGGREGATE"
    PERFORMANCE_REPORT = "PERFORMANCE_REPORT"
    ABTEST_ANALYZE = "ABTEST_ANALYZE"
    ABTEST_REBALANCE = "ABTEST_REBALANCE"
    LINK_OPPORTUNITY_SCAN = "LINK_OPPORTUNITY_SCAN"
    LINK_BACKLINK_MONITOR = "LINK_BACKLINK_MONITOR"
    LINK_OUTREACH_GENERATE = "LINK_OUTREACH_GENERATE"
    LINK_ASSET_GENERATE = "LINK_ASSET_GENERATE"


JOB_TYPE_TO_QUEUE: dict[JobType, QueueName] = {
    JobType.CONTENT_GENERATE: QueueName.CONTENT,
    JobType.CONTENT_OPTIMIZE: QueueName.CONTENT,
    JobType.CONTENT_REVIEW: QueueName.CONTENT,
    JobType.SEO_ANALYZE: QueueName.SEO,
    JobType.SEO_AUTO_OPTIMIZE: QueueName.SEO,
    JobType.SEO_OPPORTUNITY_SCAN: QueueName.SEO,
    JobType.SEO_OPPORTUNITY_OPTIMIZE: QueueName.SEO,
    JobType.GSC_SYNC: QueueName.GSC,
    JobType.GSC_VERIFY: QueueName.GSC,
    JobType.GSC_SETUP: QueueName.GSC,
    JobType.GA4_SETUP: QueueName.ANALYTICS,
    JobType.SITE_CREATE: QueueName.SITE,
    JobType.SITE_DEPLOY: QueueName.SITE,
    JobType.DOMAIN_REGISTER: QueueName.DOMAIN,
    JobType.DOMAIN_VERIFY: QueueName.DOMAIN,
    JobType.SSL_PROVISION: QueueName.DOMAIN,
    JobType.METRICS_AGGREGATE: QueueName.ANALYTICS,
    JobType.PERFORMANCE_REPORT: QueueName.ANALYTICS,
    JobType.ABTEST_ANALYZE: QueueName.ABTEST,
    JobType.ABTEST_REBALANCE: QueueName.ABTEST,
    JobType.LINK_OPPORTUNITY_SCAN: QueueName.SEO,
    JobType.LINK_BACKLINK_MONITOR: QueueName.SEO,
    JobType.LINK_OUTREACH_GENERATE: QueueName.SEO,
    JobType.LINK_ASSET_GENERATE: QueueName.SEO,
}


def parse_job_type(value: str) -> JobType | None:
    """Return the JobType for a stored/requested value, or None if unknown."""
    try:
        return JobType(value)
    except ValueError:
        return None
