"""Import all models so SQLAlchemy metadata knows about them."""
from marketplace_admin.models.base import Base
from marketplace_admin.models.site import Site
from marketplace_admin.models.job import Job
from marketplace_admin.models.queue_state import QueueState

__all__ = ["Base", "Site", "Job", "QueueState"]
