"""SQLAlchemy ORM models."""

from adledger.db.models.jobs import Job, JobQueue
from adledger.db.models.platform import (
    AdAccount,
    AdObject,
    PerformanceFact,
    PlatformConnection,
)

__all__ = [
    "AdAccount",
    "AdObject",
    "Job",
    "JobQueue",
    "PerformanceFact",
    "PlatformConnection",
]
