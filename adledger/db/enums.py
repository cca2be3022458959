"""Enum definitions for application constants."""

from enum import Enum


class Platform(str, Enum):
    """Ad platforms a connection can point at."""
    META = "META"
    GOOGLE_ADS = "GOOGLE_ADS"
    TIKTOK = "TIKTOK"


# Platforms with a working API client
SUPPORTED_PLATFORMS = frozenset({Platform.META})


class AdObjectType(str, Enum):
    """
    Hierarchy levels, top to leaf.

    CAMPAIGN → AD_SET → AD. Only AD rows are summed in account rollups.
    """
    CAMPAIGN = "CAMPAIGN"
    AD_SET = "AD_SET"
    AD = "AD"

    @property
    def parent_type(self) -> "AdObjectType | None":
        return _PARENT_TYPES[self]


_PARENT_TYPES = {
    AdObjectType.CAMPAIGN: None,
    AdObjectType.AD_SET: AdObjectType.CAMPAIGN,
    AdObjectType.AD: AdObjectType.AD_SET,
}

LEAF_OBJECT_TYPE = AdObjectType.AD


class JobType(str, Enum):
    """Types of background jobs."""
    SYNC_AD_PLATFORM = "sync_ad_platform"


class JobStatus(str, Enum):
    """Status of background jobs."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ChunkGranularity(str, Enum):
    """Calendar units a sync window can be split into."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


DEFAULT_JOB_STATUS = JobStatus.PENDING
DEFAULT_OBJECT_STATUS = "ACTIVE"
