"""Start a sync: chunk the requested window and enqueue one job per chunk."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from adledger.core.config import settings
from adledger.db.enums import ChunkGranularity, JobType, Platform
from adledger.services import job_service
from adledger.services.date_ranges import DateRange, chunk_date_range

logger = logging.getLogger(__name__)


@dataclass
class QueuedSync:
    job_ids: list[UUID]
    chunks: list[DateRange]


def request_sync(
    db: Session,
    start_date: date,
    end_date: date,
    granularity: ChunkGranularity | str | None = None,
    platform: Platform = Platform.META,
) -> QueuedSync:
    """
    Enqueue chunk sync jobs for [start_date, end_date].

    All chunk jobs are submitted as one atomic batch. Raises
    InvalidDateRangeError when end_date is before start_date.
    """
    chunks = chunk_date_range(
        start_date, end_date, granularity or settings.SYNC_CHUNK_GRANULARITY
    )
    jobs = job_service.enqueue_jobs(
        db,
        [
            job_service.NewJob(
                job_type=JobType.SYNC_AD_PLATFORM,
                payload={"platform": platform.value, **chunk.to_payload()},
            )
            for chunk in chunks
        ],
    )
    logger.info(
        "Queued %s sync %s..%s as %d chunk job(s)",
        platform.value,
        start_date.isoformat(),
        end_date.isoformat(),
        len(jobs),
    )
    return QueuedSync(job_ids=[job.id for job in jobs], chunks=chunks)
