"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from adledger.db.enums import JobType
from adledger.jobs.handlers import platform_sync

JobHandler = Callable[[object, object], Awaitable[None]]
QueueNameResolver = Callable[[dict], "str | None"]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.SYNC_AD_PLATFORM.value: platform_sync.process_ad_platform_sync,
}

# Job types listed here run one at a time per returned queue name
JOB_QUEUE_NAMES: Mapping[str, QueueNameResolver] = {
    JobType.SYNC_AD_PLATFORM.value: platform_sync.sync_queue_name,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler


def resolve_queue_name(job_type: str, payload: dict | None) -> str | None:
    resolver = JOB_QUEUE_NAMES.get(job_type)
    if not resolver:
        return None
    return resolver(payload or {})
