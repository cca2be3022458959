"""Ad platform sync job handlers."""

from __future__ import annotations

import logging

from adledger.db.enums import Platform

logger = logging.getLogger(__name__)


def sync_queue_name(payload: dict) -> str:
    """All chunk syncs for one platform share a queue so they never overlap."""
    platform = payload.get("platform") or Platform.META.value
    return f"platform-sync:{platform}"


async def process_ad_platform_sync(db, job) -> None:
    """Run one chunk sync for the date range in the job payload."""
    from pydantic import ValidationError

    from adledger.schemas.sync import SyncChunkPayload
    from adledger.services import platform_sync_service
    from adledger.services.job_service import InvalidJobPayloadError, PermanentJobError
    from adledger.services.platform_api import PlatformConfigError

    try:
        payload = SyncChunkPayload.model_validate(job.payload or {})
    except ValidationError as e:
        raise InvalidJobPayloadError(f"Invalid sync payload: {e}") from e

    try:
        summary = await platform_sync_service.sync_chunk(
            db,
            platform=payload.platform,
            start_date=payload.start_date,
            end_date=payload.end_date,
        )
    except PlatformConfigError as e:
        raise PermanentJobError(str(e)) from e
    logger.info(
        "Sync job %s done for %s..%s: %d accounts, %d objects, %d facts",
        job.id,
        payload.start_date.isoformat(),
        payload.end_date.isoformat(),
        summary.accounts,
        summary.objects,
        summary.facts,
    )
