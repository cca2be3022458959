"""Sync endpoints: queue chunked platform syncs."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from adledger.core.deps import get_db
from adledger.schemas.sync import SyncQueued, SyncRequest, SyncResponse
from adledger.services import sync_request_service
from adledger.services.date_ranges import InvalidDateRangeError

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("", response_model=SyncResponse, status_code=202)
def start_sync(body: SyncRequest, db: Session = Depends(get_db)):
    """
    Queue a sync for [start_date, end_date].

    The caller only learns that jobs were queued; job outcomes are visible
    through the job status surface.
    """
    try:
        queued = sync_request_service.request_sync(
            db, body.start_date, body.end_date, granularity=body.granularity
        )
    except InvalidDateRangeError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return SyncResponse(data=SyncQueued(job_ids=queued.job_ids, chunks=len(queued.chunks)))
