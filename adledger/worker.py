"""
Background worker for processing scheduled jobs.

Usage:
    adledger worker            # run forever
    adledger worker --drain    # exit once no ready job is left

The worker polls for ready jobs, claims up to WORKER_CONCURRENCY of them and
runs each in its own database session. Jobs sharing a queue name never run
at the same time, whatever the concurrency.
"""

import asyncio
import logging
import os
import socket
import uuid
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from adledger.core.config import settings
from adledger.core.error_tracking import init_error_tracking, report_exception
from adledger.core.structured_logging import build_log_context, configure_logging
from adledger.db.models import Job
from adledger.db.session import SessionLocal
from adledger.jobs.registry import resolve_job_handler
from adledger.services import job_service
from adledger.services.job_service import PermanentJobError

logger = logging.getLogger(__name__)


def new_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


async def process_job(db: Session, job: Job) -> None:
    """Process a single job based on its type."""
    logger.info(
        "Processing job %s (type=%s, attempt=%s)",
        job.id,
        job.job_type,
        job.attempts,
    )
    handler = resolve_job_handler(job.job_type)
    await handler(db, job)


async def run_claimed_job(
    job_id: UUID,
    worker_id: str,
    session_factory: sessionmaker = SessionLocal,
) -> None:
    """Run one claimed job and record its outcome."""
    with session_factory() as db:
        job = db.get(Job, job_id)
        if job is None:
            logger.warning("Claimed job %s disappeared", job_id)
            return

        context = build_log_context(
            job_id=str(job.id),
            job_type=job.job_type,
            worker_id=worker_id,
            queue_name=job.queue_name,
            attempt=job.attempts,
        )
        try:
            await process_job(db, job)
        except PermanentJobError as e:
            db.rollback()
            job_service.mark_job_failed(db, job, str(e), permanent=True)
            logger.error("Job %s failed permanently: %s", job_id, e, extra=context)
        except Exception as e:
            db.rollback()
            job_service.mark_job_failed(db, job, f"{type(e).__name__}: {e}")
            logger.exception(
                "Job %s failed (attempt %s/%s)",
                job_id,
                job.attempts,
                job.max_attempts,
                extra=context,
            )
        else:
            job_service.mark_job_completed(db, job)
            logger.info("Job %s completed successfully", job_id, extra=context)


async def worker_loop(
    *,
    worker_id: str | None = None,
    concurrency: int | None = None,
    poll_interval: float | None = None,
    session_factory: sessionmaker = SessionLocal,
    stop_when_idle: bool = False,
) -> int:
    """
    Main worker loop - claims and processes ready jobs.

    Returns the number of jobs processed (only reached with stop_when_idle).
    """
    worker_id = worker_id or new_worker_id()
    concurrency = max(concurrency or settings.WORKER_CONCURRENCY, 1)
    poll_interval = settings.WORKER_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval

    logger.info(
        "Worker %s starting (concurrency: %d, poll interval: %ss)",
        worker_id,
        concurrency,
        poll_interval,
    )
    with session_factory() as db:
        job_service.release_stale_locks(db)

    in_flight: set[asyncio.Task] = set()
    processed = 0

    while True:
        claimed_ids: list[UUID] = []
        capacity = concurrency - len(in_flight)
        if capacity > 0:
            try:
                with session_factory() as db:
                    claimed = job_service.claim_pending_jobs(db, worker_id, limit=capacity)
                    claimed_ids = [job.id for job in claimed]
            except Exception:
                logger.exception("Error claiming jobs", extra=build_log_context(worker_id=worker_id))

        for job_id in claimed_ids:
            in_flight.add(
                asyncio.create_task(run_claimed_job(job_id, worker_id, session_factory))
            )

        if stop_when_idle and not in_flight:
            break

        if in_flight:
            done, _ = await asyncio.wait(
                in_flight, timeout=poll_interval, return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                in_flight.discard(task)
                processed += 1
                if task.exception():
                    logger.error("Job task crashed: %r", task.exception())
        else:
            await asyncio.sleep(poll_interval)

    logger.info("Worker %s idle, %d job(s) processed", worker_id, processed)
    return processed


def main(drain: bool = False) -> None:
    """Entry point for the worker."""
    configure_logging()
    init_error_tracking()
    try:
        asyncio.run(worker_loop(stop_when_idle=drain))
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        report_exception()
        logger.exception("Worker crashed", extra=build_log_context(worker_id="main"))
        raise


if __name__ == "__main__":
    main()
