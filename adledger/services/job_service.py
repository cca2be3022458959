"""Job service - durable background job queue.

Jobs are rows in ``jobs``. Workers claim ready jobs in (priority, run_at)
order. Jobs that carry a ``queue_name`` (their serialization key) are only
claimable while no other job of that queue is running, which is enforced
through a lock row in ``job_queues``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from adledger.core.config import settings
from adledger.db.enums import JobStatus, JobType
from adledger.db.models import Job, JobQueue
from adledger.db.types import utcnow
from adledger.db.upsert import dialect_insert
from adledger.jobs.registry import resolve_queue_name

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


class PermanentJobError(Exception):
    """Job can never succeed; it is failed without further retries."""

    pass


class InvalidJobPayloadError(PermanentJobError):
    """Job payload failed schema validation."""

    pass


@dataclass
class NewJob:
    """A job to submit through ``enqueue_jobs``."""

    job_type: JobType
    payload: dict = field(default_factory=dict)
    run_at: datetime | None = None
    max_attempts: int | None = None


def _build_job(
    db: Session,
    job_type: JobType,
    payload: dict,
    priority: int | None,
    run_at: datetime | None,
    max_attempts: int | None,
) -> Job:
    queue_name = resolve_queue_name(job_type.value, payload)
    if queue_name:
        _ensure_queue(db, queue_name)
    if priority is None:
        priority = _next_priority(db, queue_name)
    return Job(
        job_type=job_type.value,
        payload=payload,
        queue_name=queue_name,
        priority=priority,
        run_at=run_at or utcnow(),
        status=JobStatus.PENDING.value,
        attempts=0,
        max_attempts=max_attempts or settings.JOB_MAX_ATTEMPTS,
    )


def _ensure_queue(db: Session, queue_name: str) -> None:
    stmt = (
        dialect_insert(db, JobQueue)
        .values(queue_name=queue_name)
        .on_conflict_do_nothing(index_elements=[JobQueue.queue_name])
    )
    db.execute(stmt)


def _next_priority(db: Session, queue_name: str | None) -> int:
    """
    One past the highest priority ever given to a job of this queue.

    On PostgreSQL the queue row is locked first, so concurrent batches for
    the same queue number their jobs one after the other.
    """
    if queue_name and db.get_bind().dialect.name == "postgresql":
        db.execute(
            select(JobQueue.queue_name)
            .where(JobQueue.queue_name == queue_name)
            .with_for_update()
        )
    stmt = select(func.max(Job.priority)).where(
        Job.queue_name == queue_name if queue_name else Job.queue_name.is_(None)
    )
    highest = db.scalar(stmt)
    return 0 if highest is None else highest + 1


def schedule_job(
    db: Session,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
    priority: int | None = None,
    max_attempts: int | None = None,
) -> Job:
    """
    Schedule a single background job.

    If run_at is None, the job runs immediately. If priority is None, the job
    goes after every job already submitted to its queue.
    """
    job = _build_job(db, job_type, payload, priority, run_at, max_attempts)
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def enqueue_jobs(db: Session, jobs: Sequence[NewJob]) -> list[Job]:
    """
    Enqueue a batch of jobs atomically.

    Either every job is committed or none is. Each job takes the next
    priority of its queue, so jobs tend to run in submission order, within
    a batch and across batches.
    """
    created: list[Job] = []
    try:
        for new_job in jobs:
            job = _build_job(
                db,
                new_job.job_type,
                new_job.payload,
                priority=None,
                run_at=new_job.run_at,
                max_attempts=new_job.max_attempts,
            )
            db.add(job)
            db.flush()
            created.append(job)
        db.commit()
    except Exception:
        db.rollback()
        raise

    for job in created:
        db.refresh(job)
    logger.info("Enqueued %d job(s)", len(created))
    return created


def claim_pending_jobs(db: Session, worker_id: str, limit: int = 10) -> list[Job]:
    """
    Claim up to ``limit`` ready jobs for ``worker_id``.

    A job with a queue_name is claimed only together with its queue lock,
    so at most one job per queue is running at any time. Claimed jobs are
    marked running and their attempt counter is incremented.
    """
    if limit <= 0:
        return []

    now = utcnow()
    locked_queues = select(JobQueue.queue_name).where(JobQueue.locked_by.is_not(None))
    stmt = (
        select(Job)
        .where(
            Job.status == JobStatus.PENDING.value,
            Job.run_at <= now,
            or_(Job.queue_name.is_(None), Job.queue_name.not_in(locked_queues)),
        )
        .order_by(Job.priority, Job.run_at, Job.created_at)
        .limit(max(limit * 10, 50))
    )
    if db.get_bind().dialect.name == "postgresql":
        stmt = stmt.with_for_update(skip_locked=True, of=Job)

    candidates = db.scalars(stmt).all()
    claimed: list[Job] = []
    taken_queues: set[str] = set()

    for job in candidates:
        if len(claimed) >= limit:
            break
        if job.queue_name:
            if job.queue_name in taken_queues:
                continue
            lock = db.execute(
                update(JobQueue)
                .where(
                    JobQueue.queue_name == job.queue_name,
                    JobQueue.locked_by.is_(None),
                )
                .values(locked_by=worker_id, locked_at=now, job_id=job.id)
                .execution_options(synchronize_session=False)
            )
            if lock.rowcount != 1:
                continue
            taken_queues.add(job.queue_name)

        result = db.execute(
            update(Job)
            .where(Job.id == job.id, Job.status == JobStatus.PENDING.value)
            .values(
                status=JobStatus.RUNNING.value,
                attempts=Job.attempts + 1,
                locked_by=worker_id,
                locked_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            if job.queue_name:
                _release_queue_lock(db, job)
                taken_queues.discard(job.queue_name)
            continue
        claimed.append(job)

    db.commit()
    for job in claimed:
        db.refresh(job)
    return claimed


def _release_queue_lock(db: Session, job: Job) -> None:
    if not job.queue_name:
        return
    db.execute(
        update(JobQueue)
        .where(JobQueue.queue_name == job.queue_name, JobQueue.job_id == job.id)
        .values(locked_by=None, locked_at=None, job_id=None)
        .execution_options(synchronize_session=False)
    )


def compute_backoff(attempts: int) -> timedelta:
    """Exponential backoff: base * 2^(attempts-1), capped."""
    exponent = max(attempts - 1, 0)
    seconds = min(
        settings.JOB_BACKOFF_BASE_SECONDS * (2**exponent),
        settings.JOB_BACKOFF_MAX_SECONDS,
    )
    return timedelta(seconds=seconds)


def mark_job_completed(db: Session, job: Job) -> Job:
    """Mark a job as completed and release its locks."""
    job.status = JobStatus.COMPLETED.value
    job.completed_at = utcnow()
    job.last_error = None
    job.locked_by = None
    job.locked_at = None
    _release_queue_lock(db, job)
    db.commit()
    db.refresh(job)
    return job


def mark_job_failed(db: Session, job: Job, error: str, permanent: bool = False) -> Job:
    """
    Record a failure and release the job's locks.

    If the error is not permanent and attempts < max_attempts, the job goes
    back to pending with a backoff delay, keeping its original priority.
    """
    job.last_error = error[:MAX_ERROR_LENGTH]
    job.locked_by = None
    job.locked_at = None
    if permanent or job.attempts >= job.max_attempts:
        job.status = JobStatus.FAILED.value
        job.completed_at = utcnow()
    else:
        job.status = JobStatus.PENDING.value
        job.run_at = utcnow() + compute_backoff(job.attempts)
    _release_queue_lock(db, job)
    db.commit()
    db.refresh(job)
    return job


def release_stale_locks(db: Session, older_than: timedelta | None = None) -> int:
    """
    Return jobs stuck in running (crashed worker) to pending.

    Returns the number of jobs released.
    """
    cutoff = utcnow() - (older_than or timedelta(minutes=settings.JOB_LOCK_TIMEOUT_MINUTES))
    result = db.execute(
        update(Job)
        .where(Job.status == JobStatus.RUNNING.value, Job.locked_at < cutoff)
        .values(status=JobStatus.PENDING.value, locked_by=None, locked_at=None)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        update(JobQueue)
        .where(JobQueue.locked_at < cutoff)
        .values(locked_by=None, locked_at=None, job_id=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.warning("Released %d stale job lock(s)", result.rowcount)
    return result.rowcount


def get_job(db: Session, job_id: UUID) -> Job | None:
    """Get a job by ID."""
    return db.get(Job, job_id)


def list_jobs(
    db: Session,
    status: JobStatus | None = None,
    job_type: JobType | None = None,
    limit: int = 50,
) -> list[Job]:
    """List jobs, newest first, with optional filters."""
    stmt = select(Job)
    if status:
        stmt = stmt.where(Job.status == status.value)
    if job_type:
        stmt = stmt.where(Job.job_type == job_type.value)
    return list(db.scalars(stmt.order_by(Job.created_at.desc()).limit(limit)))
