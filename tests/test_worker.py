import asyncio

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from adledger.core.config import settings
from adledger.db.base import Base
from adledger.db.enums import JobStatus, JobType
from adledger.db.models import Job
from adledger.jobs import registry
from adledger.services import job_service
from adledger.services.job_service import InvalidJobPayloadError, NewJob
from adledger import worker


@pytest.fixture
def session_factory(tmp_path):
    """File-backed SQLite so concurrent worker sessions get separate connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'worker.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def _enqueue(session_factory, platforms: list[str]) -> list:
    with session_factory() as db:
        jobs = job_service.enqueue_jobs(
            db,
            [
                NewJob(
                    job_type=JobType.SYNC_AD_PLATFORM,
                    payload={"platform": p, "start_date": "2024-01-01", "end_date": "2024-01-31"},
                )
                for p in platforms
            ],
        )
        return [job.id for job in jobs]


def _statuses(session_factory) -> dict:
    with session_factory() as db:
        return {job.id: job for job in db.scalars(select(Job))}


class RecordingHandler:
    """Fake handler recording how many jobs per queue run at once."""

    def __init__(self, fail_ids=(), permanent_ids=()):
        self.active: dict[str, int] = {}
        self.max_active: dict[str, int] = {}
        self.max_total = 0
        self.order: list = []
        self.fail_ids = set(fail_ids)
        self.permanent_ids = set(permanent_ids)

    async def __call__(self, db, job) -> None:
        queue = job.queue_name
        self.active[queue] = self.active.get(queue, 0) + 1
        self.max_active[queue] = max(self.max_active.get(queue, 0), self.active[queue])
        self.max_total = max(self.max_total, sum(self.active.values()))
        self.order.append(job.id)
        try:
            await asyncio.sleep(0.02)
            if job.id in self.permanent_ids:
                raise InvalidJobPayloadError("bad payload")
            if job.id in self.fail_ids:
                raise RuntimeError("remote exploded")
        finally:
            self.active[queue] -= 1


@pytest.mark.asyncio
async def test_jobs_sharing_a_queue_never_overlap(session_factory, monkeypatch):
    handler = RecordingHandler()
    monkeypatch.setitem(registry.JOB_HANDLERS, JobType.SYNC_AD_PLATFORM.value, handler)
    job_ids = _enqueue(session_factory, ["META", "META", "META", "TIKTOK", "TIKTOK"])

    processed = await worker.worker_loop(
        worker_id="test-worker",
        concurrency=5,
        poll_interval=0.01,
        session_factory=session_factory,
        stop_when_idle=True,
    )

    assert processed == 5
    assert handler.max_active == {"platform-sync:META": 1, "platform-sync:TIKTOK": 1}
    # the two queues do run side by side
    assert handler.max_total == 2
    meta_order = [job_id for job_id in handler.order if job_id in job_ids[:3]]
    assert meta_order == job_ids[:3]

    jobs = _statuses(session_factory)
    assert all(job.status == JobStatus.COMPLETED.value for job in jobs.values())


@pytest.mark.asyncio
async def test_failed_job_is_retried_later(session_factory, monkeypatch):
    [job_id] = _enqueue(session_factory, ["META"])
    handler = RecordingHandler(fail_ids=[job_id])
    monkeypatch.setitem(registry.JOB_HANDLERS, JobType.SYNC_AD_PLATFORM.value, handler)

    await worker.worker_loop(
        concurrency=2, poll_interval=0.01, session_factory=session_factory, stop_when_idle=True
    )

    job = _statuses(session_factory)[job_id]
    assert job.status == JobStatus.PENDING.value
    assert job.attempts == 1
    assert job.last_error == "RuntimeError: remote exploded"
    assert job.locked_by is None


@pytest.mark.asyncio
async def test_permanent_error_fails_without_retry(session_factory, monkeypatch):
    [job_id] = _enqueue(session_factory, ["META"])
    handler = RecordingHandler(permanent_ids=[job_id])
    monkeypatch.setitem(registry.JOB_HANDLERS, JobType.SYNC_AD_PLATFORM.value, handler)

    await worker.worker_loop(
        concurrency=2, poll_interval=0.01, session_factory=session_factory, stop_when_idle=True
    )

    job = _statuses(session_factory)[job_id]
    assert job.status == JobStatus.FAILED.value
    assert job.attempts == 1
    assert job.last_error == "bad payload"


@pytest.mark.asyncio
async def test_invalid_sync_payload_fails_permanently(session_factory):
    with session_factory() as db:
        job = job_service.schedule_job(
            db,
            JobType.SYNC_AD_PLATFORM,
            {"platform": "META", "start_date": "2024-02-01", "end_date": "2024-01-01"},
        )
        job_id = job.id

    await worker.worker_loop(
        concurrency=1, poll_interval=0.01, session_factory=session_factory, stop_when_idle=True
    )

    job = _statuses(session_factory)[job_id]
    assert job.status == JobStatus.FAILED.value
    assert job.attempts == 1
    assert "Invalid sync payload" in job.last_error


@pytest.mark.asyncio
async def test_unknown_job_type_is_recorded_as_failure(session_factory):
    with session_factory() as db:
        job = Job(job_type="no_such_job", payload={}, max_attempts=1)
        db.add(job)
        db.commit()
        job_id = job.id

    await worker.worker_loop(
        concurrency=1, poll_interval=0.01, session_factory=session_factory, stop_when_idle=True
    )

    job = _statuses(session_factory)[job_id]
    assert job.status == JobStatus.FAILED.value
    assert "Unknown job type" in job.last_error


@pytest.mark.asyncio
async def test_unsupported_platform_fails_permanently(session_factory):
    [job_id] = _enqueue(session_factory, ["TIKTOK"])

    await worker.worker_loop(
        concurrency=1, poll_interval=0.01, session_factory=session_factory, stop_when_idle=True
    )

    job = _statuses(session_factory)[job_id]
    assert job.status == JobStatus.FAILED.value
    assert job.attempts == 1
    assert "TIKTOK is not supported" in job.last_error


@pytest.mark.asyncio
async def test_missing_platform_token_fails_permanently(session_factory, monkeypatch):
    monkeypatch.setattr(settings, "META_ADS_TOKEN", "")
    monkeypatch.setattr(settings, "META_TEST_MODE", False)
    [job_id] = _enqueue(session_factory, ["META"])

    await worker.worker_loop(
        concurrency=1, poll_interval=0.01, session_factory=session_factory, stop_when_idle=True
    )

    job = _statuses(session_factory)[job_id]
    assert job.status == JobStatus.FAILED.value
    assert job.attempts == 1
    assert job.last_error == "META_ADS_TOKEN is not configured"
