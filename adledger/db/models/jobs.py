"""Background job models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from adledger.db.base import Base
from adledger.db.enums import DEFAULT_JOB_STATUS
from adledger.db.types import JsonBlob, utcnow


class Job(Base):
    """
    Background job for async processing.

    Used for: chunked ad platform syncs.
    Worker polls for pending jobs and processes them. Jobs that share a
    queue_name run one at a time (see JobQueue).
    """

    __tablename__ = "jobs"
    __table_args__ = (
        Index(
            "idx_jobs_pending",
            "status",
            "priority",
            "run_at",
            postgresql_where=text("status = 'pending'"),
        ),
        Index("idx_jobs_queue", "queue_name", "status"),
        Index("idx_jobs_created", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    job_type: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict] = mapped_column(JsonBlob, nullable=False, default=dict)
    # Serialization key; NULL means no ordering constraint
    queue_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    run_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_JOB_STATUS.value, nullable=False
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=25, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    locked_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)


class JobQueue(Base):
    """
    Lock row for one serialization key.

    A job with a queue_name may only run while its worker holds this row's
    lock. The lock is taken with a conditional UPDATE so two workers can
    never both win it.
    """

    __tablename__ = "job_queues"

    queue_name: Mapped[str] = mapped_column(String(100), primary_key=True)
    locked_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    job_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
