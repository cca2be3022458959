"""Ad platform models: connections, accounts, hierarchy objects, facts."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from adledger.db.base import Base
from adledger.db.types import BigIntIdentity, JsonBlob, utcnow


class PlatformConnection(Base):
    """
    One credentialed integration per platform.

    credentials only ever holds a placeholder; the real token is read from
    settings at sync time.
    """

    __tablename__ = "platform_connections"
    __table_args__ = (
        UniqueConstraint("platform", name="uq_platform_connections_platform"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    credentials: Mapped[dict] = mapped_column(JsonBlob, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )

    ad_accounts: Mapped[list["AdAccount"]] = relationship(
        back_populates="platform_connection", cascade="all, delete-orphan"
    )


class AdAccount(Base):
    """Advertising account discovered under a connection."""

    __tablename__ = "ad_accounts"
    __table_args__ = (
        UniqueConstraint(
            "platform_connection_id", "external_id", name="uq_ad_accounts_connection_external"
        ),
        Index("idx_ad_accounts_connection", "platform_connection_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    platform_connection_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("platform_connections.id", ondelete="CASCADE"),
        nullable=False,
    )
    external_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )

    platform_connection: Mapped[PlatformConnection] = relationship(
        back_populates="ad_accounts"
    )


class AdObject(Base):
    """
    Campaign, ad set or ad.

    Parent links are written in a second pass after every object of a sync
    batch exists, so rows can be inserted in any order.
    """

    __tablename__ = "ad_objects"
    __table_args__ = (
        UniqueConstraint("ad_account_id", "external_id", name="uq_ad_objects_account_external"),
        CheckConstraint("parent_id IS NULL OR parent_id <> id", name="ck_ad_objects_not_self_parent"),
        Index("idx_ad_objects_account", "ad_account_id"),
        Index("idx_ad_objects_parent", "parent_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ad_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("ad_accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    external_id: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # ACTIVE, PAUSED, ARCHIVED, DELETED
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("ad_objects.id", ondelete="CASCADE"),
        nullable=True,
    )
    platform_data: Mapped[dict | None] = mapped_column(JsonBlob, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )


class PerformanceFact(Base):
    """
    Append-only daily performance row.

    Never updated or deleted. A correction is a new row for the same
    (ad_object_id, period_start) with a later collected_at; readers keep
    only the latest one.
    """

    __tablename__ = "performance_facts"
    __table_args__ = (
        Index("idx_performance_facts_latest", "ad_object_id", "period_start", "collected_at"),
        Index("idx_performance_facts_collected", "collected_at"),
    )

    id: Mapped[int] = mapped_column(BigIntIdentity, primary_key=True, autoincrement=True)
    ad_object_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("ad_objects.id", ondelete="CASCADE"),
        nullable=False,
    )
    collected_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    impressions: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    clicks: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    conversions: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    metrics: Mapped[dict | None] = mapped_column(JsonBlob, nullable=True)
