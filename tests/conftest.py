"""
Test configuration and fixtures.

Provides:
- Database session over an in-memory SQLite engine (schema per test)
- HTTPX AsyncClient with get_db overridden
- An in-memory fake ad platform client
"""
import os
from datetime import date
from typing import AsyncGenerator, Generator

# Must be set before adledger.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("META_TEST_MODE", "False")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from adledger.core.deps import get_db
from adledger.db.base import Base
from adledger.db.enums import AdObjectType, Platform
from adledger.db.session import SessionLocal, engine
from adledger.main import app
from adledger.services.date_ranges import DateRange
from adledger.services.platform_api import PerformanceRow, RemoteAccount

import adledger.db.models  # noqa: F401


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema and session for each test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient for the FastAPI app, sharing the test session."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as c:
        yield c

    app.dependency_overrides.clear()


# =============================================================================
# Fake platform
# =============================================================================

class FakePlatformClient:
    """
    In-memory AdPlatformClient.

    ``rows`` maps (account external id, level) to rows; only rows whose day
    falls inside the requested window are returned. Every call is recorded.
    """

    platform = Platform.META

    def __init__(
        self,
        accounts: list[RemoteAccount],
        rows: dict[tuple[str, AdObjectType], list[PerformanceRow]] | None = None,
        fail_with: Exception | None = None,
    ):
        self.accounts = accounts
        self.rows = rows or {}
        self.fail_with = fail_with
        self.calls: list[tuple[str, AdObjectType, DateRange]] = []
        self.closed = False

    async def list_accounts(self) -> list[RemoteAccount]:
        return list(self.accounts)

    async def list_performance_rows(self, account_external_id, level, window):
        self.calls.append((account_external_id, level, window))
        if self.fail_with is not None:
            raise self.fail_with
        return [
            row
            for row in self.rows.get((account_external_id, level), [])
            if window.start <= row.day <= window.end
        ]

    async def aclose(self) -> None:
        self.closed = True


def make_row(
    level: AdObjectType,
    object_id: str,
    day: date,
    spend: str = "10.00",
    impressions: int = 1000,
    clicks: int = 10,
    parent_id: str | None = None,
    name: str | None = None,
    extras: dict | None = None,
) -> PerformanceRow:
    return PerformanceRow(
        level=level,
        day=day,
        object_id=object_id,
        object_name=name or f"{level.value} {object_id}",
        parent_id=parent_id,
        spend=spend,
        impressions=impressions,
        clicks=clicks,
        extras=extras or {},
    )


@pytest.fixture
def utc_account() -> RemoteAccount:
    return RemoteAccount(external_id="111", name="Main Account", currency="USD", timezone="UTC")


@pytest.fixture
def fake_platform(utc_account: RemoteAccount) -> FakePlatformClient:
    """One UTC account with a campaign > ad set > two ads tree on 2024-01-15."""
    day = date(2024, 1, 15)
    return FakePlatformClient(
        accounts=[utc_account],
        rows={
            ("111", AdObjectType.CAMPAIGN): [
                make_row(AdObjectType.CAMPAIGN, "c1", day, spend="30.00", impressions=3000, clicks=30),
            ],
            ("111", AdObjectType.AD_SET): [
                make_row(AdObjectType.AD_SET, "s1", day, spend="30.00", impressions=3000, clicks=30, parent_id="c1"),
            ],
            ("111", AdObjectType.AD): [
                make_row(AdObjectType.AD, "a1", day, spend="20.00", impressions=2000, clicks=20, parent_id="s1"),
                make_row(AdObjectType.AD, "a2", day, spend="10.00", impressions=1000, clicks=10, parent_id="s1"),
            ],
        },
    )
