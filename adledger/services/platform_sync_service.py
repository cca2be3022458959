"""Platform sync service: one chunk of performance data into the ledger.

Per chunk job:
- Resolve (get-or-create) the platform connection
- Discover accounts and upsert them
- Fetch daily rows at campaign, ad set and ad level in the account's timezone
- Upsert hierarchy objects, then link parents in a second pass
- Append facts in bounded batches

Any error aborts the whole chunk. Everything written before the error is
safe to keep: dimension upserts converge on retry and the ledger only ever
reads the latest fact per (object, day).
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Iterator, Sequence

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from adledger.core.config import settings
from adledger.db.enums import DEFAULT_OBJECT_STATUS, AdObjectType, Platform
from adledger.db.models import AdAccount, AdObject, PerformanceFact, PlatformConnection
from adledger.db.types import utcnow
from adledger.db.upsert import dialect_insert
from adledger.services import platform_api
from adledger.services.date_ranges import account_date_window
from adledger.services.platform_api import AdPlatformClient, PerformanceRow, RemoteAccount
from adledger.utils.money import to_minor_units

logger = logging.getLogger(__name__)

SYNC_LEVELS = (AdObjectType.CAMPAIGN, AdObjectType.AD_SET, AdObjectType.AD)

CREDENTIALS_PLACEHOLDER = {"access_token": "[STORED_IN_ENV]"}

LEAD_ACTION_TYPES = {
    "lead",
    "leadgen",
    "onsite_conversion.lead_grouped",
    "offsite_conversion.fb_pixel_lead",
}

UNKNOWN_NAMES = {
    AdObjectType.CAMPAIGN: "Unknown Campaign",
    AdObjectType.AD_SET: "Unknown Ad Set",
    AdObjectType.AD: "Unknown Ad",
}


@dataclass
class SyncSummary:
    accounts: int = 0
    objects: int = 0
    parents_linked: int = 0
    facts: int = 0
    rows_fetched: int = 0
    account_ids: list[str] = field(default_factory=list)


@dataclass
class ObjectDraft:
    """A hierarchy object as observed in fetched rows."""

    external_id: str
    type: AdObjectType
    name: str
    parent_external_id: str | None


# =============================================================================
# Connection and accounts
# =============================================================================


def get_or_create_connection(db: Session, platform: Platform) -> PlatformConnection:
    """
    Return the single connection for ``platform``, creating it on first use.

    The unique constraint on platform makes concurrent first syncs safe: the
    loser of the race rolls back and reads the winner's row.
    """
    stmt = select(PlatformConnection).where(PlatformConnection.platform == platform.value)
    connection = db.scalar(stmt)
    if connection:
        return connection

    connection = PlatformConnection(
        platform=platform.value,
        credentials=dict(CREDENTIALS_PLACEHOLDER),
    )
    db.add(connection)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        connection = db.scalar(stmt)
        if connection is None:
            raise
        return connection

    logger.info("Created %s platform connection %s", platform.value, connection.id)
    return connection


def upsert_account(
    db: Session,
    connection: PlatformConnection,
    remote: RemoteAccount,
) -> AdAccount:
    """Insert or update an ad account by (connection, external id)."""
    now = utcnow()
    stmt = dialect_insert(db, AdAccount).values(
        id=uuid.uuid4(),
        platform_connection_id=connection.id,
        external_id=remote.external_id,
        name=remote.name,
        currency=remote.currency,
        timezone=remote.timezone,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["platform_connection_id", "external_id"],
        set_={
            "name": stmt.excluded.name,
            "currency": stmt.excluded.currency,
            "timezone": stmt.excluded.timezone,
            "updated_at": now,
        },
    ).returning(AdAccount)
    return db.scalars(stmt, execution_options={"populate_existing": True}).one()


# =============================================================================
# Hierarchy objects
# =============================================================================


def collect_objects(rows: Iterable[PerformanceRow]) -> dict[str, ObjectDraft]:
    """Distinct hierarchy objects referenced by ``rows``; the first row seen wins."""
    drafts: dict[str, ObjectDraft] = {}
    for row in rows:
        if row.object_id in drafts:
            continue
        drafts[row.object_id] = ObjectDraft(
            external_id=row.object_id,
            type=row.level,
            name=row.object_name or UNKNOWN_NAMES[row.level],
            parent_external_id=row.parent_id,
        )
    return drafts


def upsert_objects(
    db: Session,
    account: AdAccount,
    drafts: dict[str, ObjectDraft],
) -> dict[str, AdObject]:
    """
    Phase one: insert or update every object by external id, without parents.

    Returns external_id -> AdObject.
    """
    resolved: dict[str, AdObject] = {}
    for draft in drafts.values():
        now = utcnow()
        stmt = dialect_insert(db, AdObject).values(
            id=uuid.uuid4(),
            ad_account_id=account.id,
            external_id=draft.external_id,
            type=draft.type.value,
            name=draft.name,
            status=DEFAULT_OBJECT_STATUS,
            parent_id=None,
            platform_data={
                "level": draft.type.value,
                "parent_external_id": draft.parent_external_id,
            },
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["ad_account_id", "external_id"],
            set_={
                "name": stmt.excluded.name,
                "type": stmt.excluded.type,
                "platform_data": stmt.excluded.platform_data,
                "updated_at": now,
            },
        ).returning(AdObject)
        obj = db.scalars(stmt, execution_options={"populate_existing": True}).one()
        resolved[draft.external_id] = obj
    return resolved


def link_parents(
    db: Session,
    account: AdAccount,
    drafts: dict[str, ObjectDraft],
    resolved: dict[str, AdObject],
) -> int:
    """
    Phase two: write parent references now that every object exists.

    Parents missing from this batch are looked up among the account's
    existing objects. A link is only written when the parent sits exactly
    one level above the child and is not the child itself.
    """
    wanted = {
        draft.parent_external_id
        for draft in drafts.values()
        if draft.parent_external_id and draft.parent_external_id not in resolved
    }
    known = dict(resolved)
    if wanted:
        for obj in db.scalars(
            select(AdObject).where(
                AdObject.ad_account_id == account.id,
                AdObject.external_id.in_(wanted),
            )
        ):
            known[obj.external_id] = obj

    updates = []
    for draft in drafts.values():
        if not draft.parent_external_id:
            continue
        child = resolved[draft.external_id]
        parent = known.get(draft.parent_external_id)
        if parent is None:
            logger.warning(
                "Parent %s of %s %s not found in account %s",
                draft.parent_external_id,
                draft.type.value,
                draft.external_id,
                account.external_id,
            )
            continue
        if parent.id == child.id:
            continue
        if AdObjectType(parent.type) != draft.type.parent_type:
            logger.warning(
                "Refusing to link %s %s under %s %s",
                draft.type.value,
                draft.external_id,
                parent.type,
                parent.external_id,
            )
            continue
        if child.parent_id != parent.id:
            updates.append({"id": child.id, "parent_id": parent.id, "updated_at": utcnow()})

    if updates:
        db.execute(update(AdObject), updates)
    return len(updates)


# =============================================================================
# Facts
# =============================================================================


def count_conversions(actions: object) -> int | None:
    """Sum lead-type action values; None when the row carries no actions."""
    if not isinstance(actions, list):
        return None
    total = 0
    for action in actions:
        if not isinstance(action, dict) or action.get("action_type") not in LEAD_ACTION_TYPES:
            continue
        try:
            total += int(float(action.get("value") or 0))
        except (TypeError, ValueError, OverflowError):
            logger.warning(
                "Skipping unparseable %s action value %r",
                action["action_type"],
                action.get("value"),
            )
    return total


def build_fact(
    row: PerformanceRow,
    ad_object_id: uuid.UUID,
    currency: str,
    collected_at: datetime,
) -> dict:
    """Map a fetched row to a performance_facts insert dict for exactly one day."""
    return {
        "ad_object_id": ad_object_id,
        "collected_at": collected_at,
        "period_start": row.day,
        "period_end": row.day,
        "amount_minor": to_minor_units(row.spend, currency),
        "currency": currency,
        "impressions": row.impressions,
        "clicks": row.clicks,
        "conversions": count_conversions(row.extras.get("actions")),
        "metrics": dict(row.extras) or None,
    }


def _batched(items: Sequence[dict], size: int) -> Iterator[Sequence[dict]]:
    size = max(size, 1)
    for start in range(0, len(items), size):
        yield items[start : start + size]


def append_facts(db: Session, facts: Sequence[dict], batch_size: int | None = None) -> int:
    """Insert facts in batches, committing after each. Facts are never updated."""
    inserted = 0
    for batch in _batched(facts, batch_size or settings.FACT_INSERT_BATCH_SIZE):
        db.execute(insert(PerformanceFact), list(batch))
        db.commit()
        inserted += len(batch)
    return inserted


# =============================================================================
# Orchestration
# =============================================================================


async def sync_account(
    db: Session,
    client: AdPlatformClient,
    connection: PlatformConnection,
    remote: RemoteAccount,
    start_date: date,
    end_date: date,
    summary: SyncSummary,
) -> None:
    """Sync one account for the requested dates."""
    account = upsert_account(db, connection, remote)
    db.commit()

    window = account_date_window(start_date, end_date, account.timezone)
    rows: list[PerformanceRow] = []
    for level in SYNC_LEVELS:
        rows.extend(await client.list_performance_rows(account.external_id, level, window))
    summary.rows_fetched += len(rows)

    drafts = collect_objects(rows)
    resolved = upsert_objects(db, account, drafts)
    db.commit()
    summary.objects += len(resolved)

    summary.parents_linked += link_parents(db, account, drafts, resolved)
    db.commit()

    collected_at = utcnow()
    facts = [
        build_fact(row, resolved[row.object_id].id, account.currency, collected_at)
        for row in rows
    ]
    summary.facts += append_facts(db, facts)

    summary.accounts += 1
    summary.account_ids.append(account.external_id)
    logger.info(
        "Synced account %s for %s..%s: %d rows, %d objects, %d facts",
        account.external_id,
        window.start.isoformat(),
        window.end.isoformat(),
        len(rows),
        len(resolved),
        len(facts),
    )


async def sync_chunk(
    db: Session,
    platform: Platform,
    start_date: date,
    end_date: date,
    client: AdPlatformClient | None = None,
) -> SyncSummary:
    """
    Run one chunk sync across every account visible to the credential.

    If ``client`` is None, one is built from settings and closed afterwards.
    """
    owns_client = client is None
    if client is None:
        client = platform_api.build_platform_client(platform)

    summary = SyncSummary()
    try:
        connection = get_or_create_connection(db, platform)
        accounts = await client.list_accounts()
        logger.info("Discovered %d %s account(s)", len(accounts), platform.value)
        for remote in accounts:
            await sync_account(db, client, connection, remote, start_date, end_date, summary)
    finally:
        if owns_client:
            await client.aclose()
    return summary
