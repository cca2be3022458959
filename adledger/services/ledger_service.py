"""Ledger read side: current facts and spend rollups.

Facts are append-only, so every read first keeps only the latest collected
row per (ad_object_id, period_start) and discards the rest. Summing across
collection times would count revisions twice.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session, aliased

from adledger.db.enums import LEAF_OBJECT_TYPE
from adledger.db.models import AdAccount, AdObject, PerformanceFact, PlatformConnection
from adledger.utils.money import to_major_units

# Object listing limits
DEFAULT_OBJECT_LIMIT = 50
MAX_OBJECT_LIMIT = 100


def latest_facts_subquery(start_date: date, end_date: date):
    """
    Latest fact per (ad_object_id, period_start) within [start_date, end_date].

    Ties on collected_at are broken by the higher row id.
    """
    ranked = (
        select(
            PerformanceFact.ad_object_id,
            PerformanceFact.period_start,
            PerformanceFact.amount_minor,
            PerformanceFact.impressions,
            PerformanceFact.clicks,
            PerformanceFact.conversions,
            func.row_number()
            .over(
                partition_by=(PerformanceFact.ad_object_id, PerformanceFact.period_start),
                order_by=(PerformanceFact.collected_at.desc(), PerformanceFact.id.desc()),
            )
            .label("rn"),
        )
        .where(
            PerformanceFact.period_start >= start_date,
            PerformanceFact.period_start <= end_date,
        )
        .subquery("ranked_facts")
    )
    return (
        select(
            ranked.c.ad_object_id,
            ranked.c.period_start,
            ranked.c.amount_minor,
            ranked.c.impressions,
            ranked.c.clicks,
            ranked.c.conversions,
        )
        .where(ranked.c.rn == 1)
        .subquery("latest_facts")
    )


def get_current_fact(db: Session, ad_object_id: UUID, day: date) -> PerformanceFact | None:
    """Return the latest collected fact for one object and day."""
    return db.scalar(
        select(PerformanceFact)
        .where(
            PerformanceFact.ad_object_id == ad_object_id,
            PerformanceFact.period_start == day,
        )
        .order_by(PerformanceFact.collected_at.desc(), PerformanceFact.id.desc())
        .limit(1)
    )


def compute_ratios(
    spend_minor: int,
    impressions: int,
    clicks: int,
    currency: str | None = None,
) -> dict[str, float]:
    """
    CTR (%), CPC and CPM in major currency units.

    Each ratio is 0 when its denominator is 0.
    """
    spend = to_major_units(spend_minor, currency)
    return {
        "ctr": (clicks / impressions) * 100 if impressions > 0 else 0.0,
        "cpc": spend / clicks if clicks > 0 else 0.0,
        "cpm": (spend / impressions) * 1000 if impressions > 0 else 0.0,
    }


def get_accounts_with_spend(db: Session, start_date: date, end_date: date) -> list[dict]:
    """
    Account totals for the window.

    Only leaf (ad level) facts are summed, since the platform reports the
    same spend again at ad set and campaign level.
    """
    latest = latest_facts_subquery(start_date, end_date)
    spend = func.coalesce(func.sum(latest.c.amount_minor), 0)
    impressions = func.coalesce(func.sum(latest.c.impressions), 0)
    clicks = func.coalesce(func.sum(latest.c.clicks), 0)

    stmt = (
        select(
            AdAccount.id,
            AdAccount.external_id,
            AdAccount.name,
            AdAccount.currency,
            AdAccount.timezone,
            PlatformConnection.platform,
            spend.label("spend_minor"),
            impressions.label("impressions"),
            clicks.label("clicks"),
        )
        .join(PlatformConnection, AdAccount.platform_connection_id == PlatformConnection.id)
        .outerjoin(
            AdObject,
            and_(
                AdObject.ad_account_id == AdAccount.id,
                AdObject.type == LEAF_OBJECT_TYPE.value,
            ),
        )
        .outerjoin(latest, latest.c.ad_object_id == AdObject.id)
        .group_by(
            AdAccount.id,
            AdAccount.external_id,
            AdAccount.name,
            AdAccount.currency,
            AdAccount.timezone,
            PlatformConnection.platform,
        )
        .order_by(AdAccount.name, AdAccount.external_id)
    )

    results = []
    for row in db.execute(stmt):
        spend_minor = int(row.spend_minor)
        results.append(
            {
                "id": row.id,
                "external_id": row.external_id,
                "name": row.name,
                "platform": row.platform,
                "currency": row.currency,
                "timezone": row.timezone,
                "spend_minor": spend_minor,
                "spend": to_major_units(spend_minor, row.currency),
                "impressions": int(row.impressions),
                "clicks": int(row.clicks),
            }
        )
    return results


def get_account(db: Session, account_id: UUID) -> dict | None:
    """Account info for breadcrumbs and existence checks."""
    row = db.execute(
        select(
            AdAccount.id,
            AdAccount.external_id,
            AdAccount.name,
            AdAccount.currency,
            AdAccount.timezone,
            PlatformConnection.platform,
        )
        .join(PlatformConnection, AdAccount.platform_connection_id == PlatformConnection.id)
        .where(AdAccount.id == account_id)
    ).first()
    if row is None:
        return None
    return dict(row._mapping)


def list_objects_with_spend(
    db: Session,
    account_id: UUID,
    parent_id: UUID | None,
    start_date: date,
    end_date: date,
    limit: int | None = None,
    offset: int = 0,
) -> dict:
    """
    Immediate children of ``parent_id`` (roots when None) with spend totals.

    Sorted by spend descending, each row carries its parent's name and type.

    Returns:
        {"data": [...], "pagination": {"total", "limit", "offset", "has_more"}}
    """
    limit = max(1, min(limit or DEFAULT_OBJECT_LIMIT, MAX_OBJECT_LIMIT))
    offset = max(offset, 0)

    currency = db.scalar(select(AdAccount.currency).where(AdAccount.id == account_id))
    scope = [
        AdObject.ad_account_id == account_id,
        AdObject.parent_id.is_(None) if parent_id is None else AdObject.parent_id == parent_id,
    ]
    total = db.scalar(select(func.count()).select_from(AdObject).where(*scope)) or 0

    latest = latest_facts_subquery(start_date, end_date)
    parent = aliased(AdObject, name="parent_obj")
    spend = func.coalesce(func.sum(latest.c.amount_minor), 0)

    stmt = (
        select(
            AdObject.id,
            AdObject.external_id,
            AdObject.type,
            AdObject.name,
            AdObject.status,
            AdObject.parent_id,
            parent.name.label("parent_name"),
            parent.type.label("parent_type"),
            spend.label("spend_minor"),
            func.coalesce(func.sum(latest.c.impressions), 0).label("impressions"),
            func.coalesce(func.sum(latest.c.clicks), 0).label("clicks"),
            func.coalesce(func.sum(latest.c.conversions), 0).label("conversions"),
        )
        .outerjoin(parent, AdObject.parent_id == parent.id)
        .outerjoin(latest, latest.c.ad_object_id == AdObject.id)
        .where(*scope)
        .group_by(
            AdObject.id,
            AdObject.external_id,
            AdObject.type,
            AdObject.name,
            AdObject.status,
            AdObject.parent_id,
            parent.name,
            parent.type,
        )
        .order_by(spend.desc(), AdObject.name, AdObject.id)
        .limit(limit)
        .offset(offset)
    )

    data = []
    for row in db.execute(stmt):
        spend_minor = int(row.spend_minor)
        impressions = int(row.impressions)
        clicks = int(row.clicks)
        data.append(
            {
                "id": row.id,
                "external_id": row.external_id,
                "type": row.type,
                "name": row.name,
                "status": row.status,
                "parent_id": row.parent_id,
                "parent_name": row.parent_name,
                "parent_type": row.parent_type,
                "spend_minor": spend_minor,
                "spend": to_major_units(spend_minor, currency),
                "impressions": impressions,
                "clicks": clicks,
                "conversions": int(row.conversions),
                **compute_ratios(spend_minor, impressions, clicks, currency),
            }
        )

    return {
        "data": data,
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(data) < total,
        },
    }
