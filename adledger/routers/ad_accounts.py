"""Ad account reporting endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from adledger.core.deps import get_db
from adledger.schemas.ad_accounts import AccountList, ObjectList
from adledger.services import ledger_service

router = APIRouter(prefix="/ad-accounts", tags=["ad-accounts"])


def _check_window(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise HTTPException(status_code=422, detail="end_date must be on or after start_date")


@router.get("", response_model=AccountList)
def list_accounts(
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db),
):
    """Accounts with leaf-level spend totals for the window."""
    _check_window(start_date, end_date)
    return {"data": ledger_service.get_accounts_with_spend(db, start_date, end_date)}


@router.get("/{account_id}/objects", response_model=ObjectList)
def list_objects(
    account_id: UUID,
    start_date: date = Query(...),
    end_date: date = Query(...),
    parent_id: UUID | None = Query(None, description="Parent object; omit for campaigns"),
    limit: int = Query(
        ledger_service.DEFAULT_OBJECT_LIMIT, ge=1, le=ledger_service.MAX_OBJECT_LIMIT
    ),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Children of one parent (or the account's campaigns), by spend descending."""
    _check_window(start_date, end_date)
    account = ledger_service.get_account(db, account_id)
    if not account:
        raise HTTPException(status_code=404, detail="Ad account not found")

    result = ledger_service.list_objects_with_spend(
        db,
        account_id=account_id,
        parent_id=parent_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    return {"account": account, **result}
