from __future__ import annotations

import datetime as dt
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.core.db.session import get_db
from backoffice.domain.cash_management.enums import AccountType
from backoffice.domain.cash_management.models.movements import CashMovement
from backoffice.domain.cash_management.schemas import (
    AccountBalanceOut,
    BankHolidayCreate,
    CashMovementOut,
    DailyCashPositionOut,
    PostingCreate,
    RebuildRequest,
)
from backoffice.domain.cash_management.services.ledger import (
    current_account_balance,
    ensure_position,
    expected_cash_amount,
    get_positions_in_range,
    mark_bank_holiday,
    post_to_position,
    rebuild_positions,
)
from backoffice.domain.stores.service import get_store


router = APIRouter(prefix="/stores/{store_id}/cash", tags=["Cash Positions"])


@router.get("/positions", response_model=list[DailyCashPositionOut])
def list_positions(
    store_id: uuid.UUID,
    date_from: dt.date = Query(...),
    date_to: dt.date = Query(...),
    db: Session = Depends(get_db),
):
    return get_positions_in_range(db, store_id=store_id, date_from=date_from, date_to=date_to)


@router.get("/positions/{business_date}", response_model=DailyCashPositionOut)
def read_position(store_id: uuid.UUID, business_date: dt.date, db: Session = Depends(get_db)):
    return ensure_position(db, store_id=store_id, business_date=business_date)


@router.post("/positions/{business_date}/bank-holiday", response_model=DailyCashPositionOut)
def set_bank_holiday(
    store_id: uuid.UUID,
    business_date: dt.date,
    payload: BankHolidayCreate,
    db: Session = Depends(get_db),
):
    return mark_bank_holiday(db, store_id=store_id, business_date=business_date, holiday_name=payload.holiday_name)


@router.post("/postings", response_model=DailyCashPositionOut)
def create_posting(store_id: uuid.UUID, payload: PostingCreate, db: Session = Depends(get_db)):
    return post_to_position(db, store_id=store_id, **payload.model_dump())


@router.post("/positions/rebuild", response_model=list[DailyCashPositionOut])
def rebuild(store_id: uuid.UUID, payload: RebuildRequest, db: Session = Depends(get_db)):
    return rebuild_positions(db, store_id=store_id, date_from=payload.date_from, date_to=payload.date_to)


@router.get("/balances/{account_type}", response_model=AccountBalanceOut)
def account_balance(
    store_id: uuid.UUID,
    account_type: AccountType,
    as_of: dt.date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if as_of is None:
        balance = current_account_balance(db, store_id=store_id, account_type=account_type)
    else:
        balance = expected_cash_amount(db, store_id=store_id, account_type=account_type, as_of=as_of)
    return AccountBalanceOut(store_id=store_id, account_type=account_type, balance=balance, as_of=as_of)


@router.get("/movements", response_model=list[CashMovementOut])
def list_movements(
    store_id: uuid.UUID,
    account_type: AccountType | None = Query(default=None),
    date_from: dt.date | None = Query(default=None),
    date_to: dt.date | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    get_store(db, store_id)
    stmt = select(CashMovement).where(CashMovement.store_id == store_id)
    if account_type is not None:
        stmt = stmt.where(CashMovement.account_type == account_type)
    if date_from is not None:
        stmt = stmt.where(CashMovement.movement_date >= date_from)
    if date_to is not None:
        stmt = stmt.where(CashMovement.movement_date <= date_to)
    stmt = stmt.order_by(CashMovement.movement_date.desc(), CashMovement.created_at.desc()).limit(limit)
    return list(db.execute(stmt).scalars().all())
