from __future__ import annotations

import datetime as dt
import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backoffice.core.db.session import get_db
from backoffice.domain.cash_management.schemas import (
    CashDepositDetailOut,
    CashDepositOut,
    DailyCashPositionOut,
    DepositCreate,
    PendingDepositSummaryOut,
    VarianceToleranceOut,
)
from backoffice.domain.cash_management.services.deposits import (
    create_multi_day_deposit,
    get_deposit,
    get_pending_positions,
    list_deposits,
    pending_deposit_summary,
    variance_tolerance,
)


router = APIRouter(prefix="/stores/{store_id}/cash/deposits", tags=["Cash Deposits"])


@router.get("/pending", response_model=list[DailyCashPositionOut])
def pending_positions(
    store_id: uuid.UUID,
    max_days: int | None = Query(default=None, ge=1, le=366),
    db: Session = Depends(get_db),
):
    return get_pending_positions(db, store_id=store_id, max_days=max_days)


@router.get("/pending/summary", response_model=PendingDepositSummaryOut)
def pending_summary(store_id: uuid.UUID, db: Session = Depends(get_db)):
    return pending_deposit_summary(db, store_id=store_id)


@router.get("/tolerance", response_model=VarianceToleranceOut)
def tolerance(store_id: uuid.UUID, days: int = Query(ge=1)):
    return VarianceToleranceOut(days_included=days, tolerance=variance_tolerance(days))


@router.post("", response_model=CashDepositDetailOut, status_code=status.HTTP_201_CREATED)
def create_deposit(store_id: uuid.UUID, payload: DepositCreate, db: Session = Depends(get_db)):
    deposit = create_multi_day_deposit(db, store_id=store_id, **payload.model_dump())
    return get_deposit(db, store_id=store_id, deposit_id=deposit.id)


@router.get("", response_model=list[CashDepositOut])
def deposits(
    store_id: uuid.UUID,
    date_from: dt.date | None = Query(default=None),
    date_to: dt.date | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return list_deposits(db, store_id=store_id, date_from=date_from, date_to=date_to, limit=limit)


@router.get("/{deposit_id}", response_model=CashDepositDetailOut)
def deposit_detail(store_id: uuid.UUID, deposit_id: uuid.UUID, db: Session = Depends(get_db)):
    return get_deposit(db, store_id=store_id, deposit_id=deposit_id)
