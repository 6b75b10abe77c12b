from __future__ import annotations

import datetime as dt
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backoffice.core.db.session import get_db
from backoffice.domain.reconciliation.schemas import (
    BatchReconcileRequest,
    BatchResultOut,
    PendingTransactionOut,
    ReconciledOut,
    ReconcileRequest,
    ReconciliationSummaryOut,
)
from backoffice.domain.reconciliation.services.reconciliation import (
    ReconciliationItem,
    pending_transactions,
    reconcile,
    reconcile_batch,
    summary,
)
from backoffice.domain.transactions.enums import TransactionKind


router = APIRouter(prefix="/reconciliation", tags=["Reconciliation"])


@router.get("/pending", response_model=list[PendingTransactionOut])
def pending(
    business_date: dt.date = Query(...),
    store_id: list[uuid.UUID] | None = Query(default=None),
    db: Session = Depends(get_db),
):
    return pending_transactions(db, business_date=business_date, store_ids=store_id)


@router.get("/summary", response_model=ReconciliationSummaryOut)
def reconciliation_summary(
    date_from: dt.date = Query(...),
    date_to: dt.date = Query(...),
    store_id: list[uuid.UUID] | None = Query(default=None),
    db: Session = Depends(get_db),
):
    return summary(db, date_from=date_from, date_to=date_to, store_ids=store_id)


@router.post("/batch", response_model=list[BatchResultOut])
def batch(payload: BatchReconcileRequest, db: Session = Depends(get_db)):
    items = [ReconciliationItem(**item.model_dump()) for item in payload.items]
    return reconcile_batch(db, items=items)


@router.post("/{transaction_type}/{transaction_id}", response_model=ReconciledOut)
def reconcile_one(
    transaction_type: TransactionKind,
    transaction_id: uuid.UUID,
    payload: ReconcileRequest,
    db: Session = Depends(get_db),
):
    return reconcile(db, transaction_id=transaction_id, transaction_type=transaction_type, **payload.model_dump())
