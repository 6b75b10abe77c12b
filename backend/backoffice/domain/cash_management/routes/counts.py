from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from backoffice.core.db.session import get_db
from backoffice.domain.cash_management.enums import CountType
from backoffice.domain.cash_management.schemas import CashCountCreate, CashCountOut
from backoffice.domain.cash_management.services.counts import get_latest_count, record_cash_count


router = APIRouter(prefix="/stores/{store_id}/cash/counts", tags=["Cash Counts"])


@router.post("", response_model=CashCountOut, status_code=status.HTTP_201_CREATED)
def create_count(store_id: uuid.UUID, payload: CashCountCreate, db: Session = Depends(get_db)):
    return record_cash_count(db, store_id=store_id, **payload.model_dump())


@router.get("/latest/{count_type}", response_model=CashCountOut)
def latest_count(store_id: uuid.UUID, count_type: CountType, db: Session = Depends(get_db)):
    count = get_latest_count(db, store_id=store_id, count_type=count_type)
    if count is None:
        raise HTTPException(status_code=404, detail="No cash count recorded")
    return count
