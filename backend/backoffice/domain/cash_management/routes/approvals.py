from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backoffice.core.db.session import get_db
from backoffice.domain.cash_management.enums import RequestKind, RequestStatus
from backoffice.domain.cash_management.schemas import (
    AdjustmentCreate,
    ApproveRequest,
    CashActivityOut,
    CashAdjustmentOut,
    CashTransferOut,
    CompleteRequest,
    RejectRequest,
    TransferCreate,
)
from backoffice.domain.cash_management.services.approvals import (
    approve,
    cash_activity,
    complete,
    list_requests,
    pending_approvals,
    reject,
    submit_adjustment,
    submit_transfer,
)


# Submission and history are store-scoped; approvers work across stores.
store_router = APIRouter(prefix="/stores/{store_id}/cash", tags=["Cash Requests"])
router = APIRouter(prefix="/cash/approvals", tags=["Cash Approvals"])

_OUT = {RequestKind.TRANSFER: CashTransferOut, RequestKind.ADJUSTMENT: CashAdjustmentOut}


def _out(kind: RequestKind, req):
    return _OUT[kind].model_validate(req)


@store_router.post("/transfers", response_model=CashTransferOut, status_code=status.HTTP_201_CREATED)
def create_transfer(store_id: uuid.UUID, payload: TransferCreate, db: Session = Depends(get_db)):
    return submit_transfer(db, store_id=store_id, **payload.model_dump())


@store_router.get("/transfers", response_model=list[CashTransferOut])
def transfers(
    store_id: uuid.UUID,
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
):
    return list_requests(db, kind=RequestKind.TRANSFER, store_id=store_id, status=status_filter)


@store_router.post("/adjustments", response_model=CashAdjustmentOut, status_code=status.HTTP_201_CREATED)
def create_adjustment(store_id: uuid.UUID, payload: AdjustmentCreate, db: Session = Depends(get_db)):
    return submit_adjustment(db, store_id=store_id, **payload.model_dump())


@store_router.get("/adjustments", response_model=list[CashAdjustmentOut])
def adjustments(
    store_id: uuid.UUID,
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
):
    return list_requests(db, kind=RequestKind.ADJUSTMENT, store_id=store_id, status=status_filter)


@store_router.get("/activity", response_model=list[CashActivityOut])
def activity(store_id: uuid.UUID, limit: int = Query(default=50, ge=1, le=500), db: Session = Depends(get_db)):
    return cash_activity(db, store_id=store_id, limit=limit)


@router.get("/{kind}/pending")
def pending(
    kind: RequestKind,
    store_id: list[uuid.UUID] | None = Query(default=None),
    db: Session = Depends(get_db),
):
    return [_out(kind, r) for r in pending_approvals(db, kind=kind, store_ids=store_id)]


@router.post("/{kind}/{request_id}/approve")
def approve_request(kind: RequestKind, request_id: uuid.UUID, payload: ApproveRequest, db: Session = Depends(get_db)):
    return _out(kind, approve(db, kind=kind, request_id=request_id, **payload.model_dump()))


@router.post("/{kind}/{request_id}/reject")
def reject_request(kind: RequestKind, request_id: uuid.UUID, payload: RejectRequest, db: Session = Depends(get_db)):
    return _out(kind, reject(db, kind=kind, request_id=request_id, **payload.model_dump()))


@router.post("/{kind}/{request_id}/complete")
def complete_request(kind: RequestKind, request_id: uuid.UUID, payload: CompleteRequest, db: Session = Depends(get_db)):
    return _out(kind, complete(db, kind=kind, request_id=request_id, **payload.model_dump()))
