from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.core.db.audit import write_audit_event
from backoffice.core.logging import get_logger
from backoffice.domain.cash_management.enums import (
    AccountType,
    AdjustmentType,
    MovementType,
    PositionCategory,
    RequestKind,
    RequestPriority,
    RequestStatus,
)
from backoffice.domain.cash_management.models.requests import CashAdjustment, CashTransfer
from backoffice.domain.cash_management.services.ledger import _post, append_movement, current_account_balance
from backoffice.domain.stores.service import get_store
from backoffice.shared.exceptions import (
    AppError,
    InvalidTransition,
    NotFound,
    PersistenceFailure,
    ValidationFailed,
    WouldUnderflow,
)
from backoffice.shared.utils import money, sa_model_to_dict, utcnow


log = get_logger(__name__)

CashRequest = CashTransfer | CashAdjustment


def can_transition(current: RequestStatus, to_status: RequestStatus) -> tuple[bool, str | None]:
    """
    Check if a request can move to a new status.

    Returns:
        (allowed, error_message)
    """
    valid_transitions = {
        RequestStatus.PENDING: [RequestStatus.APPROVED, RequestStatus.REJECTED],
        RequestStatus.APPROVED: [RequestStatus.COMPLETED],
        RequestStatus.REJECTED: [],  # Terminal state
        RequestStatus.COMPLETED: [],  # Terminal state
    }
    if to_status not in valid_transitions.get(current, []):
        return False, f"Invalid transition: {current.value} → {to_status.value}"
    return True, None


# ---------------------------------------------------------------------------
# Per-kind behavior
# ---------------------------------------------------------------------------


def _transfer_underflow(db: Session, req: CashTransfer, amount: Decimal) -> None:
    balance = current_account_balance(db, store_id=req.store_id, account_type=AccountType.SALES_CASH)
    if balance - amount < 0:
        raise WouldUnderflow(
            f"Transfer of {amount} exceeds sales cash balance {balance}",
            account_type=AccountType.SALES_CASH.value,
            balance=balance,
            amount=amount,
        )


def _adjustment_underflow(db: Session, req: CashAdjustment, amount: Decimal) -> None:
    signed = -amount if req.adjustment_type == AdjustmentType.LOSS else amount
    balance = current_account_balance(db, store_id=req.store_id, account_type=req.account_type)
    if balance + signed < 0:
        raise WouldUnderflow(
            f"Adjustment of {signed} would take {req.account_type.value} below zero",
            account_type=req.account_type.value,
            balance=balance,
            amount=signed,
        )


def _apply_transfer(db: Session, req: CashTransfer, *, completed_by: str, now: datetime) -> None:
    amount = req.effective_amount
    description = f"Transfer to petty cash - {req.reason}" if req.reason else "Transfer to petty cash"
    _post(
        db,
        store_id=req.store_id,
        business_date=now.date(),
        category=PositionCategory.PETTY_TRANSFERS_OUT,
        amount=amount,
        movement_type=MovementType.TRANSFER,
        reference_type="cash_transfer",
        reference_id=req.id,
        description=description,
        created_by=completed_by,
    )
    append_movement(
        db,
        store_id=req.store_id,
        movement_date=now.date(),
        movement_type=MovementType.TRANSFER,
        account_type=AccountType.PETTY_CASH,
        amount=amount,
        reference_type="cash_transfer",
        reference_id=req.id,
        description="Transfer from sales cash",
        created_by=completed_by,
    )


def _apply_adjustment(db: Session, req: CashAdjustment, *, completed_by: str, now: datetime) -> None:
    description = f"{req.adjustment_type.value.replace('_', ' ').capitalize()} - {req.reason}"
    if req.account_type == AccountType.SALES_CASH:
        # Sales-cash adjustments flow through the day's other_receipts (negative for a loss).
        _post(
            db,
            store_id=req.store_id,
            business_date=now.date(),
            category=PositionCategory.OTHER_RECEIPTS,
            amount=req.signed_amount,
            movement_type=MovementType.ADJUSTMENT,
            reference_type="cash_adjustment",
            reference_id=req.id,
            description=description,
            created_by=completed_by,
        )
        return

    append_movement(
        db,
        store_id=req.store_id,
        movement_date=now.date(),
        movement_type=MovementType.ADJUSTMENT,
        account_type=req.account_type,
        amount=req.signed_amount,
        reference_type="cash_adjustment",
        reference_id=req.id,
        description=description,
        created_by=completed_by,
    )


@dataclass(frozen=True)
class _RequestHandler:
    model: type
    entity_type: str
    check_underflow: Callable[[Session, Any, Decimal], None]
    apply: Callable[..., None]


_HANDLERS: dict[RequestKind, _RequestHandler] = {
    RequestKind.TRANSFER: _RequestHandler(CashTransfer, "cash_transfer", _transfer_underflow, _apply_transfer),
    RequestKind.ADJUSTMENT: _RequestHandler(CashAdjustment, "cash_adjustment", _adjustment_underflow, _apply_adjustment),
}


def _handler(kind: RequestKind | str) -> _RequestHandler:
    try:
        return _HANDLERS[RequestKind(kind)]
    except ValueError as exc:
        raise ValidationFailed(f"Unknown request kind: {kind}", kind=str(kind)) from exc


def get_request(db: Session, *, kind: RequestKind, request_id: uuid.UUID) -> CashRequest:
    handler = _handler(kind)
    req = db.get(handler.model, request_id)
    if req is None:
        raise NotFound(f"{handler.entity_type} {request_id} not found", request_id=str(request_id))
    return req


def _require_transition(req: CashRequest, to_status: RequestStatus) -> None:
    allowed, error = can_transition(req.status, to_status)
    if not allowed:
        raise InvalidTransition(error, current_status=req.status.value, requested_status=to_status.value)


def _guarded_transition(
    db: Session,
    *,
    kind: RequestKind,
    request_id: uuid.UUID,
    from_status: RequestStatus,
    to_status: RequestStatus,
    values: dict[str, Any],
) -> None:
    """Optimistic ``UPDATE ... WHERE status = from_status``; losing a race raises."""
    handler = _handler(kind)
    model = handler.model
    result = db.execute(
        update(model)
        .where(model.id == request_id, model.status == from_status)
        .values(status=to_status, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    db.rollback()
    current = db.get(model, request_id)
    if current is None:
        raise NotFound(f"{handler.entity_type} {request_id} not found", request_id=str(request_id))
    raise InvalidTransition(
        f"Invalid transition: {current.status.value} → {to_status.value}",
        current_status=current.status.value,
        requested_status=to_status.value,
    )


def _require_positive(amount: Decimal | None, field: str) -> Decimal:
    value = money(amount)
    if value <= 0:
        raise ValidationFailed(f"{field} must be greater than zero", **{field: value})
    return value


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


def submit_transfer(
    db: Session,
    *,
    store_id: uuid.UUID,
    requested_amount: Decimal,
    requested_by: str,
    reason: str | None = None,
    priority: RequestPriority = RequestPriority.MEDIUM,
    now: datetime | None = None,
) -> CashTransfer:
    """Request moving sales cash into petty cash. The amount may not exceed the current sales cash."""
    now = now or utcnow()
    get_store(db, store_id)
    amount = _require_positive(requested_amount, "requested_amount")

    sales_balance = current_account_balance(db, store_id=store_id, account_type=AccountType.SALES_CASH)
    petty_balance = current_account_balance(db, store_id=store_id, account_type=AccountType.PETTY_CASH)
    if amount > sales_balance:
        raise ValidationFailed(
            f"Requested {amount} exceeds available sales cash {sales_balance}",
            requested_amount=amount,
            available=sales_balance,
        )

    req = CashTransfer(
        store_id=store_id,
        requested_amount=amount,
        reason=reason,
        status=RequestStatus.PENDING,
        priority=RequestPriority(priority),
        requested_by=requested_by,
        request_date=now,
        sales_cash_balance=sales_balance,
        petty_cash_balance=petty_balance,
        created_by=requested_by,
        updated_by=requested_by,
    )
    db.add(req)
    db.flush()

    write_audit_event(
        db,
        store_id=store_id,
        actor_id=requested_by,
        action="CASH_TRANSFER_SUBMITTED",
        entity_type="cash_transfer",
        entity_id=req.id,
        before=None,
        after=sa_model_to_dict(req),
    )
    db.commit()
    db.refresh(req)
    log.info("cash.transfer.submitted", store_id=str(store_id), request_id=str(req.id), amount=str(amount))
    return req


def submit_adjustment(
    db: Session,
    *,
    store_id: uuid.UUID,
    adjustment_type: AdjustmentType,
    account_type: AccountType,
    requested_amount: Decimal,
    reason: str,
    requested_by: str,
    priority: RequestPriority = RequestPriority.MEDIUM,
    now: datetime | None = None,
) -> CashAdjustment:
    """
    Request a manual correction of one cash account.

    The amount is stored as a magnitude; ``loss`` reduces the account and every
    other type adds to it. ``initial_setup`` requests are always high priority.
    """
    now = now or utcnow()
    get_store(db, store_id)
    adjustment_type = AdjustmentType(adjustment_type)
    account_type = AccountType(account_type)
    amount = _require_positive(abs(money(requested_amount)), "requested_amount")
    if not (reason or "").strip():
        raise ValidationFailed("A reason is required for cash adjustments")
    if adjustment_type == AdjustmentType.INITIAL_SETUP:
        priority = RequestPriority.HIGH

    req = CashAdjustment(
        store_id=store_id,
        adjustment_type=adjustment_type,
        account_type=account_type,
        requested_amount=amount,
        reason=reason.strip(),
        status=RequestStatus.PENDING,
        priority=RequestPriority(priority),
        requested_by=requested_by,
        request_date=now,
        current_balance_snapshot=current_account_balance(db, store_id=store_id, account_type=account_type),
        created_by=requested_by,
        updated_by=requested_by,
    )
    db.add(req)
    db.flush()

    write_audit_event(
        db,
        store_id=store_id,
        actor_id=requested_by,
        action="CASH_ADJUSTMENT_SUBMITTED",
        entity_type="cash_adjustment",
        entity_id=req.id,
        before=None,
        after=sa_model_to_dict(req),
    )
    db.commit()
    db.refresh(req)
    log.info(
        "cash.adjustment.submitted",
        store_id=str(store_id),
        request_id=str(req.id),
        adjustment_type=adjustment_type.value,
        amount=str(amount),
    )
    return req


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def approve(
    db: Session,
    *,
    kind: RequestKind,
    request_id: uuid.UUID,
    approver: str,
    approved_amount: Decimal | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> CashRequest:
    """Approve a pending request, optionally for less than was requested."""
    now = now or utcnow()
    handler = _handler(kind)
    req = get_request(db, kind=kind, request_id=request_id)
    _require_transition(req, RequestStatus.APPROVED)

    amount = _require_positive(approved_amount if approved_amount is not None else req.requested_amount, "approved_amount")
    if amount > money(req.requested_amount):
        raise ValidationFailed(
            f"Approved amount {amount} exceeds requested amount {req.requested_amount}",
            approved_amount=amount,
            requested_amount=money(req.requested_amount),
        )
    handler.check_underflow(db, req, amount)

    before = sa_model_to_dict(req)
    _guarded_transition(
        db,
        kind=kind,
        request_id=request_id,
        from_status=RequestStatus.PENDING,
        to_status=RequestStatus.APPROVED,
        values={
            "approved_amount": amount,
            "approved_by": approver,
            "approval_date": now,
            "approval_notes": notes,
            "updated_by": approver,
        },
    )
    db.refresh(req)

    write_audit_event(
        db,
        store_id=req.store_id,
        actor_id=approver,
        action=f"{handler.entity_type.upper()}_APPROVED",
        entity_type=handler.entity_type,
        entity_id=req.id,
        before=before,
        after=sa_model_to_dict(req),
    )
    db.commit()
    db.refresh(req)
    log.info("cash.request.approved", kind=RequestKind(kind).value, request_id=str(request_id), amount=str(amount))
    return req


def reject(
    db: Session,
    *,
    kind: RequestKind,
    request_id: uuid.UUID,
    approver: str,
    notes: str | None = None,
    now: datetime | None = None,
) -> CashRequest:
    now = now or utcnow()
    handler = _handler(kind)
    req = get_request(db, kind=kind, request_id=request_id)
    _require_transition(req, RequestStatus.REJECTED)

    before = sa_model_to_dict(req)
    _guarded_transition(
        db,
        kind=kind,
        request_id=request_id,
        from_status=RequestStatus.PENDING,
        to_status=RequestStatus.REJECTED,
        values={
            "approved_by": approver,
            "approval_date": now,
            "approval_notes": notes,
            "updated_by": approver,
        },
    )
    db.refresh(req)

    write_audit_event(
        db,
        store_id=req.store_id,
        actor_id=approver,
        action=f"{handler.entity_type.upper()}_REJECTED",
        entity_type=handler.entity_type,
        entity_id=req.id,
        before=before,
        after=sa_model_to_dict(req),
    )
    db.commit()
    db.refresh(req)
    log.info("cash.request.rejected", kind=RequestKind(kind).value, request_id=str(request_id))
    return req


def complete(
    db: Session,
    *,
    kind: RequestKind,
    request_id: uuid.UUID,
    completed_by: str,
    now: datetime | None = None,
) -> CashRequest:
    """
    Execute an approved request against the ledger.

    The status change, the position update and the movements commit as one unit.
    Completion is final; a mistake is reversed with a new adjustment.
    """
    now = now or utcnow()
    handler = _handler(kind)
    req = get_request(db, kind=kind, request_id=request_id)
    _require_transition(req, RequestStatus.COMPLETED)
    handler.check_underflow(db, req, req.effective_amount)

    before = sa_model_to_dict(req)
    try:
        _guarded_transition(
            db,
            kind=kind,
            request_id=request_id,
            from_status=RequestStatus.APPROVED,
            to_status=RequestStatus.COMPLETED,
            values={"completed_by": completed_by, "completed_at": now, "updated_by": completed_by},
        )
        db.refresh(req)
        handler.apply(db, req, completed_by=completed_by, now=now)

        write_audit_event(
            db,
            store_id=req.store_id,
            actor_id=completed_by,
            action=f"{handler.entity_type.upper()}_COMPLETED",
            entity_type=handler.entity_type,
            entity_id=req.id,
            before=before,
            after=sa_model_to_dict(req),
        )
        db.commit()
    except AppError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        log.error("cash.request.complete_failed", kind=RequestKind(kind).value, request_id=str(request_id), error=str(exc))
        raise PersistenceFailure("Request could not be completed; no changes were applied") from exc

    db.refresh(req)
    log.info(
        "cash.request.completed",
        kind=RequestKind(kind).value,
        request_id=str(request_id),
        amount=str(req.effective_amount),
    )
    return req


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


def list_requests(
    db: Session,
    *,
    kind: RequestKind,
    store_id: uuid.UUID,
    status: RequestStatus | None = None,
    limit: int = 100,
) -> list[CashRequest]:
    model = _handler(kind).model
    get_store(db, store_id)
    stmt = select(model).where(model.store_id == store_id)
    if status is not None:
        stmt = stmt.where(model.status == RequestStatus(status))
    stmt = stmt.order_by(model.request_date.desc()).limit(limit)
    return list(db.execute(stmt).scalars().all())


def pending_approvals(
    db: Session,
    *,
    kind: RequestKind,
    store_ids: list[uuid.UUID] | None = None,
) -> list[CashRequest]:
    """Pending requests across stores, oldest first."""
    model = _handler(kind).model
    stmt = select(model).where(model.status == RequestStatus.PENDING)
    if store_ids:
        stmt = stmt.where(model.store_id.in_(store_ids))
    stmt = stmt.order_by(model.request_date.asc())
    return list(db.execute(stmt).scalars().all())


def cash_activity(db: Session, *, store_id: uuid.UUID, limit: int = 50) -> list[dict[str, Any]]:
    """Transfers and adjustments of a store merged into one newest-first history."""
    get_store(db, store_id)
    transfers = list_requests(db, kind=RequestKind.TRANSFER, store_id=store_id, limit=limit)
    adjustments = list_requests(db, kind=RequestKind.ADJUSTMENT, store_id=store_id, limit=limit)

    items: list[dict[str, Any]] = []
    for t in transfers:
        items.append(
            {
                "kind": RequestKind.TRANSFER,
                "id": t.id,
                "status": t.status,
                "priority": t.priority,
                "account_type": AccountType.SALES_CASH,
                "amount": money(t.effective_amount),
                "reason": t.reason,
                "requested_by": t.requested_by,
                "request_date": t.request_date,
                "approved_by": t.approved_by,
                "completed_at": t.completed_at,
            }
        )
    for a in adjustments:
        items.append(
            {
                "kind": RequestKind.ADJUSTMENT,
                "id": a.id,
                "status": a.status,
                "priority": a.priority,
                "account_type": a.account_type,
                "adjustment_type": a.adjustment_type,
                "amount": money(a.signed_amount),
                "reason": a.reason,
                "requested_by": a.requested_by,
                "request_date": a.request_date,
                "approved_by": a.approved_by,
                "completed_at": a.completed_at,
            }
        )
    items.sort(key=lambda i: i["request_date"], reverse=True)
    return items[:limit]
