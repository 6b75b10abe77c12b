from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.core.db.audit import write_audit_event
from backoffice.core.logging import get_logger
from backoffice.domain.stores.service import store_names
from backoffice.domain.transactions.enums import (
    GiftVoucherStatus,
    ReconciliationSource,
    ReconciliationStatus,
    TransactionKind,
)
from backoffice.domain.transactions.models import Expense, GiftVoucher, HandBill, Sale, SalesOrder, SalesReturn
from backoffice.shared.exceptions import AlreadyReconciled, AppError, NotFound, PersistenceFailure, ValidationFailed
from backoffice.shared.utils import money, sa_model_to_dict, utcnow


log = get_logger(__name__)


@dataclass(frozen=True)
class TransactionHandler:
    """How one transaction kind is read and described for reconciliation."""

    kind: TransactionKind
    model: type
    date_column: str
    amount_column: str
    describe: Callable[[Any], str]
    tender_column: str | None = None
    image_column: str | None = None
    extra_pending_filter: Callable[[], Any] | None = None

    def column(self, name: str):
        return getattr(self.model, name)

    def pending_clause(self):
        clause = self.model.reconciliation_status == ReconciliationStatus.PENDING
        if self.extra_pending_filter is not None:
            clause = clause & self.extra_pending_filter()
        return clause


def _join(*parts: str | None) -> str:
    return " - ".join(p for p in parts if p)


HANDLERS: dict[TransactionKind, TransactionHandler] = {
    TransactionKind.SALE: TransactionHandler(
        kind=TransactionKind.SALE,
        model=Sale,
        date_column="sale_date",
        amount_column="amount",
        tender_column="tender_type",
        describe=lambda row: _join("Sale", row.tender_type.value, row.notes),
    ),
    TransactionKind.EXPENSE: TransactionHandler(
        kind=TransactionKind.EXPENSE,
        model=Expense,
        date_column="expense_date",
        amount_column="amount",
        image_column="voucher_image_url",
        describe=lambda row: _join(row.category, row.description),
    ),
    TransactionKind.RETURN: TransactionHandler(
        kind=TransactionKind.RETURN,
        model=SalesReturn,
        date_column="return_date",
        amount_column="return_amount",
        tender_column="refund_method",
        describe=lambda row: _join("Return", row.original_bill_reference, row.reason),
    ),
    TransactionKind.HAND_BILL: TransactionHandler(
        kind=TransactionKind.HAND_BILL,
        model=HandBill,
        date_column="bill_date",
        amount_column="total_amount",
        tender_column="tender_type",
        image_column="image_url",
        describe=lambda row: _join("Hand Bill", row.bill_number),
    ),
    TransactionKind.GIFT_VOUCHER: TransactionHandler(
        kind=TransactionKind.GIFT_VOUCHER,
        model=GiftVoucher,
        date_column="issued_date",
        amount_column="amount",
        tender_column="tender_type",
        describe=lambda row: _join("Gift Voucher", row.voucher_number),
        # Only live vouchers are awaiting reconciliation.
        extra_pending_filter=lambda: GiftVoucher.status == GiftVoucherStatus.ACTIVE,
    ),
    TransactionKind.SALES_ORDER: TransactionHandler(
        kind=TransactionKind.SALES_ORDER,
        model=SalesOrder,
        date_column="order_date",
        amount_column="advance_amount",
        tender_column="tender_type",
        describe=lambda row: _join("Sales Order", row.order_number, row.customer_name),
    ),
}


def get_handler(transaction_type: TransactionKind | str) -> TransactionHandler:
    try:
        return HANDLERS[TransactionKind(transaction_type)]
    except ValueError as exc:
        raise ValidationFailed(
            f"Unknown transaction type: {transaction_type}",
            transaction_type=str(transaction_type),
            supported=[k.value for k in TransactionKind],
        ) from exc


def _source(source: ReconciliationSource | str) -> ReconciliationSource:
    try:
        return ReconciliationSource(source)
    except ValueError as exc:
        raise ValidationFailed(
            f"Unknown reconciliation source: {source}",
            source=str(source),
            supported=[s.value for s in ReconciliationSource],
        ) from exc


@dataclass
class PendingTransaction:
    id: uuid.UUID
    type: TransactionKind
    date: date
    amount: Decimal
    description: str
    store_id: uuid.UUID
    store_name: str | None
    status: ReconciliationStatus
    created_at: datetime
    tender_type: str | None = None
    image_url: str | None = None


@dataclass
class ReconciliationItem:
    id: uuid.UUID
    type: TransactionKind | str
    reconciled_by: str
    source: ReconciliationSource | None = None
    notes: str | None = None
    external_reference: str | None = None


@dataclass
class ReconciliationResult:
    id: uuid.UUID
    type: str
    success: bool
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


def pending_transactions(
    db: Session,
    *,
    business_date: date,
    store_ids: list[uuid.UUID] | None = None,
) -> list[PendingTransaction]:
    """Unreconciled transactions of every kind for one business date, oldest first."""
    found: list[tuple[TransactionHandler, Any]] = []
    for handler in HANDLERS.values():
        model = handler.model
        stmt = select(model).where(handler.column(handler.date_column) == business_date, handler.pending_clause())
        if store_ids:
            stmt = stmt.where(model.store_id.in_(store_ids))
        found.extend((handler, row) for row in db.execute(stmt).scalars().all())

    names = store_names(db, {row.store_id for _, row in found})
    items = []
    for handler, row in found:
        tender = getattr(row, handler.tender_column) if handler.tender_column else None
        items.append(
            PendingTransaction(
                id=row.id,
                type=handler.kind,
                date=getattr(row, handler.date_column),
                amount=money(getattr(row, handler.amount_column)),
                description=handler.describe(row),
                store_id=row.store_id,
                store_name=names.get(row.store_id),
                status=row.reconciliation_status,
                created_at=row.created_at,
                tender_type=tender.value if tender is not None else None,
                image_url=getattr(row, handler.image_column) if handler.image_column else None,
            )
        )
    items.sort(key=lambda t: (t.created_at, str(t.id)))
    return items


def _reconcile_one(
    db: Session,
    *,
    transaction_id: uuid.UUID,
    transaction_type: TransactionKind | str,
    reconciled_by: str,
    source: ReconciliationSource,
    notes: str | None,
    external_reference: str | None,
    now: datetime,
):
    handler = get_handler(transaction_type)
    model = handler.model
    if not (reconciled_by or "").strip():
        raise ValidationFailed("reconciled_by is required")
    source = _source(source)

    result = db.execute(
        update(model)
        .where(model.id == transaction_id, handler.pending_clause())
        .values(
            reconciliation_status=ReconciliationStatus.RECONCILED,
            reconciled_by=reconciled_by,
            reconciled_at=now,
            reconciliation_source=source,
            reconciliation_notes=notes,
            external_reference=external_reference,
            updated_by=reconciled_by,
        )
        .execution_options(synchronize_session=False)
    )
    row = db.get(model, transaction_id)
    if result.rowcount != 1:
        db.rollback()
        if row is None:
            raise NotFound(
                f"{handler.kind.value} {transaction_id} not found",
                transaction_id=str(transaction_id),
                transaction_type=handler.kind.value,
            )
        if row.reconciliation_status == ReconciliationStatus.PENDING:
            # Still unreconciled but filtered out, e.g. a redeemed gift voucher.
            status = getattr(row, "status", None)
            raise ValidationFailed(
                f"{handler.kind.value} {transaction_id} is not awaiting reconciliation",
                transaction_id=str(transaction_id),
                transaction_type=handler.kind.value,
                status=status.value if status is not None else None,
            )
        raise AlreadyReconciled(
            f"{handler.kind.value} {transaction_id} is already reconciled",
            transaction_id=str(transaction_id),
            transaction_type=handler.kind.value,
            reconciled_by=row.reconciled_by,
            reconciled_at=row.reconciled_at.isoformat() if row.reconciled_at else None,
        )

    db.refresh(row)
    write_audit_event(
        db,
        store_id=row.store_id,
        actor_id=reconciled_by,
        action="TRANSACTION_RECONCILED",
        entity_type=handler.kind.value,
        entity_id=row.id,
        before={"reconciliation_status": ReconciliationStatus.PENDING.value},
        after=sa_model_to_dict(row),
    )
    db.commit()
    db.refresh(row)
    return row


def reconcile(
    db: Session,
    *,
    transaction_id: uuid.UUID,
    transaction_type: TransactionKind | str,
    reconciled_by: str,
    source: ReconciliationSource | None = None,
    notes: str | None = None,
    external_reference: str | None = None,
    now: datetime | None = None,
):
    """
    Mark one transaction reconciled.

    The update only matches rows still pending, so a second attempt (or a
    concurrent one) fails with ``AlreadyReconciled`` instead of overwriting the
    first reconciliation.
    """
    try:
        row = _reconcile_one(
            db,
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            reconciled_by=reconciled_by,
            source=source or ReconciliationSource.MANUAL,
            notes=notes,
            external_reference=external_reference,
            now=now or utcnow(),
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure("Reconciliation could not be recorded") from exc

    log.info("reconciliation.reconciled", transaction_type=str(transaction_type), transaction_id=str(transaction_id))
    return row


def reconcile_batch(
    db: Session,
    *,
    items: list[ReconciliationItem],
    now: datetime | None = None,
) -> list[ReconciliationResult]:
    """
    Reconcile several transactions, each in its own transaction.

    A failing item is reported in its result and does not undo items that were
    already committed.
    """
    now = now or utcnow()
    results: list[ReconciliationResult] = []
    for item in items:
        type_label = item.type.value if isinstance(item.type, TransactionKind) else str(item.type)
        try:
            _reconcile_one(
                db,
                transaction_id=item.id,
                transaction_type=item.type,
                reconciled_by=item.reconciled_by,
                source=item.source or ReconciliationSource.BATCH,
                notes=item.notes,
                external_reference=item.external_reference,
                now=now,
            )
        except AppError as exc:
            db.rollback()
            results.append(
                ReconciliationResult(id=item.id, type=type_label, success=False, error=exc.message, details=exc.details)
            )
            continue
        except SQLAlchemyError as exc:
            db.rollback()
            log.error("reconciliation.batch_item_failed", transaction_id=str(item.id), error=str(exc))
            results.append(ReconciliationResult(id=item.id, type=type_label, success=False, error="Persistence failure"))
            continue
        results.append(ReconciliationResult(id=item.id, type=type_label, success=True))

    log.info(
        "reconciliation.batch",
        items=len(items),
        succeeded=sum(1 for r in results if r.success),
        failed=sum(1 for r in results if not r.success),
    )
    return results


def summary(
    db: Session,
    *,
    date_from: date,
    date_to: date,
    store_ids: list[uuid.UUID] | None = None,
) -> dict[str, Any]:
    if date_from > date_to:
        raise ValidationFailed("date_from must not be after date_to", date_from=date_from, date_to=date_to)

    by_type: dict[str, dict[str, int]] = {}
    for handler in HANDLERS.values():
        model = handler.model
        date_col = handler.column(handler.date_column)
        # Pending is counted with the same filter the pending list uses.
        stmt = (
            select(model.reconciliation_status, func.count(model.id))
            .where(
                date_col >= date_from,
                date_col <= date_to,
                or_(model.reconciliation_status == ReconciliationStatus.RECONCILED, handler.pending_clause()),
            )
            .group_by(model.reconciliation_status)
        )
        if store_ids:
            stmt = stmt.where(model.store_id.in_(store_ids))
        counts = {ReconciliationStatus(status): int(n) for status, n in db.execute(stmt).all()}
        reconciled = counts.get(ReconciliationStatus.RECONCILED, 0)
        pending = counts.get(ReconciliationStatus.PENDING, 0)
        by_type[handler.kind.value] = {"total": reconciled + pending, "reconciled": reconciled, "pending": pending}

    return {
        "date_from": date_from,
        "date_to": date_to,
        "total": sum(t["total"] for t in by_type.values()),
        "reconciled": sum(t["reconciled"] for t in by_type.values()),
        "pending": sum(t["pending"] for t in by_type.values()),
        "by_type": by_type,
    }
