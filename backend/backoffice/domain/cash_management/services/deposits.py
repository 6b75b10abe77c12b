from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from backoffice.core.config import settings
from backoffice.core.db.audit import write_audit_event
from backoffice.core.logging import get_logger
from backoffice.domain.cash_management.enums import AccountType, DepositStatus, DepositUrgency, MovementType
from backoffice.domain.cash_management.models.deposits import CashDeposit, DepositDayMapping
from backoffice.domain.cash_management.models.positions import DailyCashPosition
from backoffice.domain.cash_management.services.ledger import append_movement
from backoffice.domain.stores.service import get_store
from backoffice.shared.exceptions import (
    AmountMismatch,
    AppError,
    NotFound,
    PersistenceFailure,
    ValidationFailed,
    VarianceExceedsTolerance,
)
from backoffice.shared.utils import money, sa_model_to_dict, utcnow


log = get_logger(__name__)


def variance_tolerance(days_accumulated: int) -> Decimal:
    """Acceptable counted-vs-computed gap: base tolerance scaled by sqrt(days)."""
    if days_accumulated < 1:
        raise ValidationFailed("days_accumulated must be at least 1", days_accumulated=days_accumulated)
    return money(settings.variance_base_tolerance * Decimal(days_accumulated).sqrt())


def _days_old(oldest_pending_date: date, now: datetime) -> int:
    return (now.date() - oldest_pending_date).days


def deposit_urgency(oldest_pending_date: date, now: datetime) -> DepositUrgency:
    days_old = _days_old(oldest_pending_date, now)
    if days_old > settings.deposit_warning_days:
        return DepositUrgency.CRITICAL
    if days_old == settings.deposit_warning_days:
        return DepositUrgency.WARNING
    return DepositUrgency.NORMAL


def is_deposit_overdue(oldest_pending_date: date, now: datetime) -> bool:
    return _days_old(oldest_pending_date, now) > settings.deposit_warning_days


def get_pending_positions(
    db: Session,
    *,
    store_id: uuid.UUID,
    max_days: int | None = None,
) -> list[DailyCashPosition]:
    """Undeposited positions holding cash, oldest first."""
    get_store(db, store_id)
    stmt = (
        select(DailyCashPosition)
        .where(
            DailyCashPosition.store_id == store_id,
            DailyCashPosition.deposit_status == DepositStatus.PENDING,
            DailyCashPosition.closing_balance > 0,
        )
        .order_by(DailyCashPosition.business_date.asc())
        .limit(max_days or settings.pending_positions_max_days)
    )
    return list(db.execute(stmt).scalars().all())


def pending_deposit_summary(db: Session, *, store_id: uuid.UUID, now: datetime | None = None) -> dict[str, Any]:
    now = now or utcnow()
    positions = get_pending_positions(db, store_id=store_id)
    if not positions:
        return {
            "store_id": store_id,
            "oldest_pending_date": None,
            "latest_pending_date": None,
            "days_pending": 0,
            "total_pending_amount": Decimal("0.00"),
            "oldest_days_ago": 0,
            "urgency": DepositUrgency.NORMAL,
            "daily_breakdown": [],
        }

    oldest = positions[0].business_date
    return {
        "store_id": store_id,
        "oldest_pending_date": oldest,
        "latest_pending_date": positions[-1].business_date,
        "days_pending": len(positions),
        "total_pending_amount": sum((money(p.closing_balance) for p in positions), Decimal("0.00")),
        "oldest_days_ago": _days_old(oldest, now),
        "urgency": deposit_urgency(oldest, now),
        "daily_breakdown": [
            {
                "position_id": p.id,
                "business_date": p.business_date,
                "amount": money(p.closing_balance),
                "is_bank_holiday": p.is_bank_holiday,
                "holiday_name": p.holiday_name,
            }
            for p in positions
        ],
    }


def _selected_positions_stmt(*, store_id: uuid.UUID, position_ids: list[uuid.UUID]):
    # Rows stay locked until the deposit commits or rolls back.
    return (
        select(DailyCashPosition)
        .where(DailyCashPosition.store_id == store_id, DailyCashPosition.id.in_(position_ids))
        .order_by(DailyCashPosition.business_date.asc())
        .with_for_update()
    )


def _load_selected_positions(
    db: Session,
    *,
    store_id: uuid.UUID,
    position_ids: list[uuid.UUID],
) -> list[DailyCashPosition]:
    stmt = _selected_positions_stmt(store_id=store_id, position_ids=position_ids)
    positions = list(db.execute(stmt).scalars().all())

    missing = set(position_ids) - {p.id for p in positions}
    if missing:
        raise NotFound(
            "Daily positions not found for this store",
            store_id=str(store_id),
            position_ids=sorted(str(i) for i in missing),
        )

    deposited = [p.business_date for p in positions if p.is_deposited]
    if deposited:
        raise ValidationFailed("Some selected days are already deposited", deposited_dates=deposited)
    return positions


def _build_day_mappings(deposit: CashDeposit, positions: list[DailyCashPosition]) -> list[DepositDayMapping]:
    return [
        DepositDayMapping(
            deposit_id=deposit.id,
            daily_position_id=p.id,
            business_date=p.business_date,
            amount_included=money(p.closing_balance),
            created_by=deposit.deposited_by,
            updated_by=deposit.deposited_by,
        )
        for p in positions
    ]


def create_multi_day_deposit(
    db: Session,
    *,
    store_id: uuid.UUID,
    position_ids: list[uuid.UUID],
    amount: Decimal,
    deposit_slip_number: str,
    bank_name: str,
    deposited_by: str,
    notes: str | None = None,
    counted_amount: Decimal | None = None,
    variance_reason: str | None = None,
    now: datetime | None = None,
) -> CashDeposit:
    """
    Deposit the accumulated cash of one or more business days in a single bank slip.

    The supplied amount must match the sum of the selected closing balances.
    The deposit row, the status flip of every selected day and the day mappings
    commit together or not at all; the sales-cash movement is recorded in a
    savepoint and a failure there is logged without aborting the deposit.
    """
    now = now or utcnow()
    if not position_ids:
        raise ValidationFailed("At least one daily position is required")
    if len(set(position_ids)) != len(position_ids):
        raise ValidationFailed("Duplicate daily positions in selection")
    if not (deposit_slip_number or "").strip():
        raise ValidationFailed("deposit_slip_number is required")
    if not (bank_name or "").strip():
        raise ValidationFailed("bank_name is required")

    get_store(db, store_id)
    positions = _load_selected_positions(db, store_id=store_id, position_ids=position_ids)

    amount = money(amount)
    total = sum((money(p.closing_balance) for p in positions), Decimal("0.00"))
    if abs(total - amount) > settings.deposit_amount_tolerance:
        raise AmountMismatch(
            f"Deposit amount {amount} does not match accumulated total {total}",
            expected=total,
            supplied=amount,
            difference=amount - total,
        )

    days = len(positions)
    if counted_amount is not None:
        counted_amount = money(counted_amount)
        tolerance = variance_tolerance(days)
        variance = counted_amount - total
        if abs(variance) > tolerance and not (variance_reason or "").strip():
            raise VarianceExceedsTolerance(
                f"Counted amount differs from total by {variance}, tolerance is {tolerance}",
                expected=total,
                counted=counted_amount,
                variance=variance,
                tolerance=tolerance,
                days_included=days,
            )

    from_date, to_date = positions[0].business_date, positions[-1].business_date
    try:
        deposit = CashDeposit(
            store_id=store_id,
            deposit_date=now.date(),
            amount=amount,
            deposit_slip_number=deposit_slip_number.strip(),
            bank_name=bank_name.strip(),
            deposited_by=deposited_by,
            deposited_at=now,
            notes=notes,
            from_date=from_date,
            to_date=to_date,
            days_included=days,
            accumulated_amount=total,
            counted_amount=counted_amount,
            variance_reason=variance_reason,
            created_by=deposited_by,
            updated_by=deposited_by,
        )
        db.add(deposit)
        db.flush()

        result = db.execute(
            update(DailyCashPosition)
            .where(
                DailyCashPosition.id.in_([p.id for p in positions]),
                DailyCashPosition.deposit_status != DepositStatus.DEPOSITED,
            )
            .values(
                deposit_status=DepositStatus.DEPOSITED,
                deposit_id=deposit.id,
                deposited_at=now,
                updated_by=deposited_by,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != days:
            db.rollback()
            raise ValidationFailed(
                "Some selected days were deposited concurrently",
                expected_rows=days,
                updated_rows=result.rowcount,
            )

        for p in positions:
            db.refresh(p)
            p.deposited_amount = money(p.closing_balance)

        db.add_all(_build_day_mappings(deposit, positions))
        db.flush()

        try:
            with db.begin_nested():
                append_movement(
                    db,
                    store_id=store_id,
                    movement_date=now.date(),
                    movement_type=MovementType.DEPOSIT,
                    account_type=AccountType.SALES_CASH,
                    amount=-total,
                    reference_type="cash_deposit",
                    reference_id=deposit.id,
                    description=f"Bank deposit - {deposit.deposit_slip_number}",
                    created_by=deposited_by,
                )
        except SQLAlchemyError:
            log.warning(
                "cash.deposit.movement_failed",
                store_id=str(store_id),
                deposit_id=str(deposit.id),
                exc_info=True,
            )

        write_audit_event(
            db,
            store_id=store_id,
            actor_id=deposited_by,
            action="CASH_DEPOSIT_CREATED",
            entity_type="cash_deposit",
            entity_id=deposit.id,
            before=None,
            after={
                **sa_model_to_dict(deposit),
                "position_ids": [str(p.id) for p in positions],
            },
        )
        db.commit()
    except AppError:
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        log.error("cash.deposit.failed", store_id=str(store_id), error=str(exc))
        raise PersistenceFailure("Deposit could not be recorded; no changes were applied") from exc

    db.refresh(deposit)
    log.info(
        "cash.deposit.created",
        store_id=str(store_id),
        deposit_id=str(deposit.id),
        amount=str(amount),
        days_included=days,
        from_date=from_date.isoformat(),
        to_date=to_date.isoformat(),
    )
    return deposit


def list_deposits(
    db: Session,
    *,
    store_id: uuid.UUID,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = 100,
) -> list[CashDeposit]:
    get_store(db, store_id)
    stmt = select(CashDeposit).where(CashDeposit.store_id == store_id)
    if date_from is not None:
        stmt = stmt.where(CashDeposit.deposit_date >= date_from)
    if date_to is not None:
        stmt = stmt.where(CashDeposit.deposit_date <= date_to)
    stmt = stmt.order_by(CashDeposit.deposited_at.desc()).limit(limit)
    return list(db.execute(stmt).scalars().all())


def get_deposit(db: Session, *, store_id: uuid.UUID, deposit_id: uuid.UUID) -> CashDeposit:
    stmt = (
        select(CashDeposit)
        .options(selectinload(CashDeposit.day_mappings))
        .where(CashDeposit.store_id == store_id, CashDeposit.id == deposit_id)
    )
    deposit = db.execute(stmt).scalar_one_or_none()
    if deposit is None:
        raise NotFound(f"Deposit {deposit_id} not found", deposit_id=str(deposit_id))
    return deposit
