from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.core.config import settings
from backoffice.core.db.audit import write_audit_event
from backoffice.core.logging import get_logger
from backoffice.domain.cash_management.enums import CountType
from backoffice.domain.cash_management.models.counts import CashCount
from backoffice.domain.cash_management.services.deposits import variance_tolerance
from backoffice.domain.cash_management.services.ledger import _ensure_position, expected_cash_amount
from backoffice.domain.stores.service import get_store
from backoffice.shared.exceptions import AppError, ValidationFailed, VarianceExceedsTolerance
from backoffice.shared.utils import money, sa_model_to_dict, utcnow


log = get_logger(__name__)


def count_total(denominations: dict[int | str, int]) -> Decimal:
    """Sum of face value x pieces. Unknown face values and negative piece counts are rejected."""
    accepted = set(settings.cash_denominations)
    total = Decimal("0.00")
    for face, pieces in denominations.items():
        face_value = int(face)
        if face_value not in accepted:
            raise ValidationFailed(f"Unsupported denomination {face}", denomination=face, accepted=sorted(accepted))
        if int(pieces) < 0:
            raise ValidationFailed(f"Negative count for denomination {face}", denomination=face, pieces=pieces)
        total += Decimal(face_value) * int(pieces)
    return money(total)


def record_cash_count(
    db: Session,
    *,
    store_id: uuid.UUID,
    count_date: date,
    count_type: CountType,
    denominations: dict[int | str, int],
    counted_by: str,
    variance_reason: str | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> CashCount:
    """
    Record a physical count and compare it with the expected balance for that day.

    A variance outside the one-day tolerance needs a reason. A sales drawer count
    is also copied onto the day's position; the expected amount itself is never
    changed by a count.
    """
    now = now or utcnow()
    get_store(db, store_id)
    count_type = CountType(count_type)

    total = count_total(denominations)
    expected = expected_cash_amount(db, store_id=store_id, account_type=count_type.account_type, as_of=count_date)
    variance = total - expected
    tolerance = variance_tolerance(1)
    if abs(variance) > tolerance and not (variance_reason or "").strip():
        raise VarianceExceedsTolerance(
            f"Counted {total} differs from expected {expected} by {variance}",
            expected=expected,
            counted=total,
            variance=variance,
            tolerance=tolerance,
        )

    count = CashCount(
        store_id=store_id,
        count_date=count_date,
        count_type=count_type,
        denominations={str(k): int(v) for k, v in denominations.items()},
        total_counted=total,
        expected_amount=expected,
        variance=variance,
        tolerance=tolerance,
        variance_reason=variance_reason,
        counted_by=counted_by,
        counted_at=now,
        notes=notes,
        created_by=counted_by,
        updated_by=counted_by,
    )
    db.add(count)
    db.flush()

    if count_type == CountType.SALES_DRAWER:
        try:
            position = _ensure_position(db, store_id=store_id, business_date=count_date)
        except AppError:
            db.rollback()
            raise
        position.count_id = count.id
        position.counted_amount = total
        position.count_variance = variance
        position.variance_reason = variance_reason
        position.variance_resolved = variance == 0 or bool((variance_reason or "").strip())
        position.updated_by = counted_by

    write_audit_event(
        db,
        store_id=store_id,
        actor_id=counted_by,
        action="CASH_COUNT_RECORDED",
        entity_type="cash_count",
        entity_id=count.id,
        before=None,
        after=sa_model_to_dict(count),
    )
    db.commit()
    db.refresh(count)
    log.info(
        "cash.count.recorded",
        store_id=str(store_id),
        count_type=count_type.value,
        counted=str(total),
        expected=str(expected),
        variance=str(variance),
    )
    return count


def get_latest_count(db: Session, *, store_id: uuid.UUID, count_type: CountType) -> CashCount | None:
    get_store(db, store_id)
    stmt = (
        select(CashCount)
        .where(CashCount.store_id == store_id, CashCount.count_type == CountType(count_type))
        .order_by(CashCount.count_date.desc(), CashCount.counted_at.desc())
        .limit(1)
    )
    return db.execute(stmt).scalars().first()
