from __future__ import annotations

import uuid
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.core.logging import get_logger
from backoffice.domain.cash_management.enums import (
    CATEGORY_BY_MOVEMENT,
    MOVEMENT_BY_CATEGORY,
    AccountType,
    DepositStatus,
    MovementType,
    PositionCategory,
)
from backoffice.domain.cash_management.models.movements import CashMovement
from backoffice.domain.cash_management.models.positions import DailyCashPosition
from backoffice.domain.stores.service import get_store
from backoffice.shared.exceptions import AppError, NotFound, ValidationFailed
from backoffice.shared.utils import money


log = get_logger(__name__)

ONE_DAY = timedelta(days=1)
ZERO = Decimal("0.00")


def get_position(db: Session, *, store_id: uuid.UUID, business_date: date) -> DailyCashPosition | None:
    stmt = select(DailyCashPosition).where(
        DailyCashPosition.store_id == store_id,
        DailyCashPosition.business_date == business_date,
    )
    return db.execute(stmt).scalar_one_or_none()


def get_positions_in_range(
    db: Session,
    *,
    store_id: uuid.UUID,
    date_from: date,
    date_to: date,
) -> list[DailyCashPosition]:
    """Positions in [date_from, date_to], most recent first."""
    if date_from > date_to:
        raise ValidationFailed("date_from must not be after date_to", date_from=date_from, date_to=date_to)
    get_store(db, store_id)
    stmt = (
        select(DailyCashPosition)
        .where(
            DailyCashPosition.store_id == store_id,
            DailyCashPosition.business_date >= date_from,
            DailyCashPosition.business_date <= date_to,
        )
        .order_by(DailyCashPosition.business_date.desc())
    )
    return list(db.execute(stmt).scalars().all())


def _has_earlier_position(db: Session, *, store_id: uuid.UUID, business_date: date) -> bool:
    stmt = select(func.count(DailyCashPosition.id)).where(
        DailyCashPosition.store_id == store_id,
        DailyCashPosition.business_date < business_date,
    )
    return bool(db.execute(stmt).scalar_one())


def _insert_if_absent(
    db: Session,
    *,
    store_id: uuid.UUID,
    business_date: date,
    opening_balance: Decimal,
    opening_gap: bool,
) -> None:
    """Single conditional insert keyed on the (store_id, business_date) constraint."""
    values = {
        "id": uuid.uuid4(),
        "store_id": store_id,
        "business_date": business_date,
        "opening_balance": opening_balance,
        "closing_balance": opening_balance,
        "opening_gap": opening_gap,
        "deposit_status": DepositStatus.PENDING,
    }
    dialect = db.get_bind().dialect.name
    if dialect in ("postgresql", "sqlite"):
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        stmt = insert(DailyCashPosition).values(**values).on_conflict_do_nothing(
            index_elements=["store_id", "business_date"]
        )
        db.execute(stmt)
        return

    try:
        with db.begin_nested():
            db.add(DailyCashPosition(**values))
    except IntegrityError:
        # Another writer created the row first.
        log.info("cash.position.insert_conflict", store_id=str(store_id), business_date=business_date.isoformat())


def _ensure_position(db: Session, *, store_id: uuid.UUID, business_date: date) -> DailyCashPosition:
    position = get_position(db, store_id=store_id, business_date=business_date)
    if position is not None:
        return position

    get_store(db, store_id)
    yesterday = get_position(db, store_id=store_id, business_date=business_date - ONE_DAY)
    if yesterday is not None:
        opening, gap = money(yesterday.closing_balance), False
    else:
        opening = ZERO
        gap = _has_earlier_position(db, store_id=store_id, business_date=business_date)

    _insert_if_absent(db, store_id=store_id, business_date=business_date, opening_balance=opening, opening_gap=gap)
    position = get_position(db, store_id=store_id, business_date=business_date)
    if position is None:
        raise NotFound(
            f"Daily position for {business_date.isoformat()} could not be created",
            store_id=str(store_id),
            business_date=business_date,
        )
    if gap:
        log.warning(
            "cash.position.opening_gap",
            store_id=str(store_id),
            business_date=business_date.isoformat(),
        )

    # A filled-in day closes the gap in front of the days that follow it.
    chain = _following_positions(db, position)
    if chain:
        _carry_forward(position, chain)
    return position


def ensure_position(db: Session, *, store_id: uuid.UUID, business_date: date) -> DailyCashPosition:
    """
    Idempotent get-or-create of the daily position.

    The opening balance is the previous day's closing balance. When that day is
    missing but the store has older positions, the opening balance is 0 and
    ``opening_gap`` is set so the missing day stays visible.
    """
    try:
        position = _ensure_position(db, store_id=store_id, business_date=business_date)
    except AppError:
        db.rollback()
        raise
    db.commit()
    db.refresh(position)
    return position


def mark_bank_holiday(
    db: Session,
    *,
    store_id: uuid.UUID,
    business_date: date,
    holiday_name: str | None,
    actor_id: str | None = None,
) -> DailyCashPosition:
    try:
        position = _ensure_position(db, store_id=store_id, business_date=business_date)
    except AppError:
        db.rollback()
        raise
    position.is_bank_holiday = True
    position.holiday_name = holiday_name
    position.updated_by = actor_id
    db.commit()
    db.refresh(position)
    return position


# ---------------------------------------------------------------------------
# Movement log
# ---------------------------------------------------------------------------


def append_movement(
    db: Session,
    *,
    store_id: uuid.UUID,
    movement_date: date,
    movement_type: MovementType,
    account_type: AccountType,
    amount: Decimal,
    reference_type: str | None = None,
    reference_id: str | uuid.UUID | None = None,
    description: str | None = None,
    created_by: str | None = None,
) -> CashMovement:
    """Stage one signed movement in the caller's transaction."""
    movement = CashMovement(
        store_id=store_id,
        movement_date=movement_date,
        movement_type=movement_type,
        account_type=account_type,
        amount=money(amount),
        reference_type=reference_type,
        reference_id=str(reference_id) if reference_id is not None else None,
        description=description,
        created_by=created_by,
        updated_by=created_by,
    )
    db.add(movement)
    db.flush()
    return movement


def _movement_totals(db: Session, *, store_id: uuid.UUID, account_type: AccountType, as_of: date | None = None):
    stmt = select(func.coalesce(func.sum(CashMovement.amount), 0), func.count(CashMovement.id)).where(
        CashMovement.store_id == store_id,
        CashMovement.account_type == account_type,
    )
    if as_of is not None:
        stmt = stmt.where(CashMovement.movement_date <= as_of)
    total, count = db.execute(stmt).one()
    return money(total), int(count or 0)


def _latest_position(db: Session, *, store_id: uuid.UUID, as_of: date | None = None) -> DailyCashPosition | None:
    stmt = select(DailyCashPosition).where(DailyCashPosition.store_id == store_id)
    if as_of is not None:
        stmt = stmt.where(DailyCashPosition.business_date <= as_of)
    stmt = stmt.order_by(DailyCashPosition.business_date.desc()).limit(1)
    return db.execute(stmt).scalars().first()


def current_account_balance(db: Session, *, store_id: uuid.UUID, account_type: AccountType) -> Decimal:
    """
    Signed balance of an account: the sum of its movements.

    Only a store with no movements yet on the account falls back to the rollup
    (latest sales-cash closing balance; petty cash has no rollup and reads 0).
    """
    get_store(db, store_id)
    db.flush()
    total, count = _movement_totals(db, store_id=store_id, account_type=account_type)
    if count:
        return total
    if account_type == AccountType.SALES_CASH:
        latest = _latest_position(db, store_id=store_id)
        return money(latest.closing_balance) if latest is not None else ZERO
    return ZERO


def expected_cash_amount(
    db: Session,
    *,
    store_id: uuid.UUID,
    account_type: AccountType,
    as_of: date,
) -> Decimal:
    """What the account should hold at the end of ``as_of``; physical counts never feed into it."""
    get_store(db, store_id)
    db.flush()
    total, count = _movement_totals(db, store_id=store_id, account_type=account_type, as_of=as_of)
    if count:
        return total
    if account_type == AccountType.SALES_CASH:
        latest = _latest_position(db, store_id=store_id, as_of=as_of)
        return money(latest.closing_balance) if latest is not None else ZERO
    return ZERO


# ---------------------------------------------------------------------------
# Posting surface
# ---------------------------------------------------------------------------


def _following_positions(db: Session, position: DailyCashPosition) -> list[DailyCashPosition]:
    """Later positions of the store that follow ``position`` without a missing day."""
    stmt = (
        select(DailyCashPosition)
        .where(
            DailyCashPosition.store_id == position.store_id,
            DailyCashPosition.business_date > position.business_date,
        )
        .order_by(DailyCashPosition.business_date.asc())
    )
    chain: list[DailyCashPosition] = []
    expected = position.business_date + ONE_DAY
    for row in db.execute(stmt).scalars():
        if row.business_date != expected:
            break
        chain.append(row)
        expected += ONE_DAY
    return chain


def _carry_forward(position: DailyCashPosition, chain: list[DailyCashPosition]) -> None:
    """Re-chain each following day's opening balance to the closing balance before it."""
    previous = position
    for row in chain:
        opening = money(previous.closing_balance)
        if row.is_deposited and money(row.opening_balance) != opening:
            raise ValidationFailed(
                f"Deposited day {row.business_date.isoformat()} would change",
                business_date=row.business_date,
                opening_balance=money(row.opening_balance),
                new_opening_balance=opening,
            )
        row.opening_balance = opening
        row.opening_gap = False
        row.recompute_closing()
        previous = row


def _post(
    db: Session,
    *,
    store_id: uuid.UUID,
    business_date: date,
    category: PositionCategory,
    amount: Decimal,
    movement_type: MovementType | None = None,
    reference_type: str | None = None,
    reference_id: str | uuid.UUID | None = None,
    description: str | None = None,
    created_by: str | None = None,
) -> DailyCashPosition:
    """
    Apply ``amount`` to one rollup column and log the matching movement, without committing.

    ``amount`` is added to the category column (it may be negative for signed
    adjustments); the movement is positive for inflow columns and negative for
    outflow columns. The new closing balance is carried into every following day
    until the first missing day.
    """
    position = _ensure_position(db, store_id=store_id, business_date=business_date)
    chain = _following_positions(db, position)

    frozen = [p.business_date for p in [position, *chain] if p.is_deposited]
    if frozen:
        raise ValidationFailed(
            f"Cannot post {category.value} on {business_date.isoformat()}: deposited days would change",
            business_date=business_date,
            deposited_dates=frozen,
        )

    amount = money(amount)
    setattr(position, category.value, money(getattr(position, category.value)) + amount)
    position.recompute_closing()
    position.updated_by = created_by

    _carry_forward(position, chain)

    append_movement(
        db,
        store_id=store_id,
        movement_date=business_date,
        movement_type=movement_type or MOVEMENT_BY_CATEGORY[category],
        account_type=AccountType.SALES_CASH,
        amount=amount if category.is_inflow else -amount,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        created_by=created_by,
    )
    return position


def post_to_position(
    db: Session,
    *,
    store_id: uuid.UUID,
    business_date: date,
    category: PositionCategory,
    amount: Decimal,
    reference_type: str | None = None,
    reference_id: str | uuid.UUID | None = None,
    description: str | None = None,
    created_by: str | None = None,
    commit: bool = True,
) -> DailyCashPosition:
    """Post a positive amount into one inflow/outflow category of the day's position."""
    amount = money(amount)
    category = PositionCategory(category)
    if amount <= 0:
        raise ValidationFailed("Amount must be greater than zero", amount=amount)

    try:
        position = _post(
            db,
            store_id=store_id,
            business_date=business_date,
            category=category,
            amount=amount,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
            created_by=created_by,
        )
    except AppError:
        if commit:
            db.rollback()
        raise
    if not commit:
        return position

    db.commit()
    db.refresh(position)
    log.info(
        "cash.position.posted",
        store_id=str(store_id),
        business_date=business_date.isoformat(),
        category=category.value,
        amount=str(amount),
        closing_balance=str(position.closing_balance),
    )
    return position


def add_cash_sale(db: Session, *, store_id: uuid.UUID, business_date: date, amount: Decimal, **kwargs) -> DailyCashPosition:
    return post_to_position(db, store_id=store_id, business_date=business_date, category=PositionCategory.CASH_SALES, amount=amount, **kwargs)


def add_so_advance(db: Session, *, store_id: uuid.UUID, business_date: date, amount: Decimal, **kwargs) -> DailyCashPosition:
    return post_to_position(db, store_id=store_id, business_date=business_date, category=PositionCategory.SO_ADVANCES, amount=amount, **kwargs)


def add_gift_voucher_sale(db: Session, *, store_id: uuid.UUID, business_date: date, amount: Decimal, **kwargs) -> DailyCashPosition:
    return post_to_position(
        db, store_id=store_id, business_date=business_date, category=PositionCategory.GIFT_VOUCHER_SALES, amount=amount, **kwargs
    )


def add_hand_bill_collection(db: Session, *, store_id: uuid.UUID, business_date: date, amount: Decimal, **kwargs) -> DailyCashPosition:
    return post_to_position(
        db, store_id=store_id, business_date=business_date, category=PositionCategory.HAND_BILL_COLLECTIONS, amount=amount, **kwargs
    )


def add_petty_transfer_in(db: Session, *, store_id: uuid.UUID, business_date: date, amount: Decimal, **kwargs) -> DailyCashPosition:
    return post_to_position(
        db, store_id=store_id, business_date=business_date, category=PositionCategory.PETTY_TRANSFERS_IN, amount=amount, **kwargs
    )


def add_other_receipt(db: Session, *, store_id: uuid.UUID, business_date: date, amount: Decimal, **kwargs) -> DailyCashPosition:
    return post_to_position(db, store_id=store_id, business_date=business_date, category=PositionCategory.OTHER_RECEIPTS, amount=amount, **kwargs)


def add_cash_return(db: Session, *, store_id: uuid.UUID, business_date: date, amount: Decimal, **kwargs) -> DailyCashPosition:
    return post_to_position(db, store_id=store_id, business_date=business_date, category=PositionCategory.CASH_RETURNS, amount=amount, **kwargs)


def add_cash_refund(db: Session, *, store_id: uuid.UUID, business_date: date, amount: Decimal, **kwargs) -> DailyCashPosition:
    return post_to_position(db, store_id=store_id, business_date=business_date, category=PositionCategory.CASH_REFUNDS, amount=amount, **kwargs)


def add_petty_transfer_out(db: Session, *, store_id: uuid.UUID, business_date: date, amount: Decimal, **kwargs) -> DailyCashPosition:
    return post_to_position(
        db, store_id=store_id, business_date=business_date, category=PositionCategory.PETTY_TRANSFERS_OUT, amount=amount, **kwargs
    )


def add_cash_deposit(db: Session, *, store_id: uuid.UUID, business_date: date, amount: Decimal, **kwargs) -> DailyCashPosition:
    return post_to_position(db, store_id=store_id, business_date=business_date, category=PositionCategory.CASH_DEPOSITS, amount=amount, **kwargs)


def _rollup_snapshot(position: DailyCashPosition) -> tuple:
    return (
        money(position.opening_balance),
        *(money(getattr(position, c.value)) for c in PositionCategory),
        money(position.closing_balance),
    )


def rebuild_positions(
    db: Session,
    *,
    store_id: uuid.UUID,
    date_from: date,
    date_to: date,
) -> list[DailyCashPosition]:
    """
    Recompute cached rollups from the sales-cash movement log.

    Deposited days are left untouched but still seed the next day's opening
    balance. Returns the positions whose stored values differed.
    """
    positions = list(reversed(get_positions_in_range(db, store_id=store_id, date_from=date_from, date_to=date_to)))

    stmt = (
        select(CashMovement.movement_date, CashMovement.movement_type, func.sum(CashMovement.amount))
        .where(
            CashMovement.store_id == store_id,
            CashMovement.account_type == AccountType.SALES_CASH,
            CashMovement.movement_date >= date_from,
            CashMovement.movement_date <= date_to,
        )
        .group_by(CashMovement.movement_date, CashMovement.movement_type)
    )
    by_day: dict[date, dict[PositionCategory, Decimal]] = {}
    for movement_date, movement_type, total in db.execute(stmt).all():
        category = CATEGORY_BY_MOVEMENT.get(MovementType(movement_type))
        if category is None:
            continue
        bucket = by_day.setdefault(movement_date, {})
        delta = money(total) if category.is_inflow else -money(total)
        bucket[category] = bucket.get(category, ZERO) + delta

    drifted: list[DailyCashPosition] = []
    previous = get_position(db, store_id=store_id, business_date=date_from - ONE_DAY)
    for position in positions:
        if position.is_deposited:
            previous = position
            continue

        before = _rollup_snapshot(position)
        totals = by_day.get(position.business_date, {})
        for category in PositionCategory:
            setattr(position, category.value, money(totals.get(category)))
        if previous is not None and previous.business_date == position.business_date - ONE_DAY:
            position.opening_balance = money(previous.closing_balance)
            position.opening_gap = False
        position.recompute_closing()

        if _rollup_snapshot(position) != before:
            drifted.append(position)
        previous = position

    db.commit()
    if drifted:
        log.warning(
            "cash.position.rebuilt",
            store_id=str(store_id),
            drifted_dates=[p.business_date.isoformat() for p in drifted],
        )
    return drifted
