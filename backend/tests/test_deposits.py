from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from backoffice.core.db.audit import get_audit_log
from backoffice.core.db.models import Store
from backoffice.domain.cash_management.enums import AccountType, DepositStatus, DepositUrgency, MovementType
from backoffice.domain.cash_management.models.deposits import CashDeposit, DepositDayMapping
from backoffice.domain.cash_management.models.movements import CashMovement
from backoffice.domain.cash_management.services import deposits as deposits_service
from backoffice.domain.cash_management.services.deposits import (
    create_multi_day_deposit,
    deposit_urgency,
    get_deposit,
    get_pending_positions,
    is_deposit_overdue,
    list_deposits,
    pending_deposit_summary,
    variance_tolerance,
)
from backoffice.domain.cash_management.services.ledger import (
    add_cash_return,
    add_cash_sale,
    current_account_balance,
    ensure_position,
    get_position,
)
from backoffice.shared.exceptions import (
    AmountMismatch,
    NotFound,
    PersistenceFailure,
    ValidationFailed,
    VarianceExceedsTolerance,
)

JAN_20 = date(2025, 1, 20)
JAN_21 = date(2025, 1, 21)
JAN_22 = date(2025, 1, 22)


@pytest.fixture()
def three_days(db: Session, store: Store):
    """850 sold on the 20th, 400 on the 21st, 600 returned in cash on the 22nd."""
    add_cash_sale(db, store_id=store.id, business_date=JAN_20, amount=Decimal("850"))
    add_cash_sale(db, store_id=store.id, business_date=JAN_21, amount=Decimal("400"))
    add_cash_return(db, store_id=store.id, business_date=JAN_22, amount=Decimal("600"))
    return [get_position(db, store_id=store.id, business_date=d) for d in (JAN_20, JAN_21, JAN_22)]


def _deposit(db: Session, store: Store, positions, amount: str, now: datetime, **kwargs) -> CashDeposit:
    return create_multi_day_deposit(
        db,
        store_id=store.id,
        position_ids=[p.id for p in positions],
        amount=Decimal(amount),
        deposit_slip_number="SLIP-001",
        bank_name="State Bank",
        deposited_by="asha",
        now=now,
        **kwargs,
    )


def test_three_day_deposit_settles_every_selected_day(db: Session, store: Store, three_days, now: datetime):
    assert [p.closing_balance for p in three_days] == [Decimal("850.00"), Decimal("1250.00"), Decimal("650.00")]
    before = current_account_balance(db, store_id=store.id, account_type=AccountType.SALES_CASH)

    deposit = _deposit(db, store, three_days, "2750", now)

    assert deposit.days_included == 3
    assert deposit.from_date == JAN_20
    assert deposit.to_date == JAN_22
    assert deposit.accumulated_amount == Decimal("2750.00")

    mappings = db.execute(select(DepositDayMapping).where(DepositDayMapping.deposit_id == deposit.id)).scalars().all()
    assert len(mappings) == 3
    assert sum(m.amount_included for m in mappings) == deposit.accumulated_amount

    for p in three_days:
        db.refresh(p)
        assert p.deposit_status == DepositStatus.DEPOSITED
        assert p.deposit_id == deposit.id
        assert p.deposited_amount == p.closing_balance

    after = current_account_balance(db, store_id=store.id, account_type=AccountType.SALES_CASH)
    assert before - after == Decimal("2750.00")

    movement = db.execute(select(CashMovement).where(CashMovement.movement_type == MovementType.DEPOSIT)).scalar_one()
    assert movement.amount == Decimal("-2750.00")
    assert movement.description == "Bank deposit - SLIP-001"


def test_amount_mismatch_reports_expected_and_supplied(db: Session, store: Store, three_days, now: datetime):
    with pytest.raises(AmountMismatch) as exc:
        _deposit(db, store, three_days, "2700", now)

    assert exc.value.details["expected"] == Decimal("2750.00")
    assert exc.value.details["supplied"] == Decimal("2700.00")
    assert db.execute(select(func.count(CashDeposit.id))).scalar_one() == 0
    for p in three_days:
        db.refresh(p)
        assert p.deposit_status == DepositStatus.PENDING


def test_amount_within_a_cent_is_accepted(db: Session, store: Store, three_days, now: datetime):
    deposit = _deposit(db, store, three_days, "2750.01", now)
    assert deposit.amount == Decimal("2750.01")
    assert deposit.accumulated_amount == Decimal("2750.00")


def test_already_deposited_day_cannot_be_deposited_again(db: Session, store: Store, three_days, now: datetime):
    _deposit(db, store, three_days[:1], "850", now)

    with pytest.raises(ValidationFailed):
        _deposit(db, store, three_days, "2750", now)


def test_unknown_position_raises_not_found(db: Session, store: Store, three_days, now: datetime):
    with pytest.raises(NotFound):
        create_multi_day_deposit(
            db,
            store_id=store.id,
            position_ids=[three_days[0].id, uuid.uuid4()],
            amount=Decimal("850"),
            deposit_slip_number="SLIP-002",
            bank_name="State Bank",
            deposited_by="asha",
            now=now,
        )


def test_positions_of_another_store_are_not_found(
    db: Session, store: Store, other_store: Store, three_days, now: datetime
):
    with pytest.raises(NotFound):
        _deposit(db, other_store, three_days, "2750", now)


@pytest.mark.parametrize(("days", "expected"), [(1, "100"), (4, "200"), (9, "300"), (2, "141.42")])
def test_variance_tolerance_scales_with_square_root_of_days(days: int, expected: str):
    assert variance_tolerance(days) == Decimal(expected)


def test_variance_tolerance_rejects_zero_days():
    with pytest.raises(ValidationFailed):
        variance_tolerance(0)


def test_counted_variance_beyond_tolerance_needs_reason(db: Session, store: Store, three_days, now: datetime):
    # Three days allow 173.21; 200 short is outside.
    with pytest.raises(VarianceExceedsTolerance) as exc:
        _deposit(db, store, three_days, "2750", now, counted_amount=Decimal("2550"))
    assert exc.value.details["tolerance"] == Decimal("173.21")
    assert exc.value.details["variance"] == Decimal("-200.00")

    deposit = _deposit(
        db, store, three_days, "2750", now, counted_amount=Decimal("2550"), variance_reason="Counting error at close"
    )
    assert deposit.counted_amount == Decimal("2550.00")
    assert deposit.variance_reason == "Counting error at close"


def test_counted_variance_within_tolerance_needs_no_reason(db: Session, store: Store, three_days, now: datetime):
    deposit = _deposit(db, store, three_days, "2750", now, counted_amount=Decimal("2700"))
    assert deposit.variance_reason is None


def test_persistence_failure_rolls_back_everything(
    db: Session, store: Store, three_days, now: datetime, monkeypatch: pytest.MonkeyPatch
):
    def _boom(*args, **kwargs):
        raise OperationalError("INSERT INTO deposit_day_mappings", {}, Exception("disk I/O error"))

    monkeypatch.setattr(deposits_service, "_build_day_mappings", _boom)

    with pytest.raises(PersistenceFailure):
        _deposit(db, store, three_days, "2750", now)

    assert db.execute(select(func.count(CashDeposit.id))).scalar_one() == 0
    for p in three_days:
        db.refresh(p)
        assert p.deposit_status == DepositStatus.PENDING
        assert p.deposit_id is None


def test_movement_failure_does_not_abort_deposit(
    db: Session, store: Store, three_days, now: datetime, monkeypatch: pytest.MonkeyPatch
):
    def _boom(*args, **kwargs):
        raise OperationalError("INSERT INTO cash_movements", {}, Exception("locked"))

    monkeypatch.setattr(deposits_service, "append_movement", _boom)

    deposit = _deposit(db, store, three_days, "2750", now)

    assert deposit.id is not None
    assert db.execute(
        select(func.count(CashMovement.id)).where(CashMovement.movement_type == MovementType.DEPOSIT)
    ).scalar_one() == 0
    for p in three_days:
        db.refresh(p)
        assert p.deposit_status == DepositStatus.DEPOSITED


def test_deposit_writes_audit_event(db: Session, store: Store, three_days, now: datetime):
    deposit = _deposit(db, store, three_days, "2750", now)

    events = get_audit_log(db, store_id=store.id, entity_id=deposit.id, entity_type="cash_deposit")
    assert [e.action for e in events] == ["CASH_DEPOSIT_CREATED"]
    assert events[0].actor_id == "asha"
    assert len(events[0].after["position_ids"]) == 3


@pytest.mark.parametrize(
    ("oldest", "expected"),
    [
        (date(2025, 1, 23), DepositUrgency.NORMAL),
        (date(2025, 1, 21), DepositUrgency.NORMAL),
        (date(2025, 1, 20), DepositUrgency.WARNING),
        (date(2025, 1, 19), DepositUrgency.CRITICAL),
    ],
)
def test_deposit_urgency(oldest: date, expected: DepositUrgency, now: datetime):
    assert deposit_urgency(oldest, now) == expected


def test_is_deposit_overdue(now: datetime):
    assert is_deposit_overdue(date(2025, 1, 19), now) is True
    assert is_deposit_overdue(date(2025, 1, 20), now) is False


def test_pending_positions_oldest_first_and_skip_empty_days(db: Session, store: Store, three_days):
    ensure_position(db, store_id=store.id, business_date=date(2025, 1, 10))

    pending = get_pending_positions(db, store_id=store.id)
    assert [p.business_date for p in pending] == [JAN_20, JAN_21, JAN_22]

    assert [p.business_date for p in get_pending_positions(db, store_id=store.id, max_days=2)] == [JAN_20, JAN_21]


def test_pending_summary(db: Session, store: Store, three_days, now: datetime):
    summary = pending_deposit_summary(db, store_id=store.id, now=now)

    assert summary["oldest_pending_date"] == JAN_20
    assert summary["latest_pending_date"] == JAN_22
    assert summary["days_pending"] == 3
    assert summary["total_pending_amount"] == Decimal("2750.00")
    assert summary["oldest_days_ago"] == 3
    assert summary["urgency"] == DepositUrgency.WARNING
    assert [d["amount"] for d in summary["daily_breakdown"]] == [Decimal("850.00"), Decimal("1250.00"), Decimal("650.00")]


def test_pending_summary_without_pending_days(db: Session, store: Store, now: datetime):
    summary = pending_deposit_summary(db, store_id=store.id, now=now)
    assert summary["days_pending"] == 0
    assert summary["urgency"] == DepositUrgency.NORMAL


def test_get_and_list_deposits(db: Session, store: Store, three_days, now: datetime):
    deposit = _deposit(db, store, three_days, "2750", now)

    detail = get_deposit(db, store_id=store.id, deposit_id=deposit.id)
    assert [m.business_date for m in detail.day_mappings] == [JAN_20, JAN_21, JAN_22]
    assert [d.id for d in list_deposits(db, store_id=store.id)] == [deposit.id]
    assert list_deposits(db, store_id=store.id, date_from=now.date() + timedelta(days=1)) == []

    with pytest.raises(NotFound):
        get_deposit(db, store_id=store.id, deposit_id=uuid.uuid4())


def test_deposit_requires_selection(db: Session, store: Store, now: datetime):
    with pytest.raises(ValidationFailed):
        create_multi_day_deposit(
            db,
            store_id=store.id,
            position_ids=[],
            amount=Decimal("1"),
            deposit_slip_number="SLIP",
            bank_name="Bank",
            deposited_by="asha",
            now=now,
        )


def test_deposit_date_comes_from_now(db: Session, store: Store, three_days):
    late = datetime(2025, 1, 25, 9, 30, tzinfo=timezone.utc)
    deposit = _deposit(db, store, three_days, "2750", late)
    assert deposit.deposit_date == date(2025, 1, 25)


def test_selected_positions_are_loaded_with_row_locks():
    stmt = deposits_service._selected_positions_stmt(store_id=uuid.uuid4(), position_ids=[uuid.uuid4()])
    sql = str(stmt.compile(dialect=postgresql.dialect()))

    assert sql.rstrip().endswith("FOR UPDATE")
