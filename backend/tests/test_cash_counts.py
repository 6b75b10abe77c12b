from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from backoffice.core.db.models import Store
from backoffice.domain.cash_management.enums import AccountType, CountType
from backoffice.domain.cash_management.services.counts import count_total, get_latest_count, record_cash_count
from backoffice.domain.cash_management.services.ledger import add_cash_sale, expected_cash_amount, get_position
from backoffice.shared.exceptions import ValidationFailed, VarianceExceedsTolerance


@pytest.fixture()
def drawer(db: Session, store: Store, day: date) -> Store:
    add_cash_sale(db, store_id=store.id, business_date=day, amount=Decimal("1000"))
    return store


def test_count_total_sums_face_values():
    assert count_total({500: 1, 200: 2, "10": 3}) == Decimal("930.00")


@pytest.mark.parametrize("denominations", [{3: 1}, {500: -1}])
def test_count_total_rejects_bad_input(denominations):
    with pytest.raises(ValidationFailed):
        count_total(denominations)


def test_exact_drawer_count_resolves_the_day(db: Session, drawer: Store, day: date, now: datetime):
    count = record_cash_count(
        db,
        store_id=drawer.id,
        count_date=day,
        count_type=CountType.SALES_DRAWER,
        denominations={500: 2},
        counted_by="asha",
        now=now,
    )

    assert count.expected_amount == Decimal("1000.00")
    assert count.variance == Decimal("0.00")
    assert count.denominations == {"500": 2}

    position = get_position(db, store_id=drawer.id, business_date=day)
    assert position.count_id == count.id
    assert position.counted_amount == Decimal("1000.00")
    assert position.variance_resolved is True


def test_variance_at_tolerance_needs_no_reason(db: Session, drawer: Store, day: date, now: datetime):
    count = record_cash_count(
        db,
        store_id=drawer.id,
        count_date=day,
        count_type=CountType.SALES_DRAWER,
        denominations={500: 1, 100: 4},
        counted_by="asha",
        now=now,
    )
    assert count.variance == Decimal("-100.00")
    assert count.tolerance == Decimal("100.00")

    position = get_position(db, store_id=drawer.id, business_date=day)
    assert position.count_variance == Decimal("-100.00")
    assert position.variance_resolved is False


def test_variance_beyond_tolerance_requires_reason(db: Session, drawer: Store, day: date, now: datetime):
    with pytest.raises(VarianceExceedsTolerance) as exc:
        record_cash_count(
            db,
            store_id=drawer.id,
            count_date=day,
            count_type=CountType.SALES_DRAWER,
            denominations={500: 1},
            counted_by="asha",
            now=now,
        )
    assert exc.value.details["variance"] == Decimal("-500.00")

    count = record_cash_count(
        db,
        store_id=drawer.id,
        count_date=day,
        count_type=CountType.SALES_DRAWER,
        denominations={500: 1},
        counted_by="asha",
        variance_reason="Float handed to cashier 2",
        now=now,
    )
    assert count.variance_reason == "Float handed to cashier 2"
    assert get_position(db, store_id=drawer.id, business_date=day).variance_resolved is True


def test_count_never_changes_expected_amount(db: Session, drawer: Store, day: date, now: datetime):
    record_cash_count(
        db,
        store_id=drawer.id,
        count_date=day,
        count_type=CountType.SALES_DRAWER,
        denominations={500: 1, 200: 2},
        counted_by="asha",
        now=now,
    )

    expected = expected_cash_amount(db, store_id=drawer.id, account_type=AccountType.SALES_CASH, as_of=day)
    assert expected == Decimal("1000.00")
    assert get_position(db, store_id=drawer.id, business_date=day).closing_balance == Decimal("1000.00")


def test_petty_cash_count_leaves_position_alone(db: Session, drawer: Store, day: date, now: datetime):
    count = record_cash_count(
        db,
        store_id=drawer.id,
        count_date=day,
        count_type=CountType.PETTY_CASH,
        denominations={10: 5},
        counted_by="asha",
        now=now,
    )
    assert count.expected_amount == Decimal("0.00")
    assert count.variance == Decimal("50.00")
    assert get_position(db, store_id=drawer.id, business_date=day).count_id is None


def test_latest_count(db: Session, drawer: Store, day: date, now: datetime):
    assert get_latest_count(db, store_id=drawer.id, count_type=CountType.SALES_DRAWER) is None

    for pieces in (2, 1):
        record_cash_count(
            db,
            store_id=drawer.id,
            count_date=day,
            count_type=CountType.SALES_DRAWER,
            denominations={500: pieces},
            counted_by="asha",
            variance_reason="Recount",
            now=now.replace(hour=10 + pieces),
        )

    latest = get_latest_count(db, store_id=drawer.id, count_type=CountType.SALES_DRAWER)
    assert latest.total_counted == Decimal("1000.00")
