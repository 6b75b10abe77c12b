from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backoffice.core.db.models import Store
from backoffice.domain.cash_management.enums import AccountType, MovementType
from backoffice.domain.cash_management.models.movements import CashMovement
from backoffice.domain.cash_management.services.deposits import create_multi_day_deposit
from backoffice.domain.cash_management.services.ledger import add_cash_sale, current_account_balance, get_position
from backoffice.domain.transactions.enums import TenderType
from backoffice.domain.transactions.models import Sale
from backoffice.domain.transactions.service import (
    record_expense,
    record_gift_voucher,
    record_hand_bill,
    record_return,
    record_sale,
    record_sales_order,
)
from backoffice.shared.exceptions import NotFound, ValidationFailed


def test_cash_sale_posts_into_position(db: Session, store: Store, day: date):
    sale = record_sale(
        db, store_id=store.id, sale_date=day, amount=Decimal("450"), tender_type=TenderType.CASH, created_by="asha"
    )

    position = get_position(db, store_id=store.id, business_date=day)
    assert position.cash_sales == Decimal("450.00")

    movement = db.execute(select(CashMovement).where(CashMovement.reference_type == "sale")).scalar_one()
    assert movement.reference_id == str(sale.id)
    assert movement.movement_type == MovementType.CASH_SALE
    assert movement.amount == Decimal("450.00")


def test_card_sale_does_not_touch_cash(db: Session, store: Store, day: date):
    record_sale(db, store_id=store.id, sale_date=day, amount=Decimal("450"), tender_type=TenderType.CREDIT_CARD)

    assert get_position(db, store_id=store.id, business_date=day) is None
    assert db.execute(select(func.count(CashMovement.id))).scalar_one() == 0


def test_expense_is_petty_cash_only(db: Session, store: Store, day: date):
    expense = record_expense(
        db, store_id=store.id, expense_date=day, amount=Decimal("120"), category="Tea", description="Staff tea"
    )

    assert get_position(db, store_id=store.id, business_date=day) is None
    movement = db.execute(select(CashMovement)).scalar_one()
    assert movement.account_type == AccountType.PETTY_CASH
    assert movement.movement_type == MovementType.EXPENSE
    assert movement.amount == Decimal("-120.00")
    assert movement.reference_id == str(expense.id)


def test_expense_requires_category(db: Session, store: Store, day: date):
    with pytest.raises(ValidationFailed):
        record_expense(db, store_id=store.id, expense_date=day, amount=Decimal("10"), category=" ")


def test_cash_return_is_an_outflow(db: Session, store: Store, day: date):
    add_cash_sale(db, store_id=store.id, business_date=day, amount=Decimal("1000"))
    record_return(
        db,
        store_id=store.id,
        return_date=day,
        return_amount=Decimal("300"),
        refund_method=TenderType.CASH,
        original_bill_reference="B-1001",
    )

    position = get_position(db, store_id=store.id, business_date=day)
    assert position.cash_returns == Decimal("300.00")
    assert position.closing_balance == Decimal("700.00")
    assert current_account_balance(db, store_id=store.id, account_type=AccountType.SALES_CASH) == Decimal("700.00")


def test_hand_bill_and_gift_voucher_collections(db: Session, store: Store, day: date):
    record_hand_bill(
        db, store_id=store.id, bill_date=day, bill_number="HB-7", total_amount=Decimal("80"), tender_type=TenderType.CASH
    )
    record_gift_voucher(
        db,
        store_id=store.id,
        issued_date=day,
        voucher_number="GV-100",
        amount=Decimal("500"),
        tender_type=TenderType.CASH,
    )

    position = get_position(db, store_id=store.id, business_date=day)
    assert position.hand_bill_collections == Decimal("80.00")
    assert position.gift_voucher_sales == Decimal("500.00")
    assert position.closing_balance == Decimal("580.00")


def test_sales_order_posts_cash_advance_only(db: Session, store: Store, day: date):
    order = record_sales_order(
        db,
        store_id=store.id,
        order_date=day,
        order_number="SO-12",
        customer_name="Priya",
        total_amount=Decimal("1000"),
        advance_amount=Decimal("200"),
        tender_type=TenderType.CASH,
    )
    assert order.advance_amount == Decimal("200.00")
    assert get_position(db, store_id=store.id, business_date=day).so_advances == Decimal("200.00")


def test_sales_order_advance_cannot_exceed_total(db: Session, store: Store, day: date):
    with pytest.raises(ValidationFailed):
        record_sales_order(
            db,
            store_id=store.id,
            order_date=day,
            order_number="SO-13",
            customer_name="Priya",
            total_amount=Decimal("100"),
            advance_amount=Decimal("150"),
            tender_type=TenderType.CASH,
        )


def test_cash_sale_on_deposited_day_is_discarded(db: Session, store: Store, day: date, now: datetime):
    position = add_cash_sale(db, store_id=store.id, business_date=day, amount=Decimal("100"))
    create_multi_day_deposit(
        db,
        store_id=store.id,
        position_ids=[position.id],
        amount=Decimal("100"),
        deposit_slip_number="SLIP-9",
        bank_name="State Bank",
        deposited_by="asha",
        now=now,
    )

    with pytest.raises(ValidationFailed):
        record_sale(db, store_id=store.id, sale_date=day, amount=Decimal("50"), tender_type=TenderType.CASH)

    assert db.execute(select(func.count(Sale.id))).scalar_one() == 0
    assert get_position(db, store_id=store.id, business_date=day).cash_sales == Decimal("100.00")


def test_unknown_store(db: Session, day: date):
    with pytest.raises(NotFound):
        record_sale(db, store_id=uuid.uuid4(), sale_date=day, amount=Decimal("1"), tender_type=TenderType.CASH)
