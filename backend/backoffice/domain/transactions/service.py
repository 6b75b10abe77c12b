from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from backoffice.core.logging import get_logger
from backoffice.domain.cash_management.enums import AccountType, MovementType
from backoffice.domain.cash_management.services.ledger import (
    add_cash_return,
    add_cash_sale,
    add_gift_voucher_sale,
    add_hand_bill_collection,
    add_so_advance,
    append_movement,
)
from backoffice.domain.stores.service import get_store
from backoffice.domain.transactions.enums import TenderType
from backoffice.domain.transactions.models import Expense, GiftVoucher, HandBill, Sale, SalesOrder, SalesReturn
from backoffice.shared.exceptions import AppError, ValidationFailed
from backoffice.shared.utils import money


log = get_logger(__name__)


def _positive(amount: Decimal, field: str = "amount") -> Decimal:
    value = money(amount)
    if value <= 0:
        raise ValidationFailed(f"{field} must be greater than zero", **{field: value})
    return value


def _post_cash(db: Session, post, **kwargs) -> None:
    """Post a cash tender into the ledger in the caller's transaction; a rejected posting discards the row too."""
    try:
        post(db, commit=False, **kwargs)
    except AppError:
        db.rollback()
        raise


def _finish(db: Session, row, kind: str) -> None:
    db.commit()
    db.refresh(row)
    log.info("transaction.recorded", kind=kind, transaction_id=str(row.id), store_id=str(row.store_id))


def record_sale(
    db: Session,
    *,
    store_id: uuid.UUID,
    sale_date: date,
    amount: Decimal,
    tender_type: TenderType,
    notes: str | None = None,
    created_by: str | None = None,
) -> Sale:
    get_store(db, store_id)
    sale = Sale(
        store_id=store_id,
        sale_date=sale_date,
        amount=_positive(amount),
        tender_type=TenderType(tender_type),
        notes=notes,
        created_by=created_by,
        updated_by=created_by,
    )
    db.add(sale)
    db.flush()
    if sale.tender_type == TenderType.CASH:
        _post_cash(
            db,
            add_cash_sale,
            store_id=store_id,
            business_date=sale_date,
            amount=sale.amount,
            reference_type="sale",
            reference_id=sale.id,
            description=f"Cash sale{f' - {notes}' if notes else ''}",
            created_by=created_by,
        )
    _finish(db, sale, "sale")
    return sale


def record_expense(
    db: Session,
    *,
    store_id: uuid.UUID,
    expense_date: date,
    amount: Decimal,
    category: str,
    description: str | None = None,
    voucher_number: str | None = None,
    voucher_image_url: str | None = None,
    created_by: str | None = None,
) -> Expense:
    """Expenses are paid from petty cash and only touch the petty-cash movement log."""
    get_store(db, store_id)
    if not (category or "").strip():
        raise ValidationFailed("Expense category is required")
    expense = Expense(
        store_id=store_id,
        expense_date=expense_date,
        amount=_positive(amount),
        category=category.strip(),
        description=description,
        voucher_number=voucher_number,
        voucher_image_url=voucher_image_url,
        created_by=created_by,
        updated_by=created_by,
    )
    db.add(expense)
    db.flush()
    append_movement(
        db,
        store_id=store_id,
        movement_date=expense_date,
        movement_type=MovementType.EXPENSE,
        account_type=AccountType.PETTY_CASH,
        amount=-expense.amount,
        reference_type="expense",
        reference_id=expense.id,
        description=f"{expense.category} - {description or ''}".rstrip(" -"),
        created_by=created_by,
    )
    _finish(db, expense, "expense")
    return expense


def record_return(
    db: Session,
    *,
    store_id: uuid.UUID,
    return_date: date,
    return_amount: Decimal,
    refund_method: TenderType,
    original_bill_reference: str,
    customer_name: str | None = None,
    reason: str | None = None,
    created_by: str | None = None,
) -> SalesReturn:
    get_store(db, store_id)
    if not (original_bill_reference or "").strip():
        raise ValidationFailed("original_bill_reference is required")
    sales_return = SalesReturn(
        store_id=store_id,
        return_date=return_date,
        return_amount=_positive(return_amount, "return_amount"),
        refund_method=TenderType(refund_method),
        original_bill_reference=original_bill_reference.strip(),
        customer_name=customer_name,
        reason=reason,
        created_by=created_by,
        updated_by=created_by,
    )
    db.add(sales_return)
    db.flush()
    if sales_return.refund_method == TenderType.CASH:
        _post_cash(
            db,
            add_cash_return,
            store_id=store_id,
            business_date=return_date,
            amount=sales_return.return_amount,
            reference_type="return",
            reference_id=sales_return.id,
            description=f"Cash return - {sales_return.original_bill_reference}",
            created_by=created_by,
        )
    _finish(db, sales_return, "return")
    return sales_return


def record_hand_bill(
    db: Session,
    *,
    store_id: uuid.UUID,
    bill_date: date,
    bill_number: str,
    total_amount: Decimal,
    tender_type: TenderType,
    customer_name: str | None = None,
    image_url: str | None = None,
    created_by: str | None = None,
) -> HandBill:
    get_store(db, store_id)
    bill = HandBill(
        store_id=store_id,
        bill_date=bill_date,
        bill_number=bill_number,
        total_amount=_positive(total_amount, "total_amount"),
        tender_type=TenderType(tender_type),
        customer_name=customer_name,
        image_url=image_url,
        created_by=created_by,
        updated_by=created_by,
    )
    db.add(bill)
    db.flush()
    if bill.tender_type == TenderType.CASH:
        _post_cash(
            db,
            add_hand_bill_collection,
            store_id=store_id,
            business_date=bill_date,
            amount=bill.total_amount,
            reference_type="hand_bill",
            reference_id=bill.id,
            description=f"Hand bill - {bill_number}",
            created_by=created_by,
        )
    _finish(db, bill, "hand_bill")
    return bill


def record_gift_voucher(
    db: Session,
    *,
    store_id: uuid.UUID,
    issued_date: date,
    voucher_number: str,
    amount: Decimal,
    tender_type: TenderType,
    customer_name: str | None = None,
    expiry_date: date | None = None,
    created_by: str | None = None,
) -> GiftVoucher:
    get_store(db, store_id)
    voucher = GiftVoucher(
        store_id=store_id,
        issued_date=issued_date,
        voucher_number=voucher_number,
        amount=_positive(amount),
        tender_type=TenderType(tender_type),
        customer_name=customer_name,
        expiry_date=expiry_date,
        created_by=created_by,
        updated_by=created_by,
    )
    db.add(voucher)
    db.flush()
    if voucher.tender_type == TenderType.CASH:
        _post_cash(
            db,
            add_gift_voucher_sale,
            store_id=store_id,
            business_date=issued_date,
            amount=voucher.amount,
            reference_type="gift_voucher",
            reference_id=voucher.id,
            description=f"Gift voucher - {voucher_number}",
            created_by=created_by,
        )
    _finish(db, voucher, "gift_voucher")
    return voucher


def record_sales_order(
    db: Session,
    *,
    store_id: uuid.UUID,
    order_date: date,
    order_number: str,
    customer_name: str,
    total_amount: Decimal,
    advance_amount: Decimal,
    tender_type: TenderType,
    created_by: str | None = None,
) -> SalesOrder:
    get_store(db, store_id)
    total = _positive(total_amount, "total_amount")
    advance = money(advance_amount)
    if advance < 0 or advance > total:
        raise ValidationFailed(
            "advance_amount must be between 0 and total_amount",
            advance_amount=advance,
            total_amount=total,
        )
    order = SalesOrder(
        store_id=store_id,
        order_date=order_date,
        order_number=order_number,
        customer_name=customer_name,
        total_amount=total,
        advance_amount=advance,
        tender_type=TenderType(tender_type),
        created_by=created_by,
        updated_by=created_by,
    )
    db.add(order)
    db.flush()
    if order.tender_type == TenderType.CASH and advance > 0:
        _post_cash(
            db,
            add_so_advance,
            store_id=store_id,
            business_date=order_date,
            amount=advance,
            reference_type="sales_order",
            reference_id=order.id,
            description=f"Sales order advance - {order_number}",
            created_by=created_by,
        )
    _finish(db, order, "sales_order")
    return order
