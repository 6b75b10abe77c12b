from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.db.base import AuditMetaMixin, Base, IdMixin, StoreScopedMixin, value_enum
from backoffice.domain.transactions.enums import (
    GiftVoucherStatus,
    ReconciliationSource,
    ReconciliationStatus,
    TenderType,
)


class ReconciliationMixin:
    """Columns every reconcilable transaction carries."""

    reconciliation_status: Mapped[ReconciliationStatus] = mapped_column(
        value_enum(ReconciliationStatus, "reconciliation_status_enum"),
        nullable=False,
        default=ReconciliationStatus.PENDING,
        server_default=ReconciliationStatus.PENDING.value,
        index=True,
    )
    reconciled_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reconciled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reconciliation_source: Mapped[ReconciliationSource | None] = mapped_column(
        value_enum(ReconciliationSource, "reconciliation_source_enum"), nullable=True
    )
    reconciliation_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    external_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)


def _tender_column(nullable: bool = False) -> Mapped[TenderType]:
    return mapped_column(value_enum(TenderType, "tender_type_enum"), nullable=nullable)


class Sale(Base, IdMixin, StoreScopedMixin, ReconciliationMixin, AuditMetaMixin):
    __tablename__ = "sales"

    sale_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    tender_type: Mapped[TenderType] = _tender_column()
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)


class Expense(Base, IdMixin, StoreScopedMixin, ReconciliationMixin, AuditMetaMixin):
    """Petty-cash expense voucher."""

    __tablename__ = "expenses"

    expense_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    voucher_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    voucher_image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)


class SalesReturn(Base, IdMixin, StoreScopedMixin, ReconciliationMixin, AuditMetaMixin):
    __tablename__ = "returns"

    return_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    return_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    refund_method: Mapped[TenderType] = _tender_column()
    original_bill_reference: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)


class HandBill(Base, IdMixin, StoreScopedMixin, ReconciliationMixin, AuditMetaMixin):
    """Manual bill written while the POS was unavailable."""

    __tablename__ = "hand_bills"

    bill_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    bill_number: Mapped[str] = mapped_column(String(100), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    tender_type: Mapped[TenderType] = _tender_column()
    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    __table_args__ = (UniqueConstraint("store_id", "bill_number", name="uq_hand_bills_store_number"),)


class GiftVoucher(Base, IdMixin, StoreScopedMixin, ReconciliationMixin, AuditMetaMixin):
    __tablename__ = "gift_vouchers"

    voucher_number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    issued_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    tender_type: Mapped[TenderType] = _tender_column()
    status: Mapped[GiftVoucherStatus] = mapped_column(
        value_enum(GiftVoucherStatus, "gift_voucher_status_enum"),
        nullable=False,
        default=GiftVoucherStatus.ACTIVE,
        server_default=GiftVoucherStatus.ACTIVE.value,
    )
    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class SalesOrder(Base, IdMixin, StoreScopedMixin, ReconciliationMixin, AuditMetaMixin):
    """Customer order taken with an advance; the reconciled amount is the advance."""

    __tablename__ = "sales_orders"

    order_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    order_number: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    advance_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    tender_type: Mapped[TenderType] = _tender_column()

    __table_args__ = (
        UniqueConstraint("store_id", "order_number", name="uq_sales_orders_store_number"),
        Index("ix_sales_orders_store_date", "store_id", "order_date"),
    )
