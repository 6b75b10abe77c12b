from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Index, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.db.base import AuditMetaMixin, Base, IdMixin, StoreScopedMixin, value_enum
from backoffice.domain.cash_management.enums import DepositStatus, INFLOW_CATEGORIES, PositionCategory
from backoffice.shared.utils import money


def _money_column() -> Mapped[Decimal]:
    return mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0.00"), server_default="0")


class DailyCashPosition(Base, IdMixin, StoreScopedMixin, AuditMetaMixin):
    """
    Sales-cash rollup for one store and business date.

    Created lazily on first access; the opening balance is always seeded from the
    previous day's closing balance. Rows are never deleted, and once a day has
    been deposited its closing balance is frozen.
    """

    __tablename__ = "daily_cash_positions"

    business_date: Mapped[date] = mapped_column(Date, nullable=False)
    opening_balance: Mapped[Decimal] = _money_column()
    # Prior day missing while earlier days exist; opening defaulted to 0.
    opening_gap: Mapped[bool] = mapped_column(default=False, nullable=False)

    # Inflows
    cash_sales: Mapped[Decimal] = _money_column()
    so_advances: Mapped[Decimal] = _money_column()
    gift_voucher_sales: Mapped[Decimal] = _money_column()
    hand_bill_collections: Mapped[Decimal] = _money_column()
    petty_transfers_in: Mapped[Decimal] = _money_column()
    other_receipts: Mapped[Decimal] = _money_column()

    # Outflows
    cash_returns: Mapped[Decimal] = _money_column()
    cash_refunds: Mapped[Decimal] = _money_column()
    petty_transfers_out: Mapped[Decimal] = _money_column()
    cash_deposits: Mapped[Decimal] = _money_column()

    closing_balance: Mapped[Decimal] = _money_column()

    deposit_status: Mapped[DepositStatus] = mapped_column(
        value_enum(DepositStatus, "deposit_status_enum"),
        nullable=False,
        default=DepositStatus.PENDING,
        server_default=DepositStatus.PENDING.value,
        index=True,
    )
    deposit_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("cash_deposits.id", ondelete="SET NULL"), nullable=True, index=True
    )
    deposited_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    deposited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    count_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    counted_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    count_variance: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    variance_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    variance_resolved: Mapped[bool] = mapped_column(default=False, nullable=False)

    is_bank_holiday: Mapped[bool] = mapped_column(default=False, nullable=False)
    holiday_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    __table_args__ = (
        UniqueConstraint("store_id", "business_date", name="uq_daily_cash_positions_store_date"),
        Index("ix_daily_cash_positions_store_status", "store_id", "deposit_status"),
    )

    @property
    def total_inflows(self) -> Decimal:
        return sum((money(getattr(self, c.value)) for c in PositionCategory if c in INFLOW_CATEGORIES), Decimal("0.00"))

    @property
    def total_outflows(self) -> Decimal:
        return sum((money(getattr(self, c.value)) for c in PositionCategory if c not in INFLOW_CATEGORIES), Decimal("0.00"))

    def recompute_closing(self) -> Decimal:
        self.closing_balance = money(self.opening_balance) + self.total_inflows - self.total_outflows
        return self.closing_balance

    @property
    def is_deposited(self) -> bool:
        return self.deposit_status == DepositStatus.DEPOSITED
