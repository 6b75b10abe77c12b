from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.core.db.base import AuditMetaMixin, Base, IdMixin, StoreScopedMixin


class CashDeposit(Base, IdMixin, StoreScopedMixin, AuditMetaMixin):
    """One bank-deposit event covering one or more business days."""

    __tablename__ = "cash_deposits"

    deposit_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    deposit_slip_number: Mapped[str] = mapped_column(String(100), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(200), nullable=False)
    deposited_by: Mapped[str] = mapped_column(String(128), nullable=False)
    deposited_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    from_date: Mapped[date] = mapped_column(Date, nullable=False)
    to_date: Mapped[date] = mapped_column(Date, nullable=False)
    days_included: Mapped[int] = mapped_column(Integer, nullable=False)
    accumulated_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    counted_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    variance_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    day_mappings: Mapped[list["DepositDayMapping"]] = relationship(
        back_populates="deposit",
        cascade="all, delete-orphan",
        order_by="DepositDayMapping.business_date",
    )

    __table_args__ = (Index("ix_cash_deposits_store_date", "store_id", "deposit_date"),)


class DepositDayMapping(Base, IdMixin, AuditMetaMixin):
    """Attribution of a deposit to one daily position."""

    __tablename__ = "deposit_day_mappings"

    deposit_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("cash_deposits.id", ondelete="CASCADE"), nullable=False, index=True)
    daily_position_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("daily_cash_positions.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    business_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_included: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    deposit: Mapped[CashDeposit] = relationship(back_populates="day_mappings")

    __table_args__ = (UniqueConstraint("daily_position_id", name="uq_deposit_day_mappings_position"),)
