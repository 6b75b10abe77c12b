from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, Date, DateTime, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.db.base import AuditMetaMixin, Base, IdMixin, StoreScopedMixin, value_enum
from backoffice.domain.cash_management.enums import CountType


class CashCount(Base, IdMixin, StoreScopedMixin, AuditMetaMixin):
    """Physical denomination count of a cash drawer, compared with the expected amount."""

    __tablename__ = "cash_counts"

    count_date: Mapped[date] = mapped_column(Date, nullable=False)
    count_type: Mapped[CountType] = mapped_column(value_enum(CountType, "cash_count_type_enum"), nullable=False)
    denominations: Mapped[dict] = mapped_column(JSON, nullable=False)  # {"500": 4, "100": 7}
    total_counted: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    expected_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    variance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    tolerance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    variance_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    counted_by: Mapped[str] = mapped_column(String(128), nullable=False)
    counted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    __table_args__ = (Index("ix_cash_counts_store_type_date", "store_id", "count_type", "count_date"),)
