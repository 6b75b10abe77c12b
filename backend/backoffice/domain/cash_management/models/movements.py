from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.db.base import AuditMetaMixin, Base, IdMixin, StoreScopedMixin, value_enum
from backoffice.domain.cash_management.enums import AccountType, MovementType


class CashMovement(Base, IdMixin, StoreScopedMixin, AuditMetaMixin):
    """
    Append-only cash ledger entry.

    The signed sum of movements per (store, account) is the balance of record;
    daily positions are a cached projection of it. There is no update or delete
    path for this table.
    """

    __tablename__ = "cash_movements"

    movement_date: Mapped[date] = mapped_column(Date, nullable=False)
    movement_type: Mapped[MovementType] = mapped_column(value_enum(MovementType, "cash_movement_type_enum"), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(value_enum(AccountType, "cash_account_type_enum"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    reference_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    __table_args__ = (
        Index("ix_cash_movements_store_account_date", "store_id", "account_type", "movement_date"),
    )
