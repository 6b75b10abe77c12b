from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.core.db.base import AuditMetaMixin, Base, IdMixin, StoreScopedMixin, value_enum
from backoffice.domain.cash_management.enums import (
    AccountType,
    AdjustmentType,
    RequestPriority,
    RequestStatus,
)


class ApprovalFieldsMixin:
    """Columns driven by the shared approval state machine."""

    requested_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    approved_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    status: Mapped[RequestStatus] = mapped_column(
        value_enum(RequestStatus, "cash_request_status_enum"),
        nullable=False,
        default=RequestStatus.PENDING,
        server_default=RequestStatus.PENDING.value,
        index=True,
    )
    priority: Mapped[RequestPriority] = mapped_column(
        value_enum(RequestPriority, "cash_request_priority_enum"),
        nullable=False,
        default=RequestPriority.MEDIUM,
        server_default=RequestPriority.MEDIUM.value,
    )

    requested_by: Mapped[str] = mapped_column(String(128), nullable=False)
    request_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    approved_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    approval_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approval_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class CashTransfer(Base, IdMixin, StoreScopedMixin, ApprovalFieldsMixin, AuditMetaMixin):
    """Request to move funds from sales cash to petty cash."""

    __tablename__ = "cash_transfers"

    # Balances at request time, kept for audit.
    sales_cash_balance: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    petty_cash_balance: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    __table_args__ = (Index("ix_cash_transfers_store_status", "store_id", "status"),)

    @property
    def effective_amount(self) -> Decimal:
        return self.approved_amount if self.approved_amount is not None else self.requested_amount


class CashAdjustment(Base, IdMixin, StoreScopedMixin, ApprovalFieldsMixin, AuditMetaMixin):
    """
    Manual correction of a cash account.

    ``requested_amount``/``approved_amount`` hold magnitudes; the direction comes
    from ``adjustment_type`` (a loss reduces the account, everything else adds).
    """

    __tablename__ = "cash_adjustments"

    adjustment_type: Mapped[AdjustmentType] = mapped_column(value_enum(AdjustmentType, "cash_adjustment_type_enum"), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(value_enum(AccountType, "cash_account_type_enum"), nullable=False)
    current_balance_snapshot: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    __table_args__ = (Index("ix_cash_adjustments_store_status", "store_id", "status"),)

    @property
    def effective_amount(self) -> Decimal:
        return self.approved_amount if self.approved_amount is not None else self.requested_amount

    @property
    def signed_amount(self) -> Decimal:
        amount = self.effective_amount
        return -amount if self.adjustment_type == AdjustmentType.LOSS else amount
