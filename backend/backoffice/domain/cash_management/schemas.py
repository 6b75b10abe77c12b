from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from backoffice.domain.cash_management.enums import (
    AccountType,
    AdjustmentType,
    CountType,
    DepositStatus,
    DepositUrgency,
    MovementType,
    PositionCategory,
    RequestKind,
    RequestPriority,
    RequestStatus,
)


class DailyCashPositionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    store_id: uuid.UUID
    business_date: dt.date
    opening_balance: Decimal
    opening_gap: bool

    cash_sales: Decimal
    so_advances: Decimal
    gift_voucher_sales: Decimal
    hand_bill_collections: Decimal
    petty_transfers_in: Decimal
    other_receipts: Decimal
    cash_returns: Decimal
    cash_refunds: Decimal
    petty_transfers_out: Decimal
    cash_deposits: Decimal

    total_inflows: Decimal
    total_outflows: Decimal
    closing_balance: Decimal

    deposit_status: DepositStatus
    deposit_id: uuid.UUID | None
    deposited_amount: Decimal | None
    deposited_at: dt.datetime | None

    counted_amount: Decimal | None
    count_variance: Decimal | None
    variance_reason: str | None
    variance_resolved: bool

    is_bank_holiday: bool
    holiday_name: str | None
    notes: str | None


class PostingCreate(BaseModel):
    business_date: dt.date
    category: PositionCategory
    amount: Decimal = Field(gt=0)
    reference_type: str | None = Field(default=None, max_length=64)
    reference_id: str | None = Field(default=None, max_length=64)
    description: str | None = Field(default=None, max_length=1000)
    created_by: str | None = Field(default=None, max_length=128)


class BankHolidayCreate(BaseModel):
    holiday_name: str | None = Field(default=None, max_length=200)


class RebuildRequest(BaseModel):
    date_from: dt.date
    date_to: dt.date


class AccountBalanceOut(BaseModel):
    store_id: uuid.UUID
    account_type: AccountType
    balance: Decimal
    as_of: dt.date | None = None


class CashMovementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    store_id: uuid.UUID
    movement_date: dt.date
    movement_type: MovementType
    account_type: AccountType
    amount: Decimal
    reference_type: str | None
    reference_id: str | None
    description: str | None
    created_by: str | None
    created_at: dt.datetime


# Deposits


class DepositCreate(BaseModel):
    position_ids: list[uuid.UUID] = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    deposit_slip_number: str = Field(min_length=1, max_length=100)
    bank_name: str = Field(min_length=1, max_length=200)
    deposited_by: str = Field(min_length=1, max_length=128)
    notes: str | None = Field(default=None, max_length=2000)
    counted_amount: Decimal | None = Field(default=None, ge=0)
    variance_reason: str | None = Field(default=None, max_length=1000)


class DepositDayMappingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    daily_position_id: uuid.UUID
    business_date: dt.date
    amount_included: Decimal


class CashDepositOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    store_id: uuid.UUID
    deposit_date: dt.date
    amount: Decimal
    deposit_slip_number: str
    bank_name: str
    deposited_by: str
    deposited_at: dt.datetime
    notes: str | None
    from_date: dt.date
    to_date: dt.date
    days_included: int
    accumulated_amount: Decimal
    counted_amount: Decimal | None
    variance_reason: str | None


class CashDepositDetailOut(CashDepositOut):
    day_mappings: list[DepositDayMappingOut]


class PendingDayOut(BaseModel):
    position_id: uuid.UUID
    business_date: dt.date
    amount: Decimal
    is_bank_holiday: bool
    holiday_name: str | None


class PendingDepositSummaryOut(BaseModel):
    store_id: uuid.UUID
    oldest_pending_date: dt.date | None
    latest_pending_date: dt.date | None
    days_pending: int
    total_pending_amount: Decimal
    oldest_days_ago: int
    urgency: DepositUrgency
    daily_breakdown: list[PendingDayOut]


class VarianceToleranceOut(BaseModel):
    days_included: int
    tolerance: Decimal


# Approval workflow


class TransferCreate(BaseModel):
    requested_amount: Decimal = Field(gt=0)
    requested_by: str = Field(min_length=1, max_length=128)
    reason: str | None = Field(default=None, max_length=2000)
    priority: RequestPriority = RequestPriority.MEDIUM


class AdjustmentCreate(BaseModel):
    adjustment_type: AdjustmentType
    account_type: AccountType
    # Sign is ignored; direction comes from adjustment_type.
    requested_amount: Decimal
    reason: str = Field(min_length=1, max_length=2000)
    requested_by: str = Field(min_length=1, max_length=128)
    priority: RequestPriority = RequestPriority.MEDIUM


class ApproveRequest(BaseModel):
    approver: str = Field(min_length=1, max_length=128)
    approved_amount: Decimal | None = Field(default=None, gt=0)
    notes: str | None = Field(default=None, max_length=2000)


class RejectRequest(BaseModel):
    approver: str = Field(min_length=1, max_length=128)
    notes: str | None = Field(default=None, max_length=2000)


class CompleteRequest(BaseModel):
    completed_by: str = Field(min_length=1, max_length=128)


class _RequestOutBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    store_id: uuid.UUID
    requested_amount: Decimal
    approved_amount: Decimal | None
    reason: str | None
    status: RequestStatus
    priority: RequestPriority
    requested_by: str
    request_date: dt.datetime
    approved_by: str | None
    approval_date: dt.datetime | None
    approval_notes: str | None
    completed_by: str | None
    completed_at: dt.datetime | None


class CashTransferOut(_RequestOutBase):
    sales_cash_balance: Decimal | None
    petty_cash_balance: Decimal | None


class CashAdjustmentOut(_RequestOutBase):
    adjustment_type: AdjustmentType
    account_type: AccountType
    current_balance_snapshot: Decimal | None
    signed_amount: Decimal


class CashActivityOut(BaseModel):
    kind: RequestKind
    id: uuid.UUID
    status: RequestStatus
    priority: RequestPriority
    account_type: AccountType
    adjustment_type: AdjustmentType | None = None
    amount: Decimal
    reason: str | None
    requested_by: str
    request_date: dt.datetime
    approved_by: str | None
    completed_at: dt.datetime | None


# Cash counts


class CashCountCreate(BaseModel):
    count_date: dt.date
    count_type: CountType
    denominations: dict[int, int] = Field(min_length=1)
    counted_by: str = Field(min_length=1, max_length=128)
    variance_reason: str | None = Field(default=None, max_length=1000)
    notes: str | None = Field(default=None, max_length=2000)


class CashCountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    store_id: uuid.UUID
    count_date: dt.date
    count_type: CountType
    denominations: dict[str, int]
    total_counted: Decimal
    expected_amount: Decimal
    variance: Decimal
    tolerance: Decimal
    variance_reason: str | None
    counted_by: str
    counted_at: dt.datetime
    notes: str | None
