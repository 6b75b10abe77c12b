from __future__ import annotations

from enum import Enum


class AccountType(str, Enum):
    SALES_CASH = "sales_cash"
    PETTY_CASH = "petty_cash"


class DepositStatus(str, Enum):
    PENDING = "pending"
    DEPOSITED = "deposited"
    PARTIAL = "partial"
    CARRIED_FORWARD = "carried_forward"


class DepositUrgency(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class PositionCategory(str, Enum):
    """Inflow/outflow columns of a daily cash position."""

    CASH_SALES = "cash_sales"
    SO_ADVANCES = "so_advances"
    GIFT_VOUCHER_SALES = "gift_voucher_sales"
    HAND_BILL_COLLECTIONS = "hand_bill_collections"
    PETTY_TRANSFERS_IN = "petty_transfers_in"
    OTHER_RECEIPTS = "other_receipts"
    CASH_RETURNS = "cash_returns"
    CASH_REFUNDS = "cash_refunds"
    PETTY_TRANSFERS_OUT = "petty_transfers_out"
    CASH_DEPOSITS = "cash_deposits"

    @property
    def is_inflow(self) -> bool:
        return self in INFLOW_CATEGORIES


INFLOW_CATEGORIES = frozenset(
    {
        PositionCategory.CASH_SALES,
        PositionCategory.SO_ADVANCES,
        PositionCategory.GIFT_VOUCHER_SALES,
        PositionCategory.HAND_BILL_COLLECTIONS,
        PositionCategory.PETTY_TRANSFERS_IN,
        PositionCategory.OTHER_RECEIPTS,
    }
)


class MovementType(str, Enum):
    CASH_SALE = "cash_sale"
    SO_ADVANCE = "so_advance"
    GIFT_VOUCHER_SALE = "gift_voucher_sale"
    HAND_BILL = "hand_bill"
    PETTY_TRANSFER_IN = "petty_transfer_in"
    OTHER_RECEIPT = "other_receipt"
    CASH_RETURN = "cash_return"
    CASH_REFUND = "cash_refund"
    PETTY_TRANSFER_OUT = "petty_transfer_out"
    CASH_DEPOSIT = "cash_deposit"
    # Multi-day bank deposit; settles positions without touching their rollup.
    DEPOSIT = "deposit"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"
    EXPENSE = "expense"


# Rollup column each sales-cash movement type projects into.
CATEGORY_BY_MOVEMENT: dict[MovementType, PositionCategory] = {
    MovementType.CASH_SALE: PositionCategory.CASH_SALES,
    MovementType.SO_ADVANCE: PositionCategory.SO_ADVANCES,
    MovementType.GIFT_VOUCHER_SALE: PositionCategory.GIFT_VOUCHER_SALES,
    MovementType.HAND_BILL: PositionCategory.HAND_BILL_COLLECTIONS,
    MovementType.PETTY_TRANSFER_IN: PositionCategory.PETTY_TRANSFERS_IN,
    MovementType.OTHER_RECEIPT: PositionCategory.OTHER_RECEIPTS,
    MovementType.ADJUSTMENT: PositionCategory.OTHER_RECEIPTS,
    MovementType.CASH_RETURN: PositionCategory.CASH_RETURNS,
    MovementType.CASH_REFUND: PositionCategory.CASH_REFUNDS,
    MovementType.PETTY_TRANSFER_OUT: PositionCategory.PETTY_TRANSFERS_OUT,
    MovementType.TRANSFER: PositionCategory.PETTY_TRANSFERS_OUT,
    MovementType.CASH_DEPOSIT: PositionCategory.CASH_DEPOSITS,
}

MOVEMENT_BY_CATEGORY: dict[PositionCategory, MovementType] = {
    PositionCategory.CASH_SALES: MovementType.CASH_SALE,
    PositionCategory.SO_ADVANCES: MovementType.SO_ADVANCE,
    PositionCategory.GIFT_VOUCHER_SALES: MovementType.GIFT_VOUCHER_SALE,
    PositionCategory.HAND_BILL_COLLECTIONS: MovementType.HAND_BILL,
    PositionCategory.PETTY_TRANSFERS_IN: MovementType.PETTY_TRANSFER_IN,
    PositionCategory.OTHER_RECEIPTS: MovementType.OTHER_RECEIPT,
    PositionCategory.CASH_RETURNS: MovementType.CASH_RETURN,
    PositionCategory.CASH_REFUNDS: MovementType.CASH_REFUND,
    PositionCategory.PETTY_TRANSFERS_OUT: MovementType.PETTY_TRANSFER_OUT,
    PositionCategory.CASH_DEPOSITS: MovementType.CASH_DEPOSIT,
}


class RequestKind(str, Enum):
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class RequestPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AdjustmentType(str, Enum):
    INITIAL_SETUP = "initial_setup"
    CORRECTION = "correction"
    INJECTION = "injection"
    LOSS = "loss"


class CountType(str, Enum):
    SALES_DRAWER = "sales_drawer"
    PETTY_CASH = "petty_cash"

    @property
    def account_type(self) -> AccountType:
        return AccountType.SALES_CASH if self == CountType.SALES_DRAWER else AccountType.PETTY_CASH
