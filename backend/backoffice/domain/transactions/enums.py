from __future__ import annotations

from enum import Enum


class TransactionKind(str, Enum):
    SALE = "sale"
    EXPENSE = "expense"
    RETURN = "return"
    HAND_BILL = "hand_bill"
    GIFT_VOUCHER = "gift_voucher"
    SALES_ORDER = "sales_order"


class ReconciliationStatus(str, Enum):
    PENDING = "pending"
    RECONCILED = "reconciled"


class ReconciliationSource(str, Enum):
    BANK = "bank"
    ERP = "erp"
    CASH = "cash"
    VOUCHER = "voucher"
    MANUAL = "manual"
    BATCH = "batch"
    NONE = "none"


class TenderType(str, Enum):
    CASH = "cash"
    UPI = "upi"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    GIFT_VOUCHER = "gift_voucher"


class GiftVoucherStatus(str, Enum):
    ACTIVE = "active"
    REDEEMED = "redeemed"
    CANCELLED = "cancelled"
