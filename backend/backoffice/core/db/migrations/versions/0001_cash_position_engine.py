"""Cash position and reconciliation engine.

This migration adds:
- stores and audit_events
- daily_cash_positions, cash_movements, cash_deposits, deposit_day_mappings
- cash_transfers, cash_adjustments, cash_counts
- sales, expenses, returns, hand_bills, gift_vouchers, sales_orders
  with their reconciliation columns

Revision ID: 0001_cash_position_engine
Revises:
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001_cash_position_engine"
down_revision = None


ENUMS: dict[str, tuple[str, ...]] = {
    "deposit_status_enum": ("pending", "deposited", "partial", "carried_forward"),
    "cash_movement_type_enum": (
        "cash_sale",
        "so_advance",
        "gift_voucher_sale",
        "hand_bill",
        "petty_transfer_in",
        "other_receipt",
        "cash_return",
        "cash_refund",
        "petty_transfer_out",
        "cash_deposit",
        "deposit",
        "transfer",
        "adjustment",
        "expense",
    ),
    "cash_account_type_enum": ("sales_cash", "petty_cash"),
    "cash_request_status_enum": ("pending", "approved", "rejected", "completed"),
    "cash_request_priority_enum": ("low", "medium", "high"),
    "cash_adjustment_type_enum": ("initial_setup", "correction", "injection", "loss"),
    "cash_count_type_enum": ("sales_drawer", "petty_cash"),
    "reconciliation_status_enum": ("pending", "reconciled"),
    "reconciliation_source_enum": ("bank", "erp", "cash", "voucher", "manual", "batch", "none"),
    "tender_type_enum": ("cash", "upi", "credit_card", "debit_card", "bank_transfer", "gift_voucher"),
    "gift_voucher_status_enum": ("active", "redeemed", "cancelled"),
}


def _enum(name: str) -> postgresql.ENUM:
    # Types are created up front; several tables share one type.
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _money(name: str, nullable: bool = False, default: bool = False) -> sa.Column:
    return sa.Column(name, sa.Numeric(14, 2), nullable=nullable, server_default="0" if default else None)


def _id() -> sa.Column:
    return sa.Column("id", sa.Uuid(), primary_key=True, nullable=False)


def _store_id() -> sa.Column:
    return sa.Column("store_id", sa.Uuid(), sa.ForeignKey("stores.id", ondelete="RESTRICT"), nullable=False)


def _audit_meta() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("updated_by", sa.String(length=128), nullable=True),
    ]


def _approval_fields() -> list[sa.Column]:
    return [
        _money("requested_amount"),
        _money("approved_amount", nullable=True),
        sa.Column("reason", sa.String(length=2000), nullable=True),
        sa.Column("status", _enum("cash_request_status_enum"), nullable=False, server_default="pending"),
        sa.Column("priority", _enum("cash_request_priority_enum"), nullable=False, server_default="medium"),
        sa.Column("requested_by", sa.String(length=128), nullable=False),
        sa.Column("request_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approved_by", sa.String(length=128), nullable=True),
        sa.Column("approval_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approval_notes", sa.String(length=2000), nullable=True),
        sa.Column("completed_by", sa.String(length=128), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _reconciliation_fields() -> list[sa.Column]:
    return [
        sa.Column(
            "reconciliation_status", _enum("reconciliation_status_enum"), nullable=False, server_default="pending"
        ),
        sa.Column("reconciled_by", sa.String(length=128), nullable=True),
        sa.Column("reconciled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reconciliation_source", _enum("reconciliation_source_enum"), nullable=True),
        sa.Column("reconciliation_notes", sa.String(length=2000), nullable=True),
        sa.Column("external_reference", sa.String(length=200), nullable=True),
    ]


TRANSACTION_TABLES = {
    "sales": "sale_date",
    "expenses": "expense_date",
    "returns": "return_date",
    "hand_bills": "bill_date",
    "gift_vouchers": "issued_date",
    "sales_orders": "order_date",
}


def upgrade() -> None:
    for name, values in ENUMS.items():
        labels = ", ".join(f"'{v}'" for v in values)
        op.execute(f"CREATE TYPE {name} AS ENUM ({labels})")

    # --- Store directory and audit trail
    op.create_table(
        "stores",
        _id(),
        sa.Column("store_code", sa.String(length=32), nullable=False),
        sa.Column("store_name", sa.String(length=200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit_meta(),
    )
    op.create_index("ix_stores_id", "stores", ["id"])
    op.create_index("ix_stores_store_code", "stores", ["store_code"], unique=True)

    op.create_table(
        "audit_events",
        _id(),
        _store_id(),
        sa.Column("actor_id", sa.String(length=200), nullable=False),
        sa.Column("action", sa.String(length=200), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.String(length=200), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("request_id", sa.String(length=64), nullable=False),
        *_audit_meta(),
    )
    for column in ("id", "store_id", "actor_id", "action", "entity_type", "entity_id", "request_id"):
        op.create_index(f"ix_audit_events_{column}", "audit_events", [column])
    op.create_index("ix_audit_events_store_entity", "audit_events", ["store_id", "entity_type", "entity_id"])

    # --- Deposits (positions reference them)
    op.create_table(
        "cash_deposits",
        _id(),
        _store_id(),
        sa.Column("deposit_date", sa.Date(), nullable=False),
        _money("amount"),
        sa.Column("deposit_slip_number", sa.String(length=100), nullable=False),
        sa.Column("bank_name", sa.String(length=200), nullable=False),
        sa.Column("deposited_by", sa.String(length=128), nullable=False),
        sa.Column("deposited_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        sa.Column("from_date", sa.Date(), nullable=False),
        sa.Column("to_date", sa.Date(), nullable=False),
        sa.Column("days_included", sa.Integer(), nullable=False),
        _money("accumulated_amount"),
        _money("counted_amount", nullable=True),
        sa.Column("variance_reason", sa.String(length=1000), nullable=True),
        *_audit_meta(),
    )
    op.create_index("ix_cash_deposits_id", "cash_deposits", ["id"])
    op.create_index("ix_cash_deposits_store_id", "cash_deposits", ["store_id"])
    op.create_index("ix_cash_deposits_store_date", "cash_deposits", ["store_id", "deposit_date"])

    # --- Ledger rollup
    op.create_table(
        "daily_cash_positions",
        _id(),
        _store_id(),
        sa.Column("business_date", sa.Date(), nullable=False),
        _money("opening_balance", default=True),
        sa.Column("opening_gap", sa.Boolean(), nullable=False, server_default=sa.false()),
        _money("cash_sales", default=True),
        _money("so_advances", default=True),
        _money("gift_voucher_sales", default=True),
        _money("hand_bill_collections", default=True),
        _money("petty_transfers_in", default=True),
        _money("other_receipts", default=True),
        _money("cash_returns", default=True),
        _money("cash_refunds", default=True),
        _money("petty_transfers_out", default=True),
        _money("cash_deposits", default=True),
        _money("closing_balance", default=True),
        sa.Column("deposit_status", _enum("deposit_status_enum"), nullable=False, server_default="pending"),
        sa.Column("deposit_id", sa.Uuid(), sa.ForeignKey("cash_deposits.id", ondelete="SET NULL"), nullable=True),
        _money("deposited_amount", nullable=True),
        sa.Column("deposited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("count_id", sa.Uuid(), nullable=True),
        _money("counted_amount", nullable=True),
        _money("count_variance", nullable=True),
        sa.Column("variance_reason", sa.String(length=1000), nullable=True),
        sa.Column("variance_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_bank_holiday", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("holiday_name", sa.String(length=200), nullable=True),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        *_audit_meta(),
        sa.UniqueConstraint("store_id", "business_date", name="uq_daily_cash_positions_store_date"),
    )
    op.create_index("ix_daily_cash_positions_id", "daily_cash_positions", ["id"])
    op.create_index("ix_daily_cash_positions_store_id", "daily_cash_positions", ["store_id"])
    op.create_index("ix_daily_cash_positions_deposit_status", "daily_cash_positions", ["deposit_status"])
    op.create_index("ix_daily_cash_positions_deposit_id", "daily_cash_positions", ["deposit_id"])
    op.create_index("ix_daily_cash_positions_store_status", "daily_cash_positions", ["store_id", "deposit_status"])

    op.create_table(
        "deposit_day_mappings",
        _id(),
        sa.Column("deposit_id", sa.Uuid(), sa.ForeignKey("cash_deposits.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "daily_position_id",
            sa.Uuid(),
            sa.ForeignKey("daily_cash_positions.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("business_date", sa.Date(), nullable=False),
        _money("amount_included"),
        *_audit_meta(),
        sa.UniqueConstraint("daily_position_id", name="uq_deposit_day_mappings_position"),
    )
    op.create_index("ix_deposit_day_mappings_id", "deposit_day_mappings", ["id"])
    op.create_index("ix_deposit_day_mappings_deposit_id", "deposit_day_mappings", ["deposit_id"])
    op.create_index("ix_deposit_day_mappings_daily_position_id", "deposit_day_mappings", ["daily_position_id"])

    # --- Movement log (append-only)
    op.create_table(
        "cash_movements",
        _id(),
        _store_id(),
        sa.Column("movement_date", sa.Date(), nullable=False),
        sa.Column("movement_type", _enum("cash_movement_type_enum"), nullable=False),
        sa.Column("account_type", _enum("cash_account_type_enum"), nullable=False),
        _money("amount"),
        sa.Column("reference_type", sa.String(length=64), nullable=True),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("description", sa.String(length=1000), nullable=True),
        *_audit_meta(),
    )
    op.create_index("ix_cash_movements_id", "cash_movements", ["id"])
    op.create_index("ix_cash_movements_store_id", "cash_movements", ["store_id"])
    op.create_index("ix_cash_movements_reference_id", "cash_movements", ["reference_id"])
    op.create_index(
        "ix_cash_movements_store_account_date", "cash_movements", ["store_id", "account_type", "movement_date"]
    )

    # --- Approval workflow
    op.create_table(
        "cash_transfers",
        _id(),
        _store_id(),
        *_approval_fields(),
        _money("sales_cash_balance", nullable=True),
        _money("petty_cash_balance", nullable=True),
        *_audit_meta(),
    )
    op.create_table(
        "cash_adjustments",
        _id(),
        _store_id(),
        *_approval_fields(),
        sa.Column("adjustment_type", _enum("cash_adjustment_type_enum"), nullable=False),
        sa.Column("account_type", _enum("cash_account_type_enum"), nullable=False),
        _money("current_balance_snapshot", nullable=True),
        *_audit_meta(),
    )
    for table in ("cash_transfers", "cash_adjustments"):
        op.create_index(f"ix_{table}_id", table, ["id"])
        op.create_index(f"ix_{table}_store_id", table, ["store_id"])
        op.create_index(f"ix_{table}_status", table, ["status"])
        op.create_index(f"ix_{table}_store_status", table, ["store_id", "status"])

    # --- Physical counts
    op.create_table(
        "cash_counts",
        _id(),
        _store_id(),
        sa.Column("count_date", sa.Date(), nullable=False),
        sa.Column("count_type", _enum("cash_count_type_enum"), nullable=False),
        sa.Column("denominations", sa.JSON(), nullable=False),
        _money("total_counted"),
        _money("expected_amount"),
        _money("variance"),
        _money("tolerance"),
        sa.Column("variance_reason", sa.String(length=1000), nullable=True),
        sa.Column("counted_by", sa.String(length=128), nullable=False),
        sa.Column("counted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        *_audit_meta(),
    )
    op.create_index("ix_cash_counts_id", "cash_counts", ["id"])
    op.create_index("ix_cash_counts_store_id", "cash_counts", ["store_id"])
    op.create_index("ix_cash_counts_store_type_date", "cash_counts", ["store_id", "count_type", "count_date"])

    # --- Reconcilable transactions
    op.create_table(
        "sales",
        _id(),
        _store_id(),
        sa.Column("sale_date", sa.Date(), nullable=False),
        _money("amount"),
        sa.Column("tender_type", _enum("tender_type_enum"), nullable=False),
        sa.Column("notes", sa.String(length=2000), nullable=True),
        *_reconciliation_fields(),
        *_audit_meta(),
    )
    op.create_table(
        "expenses",
        _id(),
        _store_id(),
        sa.Column("expense_date", sa.Date(), nullable=False),
        _money("amount"),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("voucher_number", sa.String(length=100), nullable=True),
        sa.Column("voucher_image_url", sa.String(length=1000), nullable=True),
        *_reconciliation_fields(),
        *_audit_meta(),
    )
    op.create_table(
        "returns",
        _id(),
        _store_id(),
        sa.Column("return_date", sa.Date(), nullable=False),
        _money("return_amount"),
        sa.Column("refund_method", _enum("tender_type_enum"), nullable=False),
        sa.Column("original_bill_reference", sa.String(length=100), nullable=False),
        sa.Column("customer_name", sa.String(length=200), nullable=True),
        sa.Column("reason", sa.String(length=1000), nullable=True),
        *_reconciliation_fields(),
        *_audit_meta(),
    )
    op.create_table(
        "hand_bills",
        _id(),
        _store_id(),
        sa.Column("bill_date", sa.Date(), nullable=False),
        sa.Column("bill_number", sa.String(length=100), nullable=False),
        _money("total_amount"),
        sa.Column("tender_type", _enum("tender_type_enum"), nullable=False),
        sa.Column("customer_name", sa.String(length=200), nullable=True),
        sa.Column("image_url", sa.String(length=1000), nullable=True),
        *_reconciliation_fields(),
        *_audit_meta(),
        sa.UniqueConstraint("store_id", "bill_number", name="uq_hand_bills_store_number"),
    )
    op.create_table(
        "gift_vouchers",
        _id(),
        _store_id(),
        sa.Column("voucher_number", sa.String(length=100), nullable=False, unique=True),
        sa.Column("issued_date", sa.Date(), nullable=False),
        _money("amount"),
        sa.Column("tender_type", _enum("tender_type_enum"), nullable=False),
        sa.Column("status", _enum("gift_voucher_status_enum"), nullable=False, server_default="active"),
        sa.Column("customer_name", sa.String(length=200), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        *_reconciliation_fields(),
        *_audit_meta(),
    )
    op.create_table(
        "sales_orders",
        _id(),
        _store_id(),
        sa.Column("order_date", sa.Date(), nullable=False),
        sa.Column("order_number", sa.String(length=100), nullable=False),
        sa.Column("customer_name", sa.String(length=200), nullable=False),
        _money("total_amount"),
        _money("advance_amount"),
        sa.Column("tender_type", _enum("tender_type_enum"), nullable=False),
        *_reconciliation_fields(),
        *_audit_meta(),
        sa.UniqueConstraint("store_id", "order_number", name="uq_sales_orders_store_number"),
    )
    op.create_index("ix_sales_orders_store_date", "sales_orders", ["store_id", "order_date"])

    for table, date_column in TRANSACTION_TABLES.items():
        op.create_index(f"ix_{table}_id", table, ["id"])
        op.create_index(f"ix_{table}_store_id", table, ["store_id"])
        op.create_index(f"ix_{table}_{date_column}", table, [date_column])
        op.create_index(f"ix_{table}_reconciliation_status", table, ["reconciliation_status"])


def downgrade() -> None:
    for table in reversed(TRANSACTION_TABLES):
        op.drop_table(table)
    op.drop_table("cash_counts")
    op.drop_table("cash_adjustments")
    op.drop_table("cash_transfers")
    op.drop_table("cash_movements")
    op.drop_table("deposit_day_mappings")
    op.drop_table("daily_cash_positions")
    op.drop_table("cash_deposits")
    op.drop_table("audit_events")
    op.drop_table("stores")

    for name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE {name}")
