from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from backoffice.domain.transactions.enums import ReconciliationSource, ReconciliationStatus, TransactionKind


class PendingTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    type: TransactionKind
    date: dt.date
    amount: Decimal
    description: str
    store_id: uuid.UUID
    store_name: str | None
    tender_type: str | None
    status: ReconciliationStatus
    created_at: dt.datetime
    image_url: str | None


class ReconcileRequest(BaseModel):
    reconciled_by: str = Field(min_length=1, max_length=128)
    source: ReconciliationSource | None = None
    notes: str | None = Field(default=None, max_length=2000)
    external_reference: str | None = Field(default=None, max_length=200)


class ReconciledOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    store_id: uuid.UUID
    reconciliation_status: ReconciliationStatus
    reconciled_by: str | None
    reconciled_at: dt.datetime | None
    reconciliation_source: ReconciliationSource | None
    reconciliation_notes: str | None
    external_reference: str | None


class BatchItemIn(BaseModel):
    id: uuid.UUID
    # Free-form so an unknown type is reported per item instead of failing the batch.
    type: str
    reconciled_by: str = Field(min_length=1, max_length=128)
    source: ReconciliationSource | None = None
    notes: str | None = Field(default=None, max_length=2000)
    external_reference: str | None = Field(default=None, max_length=200)


class BatchReconcileRequest(BaseModel):
    items: list[BatchItemIn] = Field(min_length=1)


class BatchResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    type: str
    success: bool
    error: str | None
    details: dict


class TypeSummaryOut(BaseModel):
    total: int
    reconciled: int
    pending: int


class ReconciliationSummaryOut(BaseModel):
    date_from: dt.date
    date_to: dt.date
    total: int
    reconciled: int
    pending: int
    by_type: dict[str, TypeSummaryOut]
