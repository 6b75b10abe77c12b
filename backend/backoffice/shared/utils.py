from __future__ import annotations

import datetime as dt
import uuid
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from sqlalchemy import inspect


CENT = Decimal("0.01")


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def money(value: Any) -> Decimal:
    """Normalize a DB/JSON amount to a 2-place Decimal (None counts as zero)."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def sa_model_to_dict(obj) -> dict:
    """Shallow column-only serialization for audit before/after snapshots."""
    mapper = inspect(obj)
    data: dict = {}
    for attr in mapper.mapper.column_attrs:
        key = attr.key
        val = getattr(obj, key)
        if isinstance(val, uuid.UUID):
            data[key] = str(val)
        elif isinstance(val, (dt.date, dt.datetime)):
            data[key] = val.isoformat()
        elif isinstance(val, Decimal):
            # Preserve exact value (avoid float rounding).
            data[key] = str(val)
        elif isinstance(val, Enum):
            data[key] = val.value
        else:
            data[key] = val
    return data
