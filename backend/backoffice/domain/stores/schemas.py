from __future__ import annotations

import datetime as dt
import uuid

from pydantic import BaseModel, ConfigDict, Field


class StoreCreate(BaseModel):
    store_code: str = Field(min_length=1, max_length=32)
    store_name: str = Field(min_length=2, max_length=200)


class StoreOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    store_code: str
    store_name: str
    is_active: bool
    created_at: dt.datetime
