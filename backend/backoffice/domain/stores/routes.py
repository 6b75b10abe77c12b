from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backoffice.core.db.session import get_db
from backoffice.core.middleware.audit import get_actor_id
from backoffice.domain.stores.schemas import StoreCreate, StoreOut
from backoffice.domain.stores.service import create_store, get_store, list_stores


router = APIRouter(prefix="/stores", tags=["Stores"])


@router.get("", response_model=list[StoreOut])
def stores(active_only: bool = Query(default=True), db: Session = Depends(get_db)):
    return list_stores(db, active_only=active_only)


@router.post("", response_model=StoreOut, status_code=status.HTTP_201_CREATED)
def add_store(payload: StoreCreate, db: Session = Depends(get_db)):
    return create_store(db, store_code=payload.store_code, store_name=payload.store_name, actor_id=get_actor_id())


@router.get("/{store_id}", response_model=StoreOut)
def read_store(store_id: uuid.UUID, db: Session = Depends(get_db)):
    return get_store(db, store_id)
