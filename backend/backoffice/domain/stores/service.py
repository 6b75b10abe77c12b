from __future__ import annotations

import uuid
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.core.db.models import Store
from backoffice.shared.exceptions import NotFound, ValidationFailed


def get_store(db: Session, store_id: uuid.UUID) -> Store:
    store = db.get(Store, store_id)
    if store is None:
        raise NotFound(f"Store {store_id} not found", store_id=str(store_id))
    return store


def store_names(db: Session, store_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, str]:
    ids = set(store_ids)
    if not ids:
        return {}
    rows = db.execute(select(Store.id, Store.store_name).where(Store.id.in_(ids))).all()
    return {row.id: row.store_name for row in rows}


def list_stores(db: Session, *, active_only: bool = True) -> list[Store]:
    stmt = select(Store)
    if active_only:
        stmt = stmt.where(Store.is_active.is_(True))
    return list(db.execute(stmt.order_by(Store.store_code)).scalars().all())


def create_store(db: Session, *, store_code: str, store_name: str, actor_id: str | None = None) -> Store:
    code = store_code.strip().upper()
    if not code or not store_name.strip():
        raise ValidationFailed("store_code and store_name are required")
    existing = db.execute(select(Store).where(Store.store_code == code)).scalar_one_or_none()
    if existing is not None:
        raise ValidationFailed(f"Store code {code} already exists", store_code=code)

    store = Store(store_code=code, store_name=store_name.strip(), created_by=actor_id, updated_by=actor_id)
    db.add(store)
    db.commit()
    db.refresh(store)
    return store
