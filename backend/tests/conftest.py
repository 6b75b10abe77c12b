from __future__ import annotations

import os
import sys
from collections.abc import Generator
from datetime import date, datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import Session, sessionmaker

# Make `backend/` importable regardless of pytest import mode.
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from backoffice.core.config import settings
from backoffice.core.db.base import Base
from backoffice.core.db.models import Store
from backoffice.core.db.session import get_db, import_model_modules
from backoffice.main import create_app
from backoffice.shared.enums import Env

# Ensure model modules are imported so Base.metadata is complete.
import_model_modules()


@pytest.fixture()
def db_engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def db_session(db_engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(bind=db_engine, autoflush=False, autocommit=False, class_=Session)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


# Alias used by service-level tests.
@pytest.fixture()
def db(db_session: Session) -> Session:
    return db_session


@pytest.fixture()
def client(db_session: Session) -> TestClient:
    settings.env = Env.dev
    app = create_app()

    def _override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    return TestClient(app)


def _add_store(db: Session, code: str, name: str) -> Store:
    store = Store(store_code=code, store_name=name, created_by="seed", updated_by="seed")
    db.add(store)
    db.commit()
    db.refresh(store)
    return store


@pytest.fixture()
def store(db_session: Session) -> Store:
    return _add_store(db_session, "BLR01", "Indiranagar")


@pytest.fixture()
def other_store(db_session: Session) -> Store:
    return _add_store(db_session, "BLR02", "Koramangala")


@pytest.fixture()
def now() -> datetime:
    return datetime(2025, 1, 23, 10, 0, tzinfo=timezone.utc)


@pytest.fixture()
def day() -> date:
    return date(2025, 1, 20)
