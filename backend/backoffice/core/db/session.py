from __future__ import annotations

from collections.abc import Generator
from functools import lru_cache
import importlib

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from backoffice.core.config import settings
from backoffice.core.db.base import Base


MODEL_MODULES = [
    "backoffice.core.db.models",
    "backoffice.domain.cash_management.models.positions",
    "backoffice.domain.cash_management.models.deposits",
    "backoffice.domain.cash_management.models.movements",
    "backoffice.domain.cash_management.models.requests",
    "backoffice.domain.cash_management.models.counts",
    "backoffice.domain.transactions.models",
]


def import_model_modules() -> None:
    for module_name in MODEL_MODULES:
        importlib.import_module(module_name)


@lru_cache(maxsize=1)
def get_engine():
    engine = create_engine(settings.database_url, pool_pre_ping=True)
    import_model_modules()
    if settings.create_schema_on_startup:
        Base.metadata.create_all(bind=engine)
    return engine


def get_session_local() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, class_=Session)


def get_db() -> Generator[Session, None, None]:
    db = get_session_local()()
    try:
        yield db
    finally:
        db.close()
