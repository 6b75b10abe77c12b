from __future__ import annotations

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.core.config import settings
from backoffice.core.db.session import get_db
from backoffice.core.logging import configure_logging, get_logger
from backoffice.core.middleware.audit import set_actor
from backoffice.core.middleware.request_id import RequestIdMiddleware
from backoffice.domain.cash_management.routes.approvals import router as cash_approvals_router
from backoffice.domain.cash_management.routes.approvals import store_router as cash_requests_router
from backoffice.domain.cash_management.routes.counts import router as cash_counts_router
from backoffice.domain.cash_management.routes.deposits import router as cash_deposits_router
from backoffice.domain.cash_management.routes.positions import router as cash_positions_router
from backoffice.domain.reconciliation.routes import router as reconciliation_router
from backoffice.domain.stores.routes import router as stores_router
from backoffice.domain.stores.service import create_store
from backoffice.shared.enums import Env
from backoffice.shared.exceptions import (
    AppError,
    InvalidTransition,
    NotFound,
    PersistenceFailure,
    ValidationFailed,
    WouldUnderflow,
)


log = get_logger(__name__)

# Most specific first; the first matching class wins.
ERROR_STATUS: list[tuple[type[AppError], int]] = [
    (NotFound, status.HTTP_404_NOT_FOUND),
    (ValidationFailed, status.HTTP_400_BAD_REQUEST),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (WouldUnderflow, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (PersistenceFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: AppError) -> int:
    for cls, code in ERROR_STATUS:
        if isinstance(exc, cls):
            return code
    return status.HTTP_400_BAD_REQUEST


class DevSeedRequest(BaseModel):
    store_code: str = Field(default="MAIN", min_length=1, max_length=32)
    store_name: str = Field(default="Main Store", min_length=2, max_length=200)


ROUTERS = [
    stores_router,
    cash_positions_router,
    cash_deposits_router,
    cash_requests_router,
    cash_counts_router,
    cash_approvals_router,
    reconciliation_router,
]


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="Store Cash Back-Office", version="0.1.0")
    app.add_middleware(RequestIdMiddleware, header_name=settings.request_id_header)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        code = status_for(exc)
        log.info("http.app_error", error=type(exc).__name__, status_code=code, path=request.url.path)
        return JSONResponse(
            status_code=code,
            content=jsonable_encoder({"detail": exc.message, "error": type(exc).__name__, "details": exc.details}),
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
        log.warning("http.integrity_error", path=request.url.path, error=str(exc.orig))
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": "Conflicts with an existing record", "error": "IntegrityError", "details": {}},
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        log.error("http.database_error", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Database unavailable", "error": "PersistenceFailure", "details": {}},
        )

    @app.get("/health", tags=["admin"])
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/health/db", tags=["admin"])
    def health_db(db: Session = Depends(get_db)) -> dict[str, str]:
        db.execute(text("SELECT 1"))
        return {"database": "ok"}

    @app.post("/admin/dev/seed", tags=["admin"])
    def dev_seed(payload: DevSeedRequest, db: Session = Depends(get_db)) -> dict:
        if settings.env != Env.dev:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)

        set_actor("dev-seed")
        store = create_store(db, store_code=payload.store_code, store_name=payload.store_name, actor_id="dev-seed")
        return {"store_id": str(store.id), "store_code": store.store_code}

    for router in ROUTERS:
        app.include_router(router)

    # The static front end proxies requests under /api/*.
    for router in ROUTERS:
        app.include_router(router, prefix="/api")

    return app


app = create_app()
