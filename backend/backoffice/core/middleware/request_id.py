from __future__ import annotations

import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from backoffice.core.logging import get_logger
from backoffice.core.middleware.audit import clear_request_context, set_actor, set_request_id

log = get_logger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and an optional caller identity for logs and audit rows."""

    def __init__(self, app, header_name: str = "X-Request-ID", actor_header: str = "X-Actor") -> None:
        super().__init__(app)
        self.header_name = header_name
        self.actor_header = actor_header

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        clear_request_context()
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        set_request_id(request_id)
        actor = request.headers.get(self.actor_header)
        if actor:
            set_actor(actor)

        started = time.perf_counter()
        response = await call_next(request)
        log.info(
            "http.request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        response.headers[self.header_name] = request_id
        return response
