"""HTTP middleware: CORS and per-request audit context."""

import time
import uuid
import logging

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from accademia.core.config import settings

logger = logging.getLogger("accademia.http")

MAX_USER_AGENT = 500


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Stamp each request with the id, client address and user agent audit entries carry."""

    async def dispatch(self, request: Request, call_next):
        request.state.request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        request.state.ip_address = request.client.host if request.client else None
        request.state.user_agent = request.headers.get("user-agent", "")[:MAX_USER_AGENT] or None
        started = time.perf_counter()

        response: Response = await call_next(request)

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-Id"] = request.state.request_id
        logger.info(
            "[%s] %s %s -> %s (%.1fms)",
            request.state.request_id, request.method, request.url.path,
            response.status_code, elapsed_ms,
        )
        return response


def setup_middleware(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )
    app.add_middleware(RequestContextMiddleware)
