from __future__ import annotations

import time
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging import get_logger


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Middleware that emits structured logs for failed cart requests."""

    def __init__(self, app, *, log_4xx: bool = True, log_5xx: bool = True) -> None:
        super().__init__(app)
        self.logger = get_logger("app.requests")
        self.log_4xx = log_4xx
        self.log_5xx = log_5xx

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self._log(request, 500, time.perf_counter() - start, "Unhandled server error", "error")
            raise

        duration = time.perf_counter() - start
        status_code = response.status_code
        if status_code >= 500 and self.log_5xx:
            self._log(request, status_code, duration, "Server error response", "error")
        elif status_code >= 400 and self.log_4xx:
            self._log(request, status_code, duration, "Client error response", "warning")

        return response

    def _log(self, request: Request, status_code: int, duration: float, message: str, level: str) -> None:
        cart_engine = getattr(request.app.state, "cart_engine", None)
        payload: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": round(duration * 1000, 3),
            "request_id": request.headers.get("x-request-id"),
            "cart_storage_key": cart_engine.storage_key if cart_engine is not None else None,
        }
        log_func = getattr(self.logger, level, self.logger.error)
        log_func(message, extra=payload)
