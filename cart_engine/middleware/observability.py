from __future__ import annotations

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from cart_engine.core.logging import get_logger, request_id_var
from cart_engine.core.metrics import normalize_path, record_request_metrics

REQUEST_ID_HEADER = "x-request-id"


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Request id propagation, latency metrics and a log line per failed request."""

    def __init__(self, app, *, log_client_errors: bool = True) -> None:
        super().__init__(app)
        self.logger = get_logger("cart_engine.requests")
        self.log_client_errors = log_client_errors

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        start = time.perf_counter()
        try:
            try:
                response = await call_next(request)
            except Exception:
                elapsed = time.perf_counter() - start
                record_request_metrics(request, 500, elapsed)
                self.logger.exception("Unhandled error", extra=self._context(request, 500, elapsed))
                raise

            elapsed = time.perf_counter() - start
            status_code = response.status_code
            record_request_metrics(request, status_code, elapsed)
            if status_code >= 500:
                self.logger.error("Server error response", extra=self._context(request, status_code, elapsed))
            elif status_code >= 400 and self.log_client_errors:
                self.logger.warning("Client error response", extra=self._context(request, status_code, elapsed))
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @staticmethod
    def _context(request: Request, status_code: int, elapsed: float) -> dict:
        return {
            "method": request.method,
            "path": normalize_path(request),
            "status_code": status_code,
            "duration_ms": round(elapsed * 1000, 3),
        }
