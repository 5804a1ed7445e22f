"""
stone/middleware/request_logger.py - Request ID and logging middleware
"""

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """Add request ID and log requests"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.perf_counter()
        extra = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
        }
        logger.debug(
            "Request started",
            extra={"request_id": request_id, "extra": extra},
        )

        response = await call_next(request)

        extra["duration_ms"] = round(
            (time.perf_counter() - start_time) * 1000, 2
        )
        extra["status_code"] = response.status_code
        logger.info(
            "Request completed",
            extra={"request_id": request_id, "extra": extra},
        )

        response.headers["X-Request-ID"] = request_id
        return response
