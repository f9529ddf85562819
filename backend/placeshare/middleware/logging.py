"""
PlaceShare Backend: Access Log Middleware
==========================================

What:  One line on the "placeshare.access" logger per API request.
How:   The level is picked from the outcome:
           5xx                         → ERROR
           4xx, or slower than
           settings.slow_request_ms    → WARNING
           image downloads             → DEBUG
           everything else             → INFO
       /health is never logged. Multipart uploads also log their declared
       size so oversized images show up next to their 422.

Request bodies, image bytes and Authorization headers are never logged.
"""

import logging
import time
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from placeshare.config import settings
from placeshare.middleware.request_id import request_id_var

logger = logging.getLogger("placeshare.access")

IMAGE_PREFIX = "/uploads/images/"


def _access_level(path: str, status: int, duration_ms: float) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400 or duration_ms > settings.slow_request_ms:
        return logging.WARNING
    if path.startswith(IMAGE_PREFIX):
        return logging.DEBUG
    return logging.INFO


def _upload_size(request: Request) -> Optional[int]:
    if not request.headers.get("content-type", "").startswith("multipart/"):
        return None
    length = request.headers.get("content-length")
    return int(length) if length and length.isdigit() else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path == "/health":
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000

        entry = {
            "request_id": request_id_var.get(""),
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": round(duration_ms, 2),
            "client_ip": request.client.host if request.client else "unknown",
        }
        upload_bytes = _upload_size(request)
        if upload_bytes is not None:
            entry["upload_bytes"] = upload_bytes

        logger.log(
            _access_level(entry["path"], entry["status"], duration_ms),
            "%(method)s %(path)s %(status)d %(duration_ms).1fms [%(request_id)s]",
            entry,
            extra=entry,
        )
        return response
