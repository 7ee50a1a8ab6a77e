"""
ZimPay Payroll - Request Logging Middleware

Logs state-changing payroll requests and every failed request with
timing, and adds an X-Response-Time header.
"""

import time
import logging
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log payroll requests for operational monitoring.

    Logs:
    - Request method and path
    - Client IP
    - Response status and timing
    """

    LOGGED_METHODS = ("POST", "PUT", "PATCH", "DELETE")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        client_ip = request.client.host if request.client else 'unknown'
        path = request.url.path
        method = request.method

        response = await call_next(request)

        duration = time.time() - start_time
        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO

        if method in self.LOGGED_METHODS or response.status_code >= 400:
            logger.log(
                log_level,
                f"{method} {path} - {response.status_code} - {duration:.3f}s - {client_ip}",
                extra={
                    "method": method,
                    "path": path,
                    "status": response.status_code,
                    "duration": duration,
                    "client_ip": client_ip,
                }
            )

        response.headers["X-Response-Time"] = f"{duration:.3f}s"
        return response
