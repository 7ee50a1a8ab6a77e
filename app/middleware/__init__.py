"""
ZimPay Payroll - Middleware Package

Utility middleware for FastAPI.
"""

from app.middleware.request_logging import RequestLoggingMiddleware

__all__ = [
    "RequestLoggingMiddleware",
]
