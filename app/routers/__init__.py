"""
ZimPay Payroll - Routers Package

FastAPI route handlers.

Routers:
- payroll: period processing, payslips and payroll configuration
"""

from app.routers import payroll

__all__ = ["payroll"]
