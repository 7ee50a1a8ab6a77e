"""
ZimPay Payroll - Errors

Exception hierarchy raised by the services and the handlers that turn it
into the API's error envelope:

    {"detail": {"code", "message", "timestamp", ["field"], ["details"]}}

Configuration and validation problems are 422, state and concurrency
conflicts are 409, missing records are 404.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("payroll.errors")


class ErrorCode(str, Enum):
    # Rejected input or configuration
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_SPLIT = "INVALID_SPLIT"
    INVALID_RATE = "INVALID_RATE"
    INVALID_TAX_BANDS = "INVALID_TAX_BANDS"
    INVALID_VEHICLE_BANDS = "INVALID_VEHICLE_BANDS"

    # Lookups
    NOT_FOUND = "NOT_FOUND"
    PERIOD_NOT_FOUND = "PERIOD_NOT_FOUND"
    EMPLOYEE_NOT_FOUND = "EMPLOYEE_NOT_FOUND"
    PAYSLIP_NOT_FOUND = "PAYSLIP_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"

    # Missing configuration found during a batch
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    NO_MATCHING_TAX_BAND = "NO_MATCHING_TAX_BAND"
    NO_APPLICABLE_CONFIGURATION = "NO_APPLICABLE_CONFIGURATION"
    INVALID_HOUR_RATIO = "INVALID_HOUR_RATIO"

    # Period state machine
    PERIOD_BUSY = "PERIOD_BUSY"
    INVALID_STATE = "INVALID_STATE"
    PERIOD_CLOSED = "PERIOD_CLOSED"
    BATCH_FAILED = "BATCH_FAILED"
    BATCH_CANCELLED = "BATCH_CANCELLED"

    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base for every error the payroll services raise."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.timestamp = datetime.utcnow()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat() + "Z",
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


def _ids(period_id: Any, center_id: Any) -> Dict[str, str]:
    return {"period_id": str(period_id), "center_id": str(center_id)}


# ============================================================================
# Validation
# ============================================================================

class ValidationException(AppException):
    """Configuration or input rejected before it can affect a run"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            field=field,
        )


class InvalidSplitException(ValidationException):
    """Currency split percentages do not total 100"""

    def __init__(self, zwg_percentage: Any, usd_percentage: Any, message: Optional[str] = None):
        super().__init__(
            message=message or (
                f"Currency split must total 100%: ZWG {zwg_percentage} + USD {usd_percentage}"
            ),
            field="zwg_percentage",
            code=ErrorCode.INVALID_SPLIT,
            details={"zwg_percentage": str(zwg_percentage), "usd_percentage": str(usd_percentage)},
        )


# ============================================================================
# Lookups and duplicates
# ============================================================================

class NotFoundException(AppException):

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            message = (
                f"{resource_type} with ID '{resource_id}' not found" if resource_id
                else f"{resource_type} not found"
            )
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class DuplicateEntryException(AppException):
    """A configuration row with the same key and effective date exists"""

    def __init__(self, resource_type: str, field: str, value: str):
        super().__init__(
            code=ErrorCode.DUPLICATE_ENTRY,
            message=f"{resource_type} with {field} '{value}' already exists",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource_type": resource_type, "field": field, "value": value},
        )


# ============================================================================
# Configuration gaps
# ============================================================================

class ConfigurationError(AppException):
    """Configuration gap that is fatal to a payroll batch"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CONFIGURATION_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


class NoMatchingTaxBand(ConfigurationError):

    def __init__(self, income: Any, currency: str, period_type: str):
        super().__init__(
            message=f"No {currency} {period_type} tax band covers income {income}",
            code=ErrorCode.NO_MATCHING_TAX_BAND,
            details={"income": str(income), "currency": currency, "period_type": period_type},
        )


class NoApplicableConfiguration(ConfigurationError):
    """No effective-dated row applies on the target date"""

    def __init__(self, resource_type: str, on_date: Any, **context: Any):
        details = {"resource_type": resource_type, "on_date": str(on_date)}
        details.update({key: str(value) for key, value in context.items()})
        super().__init__(
            message=f"No applicable {resource_type} on {on_date}",
            code=ErrorCode.NO_APPLICABLE_CONFIGURATION,
            details=details,
        )


class InvalidHourRatio(ConfigurationError):
    """Custom transaction has zero base hours"""

    def __init__(self, custom_transaction_id: Any, worked_hours: Any, base_hours: Any):
        super().__init__(
            message=f"Custom transaction {custom_transaction_id} has base hours of {base_hours}",
            code=ErrorCode.INVALID_HOUR_RATIO,
            details={
                "custom_transaction_id": str(custom_transaction_id),
                "worked_hours": str(worked_hours),
                "base_hours": str(base_hours),
            },
        )


# ============================================================================
# Period processing
# ============================================================================

class ConcurrencyError(AppException):
    """Another operation holds the resource"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
        )


class PeriodBusy(ConcurrencyError):
    """A run/refresh/close is already in flight for the period and center"""

    def __init__(self, period_id: Any, center_id: Any):
        super().__init__(
            f"Period {period_id} is already being processed for center {center_id}",
            code=ErrorCode.PERIOD_BUSY,
            details=_ids(period_id, center_id),
        )


class StateError(AppException):
    """Transition not allowed from the current state"""

    def __init__(
        self,
        message: str,
        current_state: Optional[str] = None,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.INVALID_STATE,
    ):
        details = {}
        if current_state:
            details["current_state"] = current_state
        if operation:
            details["operation"] = operation
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
        )


class PayrollBatchError(AppException):
    """One or more employees failed; the batch was rolled back"""

    def __init__(self, period_id: Any, center_id: Any, failures: List[Dict[str, Any]]):
        self.failures = failures
        super().__init__(
            code=ErrorCode.BATCH_FAILED,
            message=(
                f"Payroll batch for period {period_id}, center {center_id} failed for "
                f"{len(failures)} employee(s); nothing was committed"
            ),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={**_ids(period_id, center_id), "failures": failures},
        )


class BatchCancelled(AppException):

    def __init__(self, period_id: Any, center_id: Any, processed: int):
        super().__init__(
            code=ErrorCode.BATCH_CANCELLED,
            message=f"Payroll batch for period {period_id}, center {center_id} was cancelled",
            status_code=status.HTTP_409_CONFLICT,
            details={**_ids(period_id, center_id), "employees_processed": processed},
        )


# ============================================================================
# Response envelope and handlers
# ============================================================================

HTTP_STATUS_CODES = {
    400: ErrorCode.INVALID_INPUT,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.RESOURCE_CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
}


def error_response(exc: AppException) -> JSONResponse:
    """{"detail": {...}} envelope shared by every error the API returns."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


def _request_context(request: Request) -> Dict[str, str]:
    return {"path": request.url.path, "method": request.method}


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"{exc.code.value}: {exc.message}",
        extra={**_request_context(request), "code": exc.code.value, "details": exc.details},
    )
    return error_response(exc)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    logger.warning(f"HTTP {exc.status_code}: {message}", extra=_request_context(request))
    return error_response(AppException(
        code=HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR),
        message=message,
        status_code=exc.status_code,
    ))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body or query failed schema validation."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(f"Request validation failed with {len(errors)} error(s)", extra=_request_context(request))
    return error_response(ValidationException(
        "Request validation failed",
        details={"errors": errors},
    ))


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """
    A unique constraint fired at commit.

    Payslip and period-status uniqueness is the backstop when two worker
    processes commit the same (period, center); the loser sees a conflict.
    """
    logger.warning(f"Integrity error: {exc.orig}", extra=_request_context(request))
    reason = str(exc.orig).lower() if exc.orig else ""
    if "foreign key" in reason:
        wrapped = ValidationException("Referenced record does not exist", code=ErrorCode.DATA_INTEGRITY_ERROR)
    else:
        wrapped = AppException(
            code=ErrorCode.DUPLICATE_ENTRY,
            message="A conflicting payroll record was committed concurrently",
            status_code=status.HTTP_409_CONFLICT,
        )
    return error_response(wrapped)


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(f"Database error: {type(exc).__name__} - {exc}", extra=_request_context(request), exc_info=True)
    code = ErrorCode.CONNECTION_ERROR if isinstance(exc, OperationalError) else ErrorCode.DATABASE_ERROR
    return error_response(AppException(code=code, message="A database error occurred"))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.critical(f"Unhandled {type(exc).__name__}: {exc}", extra=_request_context(request), exc_info=True)
    return error_response(AppException(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
    ))


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
