"""
Custom exceptions and error handlers for consistent error responses.

Domain failures of the load lifecycle engine are raised as AppException
subclasses so callers (and the HTTP layer) can tell "your request was invalid"
apart from "the store could not be reached" (StorageFailureError).
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when a load, stop, driver or vehicle does not exist."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


# Load lifecycle errors

class InvalidTransitionError(AppException):
    """Raised when the requested status is unreachable from the current one."""

    def __init__(self, load_id: Any, current: str, target: str, reason: str = None):
        message = reason or f"Cannot move load {load_id} from {current} to {target}"
        super().__init__(
            message=message,
            error_code="ERR_LOAD_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"load_id": load_id, "current_status": current, "target_status": target}
        )


class InvalidStopStateError(AppException):
    """Raised when an arrival/departure is recorded out of order."""

    def __init__(self, load_id: Any, stop_index: int, current: str, message: str = None):
        super().__init__(
            message=message or f"Stop {stop_index} of load {load_id} is {current}",
            error_code="ERR_LOAD_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"load_id": load_id, "stop_index": stop_index, "stop_status": current}
        )


class MissingProofOfDeliveryError(AppException):
    """Raised when a load is pushed to delivered without a POD submission."""

    def __init__(self, load_id: Any):
        super().__init__(
            message=f"Load {load_id} can only be delivered by submitting proof of delivery",
            error_code="ERR_LOAD_003",
            status_code=status.HTTP_409_CONFLICT,
            details={"load_id": load_id}
        )


class TerminalLoadError(AppException):
    """Raised when a delivered/completed/cancelled load is mutated."""

    def __init__(self, load_id: Any, current: str):
        super().__init__(
            message=f"Load {load_id} is {current} and can no longer be changed",
            error_code="ERR_LOAD_004",
            status_code=status.HTTP_409_CONFLICT,
            details={"load_id": load_id, "current_status": current}
        )


# Assignment errors

class AlreadyAssignedError(AppException):
    """Raised when assigning a load that is not pending."""

    def __init__(self, load_id: Any, current: str):
        super().__init__(
            message=f"Load {load_id} is {current}; unassign it before assigning again",
            error_code="ERR_ASSIGN_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"load_id": load_id, "current_status": current}
        )


class DriverUnavailableError(AppException):
    """Raised when the driver is bound to another active load."""

    def __init__(self, driver_id: str, load_id: Any = None):
        message = f"Driver {driver_id} is not available"
        if load_id is not None:
            message = f"Driver {driver_id} is already assigned to load {load_id}"
        super().__init__(
            message=message,
            error_code="ERR_ASSIGN_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"driver_id": driver_id, "conflicting_load_id": load_id}
        )


class VehicleUnavailableError(AppException):
    """Raised when the vehicle is bound to another active load."""

    def __init__(self, vehicle_id: str, load_id: Any = None):
        message = f"Vehicle {vehicle_id} is not available"
        if load_id is not None:
            message = f"Vehicle {vehicle_id} is already assigned to load {load_id}"
        super().__init__(
            message=message,
            error_code="ERR_ASSIGN_003",
            status_code=status.HTTP_409_CONFLICT,
            details={"vehicle_id": vehicle_id, "conflicting_load_id": load_id}
        )


class NoDriversAvailableError(AppException):
    """Raised when auto-assignment finds no candidate driver."""

    def __init__(self, load_id: Any):
        super().__init__(
            message=f"No available drivers found for load {load_id}",
            error_code="ERR_ASSIGN_004",
            status_code=status.HTTP_409_CONFLICT,
            details={"load_id": load_id}
        )


# Store errors

class ConcurrentModificationError(AppException):
    """Raised when the load changed between read and write. Caller may retry."""

    def __init__(self, message: str = "Load was modified concurrently, retry the operation", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class StorageFailureError(AppException):
    """Raised when the backing store fails for reasons unrelated to the request."""

    def __init__(self, message: str = "Storage layer unavailable", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_STORAGE_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details
        )


# Input errors

class InvalidLoadError(AppException):
    """Raised when a load definition breaks a structural rule."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class InvalidPeriodError(AppException):
    """Raised for unknown analytics periods."""

    def __init__(self, period: str):
        super().__init__(
            message=f"Unknown reporting period: {period}",
            error_code="ERR_VALIDATION_002",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"period": period}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry the raw ValueError raised by a validator
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s", type(exc).__name__)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
