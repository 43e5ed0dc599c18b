"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
"""

import logging
from decimal import Decimal
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict, Iterable, List

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """
    Raised when requested resource is not found.

    Also used for resources owned by another tenant, so callers cannot
    probe for foreign identifiers.
    """

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class InvalidStateError(AppException):
    """Raised when an operation is not allowed from the current status."""

    def __init__(self, message: str, current: str, attempted: str, allowed: Iterable[str]):
        allowed_list = [str(a) for a in allowed]
        super().__init__(
            message=message,
            error_code="ERR_STATE_001",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "current": current,
                "attempted": attempted,
                "allowed": allowed_list
            }
        )
        self.allowed = allowed_list


class ValidationFailedError(AppException):
    """Raised for domain-level input validation failures."""

    def __init__(self, message: str, errors: List[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"errors": errors or []}
        )


class ReconciliationError(AppException):
    """Raised when invoice lines miss their target by more than rounding can explain."""

    def __init__(self, target: Decimal, net_total: Decimal, difference: Decimal):
        super().__init__(
            message=f"Invoice lines sum to {net_total} but the share is {target}",
            error_code="ERR_RECONCILIATION",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={
                "target": str(target),
                "net_total": str(net_total),
                "difference": str(difference)
            }
        )


class ConflictError(AppException):
    """Raised on duplicates and repeated (non-idempotent) operations."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details=details
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
        409: "ERR_CONFLICT",
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
                "errors": [
                    {"loc": list(err.get("loc", [])), "msg": err.get("msg"), "type": err.get("type")}
                    for err in exc.errors()
                ]
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
