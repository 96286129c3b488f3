"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict, List, Optional

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
    """Raised when requested resource is not found."""

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


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class BadRequestError(AppException):
    """Raised when a request is well-formed but missing required context."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_BAD_REQUEST_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class InvalidTransitionError(AppException):
    """Raised when a status change is not legal from the current status for the actor."""

    def __init__(
        self,
        entity_type: str,
        current_status: str,
        new_status: str,
        allowed: Optional[List[str]] = None
    ):
        super().__init__(
            message=f"Cannot move {entity_type} from '{current_status}' to '{new_status}'",
            error_code="ERR_WORKFLOW_001",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "entity_type": entity_type,
                "current_status": current_status,
                "requested_status": new_status,
                "allowed": allowed or []
            }
        )


class UnknownStatusError(AppException):
    """Raised when a write names a status that does not exist for the entity type."""

    def __init__(self, entity_type: str, value: str):
        super().__init__(
            message=f"'{value}' is not a valid {entity_type} status",
            error_code="ERR_WORKFLOW_002",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"entity_type": entity_type, "status": value}
        )


class StatusConflictError(AppException):
    """Raised when the stored status no longer matches the caller's expected status."""

    def __init__(self, entity_type: str, entity_id: int, expected: str, actual: str):
        super().__init__(
            message=f"{entity_type} {entity_id} status changed to '{actual}' (expected '{expected}')",
            error_code="ERR_WORKFLOW_003",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "entity_type": entity_type,
                "id": entity_id,
                "expected_status": expected,
                "actual_status": actual
            }
        )


class EntityLockedError(AppException):
    """Raised when an entity cannot be edited or deleted in its current status."""

    def __init__(self, message: str, current_status: str):
        super().__init__(
            message=message,
            error_code="ERR_WORKFLOW_004",
            status_code=status.HTTP_409_CONFLICT,
            details={"current_status": current_status}
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
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry raw exception objects
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(error)
    return errors


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc_info=exc
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
