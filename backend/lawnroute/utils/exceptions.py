"""
Custom Exceptions and Error Handling
Standardized error responses across the application
"""

from typing import Optional
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import logging

logger = logging.getLogger(__name__)


class LawnRouteException(Exception):
    """Base exception for the LawnRoute application"""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: Optional[dict] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)

    def to_response(self) -> dict:
        """Convert to API response format"""
        response = {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message
            }
        }
        if self.details:
            response["error"]["details"] = self.details
        return response


# Authentication Exceptions
class AuthenticationError(LawnRouteException):
    """Authentication failed"""

    def __init__(self, message: str = "Authentication required", code: str = "NOT_AUTHENTICATED"):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class InvalidTokenError(AuthenticationError):
    """JWT token is invalid or expired"""

    def __init__(self):
        super().__init__(
            message="Invalid or expired access token",
            code="INVALID_TOKEN"
        )


# Authorization Exceptions
class AuthorizationError(LawnRouteException):
    """Authorization failed - insufficient permissions"""

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=status.HTTP_403_FORBIDDEN
        )


class RoleRequiredError(AuthorizationError):
    """Specific role required"""

    def __init__(self, required_roles: list[str]):
        super().__init__(
            message=f"This action requires one of these roles: {', '.join(required_roles)}"
        )
        self.code = "INSUFFICIENT_PERMISSIONS"


# Resource Exceptions
class ResourceNotFoundError(LawnRouteException):
    """Requested resource not found"""

    def __init__(self, resource_type: str, resource_id: Optional[str] = None):
        message = f"{resource_type} not found"
        if resource_id:
            message = f"{resource_type} with ID '{resource_id}' not found"
        super().__init__(
            code=f"{resource_type.upper()}_NOT_FOUND",
            message=message,
            status_code=status.HTTP_404_NOT_FOUND
        )


# Validation Exceptions
class ValidationException(LawnRouteException):
    """Input validation failed"""

    def __init__(self, errors: list[dict]):
        super().__init__(
            code="VALIDATION_ERROR",
            message="Input validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"errors": errors}
        )


# Routing Exceptions
class RouteOptimizationError(LawnRouteException):
    """A route could not be built from the given stops"""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="ROUTE_OPTIMIZATION_FAILED",
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


# Exception Handlers for FastAPI
async def lawnroute_exception_handler(request: Request, exc: LawnRouteException) -> JSONResponse:
    """Handle LawnRoute custom exceptions"""
    logger.warning(f"LawnRoute exception: {exc.code} - {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response()
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors"""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Input validation failed",
                "details": {"errors": errors}
            }
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions"""
    detail = exc.detail
    if isinstance(detail, dict):
        code = detail.get("code", "HTTP_ERROR")
        message = detail.get("message", str(detail))
    else:
        code = "HTTP_ERROR"
        message = str(detail)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "code": code,
                "message": message
            }
        },
        headers=getattr(exc, "headers", None)
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions"""
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_SERVER_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app"""
    app.add_exception_handler(LawnRouteException, lawnroute_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
