"""
Shared HTTP error classes and utilities for the calendar analytics service.

Provides:
- Base exception class for API errors
- Common subclasses (Validation, Auth, Provider, RateLimit)
- Shared error response model
- Utility to convert exceptions to error responses
- FastAPI exception handler registration

Usage:
>>> from services.common.http_errors import ValidationError, ProviderError
>>>
>>> raise ValidationError("startDate is required", field="startDate")
>>>
>>> raise ProviderError(
...     "Microsoft Graph rate limit exceeded",
...     provider="microsoft",
...     code=ErrorCode.MICROSOFT_RATE_LIMITED,
...     status_code=429,
...     retry_after=30,
... )

Error Code Taxonomy:
===================
- VALIDATION_* : Input validation errors (422)
- AUTH_* / TOKEN_* : Authentication errors (401)
- RATE_LIMITED : Rate limiting (429)
- SERVICE_* : Internal service errors (5xx)
- PROVIDER_* : External provider integration errors (502)
- MICROSOFT_* : Microsoft identity platform and Graph specific errors
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from services.common.logging_config import get_logger, log_http_error, request_id_var

logger = get_logger(__name__)


class ErrorCode(str, Enum):
    """Error codes shared by every endpoint of the service."""

    # General
    VALIDATION_FAILED = "VALIDATION_FAILED"

    # Authentication (401)
    AUTH_FAILED = "AUTH_FAILED"
    TOKEN_MISSING = "TOKEN_MISSING"
    TOKEN_INVALID = "TOKEN_INVALID"
    OAUTH_CODE_EXCHANGE_FAILED = "OAUTH_CODE_EXCHANGE_FAILED"

    # Rate limiting (429)
    RATE_LIMITED = "RATE_LIMITED"

    # Service (5xx)
    SERVICE_ERROR = "SERVICE_ERROR"

    # Provider (502)
    PROVIDER_ERROR = "PROVIDER_ERROR"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"

    # Microsoft Graph
    MICROSOFT_TOKEN_EXPIRED = "MICROSOFT_TOKEN_EXPIRED"
    MICROSOFT_TOKEN_MALFORMED = "MICROSOFT_TOKEN_MALFORMED"
    MICROSOFT_AUTH_FAILED = "MICROSOFT_AUTH_FAILED"
    MICROSOFT_ACCESS_DENIED = "MICROSOFT_ACCESS_DENIED"
    MICROSOFT_INSUFFICIENT_PERMISSIONS = "MICROSOFT_INSUFFICIENT_PERMISSIONS"
    MICROSOFT_RATE_LIMITED = "MICROSOFT_RATE_LIMITED"
    MICROSOFT_SERVICE_ERROR = "MICROSOFT_SERVICE_ERROR"
    MICROSOFT_API_ERROR = "MICROSOFT_API_ERROR"


class ErrorResponse(BaseModel):
    """
    Standardized error response body.

    Attributes:
        type: Error type categorization (e.g., "validation_error", "auth_error")
        message: Human-readable error message
        details: Optional dictionary containing additional error context
        timestamp: ISO 8601 timestamp of when the error occurred
        request_id: Identifier for tracing, shared with the request logs
    """

    type: str
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: str
    request_id: str


def _current_request_id() -> str:
    """Return the request ID bound by the logging middleware, or a fresh UUID."""
    request_id = request_id_var.get()
    if not request_id or request_id == "uninitialized":
        return str(uuid.uuid4())
    return request_id


class ServiceAPIException(Exception):
    """
    Base exception class for all API errors raised by the service.

    Args:
        message: The error message to display to users
        details: Optional dictionary with additional error context
        error_type: Error category string (defaults to "internal_error")
        error_code: Specific error code from ErrorCode enum
        status_code: HTTP status code (defaults to 500)
        request_id: Optional request ID (taken from the log context if omitted)
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_type: str = "internal_error",
        error_code: Optional[ErrorCode] = None,
        status_code: int = 500,
        request_id: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        self.error_type = error_type
        self.error_code = error_code
        self.status_code = status_code
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.request_id = request_id or _current_request_id()
        super().__init__(self.message)

    def to_error_response(self) -> ErrorResponse:
        """Convert the exception to an ErrorResponse, adding the error code to details."""
        details = {
            **self.details,
            **({"code": self.error_code.value} if self.error_code else {}),
        }
        return ErrorResponse(
            type=self.error_type,
            message=self.message,
            details=details if details else None,
            timestamp=self.timestamp,
            request_id=self.request_id,
        )


class ValidationError(ServiceAPIException):
    """
    Exception for input validation errors (HTTP 422).

    Examples:
        >>> ValidationError("startDate is required", field="startDate")
        >>> ValidationError(
        ...     "Threshold must be a non-zero number",
        ...     field="internalMeetingsThreshold",
        ...     value=0,
        ... )
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        validation_details = details or {}
        if field:
            validation_details["field"] = field
        if value is not None:
            validation_details["value"] = str(value)
        super().__init__(
            message=message,
            details=validation_details,
            error_type="validation_error",
            error_code=ErrorCode.VALIDATION_FAILED,
            status_code=422,
        )
        self.field = field
        self.value = value


class AuthError(ServiceAPIException):
    """Exception for authentication errors (HTTP 401 by default)."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.AUTH_FAILED,
        status_code: int = 401,
    ):
        super().__init__(
            message=message,
            details=details,
            error_type="auth_error",
            error_code=code,
            status_code=status_code,
        )


class ProviderError(ServiceAPIException):
    """
    Exception for external provider integration errors (HTTP 502 by default).

    Carries the raw provider response body and any Retry-After value so that
    callers can surface them to clients.

    Examples:
        >>> ProviderError(
        ...     "Microsoft token has expired. Please sign in again.",
        ...     provider="microsoft",
        ...     code=ErrorCode.MICROSOFT_TOKEN_EXPIRED,
        ...     status_code=401,
        ... )
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.PROVIDER_ERROR,
        status_code: int = 502,
        response_body: Optional[str] = None,
        retry_after: Optional[int] = None,
    ):
        provider_details = details or {}
        if provider:
            provider_details["provider"] = provider
        if response_body:
            provider_details["response_body"] = response_body
        if retry_after is not None:
            provider_details["retry_after"] = retry_after
        super().__init__(
            message=message,
            details=provider_details,
            error_type="provider_error",
            error_code=code,
            status_code=status_code,
        )
        self.provider = provider
        self.response_body = response_body
        self.retry_after = retry_after


class RateLimitError(ServiceAPIException):
    """Exception for rate limiting errors (HTTP 429)."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        rate_details = details or {}
        if retry_after is not None:
            rate_details["retry_after"] = retry_after
        super().__init__(
            message=message,
            details=rate_details,
            error_type="rate_limit_error",
            error_code=ErrorCode.RATE_LIMITED,
            status_code=429,
        )
        self.retry_after = retry_after


def exception_to_response(exc: Exception) -> ErrorResponse:
    """
    Convert any exception to a standardized ErrorResponse.

    ServiceAPIException uses its own conversion, HTTPException details are
    normalized, and anything else becomes a generic "internal_error" that only
    exposes the exception type name.
    """
    if isinstance(exc, ServiceAPIException):
        return exc.to_error_response()
    elif isinstance(exc, HTTPException):
        detail = (
            exc.detail if isinstance(exc.detail, dict) else {"message": str(exc.detail)}
        )
        return ErrorResponse(
            type="http_error",
            message=detail.get("message", "HTTP error"),
            details=detail,
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=_current_request_id(),
        )
    else:
        return ErrorResponse(
            type="internal_error",
            message="An unexpected internal server error occurred.",
            details={"error_type": type(exc).__name__},
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=_current_request_id(),
        )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register the service's exception handlers on a FastAPI application.

    - ServiceAPIException: the exception's status code and error body
    - HTTPException: the exception's status code with a normalized body
    - Exception: 500 with a safe "internal_error" body
    """

    @app.exception_handler(ServiceAPIException)
    async def service_api_exception_handler(
        request: Request, exc: ServiceAPIException
    ) -> JSONResponse:
        error_response = exc.to_error_response()
        log_http_error(
            error_type=exc.error_type,
            message=exc.message,
            status_code=exc.status_code,
            request_id=error_response.request_id,
            path=request.url.path,
        )
        headers = None
        retry_after = getattr(exc, "retry_after", None)
        if retry_after is not None:
            headers = {"Retry-After": str(retry_after)}
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response.model_dump(),
            headers=headers,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        error_response = exception_to_response(exc)
        return JSONResponse(
            status_code=exc.status_code, content=error_response.model_dump()
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception(
            "Unhandled exception", path=request.url.path, error_type=type(exc).__name__
        )
        error_response = exception_to_response(exc)
        return JSONResponse(status_code=500, content=error_response.model_dump())
