"""
Centralized logging configuration for the calendar analytics service.

Provides:
- Structured logging through structlog, rendered as JSON or readable text
- Request ID tracking for HTTP requests via a context variable
- HTTP request logging middleware
- Startup, shutdown and HTTP error log helpers

Usage:
    from services.common.logging_config import get_logger, setup_service_logging

    setup_service_logging(service_name="calendar-analytics", log_format="text")
    logger = get_logger(__name__)
    logger.info("Fetched events", count=12)
"""

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Callable, Optional

import structlog
from fastapi import Request, Response

request_id_var: ContextVar[str] = ContextVar("request_id", default="uninitialized")


def add_request_context(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Add the current request ID to every log entry."""
    request_id = request_id_var.get()
    if request_id and request_id != "uninitialized":
        event_dict.setdefault("request_id", request_id)
    return event_dict


class TextRenderer:
    """Readable single-line renderer used for local development."""

    def __init__(self, service_name: str):
        self.service_name = service_name

    def __call__(
        self,
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> str:
        timestamp = event_dict.pop("timestamp", "")
        level = str(event_dict.pop("level", method_name)).upper()
        logger_name = event_dict.pop("logger", "")
        message = event_dict.pop("event", "")
        request_id = event_dict.pop("request_id", "")
        exception = event_dict.pop("exception", None)

        if logger_name.startswith("services."):
            logger_name = logger_name[len("services.") :]

        parts = [
            timestamp,
            f"[{self.service_name}]",
            f"[{level}]",
            f"[{request_id[-4:]}]" if request_id else "",
            logger_name,
            f"- {message}",
        ]
        extra = [f"{key}={value}" for key, value in event_dict.items()]
        if extra:
            parts.append(f"| {', '.join(extra)}")

        line = " ".join(filter(None, parts))
        if exception:
            line = f"{line}\n{exception}"
        return line


def setup_service_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
) -> None:
    """
    Set up logging configuration for the service.

    Args:
        service_name: Name of the service (e.g., "calendar-analytics")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Format type ("json" or "text")
    """
    processors: list = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_request_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format.lower() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(TextRenderer(service_name))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )

    # Silence verbose third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    get_logger(__name__).info(
        f"Logging configured for {service_name}",
        log_level=log_level,
        log_format=log_format,
    )


def create_request_logging_middleware() -> Callable:
    """Create HTTP request logging middleware for FastAPI."""

    async def log_requests(request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))
        token = request_id_var.set(request_id)

        start_time = time.time()
        logger = get_logger("http.requests")
        logger.info(
            f"→ {request.method} {request.url.path}",
            method=request.method,
            client_ip=request.client.host if request.client else "unknown",
        )

        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(
                log_level,
                f"{request.method} {request.url.path} → "
                f"{response.status_code} ({process_time:.3f}s)",
                status_code=response.status_code,
                process_time=process_time,
            )
            response.headers["X-Request-Id"] = request_id
            return response
        finally:
            request_id_var.reset(token)

    return log_requests


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)


def log_service_startup(service_name: str, **kwargs: Any) -> None:
    """Log service startup with configuration details."""
    get_logger("startup").info(f"Starting {service_name}", service=service_name, **kwargs)


def log_service_shutdown(service_name: str) -> None:
    """Log service shutdown event."""
    get_logger(__name__).info(f"Service {service_name} shutting down")


def log_http_error(
    error_type: str,
    message: str,
    status_code: int,
    request_id: Optional[str] = None,
    **kwargs: Any,
) -> None:
    """
    Log an HTTP error response at a level derived from its status code.

    5xx responses log at ERROR, 4xx at WARNING and anything else at INFO.
    """
    logger = get_logger(__name__)
    log_context = {"error_type": error_type, "status_code": status_code, **kwargs}
    if request_id:
        log_context["request_id"] = request_id

    text = f"HTTP {status_code} {error_type}: {message}"
    if status_code >= 500:
        logger.error(text, **log_context)
    elif status_code >= 400:
        logger.warning(text, **log_context)
    else:
        logger.info(text, **log_context)
