"""
Centralized logging and error handling utilities for the mentor proxy.

This module provides decorators and helper functions to standardize logging
and error handling patterns across the codebase.

Features:
- Structured logging with contextual information
- Error classification into HTTP status codes and categories
- Performance timing for awaited operations
- Context-aware loggers bound to a single proxied stream
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from mentor_proxy.llm.exceptions import (
    InvalidInputError,
    LLMError,
    NotConfiguredError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)

HTTP_BAD_REQUEST = 400
HTTP_INTERNAL_ERROR = 500
HTTP_BAD_GATEWAY = 502


def configure_logging(level: str = "INFO") -> None:
    """Set the stdlib root level that structlog's level filter defers to."""
    logging.basicConfig(level=level.upper(), format="%(message)s")
    logging.getLogger().setLevel(level.upper())


class ProxyErrorHandler:
    """Centralized error classification with structured logging."""

    @staticmethod
    def classify_error(error: Exception) -> tuple[int, str]:
        """
        Classify an error and return the HTTP status and error category.

        Args:
            error: The exception to classify

        Returns:
            Tuple of (http_status, error_category)
        """
        if isinstance(error, InvalidInputError):
            return HTTP_BAD_REQUEST, "invalid_input"
        if isinstance(error, ValidationError):
            return HTTP_BAD_REQUEST, "validation_error"
        if isinstance(error, NotConfiguredError):
            return HTTP_INTERNAL_ERROR, "not_configured"
        if isinstance(error, UpstreamRejectedError):
            return error.status_code or HTTP_BAD_GATEWAY, "upstream_rejected"
        if isinstance(error, UpstreamUnavailableError):
            return HTTP_BAD_GATEWAY, "upstream_unavailable"
        if isinstance(error, TimeoutError | httpx.TimeoutException):
            return HTTP_BAD_GATEWAY, "timeout_error"
        if isinstance(error, ConnectionError | OSError | httpx.TransportError):
            return HTTP_BAD_GATEWAY, "connection_error"
        if isinstance(error, LLMError):
            return error.status_code or HTTP_INTERNAL_ERROR, "llm_error"
        return HTTP_INTERNAL_ERROR, "unknown_error"

    @staticmethod
    def error_payload(
        error: Exception,
        operation: str,
        context: dict[str, Any] | None = None,
        public_message: str | None = None,
    ) -> tuple[int, dict[str, str]]:
        """
        Log a pre-stream failure and build the JSON error body for it.

        Args:
            error: Original exception
            operation: Description of the operation that failed
            context: Additional context for logging
            public_message: Message returned to the caller instead of str(error)

        Returns:
            Tuple of (http_status, {"error": message})
        """
        status, error_category = ProxyErrorHandler.classify_error(error)
        context = context or {}

        log_data: dict[str, Any] = {
            "operation": operation,
            "error_type": type(error).__name__,
            "error_category": error_category,
            "status_code": status,
            "error_message": str(error),
            **context,
        }
        if isinstance(error, UpstreamRejectedError):
            log_data["upstream_body"] = error.body

        if status >= HTTP_INTERNAL_ERROR or error_category == "upstream_rejected":
            logger.error("Operation failed", **log_data)
        else:
            logger.warning("Request rejected", **log_data)

        return status, {"error": public_message or str(error)}


def log_operation(
    operation: str,
    *,
    log_args: bool = False,
    log_result: bool = False,
    log_timing: bool = True,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator for logging async operations with structured context.

    Args:
        operation: Description of the operation being performed
        log_args: Whether to log function arguments
        log_result: Whether to log function result
        log_timing: Whether to log execution timing
        context: Additional context to include in logs

    Returns:
        Decorated function with logging
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            operation_logger = logger.bind(
                operation=operation,
                function=func.__name__,
                **(context or {}),
            )

            log_data = {}
            if log_args:
                log_data.update({
                    "args": args[1:] if args else [],  # Skip 'self' if present
                    "kwargs": kwargs,
                })

            operation_logger.debug("Operation started", **log_data)

            start_time = time.perf_counter() if log_timing else None

            try:
                result = await func(*args, **kwargs)

                end_log_data: dict[str, Any] = {}
                if log_timing and start_time is not None:
                    duration = round((time.perf_counter() - start_time) * 1000, 2)
                    end_log_data["duration_ms"] = duration
                if log_result:
                    end_log_data["result"] = result

                operation_logger.info(
                    "Operation completed successfully", **end_log_data
                )
                return result

            except Exception as e:
                error_log_data: dict[str, Any] = {
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
                if log_timing and start_time is not None:
                    duration = round((time.perf_counter() - start_time) * 1000, 2)
                    error_log_data["duration_ms"] = duration

                operation_logger.warning("Operation failed", **error_log_data)
                raise

        return wrapper
    return decorator


class ContextualLogger:
    """Logger that maintains context across related operations."""

    def __init__(self, base_context: dict[str, Any] | None = None):
        self.base_context = base_context or {}
        self._logger = logger.bind(**self.base_context)

    def info(self, message: str, **context: Any) -> None:
        self._logger.info(message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._logger.warning(message, **context)

    def error(self, message: str, **context: Any) -> None:
        self._logger.error(message, **context)

    def debug(self, message: str, **context: Any) -> None:
        self._logger.debug(message, **context)
