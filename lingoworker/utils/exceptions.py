"""
Exception hierarchy and error handling utilities for lingoworker.

Provides:
- Custom exception classes with error codes
- Error categorization (recoverable, retryable, fatal)
- Safe error message formatting (no sensitive data leak)
"""

from __future__ import annotations

import asyncio
import json
import re
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    RECOVERABLE = "recoverable"
    RETRYABLE = "retryable"
    FATAL = "fatal"
    VALIDATION = "validation"
    TIMEOUT = "timeout"


class LingoWorkerError(Exception):
    """Base exception for all lingoworker errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class InitializationFailure(LingoWorkerError):
    """The native module or the worker could not be brought up."""

    def __init__(self, component: str, message: str):
        super().__init__(
            f"{component} failed to initialize: {message}",
            code="INITIALIZATION_FAILED",
            category=ErrorCategory.FATAL,
            details={"component": component},
        )
        self.component = component


class ValidationFailure(LingoWorkerError):
    """A module came up but lacks required capabilities."""

    def __init__(self, contract: str, missing: list[str], available: list[str]):
        super().__init__(
            f"{contract} module missing required exports: {', '.join(missing)}. "
            f"Available exports: {', '.join(available) or '(none)'}",
            code="VALIDATION_FAILED",
            category=ErrorCategory.VALIDATION,
            details={"contract": contract, "missing": list(missing), "available": list(available)},
        )
        self.contract = contract
        self.missing = list(missing)
        self.available = list(available)


class NotInitializedError(LingoWorkerError):
    """A call was attempted before setup completed (or after teardown)."""

    def __init__(self, component: str, message: str | None = None):
        super().__init__(
            message or f"{component} not initialized",
            code="NOT_INITIALIZED",
            category=ErrorCategory.RECOVERABLE,
            details={"component": component},
        )
        self.component = component


class RemoteFailure(LingoWorkerError):
    """Error reported by the worker; the message is passed through verbatim."""

    def __init__(self, message: str, request_id: str | None = None):
        super().__init__(
            message,
            code="REMOTE_ERROR",
            category=ErrorCategory.RECOVERABLE,
            details={"request_id": request_id},
        )
        self.request_id = request_id

    def __str__(self) -> str:
        return self.message


class TransportFailure(LingoWorkerError):
    """Network retrieval exhausted every route."""

    def __init__(self, url: str, attempts: list[str], reason: str | None = None):
        message = f"Failed to fetch {url} after {len(attempts)} attempt(s)"
        if reason:
            message += f": {reason}"
        super().__init__(
            message,
            code="TRANSPORT_FAILED",
            category=ErrorCategory.RETRYABLE,
            details={"url": url, "attempts": list(attempts)},
        )
        self.url = url
        self.attempts = list(attempts)


class CallTimeout(LingoWorkerError):
    """A worker call passed its deadline; the worker itself keeps running."""

    def __init__(self, kind: str, timeout_seconds: float, request_id: str | None = None):
        super().__init__(
            f"Worker call '{kind}' timed out after {timeout_seconds}s",
            code="TIMEOUT",
            category=ErrorCategory.TIMEOUT,
            details={"kind": kind, "timeout_seconds": timeout_seconds, "request_id": request_id},
        )
        self.request_id = request_id


class ChannelClosed(LingoWorkerError):
    """The worker channel went away while a call was outstanding."""

    def __init__(self, reason: str):
        super().__init__(
            f"Worker channel closed: {reason}",
            code="CHANNEL_CLOSED",
            category=ErrorCategory.RECOVERABLE,
            details={"reason": reason},
        )


_SENSITIVE_PATTERNS = [
    re.compile(r"(api[_-]?key|token|secret|password|auth)[=:]\s*['\"]?([^\s'\"]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"sk-[a-zA-Z0-9]{20,}"),
    re.compile(r"hf_[a-zA-Z0-9]{20,}"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove sensitive information from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def classify_exception(exc: Exception) -> tuple[str, ErrorCategory, bool]:
    """
    Classify an exception and return (error_code, category, should_retry).

    Returns:
        Tuple of (error_code, category, should_retry)
    """
    if isinstance(exc, LingoWorkerError):
        return exc.code, exc.category, exc.category is ErrorCategory.RETRYABLE

    if isinstance(exc, FileNotFoundError):
        return "FILE_NOT_FOUND", ErrorCategory.FATAL, False

    if isinstance(exc, asyncio.TimeoutError):
        return "TIMEOUT", ErrorCategory.TIMEOUT, True

    if isinstance(exc, ConnectionError):
        return "CONNECTION_ERROR", ErrorCategory.RETRYABLE, True

    if isinstance(exc, json.JSONDecodeError):
        return "JSON_PARSE_ERROR", ErrorCategory.VALIDATION, False

    if isinstance(exc, (ValueError, KeyError, TypeError)):
        return "INVALID_VALUE", ErrorCategory.VALIDATION, False

    return "INTERNAL_ERROR", ErrorCategory.FATAL, False


def format_error(exc: Exception, include_details: bool = False) -> str:
    """Format an exception for display at the CLI boundary."""
    code, category, _ = classify_exception(exc)

    if isinstance(exc, LingoWorkerError):
        message = exc.message
    else:
        message = sanitize_error_message(str(exc))

    if include_details:
        return f"Error [{code}] ({category.value}): {message}"
    return f"Error: {message}"
