"""Utility functions for lingoworker."""

from lingoworker.utils.exceptions import (
    CallTimeout,
    ChannelClosed,
    ErrorCategory,
    InitializationFailure,
    LingoWorkerError,
    NotInitializedError,
    RemoteFailure,
    TransportFailure,
    ValidationFailure,
    classify_exception,
    format_error,
    sanitize_error_message,
)
from lingoworker.utils.helpers import ensure_dir, get_data_path

__all__ = [
    "ensure_dir",
    "get_data_path",
    "LingoWorkerError",
    "InitializationFailure",
    "ValidationFailure",
    "NotInitializedError",
    "RemoteFailure",
    "TransportFailure",
    "CallTimeout",
    "ChannelClosed",
    "ErrorCategory",
    "classify_exception",
    "format_error",
    "sanitize_error_message",
]
