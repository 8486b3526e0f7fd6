"""Utility functions for devicebridge."""

from devicebridge.utils.exceptions import (
    BadArgumentError,
    DeviceBridgeError,
    ErrorCategory,
    HandleReleasedError,
    NativeCallError,
    RuntimeClosedError,
    classify_exception,
    unreachable,
)
from devicebridge.utils.logging_utils import ensure_rotating_log_file, remove_log_file_sink

__all__ = [
    "BadArgumentError",
    "DeviceBridgeError",
    "ErrorCategory",
    "HandleReleasedError",
    "NativeCallError",
    "RuntimeClosedError",
    "classify_exception",
    "ensure_rotating_log_file",
    "remove_log_file_sink",
    "unreachable",
]
