"""
Exception hierarchy for devicebridge.

Provides:
- A base error carrying a code, a category and details
- Synchronous argument errors raised by the command surface
- Native call errors delivered through rejected futures
- Lifetime errors for released handles and closed runtimes
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, NoReturn

from devicebridge.native.library import NativeError


class ErrorCategory(Enum):
    """Error categories for classification."""
    VALIDATION = "validation"
    NATIVE = "native"
    LIFETIME = "lifetime"
    FATAL = "fatal"


class DeviceBridgeError(Exception):
    """Base exception for all devicebridge errors."""

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


class BadArgumentError(DeviceBridgeError, TypeError):
    """Argument rejected by the command surface before any call is made."""

    def __init__(self, expected: str):
        super().__init__(
            f"Bad argument, expected {expected}",
            code="BAD_ARGUMENT",
            category=ErrorCategory.VALIDATION,
            details={"expected": expected},
        )

    def __str__(self) -> str:
        return self.message


class NativeCallError(DeviceBridgeError):
    """A native asynchronous call finished with an error."""

    def __init__(self, message: str, native_code: str = "", operation: str | None = None):
        super().__init__(
            message,
            code="NATIVE_ERROR",
            category=ErrorCategory.NATIVE,
            details={"native_code": native_code, "operation": operation},
        )
        self.native_code = native_code
        self.operation = operation

    @classmethod
    def from_native(cls, error: NativeError, operation: str | None = None) -> "NativeCallError":
        return cls(error.message, native_code=error.code, operation=operation)

    def __str__(self) -> str:
        return self.message


class HandleReleasedError(DeviceBridgeError):
    """A wrapper was used after its native reference was released."""

    def __init__(self, kind: str):
        super().__init__(
            f"{kind} handle has been released",
            code="HANDLE_RELEASED",
            category=ErrorCategory.LIFETIME,
            details={"kind": kind},
        )


class RuntimeClosedError(DeviceBridgeError):
    """An operation was scheduled on a runtime that has shut down."""

    def __init__(self) -> None:
        super().__init__("runtime is closed", code="RUNTIME_CLOSED", category=ErrorCategory.LIFETIME)


def unreachable(message: str) -> NoReturn:
    """Signal a binding/library mismatch. Not meant to be handled."""
    raise AssertionError(message)


def classify_exception(exc: BaseException) -> tuple[str, ErrorCategory]:
    """Return (error_code, category) for an exception."""
    if isinstance(exc, DeviceBridgeError):
        return exc.code, exc.category
    if isinstance(exc, NativeError):
        return exc.code, ErrorCategory.NATIVE
    if isinstance(exc, asyncio.CancelledError):
        return "CANCELLED", ErrorCategory.LIFETIME
    if isinstance(exc, (TypeError, ValueError)):
        return "INVALID_VALUE", ErrorCategory.VALIDATION
    return "INTERNAL_ERROR", ErrorCategory.FATAL
