"""Boundary types for the native instrumentation library."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Protocol, runtime_checkable


class DeviceType(IntEnum):
    """Native device type enum."""

    LOCAL = 0
    TETHER = 1
    REMOTE = 2


@dataclass(eq=False)
class NativeError(Exception):
    """Error reported by a native ``*_finish`` call."""

    code: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True, eq=False)
class AsyncResult:
    """Completion signal correlating a finish call with its begin call."""

    source: Any
    value: Any = None
    error: NativeError | None = None
    tag: str = ""
    extra: dict[str, Any] = field(default_factory=dict)


ReadyCallback = Callable[[AsyncResult], None]
SignalCallback = Callable[..., None]


@runtime_checkable
class NativeLibrary(Protocol):
    """Entry points the bridge expects from a native library.

    Every ``device_*``/``session_*`` begin call returns immediately and later
    invokes ``callback`` exactly once from a library thread. The matching
    ``*_finish`` call receives the same handle plus the ``AsyncResult`` and
    returns the value or raises ``NativeError``. Handles, lists and records
    returned by finish calls and ``list_get`` carry one reference owned by the
    caller.
    """

    def ref(self, handle: Any) -> Any: ...
    def unref(self, handle: Any) -> None: ...
    def refcount(self, handle: Any) -> int: ...

    def list_size(self, native_list: Any) -> int: ...
    def list_get(self, native_list: Any, index: int) -> Any: ...

    def device_get_id(self, handle: Any) -> int: ...
    def device_get_name(self, handle: Any) -> str: ...
    def device_get_icon(self, handle: Any) -> Any: ...
    def device_get_dtype(self, handle: Any) -> int: ...

    def device_get_frontmost_application(self, handle: Any, callback: ReadyCallback) -> None: ...
    def device_get_frontmost_application_finish(self, handle: Any, result: AsyncResult) -> Any: ...
    def device_enumerate_applications(self, handle: Any, callback: ReadyCallback) -> None: ...
    def device_enumerate_applications_finish(self, handle: Any, result: AsyncResult) -> Any: ...
    def device_enumerate_processes(self, handle: Any, callback: ReadyCallback) -> None: ...
    def device_enumerate_processes_finish(self, handle: Any, result: AsyncResult) -> Any: ...
    def device_spawn(
        self,
        handle: Any,
        path: str,
        argv: list[str],
        envp: list[str],
        callback: ReadyCallback,
    ) -> None: ...
    def device_spawn_finish(self, handle: Any, result: AsyncResult) -> int: ...
    def device_resume(self, handle: Any, pid: int, callback: ReadyCallback) -> None: ...
    def device_resume_finish(self, handle: Any, result: AsyncResult) -> None: ...
    def device_kill(self, handle: Any, pid: int, callback: ReadyCallback) -> None: ...
    def device_kill_finish(self, handle: Any, result: AsyncResult) -> None: ...
    def device_attach(self, handle: Any, pid: int, callback: ReadyCallback) -> None: ...
    def device_attach_finish(self, handle: Any, result: AsyncResult) -> Any: ...

    def application_get_identifier(self, handle: Any) -> str: ...
    def application_get_name(self, handle: Any) -> str: ...
    def application_get_pid(self, handle: Any) -> int: ...
    def application_get_small_icon(self, handle: Any) -> Any: ...
    def application_get_large_icon(self, handle: Any) -> Any: ...

    def process_get_pid(self, handle: Any) -> int: ...
    def process_get_name(self, handle: Any) -> str: ...
    def process_get_small_icon(self, handle: Any) -> Any: ...
    def process_get_large_icon(self, handle: Any) -> Any: ...

    def session_get_pid(self, handle: Any) -> int: ...
    def session_is_detached(self, handle: Any) -> bool: ...
    def session_detach(self, handle: Any, callback: ReadyCallback) -> None: ...
    def session_detach_finish(self, handle: Any, result: AsyncResult) -> None: ...

    def icon_get_width(self, handle: Any) -> int: ...
    def icon_get_height(self, handle: Any) -> int: ...
    def icon_get_rowstride(self, handle: Any) -> int: ...
    def icon_get_pixels(self, handle: Any) -> bytes: ...

    def connect_signal(self, handle: Any, name: str, callback: SignalCallback) -> int: ...
    def disconnect_signal(self, handle: Any, connection_id: int) -> None: ...


def finish_result(result: AsyncResult, handle: Any) -> Any:
    """Shared body of ``*_finish`` calls: check the pairing, raise or return."""
    if result.source is not handle:
        raise NativeError("INVALID_ARGUMENT", "Result does not belong to this handle")
    if result.error is not None:
        raise result.error
    return result.value
