"""Per-runtime context: native library, call-issuance thread, wrapper registry."""

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import Future as ConcurrentFuture
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Callable

from loguru import logger

from devicebridge.native.library import NativeLibrary
from devicebridge.utils.exceptions import RuntimeClosedError

if TYPE_CHECKING:
    from devicebridge.core.handle import HandleWrapper
    from devicebridge.core.operation import Operation

WrapperConstructor = Callable[[Any, "Runtime"], "HandleWrapper"]


class Runtime:
    """Context shared by every wrapper and operation of one event loop.

    Holds the constructors used to wrap native handles by kind, the single
    thread that issues native calls, and the set of in-flight operations.
    """

    def __init__(
        self,
        library: NativeLibrary,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        issuer_thread_name: str = "devicebridge-native",
    ):
        self.library = library
        self._loop = loop
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=issuer_thread_name)
        self._constructors: dict[str, WrapperConstructor] = {}
        self._pending: set[Operation[Any]] = set()
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """The event loop futures settle on; bound on first use from a coroutine."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def bind_loop(self) -> asyncio.AbstractEventLoop:
        """Return the loop, checking the caller runs on it."""
        running = asyncio.get_running_loop()
        if self._loop is None:
            self._loop = running
        elif running is not self._loop:
            raise RuntimeError("runtime is bound to a different event loop")
        return self._loop

    # -- constructor registry --------------------------------------------

    def register(self, kind: str, constructor: WrapperConstructor) -> None:
        self._constructors[kind] = constructor

    def is_registered(self, kind: str) -> bool:
        return kind in self._constructors

    def wrap(self, kind: str, handle: Any) -> HandleWrapper | None:
        """Wrap a native handle; the caller keeps its own reference."""
        if handle is None:
            return None
        try:
            constructor = self._constructors[kind]
        except KeyError:
            raise KeyError(f"no wrapper registered for kind '{kind}'") from None
        return constructor(handle, self)

    def set_data(self, key: str, value: Any) -> None:
        self._data[key] = value

    def get_data(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    # -- operations ------------------------------------------------------

    def ensure_open(self) -> None:
        if self._closed:
            raise RuntimeClosedError()

    def submit(self, fn: Callable[[], None]) -> ConcurrentFuture[None]:
        """Run fn on the call-issuance thread."""
        self.ensure_open()
        return self._executor.submit(fn)

    def track(self, operation: Operation[Any]) -> None:
        with self._lock:
            self._pending.add(operation)

    def untrack(self, operation: Operation[Any]) -> None:
        with self._lock:
            self._pending.discard(operation)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    async def aclose(self) -> None:
        """Wait for in-flight operations, then stop the call-issuance thread."""
        if self._closed:
            return
        with self._lock:
            waiters = [op.settled for op in self._pending if op.settled is not None]
        self._closed = True
        if waiters:
            logger.debug("Runtime closing with {} operation(s) in flight", len(waiters))
            await asyncio.gather(*waiters)
        self._executor.shutdown(wait=True)
        self._constructors.clear()

    def close(self) -> None:
        """Stop accepting operations without waiting on the loop."""
        self._closed = True
        self._executor.shutdown(wait=True)
        self._constructors.clear()
