"""Asynchronous operation bridge.

An ``Operation`` runs one native begin/finish pair and settles one asyncio
future. ``begin`` runs on the runtime's call-issuance thread; the completion
callback arrives on a native thread and is posted back to the event loop with
``call_soon_threadsafe``; ``end`` and ``build_result`` run on the loop.

State machine: created -> started -> native-pending -> finishing -> settled.
"""

from __future__ import annotations

import asyncio
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from loguru import logger

from devicebridge.native.library import AsyncResult, NativeError
from devicebridge.utils.exceptions import NativeCallError, RuntimeClosedError

if TYPE_CHECKING:
    from devicebridge.core.handle import HandleWrapper
    from devicebridge.core.runtime import Runtime

T = TypeVar("T")


class OperationState(Enum):
    CREATED = "created"
    STARTED = "started"
    NATIVE_PENDING = "native-pending"
    FINISHING = "finishing"
    SETTLED = "settled"


class Operation(ABC, Generic[T]):
    """One in-flight native call plus its future."""

    name: ClassVar[str] = "operation"

    def __init__(self) -> None:
        self.state = OperationState.CREATED
        self.future: asyncio.Future[T] | None = None
        # Done once native resources are released, even if ``future`` was cancelled.
        self.settled: asyncio.Future[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._runtime: Runtime | None = None
        self._wrapper: HandleWrapper | None = None
        self._handle: Any = None
        self._completed = False
        self._lock = threading.Lock()

    @property
    def handle(self) -> Any:
        return self._handle

    @property
    def library(self) -> Any:
        assert self._runtime is not None
        return self._runtime.library

    @property
    def runtime(self) -> Runtime:
        assert self._runtime is not None
        return self._runtime

    @abstractmethod
    def begin(self) -> None:
        """Start the native call with ``self.on_ready`` as its callback."""

    @abstractmethod
    def end(self, result: AsyncResult) -> None:
        """Call the matching native finish; raises NativeError on failure."""

    @abstractmethod
    def build_result(self) -> T:
        """Turn the stored native result into a Python value."""

    def discard_result(self) -> None:
        """Release the stored native result when nobody will read it."""

    def schedule(self, wrapper: HandleWrapper) -> asyncio.Future[T]:
        """Start the operation on behalf of ``wrapper`` and return its future."""
        if self.state is not OperationState.CREATED:
            raise RuntimeError(f"{self.name} operation already scheduled")
        runtime = wrapper.runtime
        runtime.ensure_open()
        self._loop = runtime.bind_loop()
        self._runtime = runtime
        handle = wrapper.handle
        wrapper.hold()
        try:
            # Own reference, independent of the wrapper's.
            self._handle = runtime.library.ref(handle)
        except BaseException:
            wrapper.unhold()
            raise
        self._wrapper = wrapper
        self.future = self._loop.create_future()
        self.settled = self._loop.create_future()
        runtime.track(self)
        self.state = OperationState.STARTED
        try:
            runtime.submit(self._begin)
        except (RuntimeClosedError, RuntimeError):
            self._release()
            raise RuntimeClosedError() from None
        logger.debug("Scheduled {} operation", self.name)
        return self.future

    def _begin(self) -> None:
        self.state = OperationState.NATIVE_PENDING
        try:
            self.begin()
        except Exception as exc:
            logger.exception("Native begin for {} raised", self.name)
            with self._lock:
                if self._completed:
                    return
                self._completed = True
            self._post(self._fail, exc)

    def on_ready(self, result: AsyncResult) -> None:
        """Completion callback; runs on a native library thread."""
        with self._lock:
            if self._completed:
                logger.warning("Ignoring repeated completion for {} operation", self.name)
                return
            self._completed = True
        self._post(self._finish, result)

    def _post(self, callback: Any, arg: Any) -> None:
        assert self._loop is not None
        try:
            self._loop.call_soon_threadsafe(callback, arg)
        except RuntimeError:
            logger.warning("Event loop closed before {} operation settled", self.name)
            if not isinstance(arg, AsyncResult):
                self._release()
                return
            try:
                self.end(arg)
            except NativeError as exc:
                logger.debug("{} operation failed after loop close: {}", self.name, exc.message)
            else:
                self.discard_result()
            self._release()

    def _finish(self, result: AsyncResult) -> None:
        self.state = OperationState.FINISHING
        assert self.future is not None
        try:
            try:
                self.end(result)
            except NativeError as exc:
                logger.debug("{} operation failed: {}", self.name, exc.message)
                if not self.future.cancelled():
                    self.future.set_exception(NativeCallError.from_native(exc, self.name))
                return
            except Exception as exc:
                logger.exception("Native finish for {} raised", self.name)
                if not self.future.cancelled():
                    self.future.set_exception(exc)
                return
            if self.future.cancelled():
                self.discard_result()
                return
            try:
                value = self.build_result()
            except Exception as exc:
                self.future.set_exception(exc)
                return
            self.future.set_result(value)
        finally:
            self._release()

    def _fail(self, exc: Exception) -> None:
        assert self.future is not None
        try:
            if not self.future.cancelled():
                if isinstance(exc, NativeError):
                    exc = NativeCallError.from_native(exc, self.name)
                self.future.set_exception(exc)
        finally:
            self._release()

    def _release(self) -> None:
        self.state = OperationState.SETTLED
        runtime = self._runtime
        if self._handle is not None and runtime is not None:
            runtime.library.unref(self._handle)
            self._handle = None
        if self._wrapper is not None:
            self._wrapper.unhold()
            self._wrapper = None
        if runtime is not None:
            runtime.untrack(self)
        settled = self.settled
        if settled is not None and not settled.done() and not settled.get_loop().is_closed():
            settled.set_result(None)
