"""Python objects owning one reference to a native handle."""

from __future__ import annotations

import weakref
from typing import TYPE_CHECKING, Any, Callable, ClassVar

from loguru import logger

from devicebridge.utils.exceptions import HandleReleasedError

if TYPE_CHECKING:
    from devicebridge.core.runtime import Runtime


def _release(library: Any, handle: Any, kind: str, cleanups: list[Callable[[], None]]) -> None:
    # Must not reference the wrapper: runs from weakref.finalize.
    for cleanup in reversed(cleanups):
        cleanup()
    cleanups.clear()
    library.unref(handle)
    logger.debug("Released {} handle", kind)


class HandleWrapper:
    """Base class for wrappers around reference-counted native handles.

    The wrapper takes its own reference at construction and gives it back
    exactly once: on ``close()`` or when garbage-collected. While operations
    hold the wrapper, ``close()`` is deferred until the last one finishes.
    """

    kind: ClassVar[str] = "object"

    def __init__(self, handle: Any, runtime: Runtime):
        if handle is None:
            raise TypeError("Bad argument, expected raw handle")
        self._runtime = runtime
        self._library = runtime.library
        self._handle = self._library.ref(handle)
        self._holds = 0
        self._close_requested = False
        self._cleanups: list[Callable[[], None]] = []
        self._finalizer = weakref.finalize(self, _release, self._library, handle, self.kind, self._cleanups)

    @property
    def runtime(self) -> Runtime:
        return self._runtime

    @property
    def released(self) -> bool:
        return not self._finalizer.alive

    @property
    def handle(self) -> Any:
        if not self._finalizer.alive:
            raise HandleReleasedError(self.kind)
        return self._handle

    @property
    def library(self) -> Any:
        return self._library

    def add_cleanup(self, cleanup: Callable[[], None]) -> None:
        """Run cleanup just before the native reference is released."""
        self._cleanups.append(cleanup)

    def hold(self) -> None:
        if self.released:
            raise HandleReleasedError(self.kind)
        self._holds += 1

    def unhold(self) -> None:
        self._holds -= 1
        if self._holds == 0 and self._close_requested:
            self._finalizer()

    def close(self) -> None:
        if self._holds:
            self._close_requested = True
            return
        self._finalizer()

    def __enter__(self) -> HandleWrapper:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        if self.released:
            return f"<{type(self).__name__} released>"
        return f"<{type(self).__name__} {self._describe()}>"

    def _describe(self) -> str:
        return f"handle={self._handle!r}"
