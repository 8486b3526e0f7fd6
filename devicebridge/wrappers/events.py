"""Forwarding of native signals to listeners on the event loop."""

from __future__ import annotations

import weakref
from typing import Any, Callable

from loguru import logger

from devicebridge.core.handle import HandleWrapper
from devicebridge.core.runtime import Runtime

Listener = Callable[..., Any]


class Events(HandleWrapper):
    """Signal hub for one native object.

    Native signals fire on library threads; listeners are always invoked on
    the runtime's event loop, in registration order.
    """

    kind = "events"

    def __init__(self, handle: Any, runtime: Runtime):
        super().__init__(handle, runtime)
        self._listeners: dict[str, list[Listener]] = {}
        self._connections: dict[str, int] = {}
        connections = self._connections
        library = self.library
        native = self._handle

        def disconnect_all() -> None:
            for connection_id in connections.values():
                library.disconnect_signal(native, connection_id)
            connections.clear()

        self.add_cleanup(disconnect_all)

    def on(self, signal: str, listener: Listener) -> None:
        loop = self.runtime.bind_loop()
        self._listeners.setdefault(signal, []).append(listener)
        if signal in self._connections:
            return
        this = weakref.ref(self)

        def forward(*args: Any) -> None:
            events = this()
            if events is None:
                return
            try:
                loop.call_soon_threadsafe(events._dispatch, signal, args)
            except RuntimeError:
                logger.debug("Dropping {} signal: event loop closed", signal)

        self._connections[signal] = self.library.connect_signal(self.handle, signal, forward)

    def off(self, signal: str, listener: Listener) -> None:
        listeners = self._listeners.get(signal)
        if not listeners or listener not in listeners:
            raise ValueError(f"listener not registered for '{signal}'")
        listeners.remove(listener)
        if listeners:
            return
        del self._listeners[signal]
        connection_id = self._connections.pop(signal, None)
        if connection_id is not None and not self.released:
            self.library.disconnect_signal(self._handle, connection_id)

    def listeners(self, signal: str) -> list[Listener]:
        return list(self._listeners.get(signal, []))

    def _dispatch(self, signal: str, args: tuple[Any, ...]) -> None:
        for listener in list(self._listeners.get(signal, [])):
            try:
                listener(*args)
            except Exception:
                logger.exception("Listener for {} signal raised", signal)

    def _describe(self) -> str:
        return f"signals={sorted(self._listeners)}"


def init(runtime: Runtime) -> None:
    runtime.register(Events.kind, Events)
