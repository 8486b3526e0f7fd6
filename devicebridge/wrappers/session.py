"""Session wrapper for an attached process."""

from __future__ import annotations

import asyncio
from typing import Any

from devicebridge.core.handle import HandleWrapper
from devicebridge.core.operation import Operation
from devicebridge.core.runtime import Runtime
from devicebridge.native.library import AsyncResult
from devicebridge.wrappers.events import Events


class Session(HandleWrapper):
    """Debugging session; emits ``detached`` through ``events``."""

    kind = "session"

    def __init__(self, handle: Any, runtime: Runtime):
        super().__init__(handle, runtime)
        self.events: Events = runtime.wrap(Events.kind, handle)

    @property
    def pid(self) -> int:
        return int(self.library.session_get_pid(self.handle))

    @property
    def is_detached(self) -> bool:
        return bool(self.library.session_is_detached(self.handle))

    def detach(self) -> asyncio.Future[None]:
        return DetachOperation().schedule(self)

    def close(self) -> None:
        self.events.close()
        super().close()

    def _describe(self) -> str:
        return f"pid={self.pid}"


class DetachOperation(Operation[None]):
    name = "detach"

    def begin(self) -> None:
        self.library.session_detach(self.handle, self.on_ready)

    def end(self, result: AsyncResult) -> None:
        self.library.session_detach_finish(self.handle, result)

    def build_result(self) -> None:
        return None


def init(runtime: Runtime) -> None:
    runtime.register(Session.kind, Session)
