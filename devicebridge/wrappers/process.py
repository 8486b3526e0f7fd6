"""Process wrapper."""

from __future__ import annotations

from devicebridge.core.handle import HandleWrapper
from devicebridge.core.marshal import wrap_borrowed
from devicebridge.core.runtime import Runtime


class Process(HandleWrapper):
    kind = "process"

    @property
    def pid(self) -> int:
        return int(self.library.process_get_pid(self.handle))

    @property
    def name(self) -> str:
        return self.library.process_get_name(self.handle)

    @property
    def small_icon(self):
        return wrap_borrowed(self.runtime, "icon", self.library.process_get_small_icon(self.handle))

    @property
    def large_icon(self):
        return wrap_borrowed(self.runtime, "icon", self.library.process_get_large_icon(self.handle))

    def _describe(self) -> str:
        return f"pid={self.pid}, name={self.name!r}"


def init(runtime: Runtime) -> None:
    runtime.register(Process.kind, Process)
