"""Application wrapper."""

from __future__ import annotations

from devicebridge.core.handle import HandleWrapper
from devicebridge.core.marshal import wrap_borrowed
from devicebridge.core.runtime import Runtime


class Application(HandleWrapper):
    """An installed application; ``pid`` is 0 when it is not running."""

    kind = "application"

    @property
    def identifier(self) -> str:
        return self.library.application_get_identifier(self.handle)

    @property
    def name(self) -> str:
        return self.library.application_get_name(self.handle)

    @property
    def pid(self) -> int:
        return int(self.library.application_get_pid(self.handle))

    @property
    def small_icon(self):
        return wrap_borrowed(self.runtime, "icon", self.library.application_get_small_icon(self.handle))

    @property
    def large_icon(self):
        return wrap_borrowed(self.runtime, "icon", self.library.application_get_large_icon(self.handle))

    def _describe(self) -> str:
        return f"identifier={self.identifier!r}, name={self.name!r}, pid={self.pid}"


def init(runtime: Runtime) -> None:
    runtime.register(Application.kind, Application)
