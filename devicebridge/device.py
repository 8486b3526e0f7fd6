"""Device wrapper: the command surface of the bridge.

Every command validates its arguments synchronously, raising
``BadArgumentError`` on the spot, then schedules one operation and returns
its future without waiting.
"""

from __future__ import annotations

import asyncio
import math
import os
from typing import Any

from devicebridge.core.handle import HandleWrapper
from devicebridge.core.marshal import device_type_tag, wrap_borrowed, wrap_list, wrap_optional
from devicebridge.core.operation import Operation
from devicebridge.core.runtime import Runtime
from devicebridge.native.library import AsyncResult
from devicebridge.utils.exceptions import BadArgumentError
from devicebridge.wrappers.application import Application
from devicebridge.wrappers.events import Events
from devicebridge.wrappers.process import Process
from devicebridge.wrappers.session import Session

SPAWN_OPTIONS_KEY = "device:spawn-options"


class Device(HandleWrapper):
    kind = "device"

    def __init__(self, handle: Any, runtime: Runtime):
        super().__init__(handle, runtime)
        self.events: Events = runtime.wrap(Events.kind, handle)

    @property
    def id(self) -> int:
        return int(self.library.device_get_id(self.handle))

    @property
    def name(self) -> str:
        return self.library.device_get_name(self.handle)

    @property
    def icon(self):
        return wrap_borrowed(self.runtime, "icon", self.library.device_get_icon(self.handle))

    @property
    def type(self) -> str:
        return device_type_tag(self.library.device_get_dtype(self.handle))

    def get_frontmost_application(self) -> asyncio.Future[Application | None]:
        return GetFrontmostApplicationOperation().schedule(self)

    def enumerate_applications(self) -> asyncio.Future[list[Application]]:
        return EnumerateApplicationsOperation().schedule(self)

    def enumerate_processes(self) -> asyncio.Future[list[Process]]:
        return EnumerateProcessesOperation().schedule(self)

    def spawn(self, argv: Any = None) -> asyncio.Future[int]:
        args = parse_argv(argv)
        envp = capture_environment(self.runtime)
        return SpawnOperation(args[0], args, envp).schedule(self)

    def resume(self, pid: Any = None) -> asyncio.Future[None]:
        return ResumeOperation(parse_pid(pid)).schedule(self)

    def kill(self, pid: Any = None) -> asyncio.Future[None]:
        return KillOperation(parse_pid(pid)).schedule(self)

    def attach(self, pid: Any = None) -> asyncio.Future[Session]:
        return AttachOperation(parse_pid(pid)).schedule(self)

    def close(self) -> None:
        self.events.close()
        super().close()

    def _describe(self) -> str:
        return f"id={self.id}, name={self.name!r}, type={self.type!r}"


def parse_argv(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)) or not value:
        raise BadArgumentError("argv as an array of strings")
    if not all(isinstance(item, str) for item in value):
        raise BadArgumentError("argv as an array of strings")
    return list(value)


def parse_pid(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise BadArgumentError("pid")
    if isinstance(value, float) and not math.isfinite(value):
        raise BadArgumentError("pid")
    pid = int(value)
    if pid <= 0:
        raise BadArgumentError("pid")
    return pid


def capture_environment(runtime: Runtime) -> list[str]:
    """Snapshot of the environment handed to spawned programs."""
    options = runtime.get_data(SPAWN_OPTIONS_KEY) or {}
    env = dict(os.environ) if options.get("inherit_env", True) else {}
    env.update(options.get("extra_env") or {})
    return [f"{key}={value}" for key, value in env.items()]


class GetFrontmostApplicationOperation(Operation[Application | None]):
    name = "get_frontmost_application"

    def __init__(self) -> None:
        super().__init__()
        self._application: Any = None

    def begin(self) -> None:
        self.library.device_get_frontmost_application(self.handle, self.on_ready)

    def end(self, result: AsyncResult) -> None:
        self._application = self.library.device_get_frontmost_application_finish(self.handle, result)

    def build_result(self) -> Application | None:
        application, self._application = self._application, None
        return wrap_optional(self.runtime, Application.kind, application)

    def discard_result(self) -> None:
        if self._application is not None:
            self.library.unref(self._application)
            self._application = None


class _EnumerateOperation(Operation[list]):
    item_kind = ""

    def __init__(self) -> None:
        super().__init__()
        self._items: Any = None

    def build_result(self) -> list:
        items, self._items = self._items, None
        return wrap_list(self.runtime, self.item_kind, items)

    def discard_result(self) -> None:
        if self._items is not None:
            self.library.unref(self._items)
            self._items = None


class EnumerateApplicationsOperation(_EnumerateOperation):
    name = "enumerate_applications"
    item_kind = Application.kind

    def begin(self) -> None:
        self.library.device_enumerate_applications(self.handle, self.on_ready)

    def end(self, result: AsyncResult) -> None:
        self._items = self.library.device_enumerate_applications_finish(self.handle, result)


class EnumerateProcessesOperation(_EnumerateOperation):
    name = "enumerate_processes"
    item_kind = Process.kind

    def begin(self) -> None:
        self.library.device_enumerate_processes(self.handle, self.on_ready)

    def end(self, result: AsyncResult) -> None:
        self._items = self.library.device_enumerate_processes_finish(self.handle, result)


class SpawnOperation(Operation[int]):
    name = "spawn"

    def __init__(self, path: str, argv: list[str], envp: list[str]):
        super().__init__()
        self.path = path
        self.argv = list(argv)
        self.envp = list(envp)
        self._pid = 0

    def begin(self) -> None:
        self.library.device_spawn(self.handle, self.path, self.argv, self.envp, self.on_ready)

    def end(self, result: AsyncResult) -> None:
        self._pid = self.library.device_spawn_finish(self.handle, result)

    def build_result(self) -> int:
        return int(self._pid)


class _PidOperation(Operation[None]):
    def __init__(self, pid: int):
        super().__init__()
        self.pid = pid

    def build_result(self) -> None:
        return None


class ResumeOperation(_PidOperation):
    name = "resume"

    def begin(self) -> None:
        self.library.device_resume(self.handle, self.pid, self.on_ready)

    def end(self, result: AsyncResult) -> None:
        self.library.device_resume_finish(self.handle, result)


class KillOperation(_PidOperation):
    name = "kill"

    def begin(self) -> None:
        self.library.device_kill(self.handle, self.pid, self.on_ready)

    def end(self, result: AsyncResult) -> None:
        self.library.device_kill_finish(self.handle, result)


class AttachOperation(Operation[Session]):
    name = "attach"

    def __init__(self, pid: int):
        super().__init__()
        self.pid = pid
        self._session: Any = None

    def begin(self) -> None:
        self.library.device_attach(self.handle, self.pid, self.on_ready)

    def end(self, result: AsyncResult) -> None:
        self._session = self.library.device_attach_finish(self.handle, result)

    def build_result(self) -> Session:
        session, self._session = self._session, None
        try:
            return self.runtime.wrap(Session.kind, session)
        finally:
            self.library.unref(session)

    def discard_result(self) -> None:
        if self._session is not None:
            self.library.unref(self._session)
            self._session = None


def init(runtime: Runtime) -> None:
    runtime.register(Device.kind, Device)
