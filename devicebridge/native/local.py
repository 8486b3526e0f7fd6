"""Native library implementation for the local machine.

Objects are reference-counted records. Every begin call is queued to a single
dispatcher thread, which does the work and fires the completion callback from
that thread, the way a library with its own main loop would.
"""

from __future__ import annotations

import itertools
import os
import queue
import shutil
import signal
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

import psutil
from loguru import logger

from devicebridge.native.library import (
    AsyncResult,
    DeviceType,
    NativeError,
    ReadyCallback,
    SignalCallback,
    finish_result,
)

# Stops the shell before exec so the spawned program starts suspended.
_SUSPEND_THEN_EXEC = 'kill -STOP $$; exec "$0" "$@"'


@dataclass(eq=False)
class NativeObject:
    """One reference-counted native record."""

    kind: str
    fields: dict[str, Any]
    refs: int = 1
    handlers: dict[int, tuple[str, SignalCallback]] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"<NativeObject {self.kind} refs={self.refs}>"


class LocalNativeLibrary:
    """Process control for the machine this interpreter runs on."""

    def __init__(
        self,
        *,
        device_name: str = "Local System",
        device_id: int = 0,
        device_type: DeviceType = DeviceType.LOCAL,
        applications: list[dict[str, Any]] | None = None,
        frontmost: str | None = None,
        thread_name: str = "devicebridge-local",
    ):
        self._lock = threading.RLock()
        self._live: set[NativeObject] = set()
        self._connection_ids = itertools.count(1)
        self._children: dict[int, subprocess.Popen[bytes]] = {}
        self._pending_spawns: set[int] = set()
        self._applications = [dict(row) for row in applications or []]
        self._frontmost = frontmost
        self._jobs: queue.Queue[Callable[[], None] | None] = queue.Queue()
        self._closed = False
        self._device = self._new(
            "device",
            id=device_id,
            name=device_name,
            dtype=device_type,
            icon=None,
        )
        self._thread = threading.Thread(target=self._dispatch_loop, name=thread_name, daemon=True)
        self._thread.start()

    # -- lifecycle -------------------------------------------------------

    def open_device(self) -> NativeObject:
        """Return a new reference to the local device record."""
        return self.ref(self._device)

    def close(self) -> None:
        """Stop the dispatcher and kill spawned programs never resumed."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._jobs.put(None)
        self._thread.join(timeout=5.0)
        with self._lock:
            children = list(self._children.items())
            pending = set(self._pending_spawns)
            self._children.clear()
            self._pending_spawns.clear()
        for pid, proc in children:
            if pid not in pending:
                continue
            if proc.poll() is None:
                proc.kill()
            try:
                proc.wait(timeout=2.0)
            except subprocess.TimeoutExpired:
                logger.warning("Spawned process {} did not exit on close", pid)
        self.unref(self._device)

    def live_objects(self) -> list[NativeObject]:
        with self._lock:
            return list(self._live)

    # -- reference counting ----------------------------------------------

    def _new(self, kind: str, **fields: Any) -> NativeObject:
        obj = NativeObject(kind=kind, fields=fields)
        with self._lock:
            self._live.add(obj)
        return obj

    def ref(self, handle: NativeObject) -> NativeObject:
        with self._lock:
            if handle.refs <= 0:
                raise RuntimeError(f"ref of released {handle.kind} object")
            handle.refs += 1
        return handle

    def unref(self, handle: NativeObject) -> None:
        with self._lock:
            if handle.refs <= 0:
                raise RuntimeError(f"unref of released {handle.kind} object")
            handle.refs -= 1
            if handle.refs:
                return
            self._live.discard(handle)
            handle.handlers.clear()
            children = [v for v in handle.fields.values() if isinstance(v, NativeObject)]
            children.extend(handle.fields.get("items", []))
        for child in children:
            self.unref(child)

    def refcount(self, handle: NativeObject) -> int:
        with self._lock:
            return handle.refs

    # -- lists -----------------------------------------------------------

    def _new_list(self, items: list[NativeObject]) -> NativeObject:
        return self._new("list", items=items)

    def list_size(self, native_list: NativeObject) -> int:
        return len(native_list.fields["items"])

    def list_get(self, native_list: NativeObject, index: int) -> NativeObject:
        return self.ref(native_list.fields["items"][index])

    # -- accessors -------------------------------------------------------

    def _get(self, handle: NativeObject, kind: str, name: str) -> Any:
        if handle.kind != kind:
            raise RuntimeError(f"expected {kind} object, got {handle.kind}")
        if handle.refs <= 0:
            raise RuntimeError(f"access to released {kind} object")
        return handle.fields[name]

    def device_get_id(self, handle: NativeObject) -> int:
        return self._get(handle, "device", "id")

    def device_get_name(self, handle: NativeObject) -> str:
        return self._get(handle, "device", "name")

    def device_get_icon(self, handle: NativeObject) -> NativeObject | None:
        return self._get(handle, "device", "icon")

    def device_get_dtype(self, handle: NativeObject) -> int:
        return self._get(handle, "device", "dtype")

    def application_get_identifier(self, handle: NativeObject) -> str:
        return self._get(handle, "application", "identifier")

    def application_get_name(self, handle: NativeObject) -> str:
        return self._get(handle, "application", "name")

    def application_get_pid(self, handle: NativeObject) -> int:
        return self._get(handle, "application", "pid")

    def application_get_small_icon(self, handle: NativeObject) -> NativeObject | None:
        return self._get(handle, "application", "small_icon")

    def application_get_large_icon(self, handle: NativeObject) -> NativeObject | None:
        return self._get(handle, "application", "large_icon")

    def process_get_pid(self, handle: NativeObject) -> int:
        return self._get(handle, "process", "pid")

    def process_get_name(self, handle: NativeObject) -> str:
        return self._get(handle, "process", "name")

    def process_get_small_icon(self, handle: NativeObject) -> NativeObject | None:
        return self._get(handle, "process", "small_icon")

    def process_get_large_icon(self, handle: NativeObject) -> NativeObject | None:
        return self._get(handle, "process", "large_icon")

    def session_get_pid(self, handle: NativeObject) -> int:
        return self._get(handle, "session", "pid")

    def session_is_detached(self, handle: NativeObject) -> bool:
        with self._lock:
            return self._get(handle, "session", "detached")

    def icon_get_width(self, handle: NativeObject) -> int:
        return self._get(handle, "icon", "width")

    def icon_get_height(self, handle: NativeObject) -> int:
        return self._get(handle, "icon", "height")

    def icon_get_rowstride(self, handle: NativeObject) -> int:
        return self._get(handle, "icon", "rowstride")

    def icon_get_pixels(self, handle: NativeObject) -> bytes:
        return self._get(handle, "icon", "pixels")

    # -- signals ---------------------------------------------------------

    def connect_signal(self, handle: NativeObject, name: str, callback: SignalCallback) -> int:
        connection_id = next(self._connection_ids)
        with self._lock:
            handle.handlers[connection_id] = (name, callback)
        return connection_id

    def disconnect_signal(self, handle: NativeObject, connection_id: int) -> None:
        with self._lock:
            handle.handlers.pop(connection_id, None)

    def _emit(self, handle: NativeObject, name: str, *args: Any) -> None:
        with self._lock:
            targets = [cb for signal_name, cb in handle.handlers.values() if signal_name == name]
        for callback in targets:
            try:
                callback(*args)
            except Exception:
                logger.exception("Signal handler for {} raised", name)

    # -- dispatcher ------------------------------------------------------

    def _dispatch_loop(self) -> None:
        while True:
            job = self._jobs.get()
            if job is None:
                return
            job()

    def _begin(
        self,
        handle: NativeObject,
        tag: str,
        callback: ReadyCallback,
        work: Callable[[], Any],
    ) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("native library is closed")

        def job() -> None:
            result = AsyncResult(source=handle, tag=tag)
            try:
                self._reap()
                result.value = work()
            except NativeError as exc:
                result.error = exc
            except Exception as exc:
                logger.exception("Native {} failed", tag)
                result.error = NativeError("INTERNAL", str(exc))
            try:
                callback(result)
            except Exception:
                logger.exception("Completion callback for {} raised", tag)

        self._jobs.put(job)

    def _reap(self) -> None:
        with self._lock:
            done = [
                pid
                for pid, proc in self._children.items()
                if pid not in self._pending_spawns and proc.poll() is not None
            ]
            for pid in done:
                self._children.pop(pid, None)

    # -- device operations -----------------------------------------------

    def device_get_frontmost_application(self, handle: NativeObject, callback: ReadyCallback) -> None:
        def work() -> NativeObject | None:
            if not self._frontmost:
                return None
            for row in self._applications:
                if row.get("identifier") == self._frontmost:
                    return self._application_record(row)
            return None

        self._begin(handle, "get_frontmost_application", callback, work)

    def device_get_frontmost_application_finish(
        self, handle: NativeObject, result: AsyncResult
    ) -> NativeObject | None:
        return finish_result(result, handle)

    def device_enumerate_applications(self, handle: NativeObject, callback: ReadyCallback) -> None:
        def work() -> NativeObject:
            return self._new_list([self._application_record(row) for row in self._applications])

        self._begin(handle, "enumerate_applications", callback, work)

    def device_enumerate_applications_finish(self, handle: NativeObject, result: AsyncResult) -> NativeObject:
        return finish_result(result, handle)

    def device_enumerate_processes(self, handle: NativeObject, callback: ReadyCallback) -> None:
        def work() -> NativeObject:
            rows = []
            for proc in psutil.process_iter(["pid", "name"]):
                info = proc.info
                rows.append((int(info["pid"]), str(info.get("name") or "")))
            rows.sort()
            items = [
                self._new("process", pid=pid, name=name, small_icon=None, large_icon=None)
                for pid, name in rows
            ]
            return self._new_list(items)

        self._begin(handle, "enumerate_processes", callback, work)

    def device_enumerate_processes_finish(self, handle: NativeObject, result: AsyncResult) -> NativeObject:
        return finish_result(result, handle)

    def device_spawn(
        self,
        handle: NativeObject,
        path: str,
        argv: list[str],
        envp: list[str],
        callback: ReadyCallback,
    ) -> None:
        def work() -> int:
            program = path if os.sep in path else shutil.which(path)
            if not program or not os.access(program, os.X_OK) or os.path.isdir(program):
                raise NativeError("EXECUTABLE_NOT_FOUND", f"Unable to find executable at '{path}'")
            env = dict(entry.split("=", 1) for entry in envp if "=" in entry)
            proc = subprocess.Popen(
                ["/bin/sh", "-c", _SUSPEND_THEN_EXEC, program, *argv[1:]],
                env=env,
                stdin=subprocess.DEVNULL,
            )
            _, status = os.waitpid(proc.pid, os.WUNTRACED)
            if not os.WIFSTOPPED(status):
                raise NativeError("NOT_SUPPORTED", f"Unable to spawn '{path}' suspended")
            with self._lock:
                self._children[proc.pid] = proc
                self._pending_spawns.add(proc.pid)
            logger.debug("Spawned {} suspended as pid {}", program, proc.pid)
            self._emit(handle, "spawn-added", proc.pid)
            return proc.pid

        self._begin(handle, "spawn", callback, work)

    def device_spawn_finish(self, handle: NativeObject, result: AsyncResult) -> int:
        return finish_result(result, handle)

    def device_resume(self, handle: NativeObject, pid: int, callback: ReadyCallback) -> None:
        def work() -> None:
            with self._lock:
                pending = pid in self._pending_spawns
                self._pending_spawns.discard(pid)
            if not pending:
                try:
                    status = psutil.Process(pid).status()
                except psutil.NoSuchProcess as exc:
                    raise NativeError("PROCESS_NOT_FOUND", f"Unable to find process with pid {pid}") from exc
                if status != psutil.STATUS_STOPPED:
                    raise NativeError("INVALID_OPERATION", f"Unable to resume process with pid {pid}")
            try:
                os.kill(pid, signal.SIGCONT)
            except PermissionError as exc:
                raise NativeError("PERMISSION_DENIED", f"Unable to access process with pid {pid}") from exc
            if pending:
                self._emit(handle, "spawn-removed", pid)

        self._begin(handle, "resume", callback, work)

    def device_resume_finish(self, handle: NativeObject, result: AsyncResult) -> None:
        finish_result(result, handle)

    def device_kill(self, handle: NativeObject, pid: int, callback: ReadyCallback) -> None:
        def work() -> None:
            with self._lock:
                proc = self._children.pop(pid, None)
                was_pending = pid in self._pending_spawns
                self._pending_spawns.discard(pid)
            if proc is not None:
                if proc.poll() is None:
                    proc.kill()
                proc.wait()
                if was_pending:
                    self._emit(handle, "spawn-removed", pid)
                return
            try:
                os.kill(pid, signal.SIGKILL)
            except ProcessLookupError as exc:
                raise NativeError("PROCESS_NOT_FOUND", f"Unable to find process with pid {pid}") from exc
            except PermissionError as exc:
                raise NativeError("PERMISSION_DENIED", f"Unable to access process with pid {pid}") from exc

        self._begin(handle, "kill", callback, work)

    def device_kill_finish(self, handle: NativeObject, result: AsyncResult) -> None:
        finish_result(result, handle)

    def device_attach(self, handle: NativeObject, pid: int, callback: ReadyCallback) -> None:
        def work() -> NativeObject:
            if not psutil.pid_exists(pid):
                raise NativeError("PROCESS_NOT_FOUND", f"Unable to find process with pid {pid}")
            return self._new("session", pid=pid, detached=False)

        self._begin(handle, "attach", callback, work)

    def device_attach_finish(self, handle: NativeObject, result: AsyncResult) -> NativeObject:
        return finish_result(result, handle)

    # -- session operations ----------------------------------------------

    def session_detach(self, handle: NativeObject, callback: ReadyCallback) -> None:
        def work() -> None:
            with self._lock:
                already = handle.fields["detached"]
                handle.fields["detached"] = True
            if not already:
                self._emit(handle, "detached", "application-requested")

        self._begin(handle, "detach", callback, work)

    def session_detach_finish(self, handle: NativeObject, result: AsyncResult) -> None:
        finish_result(result, handle)

    # -- records ---------------------------------------------------------

    def _application_record(self, row: dict[str, Any]) -> NativeObject:
        return self._new(
            "application",
            identifier=str(row.get("identifier") or ""),
            name=str(row.get("name") or ""),
            pid=int(row.get("pid") or 0),
            small_icon=None,
            large_icon=None,
        )
