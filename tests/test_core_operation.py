"""Tests for the begin/finish to future bridge."""

from __future__ import annotations

import asyncio
import threading

import pytest

from devicebridge.native.library import NativeError
from devicebridge.utils.exceptions import NativeCallError, RuntimeClosedError
from devicebridge.wrappers.process import Process
from fakes import FakeNativeLibrary, fake_device


async def _drain(runtime) -> None:
    for _ in range(200):
        if runtime.pending_count() == 0:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("operations still pending")


@pytest.mark.asyncio
async def test_future_settles_on_loop_after_native_thread_completion():
    library = FakeNativeLibrary(auto_complete=False)
    library.processes = [{"pid": 1, "name": "init"}]
    async with fake_device(library) as device:
        future = device.enumerate_processes()
        assert not future.done()

        library.wait_pending()
        library.complete()
        assert not future.done()

        settled_on = []
        future.add_done_callback(lambda _f: settled_on.append(threading.current_thread()))
        processes = await future
        assert [p.pid for p in processes] == [1]
        assert settled_on == [threading.main_thread()]
        assert library.completion_threads == {"fake-native-enumerate_processes"}
        for process in processes:
            process.close()
    assert library.live() == []


@pytest.mark.asyncio
async def test_auto_completed_operation_is_never_synchronous():
    library = FakeNativeLibrary()
    async with fake_device(library) as device:
        future = device.resume(10)
        assert not future.done()
        assert await future is None
        assert library.calls[0].args == (10,)


@pytest.mark.asyncio
async def test_native_error_rejects_with_native_message():
    library = FakeNativeLibrary()
    library.failures["attach"] = NativeError("PROCESS_NOT_FOUND", "Unable to find process with pid 1234")
    async with fake_device(library) as device:
        with pytest.raises(NativeCallError, match="^Unable to find process with pid 1234$") as info:
            await device.attach(1234)
        assert info.value.native_code == "PROCESS_NOT_FOUND"
        assert info.value.operation == "attach"
    assert library.live() == []


@pytest.mark.asyncio
async def test_duplicate_completion_is_ignored():
    library = FakeNativeLibrary(auto_complete=False)
    async with fake_device(library) as device:
        future = device.kill(77)
        library.wait_pending()
        library.complete(times=2)
        assert await future is None
        await _drain(device.runtime)
        assert library.refcount(device.handle) == 2


@pytest.mark.asyncio
async def test_begin_failure_rejects_future():
    library = FakeNativeLibrary()
    library.begin_errors["spawn"] = NativeError("NOT_SUPPORTED", "Not supported on this device")
    library.begin_errors["resume"] = RuntimeError("begin exploded")
    async with fake_device(library) as device:
        with pytest.raises(NativeCallError, match="Not supported on this device"):
            await device.spawn(["/bin/true"])
        with pytest.raises(RuntimeError, match="begin exploded"):
            await device.resume(5)
        assert device.runtime.pending_count() == 0
        assert library.refcount(device.handle) == 2


@pytest.mark.asyncio
async def test_cancelled_future_still_releases_native_result():
    library = FakeNativeLibrary(auto_complete=False)
    library.processes = [{"pid": 1, "name": "init"}, {"pid": 2, "name": "kthreadd"}]
    async with fake_device(library) as device:
        future = device.enumerate_processes()
        future.cancel()
        library.wait_pending()
        library.complete()
        await _drain(device.runtime)
        assert library.live("list", "process") == []
    assert library.live() == []


@pytest.mark.asyncio
async def test_close_while_operation_in_flight_is_deferred():
    library = FakeNativeLibrary(auto_complete=False)
    library.frontmost = {"identifier": "com.example.editor", "name": "Editor", "pid": 321}
    async with fake_device(library) as device:
        future = device.get_frontmost_application()
        device.close()
        assert device.released is False

        library.wait_pending()
        library.complete()
        application = await future
        assert application.identifier == "com.example.editor"
        application.close()
        await _drain(device.runtime)
        assert device.released is True
    assert library.live() == []


@pytest.mark.asyncio
async def test_concurrent_operations_on_one_wrapper():
    library = FakeNativeLibrary(auto_complete=False)
    async with fake_device(library) as device:
        first = device.resume(1)
        second = device.kill(2)
        library.wait_pending(2)
        # Wrapper and events own two references, each operation one more.
        assert library.refcount(device.handle) == 4

        library.complete("kill")
        library.complete("resume")
        assert await asyncio.gather(first, second) == [None, None]
        await _drain(device.runtime)
        assert library.refcount(device.handle) == 2


@pytest.mark.asyncio
async def test_aclose_waits_for_in_flight_operations():
    library = FakeNativeLibrary(auto_complete=False)
    async with fake_device(library) as device:
        runtime = device.runtime
        future = device.kill(3)
        library.wait_pending()

        closing = asyncio.ensure_future(runtime.aclose())
        await asyncio.sleep(0.01)
        assert not closing.done()

        library.complete()
        await closing
        assert future.done()
        assert runtime.closed is True
        with pytest.raises(RuntimeClosedError):
            device.resume(3)


@pytest.mark.asyncio
async def test_operation_cannot_be_scheduled_twice():
    library = FakeNativeLibrary()
    async with fake_device(library) as device:
        from devicebridge.device import ResumeOperation

        operation = ResumeOperation(9)
        await operation.schedule(device)
        with pytest.raises(RuntimeError, match="already scheduled"):
            operation.schedule(device)


@pytest.mark.asyncio
async def test_enumerated_wrappers_are_processes():
    library = FakeNativeLibrary()
    library.processes = [{"pid": 4, "name": "sh"}]
    async with fake_device(library) as device:
        (process,) = await device.enumerate_processes()
        assert isinstance(process, Process)
        assert repr(process) == "<Process pid=4, name='sh'>"
        process.close()


@pytest.mark.asyncio
async def test_unexpected_finish_error_rejects_future(monkeypatch):
    library = FakeNativeLibrary()

    def _explode(handle, result):
        raise TypeError("finish exploded")

    monkeypatch.setattr(library, "device_kill_finish", _explode)
    async with fake_device(library) as device:
        with pytest.raises(TypeError, match="finish exploded"):
            await asyncio.wait_for(device.kill(5), 1.0)
        await _drain(device.runtime)
        assert library.refcount(device.handle) == 2


@pytest.mark.asyncio
async def test_failed_native_reference_leaves_wrapper_closable(monkeypatch):
    library = FakeNativeLibrary()
    async with fake_device(library) as device:

        def _refuse(handle):
            raise RuntimeError("out of references")

        monkeypatch.setattr(library, "ref", _refuse)
        with pytest.raises(RuntimeError, match="out of references"):
            device.kill(5)
        monkeypatch.undo()

        assert device.runtime.pending_count() == 0
        device.close()
        assert device.released is True


@pytest.mark.asyncio
async def test_aclose_waits_for_native_call_behind_cancelled_future():
    library = FakeNativeLibrary(auto_complete=False)
    library.processes = [{"pid": 1, "name": "init"}]
    async with fake_device(library) as device:
        runtime = device.runtime
        future = device.enumerate_processes()
        library.wait_pending()
        future.cancel()

        closing = asyncio.ensure_future(runtime.aclose())
        await asyncio.sleep(0.01)
        assert not closing.done()

        library.complete()
        await asyncio.wait_for(closing, 1.0)
        assert runtime.pending_count() == 0
        assert library.live("list", "process") == []
