"""Tests for the local native library against real processes."""

from __future__ import annotations

import asyncio
import os
import shutil

import psutil
import pytest

from devicebridge.bootstrap import create_local_library, create_runtime, local_device, open_device
from devicebridge.config.schema import ApplicationEntry, BridgeConfig
from devicebridge.utils.exceptions import NativeCallError

pytestmark = pytest.mark.requires_posix

_MISSING_PID = 999_999_999


async def _wait_status(pid: int, predicate, timeout: float = 3.0) -> str:
    status = ""
    for _ in range(int(timeout / 0.02)):
        try:
            status = psutil.Process(pid).status()
        except psutil.NoSuchProcess:
            status = "gone"
        if predicate(status):
            return status
        await asyncio.sleep(0.02)
    raise AssertionError(f"process {pid} stuck in status {status!r}")


def _config(**local) -> BridgeConfig:
    cfg = BridgeConfig()
    cfg.device.name = "Bench"
    cfg.local.applications = [ApplicationEntry(identifier="com.example.term", name="Terminal", pid=0)]
    for key, value in local.items():
        setattr(cfg.local, key, value)
    return cfg


@pytest.mark.asyncio
async def test_local_device_identity():
    async with local_device(_config()) as device:
        assert device.id == 0
        assert device.name == "Bench"
        assert device.type == "local"
        assert device.icon is None


@pytest.mark.asyncio
async def test_enumerate_processes_sorted_and_includes_self():
    async with local_device(_config()) as device:
        processes = await device.enumerate_processes()
        pids = [p.pid for p in processes]
        assert os.getpid() in pids
        assert pids == sorted(pids)
        for process in processes:
            process.close()


@pytest.mark.asyncio
async def test_applications_and_frontmost_come_from_config():
    async with local_device(_config(frontmost="com.example.term")) as device:
        applications = await device.enumerate_applications()
        assert [(a.identifier, a.name, a.pid) for a in applications] == [("com.example.term", "Terminal", 0)]
        frontmost = await device.get_frontmost_application()
        assert frontmost.identifier == "com.example.term"
        frontmost.close()
        for application in applications:
            application.close()

    async with local_device(_config()) as device:
        assert await device.get_frontmost_application() is None


@pytest.mark.asyncio
async def test_spawn_suspended_then_resume_then_kill():
    sleep = shutil.which("sleep")
    assert sleep is not None
    async with local_device(_config()) as device:
        added = []
        device.events.on("spawn-added", added.append)

        pid = await device.spawn([sleep, "30"])
        assert pid > 0
        await _wait_status(pid, lambda s: s == psutil.STATUS_STOPPED)
        await asyncio.sleep(0.05)
        assert added == [pid]

        await device.resume(pid)
        await _wait_status(pid, lambda s: s != psutil.STATUS_STOPPED)

        await device.kill(pid)
        assert not psutil.pid_exists(pid) or psutil.Process(pid).status() == psutil.STATUS_ZOMBIE


@pytest.mark.asyncio
async def test_unresumed_spawn_is_killed_on_close():
    library = create_local_library(_config())
    runtime = create_runtime(library)
    device = open_device(runtime, library.open_device())
    pid = await device.spawn(["sleep", "30"])
    device.close()
    await runtime.aclose()
    library.close()
    assert not psutil.pid_exists(pid)
    assert library.live_objects() == []


@pytest.mark.asyncio
async def test_spawn_missing_executable():
    async with local_device(_config()) as device:
        with pytest.raises(NativeCallError, match="^Unable to find executable at '/nonexistent/program'$"):
            await device.spawn(["/nonexistent/program"])


@pytest.mark.asyncio
async def test_resume_running_process_fails():
    async with local_device(_config()) as device:
        with pytest.raises(NativeCallError, match=f"^Unable to resume process with pid {os.getpid()}$"):
            await device.resume(os.getpid())


@pytest.mark.asyncio
async def test_missing_pid_errors_carry_native_message():
    async with local_device(_config()) as device:
        expected = f"^Unable to find process with pid {_MISSING_PID}$"
        with pytest.raises(NativeCallError, match=expected):
            await device.resume(_MISSING_PID)
        with pytest.raises(NativeCallError, match=expected):
            await device.kill(_MISSING_PID)
        with pytest.raises(NativeCallError, match=expected):
            await device.attach(_MISSING_PID)


@pytest.mark.asyncio
async def test_attach_and_detach_own_process():
    async with local_device(_config()) as device:
        session = await device.attach(os.getpid())
        reasons = []
        session.events.on("detached", reasons.append)
        assert session.pid == os.getpid()
        await session.detach()
        await asyncio.sleep(0.05)
        assert session.is_detached is True
        assert reasons == ["application-requested"]
        session.close()


@pytest.mark.asyncio
async def test_spawn_true_resolves_with_positive_pid():
    async with local_device(_config()) as device:
        pid = await device.spawn(["/bin/true"])
        assert pid > 0
        assert await device.resume(pid) is None
