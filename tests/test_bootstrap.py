"""Tests for runtime startup."""

import pytest

from devicebridge.bootstrap import create_local_library, create_runtime
from devicebridge.config.schema import BridgeConfig
from devicebridge.device import SPAWN_OPTIONS_KEY
from devicebridge.native.library import DeviceType, NativeLibrary
from fakes import FakeNativeLibrary


def test_create_runtime_registers_every_kind() -> None:
    runtime = create_runtime(FakeNativeLibrary())
    try:
        for kind in ("device", "application", "process", "session", "icon", "events"):
            assert runtime.is_registered(kind), kind
        assert runtime.get_data(SPAWN_OPTIONS_KEY) == {"inherit_env": True, "extra_env": {}}
    finally:
        runtime.close()


def test_create_runtime_copies_spawn_options() -> None:
    cfg = BridgeConfig()
    cfg.spawn.inherit_env = False
    cfg.spawn.extra_env = {"A": "1"}
    cfg.runtime.issuer_thread_name = "bench-issuer"
    runtime = create_runtime(FakeNativeLibrary(), cfg)
    try:
        assert runtime.get_data(SPAWN_OPTIONS_KEY) == {"inherit_env": False, "extra_env": {"A": "1"}}
    finally:
        runtime.close()


def test_runtime_close_clears_registry() -> None:
    runtime = create_runtime(FakeNativeLibrary())
    runtime.close()
    assert runtime.closed is True
    assert runtime.is_registered("device") is False


@pytest.mark.requires_posix
def test_local_library_satisfies_protocol() -> None:
    cfg = BridgeConfig()
    cfg.device.type = "remote"
    library = create_local_library(cfg)
    try:
        assert isinstance(library, NativeLibrary)
        handle = library.open_device()
        assert library.device_get_dtype(handle) == DeviceType.REMOTE
        library.unref(handle)
    finally:
        library.close()
    assert library.live_objects() == []
