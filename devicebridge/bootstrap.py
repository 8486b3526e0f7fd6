"""Runtime startup and teardown."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from loguru import logger

from devicebridge import device as device_module
from devicebridge import wrappers
from devicebridge.config.schema import BridgeConfig
from devicebridge.core.marshal import wrap_optional
from devicebridge.core.runtime import Runtime
from devicebridge.device import SPAWN_OPTIONS_KEY, Device
from devicebridge.native.library import DeviceType, NativeLibrary
from devicebridge.native.local import LocalNativeLibrary

_DEVICE_TYPES = {
    "local": DeviceType.LOCAL,
    "tether": DeviceType.TETHER,
    "remote": DeviceType.REMOTE,
}


def create_runtime(
    library: NativeLibrary,
    config: BridgeConfig | None = None,
    *,
    loop: asyncio.AbstractEventLoop | None = None,
) -> Runtime:
    """Create a runtime with every wrapper constructor registered."""
    cfg = config or BridgeConfig()
    runtime = Runtime(library, loop=loop, issuer_thread_name=cfg.runtime.issuer_thread_name)
    wrappers.init(runtime)
    device_module.init(runtime)
    runtime.set_data(
        SPAWN_OPTIONS_KEY,
        {"inherit_env": cfg.spawn.inherit_env, "extra_env": dict(cfg.spawn.extra_env)},
    )
    return runtime


def create_local_library(config: BridgeConfig | None = None) -> LocalNativeLibrary:
    cfg = config or BridgeConfig()
    return LocalNativeLibrary(
        device_name=cfg.device.name,
        device_id=cfg.device.id,
        device_type=_DEVICE_TYPES[cfg.device.type],
        applications=[entry.model_dump() for entry in cfg.local.applications],
        frontmost=cfg.local.frontmost,
        thread_name=cfg.runtime.dispatcher_thread_name,
    )


def open_device(runtime: Runtime, handle: Any) -> Device:
    """Wrap an owned device handle; the caller's reference is released."""
    device = wrap_optional(runtime, Device.kind, handle)
    if device is None:
        raise TypeError("Bad argument, expected raw handle")
    return device


@asynccontextmanager
async def local_device(config: BridgeConfig | None = None) -> AsyncIterator[Device]:
    """Open the local device for the duration of the block."""
    library = create_local_library(config)
    runtime = create_runtime(library, config)
    device = open_device(runtime, library.open_device())
    logger.debug("Opened {!r}", device)
    try:
        yield device
    finally:
        device.close()
        await runtime.aclose()
        library.close()
