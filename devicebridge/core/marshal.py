"""Conversion of native result records into Python values."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from devicebridge.native.library import DeviceType
from devicebridge.utils.exceptions import unreachable

if TYPE_CHECKING:
    from devicebridge.core.handle import HandleWrapper
    from devicebridge.core.runtime import Runtime

DEVICE_TYPE_TAGS: dict[int, str] = {
    DeviceType.LOCAL: "local",
    DeviceType.TETHER: "tether",
    DeviceType.REMOTE: "remote",
}


def device_type_tag(value: int) -> str:
    """Map the native device type enum to its string tag."""
    tag = DEVICE_TYPE_TAGS.get(value)
    if tag is None:
        unreachable(f"unknown native device type {value!r}")
    return tag


def wrap_borrowed(runtime: Runtime, kind: str, handle: Any) -> HandleWrapper | None:
    """Wrap a handle the caller does not own (plain accessor results)."""
    return runtime.wrap(kind, handle)


def wrap_optional(runtime: Runtime, kind: str, handle: Any) -> HandleWrapper | None:
    """Wrap an owned handle or pass None through; the handle is released."""
    if handle is None:
        return None
    try:
        return runtime.wrap(kind, handle)
    finally:
        runtime.library.unref(handle)


def wrap_list(runtime: Runtime, kind: str, native_list: Any) -> list[HandleWrapper]:
    """Wrap every element of an owned native list, preserving order.

    Each element reference is released after wrapping and the list after the
    last element. On failure the wrappers built so far are closed first.
    """
    library = runtime.library
    wrappers: list[HandleWrapper] = []
    try:
        size = library.list_size(native_list)
        for index in range(size):
            handle = library.list_get(native_list, index)
            if handle is None:
                raise TypeError("Bad argument, expected raw handle")
            try:
                wrapper = runtime.wrap(kind, handle)
            finally:
                library.unref(handle)
            wrappers.append(wrapper)
    except BaseException:
        for wrapper in wrappers:
            wrapper.close()
        raise
    finally:
        library.unref(native_list)
    return wrappers
