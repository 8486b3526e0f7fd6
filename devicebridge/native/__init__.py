"""Native library boundary and the local implementation."""

from .library import AsyncResult, DeviceType, NativeError, NativeLibrary, ReadyCallback, SignalCallback
from .local import LocalNativeLibrary, NativeObject

__all__ = [
    "AsyncResult",
    "DeviceType",
    "LocalNativeLibrary",
    "NativeError",
    "NativeLibrary",
    "NativeObject",
    "ReadyCallback",
    "SignalCallback",
]
