"""
devicebridge - asynchronous process control over a native device library
"""

__version__ = "0.1.0"

from devicebridge.bootstrap import create_local_library, create_runtime, local_device, open_device
from devicebridge.core.runtime import Runtime
from devicebridge.device import Device
from devicebridge.utils.exceptions import (
    BadArgumentError,
    DeviceBridgeError,
    HandleReleasedError,
    NativeCallError,
    RuntimeClosedError,
)
from devicebridge.wrappers import Application, Events, Icon, Process, Session

__all__ = [
    "Application",
    "BadArgumentError",
    "Device",
    "DeviceBridgeError",
    "Events",
    "HandleReleasedError",
    "Icon",
    "NativeCallError",
    "Process",
    "Runtime",
    "RuntimeClosedError",
    "Session",
    "__version__",
    "create_local_library",
    "create_runtime",
    "local_device",
    "open_device",
]
