"""Bridge core: handle wrappers, runtime context, operations, marshalling."""

from .handle import HandleWrapper
from .marshal import device_type_tag, wrap_borrowed, wrap_list, wrap_optional
from .operation import Operation, OperationState
from .runtime import Runtime

__all__ = [
    "HandleWrapper",
    "Operation",
    "OperationState",
    "Runtime",
    "device_type_tag",
    "wrap_borrowed",
    "wrap_list",
    "wrap_optional",
]
