"""Wrappers for the native records returned by device operations."""

from devicebridge.core.runtime import Runtime

from . import application, events, icon, process, session
from .application import Application
from .events import Events
from .icon import Icon
from .process import Process
from .session import DetachOperation, Session


def init(runtime: Runtime) -> None:
    """Register every secondary wrapper constructor on the runtime."""
    for module in (icon, events, application, process, session):
        module.init(runtime)


__all__ = ["Application", "DetachOperation", "Events", "Icon", "Process", "Session", "init"]
