"""Icon wrapper."""

from __future__ import annotations

from devicebridge.core.handle import HandleWrapper
from devicebridge.core.runtime import Runtime


class Icon(HandleWrapper):
    """RGBA pixel data attached to a device, application or process."""

    kind = "icon"

    @property
    def width(self) -> int:
        return self.library.icon_get_width(self.handle)

    @property
    def height(self) -> int:
        return self.library.icon_get_height(self.handle)

    @property
    def rowstride(self) -> int:
        return self.library.icon_get_rowstride(self.handle)

    @property
    def pixels(self) -> bytes:
        return bytes(self.library.icon_get_pixels(self.handle))

    def _describe(self) -> str:
        return f"{self.width}x{self.height}"


def init(runtime: Runtime) -> None:
    runtime.register(Icon.kind, Icon)
