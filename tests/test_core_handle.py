"""Tests for native handle ownership by wrappers."""

from __future__ import annotations

import gc

import pytest

from devicebridge.bootstrap import create_runtime
from devicebridge.utils.exceptions import HandleReleasedError
from devicebridge.wrappers import Icon
from fakes import FakeNativeLibrary


@pytest.fixture
def library():
    return FakeNativeLibrary()


@pytest.fixture
def runtime(library):
    rt = create_runtime(library)
    yield rt
    rt.close()


def _icon(library):
    return library.new("icon", width=2, height=3, rowstride=8, pixels=b"\x01" * 24)


def test_wrapper_takes_and_returns_one_reference(library, runtime) -> None:
    handle = _icon(library)
    icon = runtime.wrap(Icon.kind, handle)
    assert library.refcount(handle) == 2

    icon.close()
    assert library.refcount(handle) == 1
    assert icon.released is True

    icon.close()
    assert library.refcount(handle) == 1


def test_wrapper_released_on_garbage_collection(library, runtime) -> None:
    handle = _icon(library)
    icon = runtime.wrap(Icon.kind, handle)
    assert library.refcount(handle) == 2

    del icon
    gc.collect()
    assert library.refcount(handle) == 1


def test_use_after_close_raises(library, runtime) -> None:
    icon = runtime.wrap(Icon.kind, _icon(library))
    assert (icon.width, icon.height, icon.rowstride) == (2, 3, 8)
    assert icon.pixels == b"\x01" * 24
    icon.close()
    with pytest.raises(HandleReleasedError):
        _ = icon.width
    assert repr(icon) == "<Icon released>"


def test_hold_defers_close_until_unhold(library, runtime) -> None:
    handle = _icon(library)
    icon = runtime.wrap(Icon.kind, handle)
    icon.hold()
    icon.hold()
    icon.close()
    assert icon.released is False
    assert library.refcount(handle) == 2

    icon.unhold()
    assert icon.released is False
    icon.unhold()
    assert icon.released is True
    assert library.refcount(handle) == 1


def test_hold_after_release_raises(library, runtime) -> None:
    icon = runtime.wrap(Icon.kind, _icon(library))
    icon.close()
    with pytest.raises(HandleReleasedError):
        icon.hold()


def test_context_manager_closes(library, runtime) -> None:
    handle = _icon(library)
    with runtime.wrap(Icon.kind, handle) as icon:
        assert repr(icon) == "<Icon 2x3>"
    assert library.refcount(handle) == 1


def test_constructor_rejects_missing_handle(runtime) -> None:
    with pytest.raises(TypeError, match="Bad argument, expected raw handle"):
        Icon(None, runtime)


def test_cleanups_run_before_unref(library, runtime) -> None:
    handle = _icon(library)
    icon = runtime.wrap(Icon.kind, handle)
    seen = []
    icon.add_cleanup(lambda: seen.append(library.refcount(handle)))
    icon.close()
    assert seen == [2]


def test_wrap_passes_none_and_rejects_unknown_kind(library, runtime) -> None:
    assert runtime.wrap(Icon.kind, None) is None
    with pytest.raises(KeyError, match="no wrapper registered"):
        runtime.wrap("widget", _icon(library))


def test_two_wrappers_for_one_handle_are_distinct(library, runtime) -> None:
    handle = _icon(library)
    first = runtime.wrap(Icon.kind, handle)
    second = runtime.wrap(Icon.kind, handle)
    assert first is not second
    assert first.handle is second.handle
    assert library.refcount(handle) == 3
    first.close()
    assert second.width == 2
    second.close()
    assert library.refcount(handle) == 1
