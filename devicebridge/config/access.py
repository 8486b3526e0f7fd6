"""Process-wide cached configuration.

The CLI and ``local_device`` callers share one ``BridgeConfig`` per config
file. ``DEVICEBRIDGE_CONFIG`` points at an alternative file.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path

from devicebridge.config.loader import get_config_path, load_config
from devicebridge.config.schema import BridgeConfig

CONFIG_PATH_ENV = "DEVICEBRIDGE_CONFIG"

_lock = threading.RLock()
_configs: dict[Path, BridgeConfig] = {}


def resolve_config_path(config_path: Path | None = None) -> Path:
    """Explicit path, else $DEVICEBRIDGE_CONFIG, else ~/.devicebridge/config.json."""
    if config_path is None:
        override = os.environ.get(CONFIG_PATH_ENV)
        config_path = Path(override) if override else get_config_path()
    return Path(config_path).expanduser().resolve()


def get_config(*, config_path: Path | None = None, force_reload: bool = False) -> BridgeConfig:
    path = resolve_config_path(config_path)
    with _lock:
        cfg = _configs.get(path)
        if cfg is None or force_reload:
            cfg = _configs[path] = load_config(path)
        return cfg


def clear_config_cache(*, config_path: Path | None = None) -> None:
    with _lock:
        if config_path is None:
            _configs.clear()
        else:
            _configs.pop(resolve_config_path(config_path), None)
