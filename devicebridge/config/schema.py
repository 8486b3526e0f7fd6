"""Configuration schema using Pydantic.

Persisted to ~/.devicebridge/config.json; every field can also be set from
the environment with the DEVICEBRIDGE_ prefix (nested keys joined by "__").
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


class DeviceConfig(BaseModel):
    """Identity reported by the local device."""
    id: int = 0
    name: str = "Local System"
    type: Literal["local", "tether", "remote"] = "local"


class RuntimeConfig(BaseModel):
    """Bridge runtime settings."""
    issuer_thread_name: str = "devicebridge-native"  # Thread that issues native calls
    dispatcher_thread_name: str = "devicebridge-local"  # Local library completion thread


class SpawnConfig(BaseModel):
    """Environment handed to spawned programs."""
    inherit_env: bool = True
    extra_env: dict[str, str] = Field(default_factory=dict)  # Keys are env var names, kept verbatim


class ApplicationEntry(BaseModel):
    """An application the local device reports as installed."""
    identifier: str
    name: str = ""
    pid: int = 0


class LocalConfig(BaseModel):
    """Data served by the local native library."""
    applications: list[ApplicationEntry] = Field(default_factory=list)
    frontmost: str | None = None  # Identifier of the frontmost application, if any


class LoggingConfig(BaseModel):
    """CLI logging."""
    level: str = "INFO"
    file: bool = False  # Rotating file sink under ~/.devicebridge/logs


class BridgeConfig(BaseSettings):
    """Root configuration for devicebridge."""
    device: DeviceConfig = Field(default_factory=DeviceConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    spawn: SpawnConfig = Field(default_factory=SpawnConfig)
    local: LocalConfig = Field(default_factory=LocalConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(
        env_prefix="DEVICEBRIDGE_",
        env_nested_delimiter="__",
    )
