"""
clippyd.config
Configuration and settings management for the clipboard daemon.
Overview:
- DaemonSettings holds process-level settings (data directory, log level, cleanup
    interval, key vault selection). It inherits FactoryBaseSettings and supports
    environment variable overrides via Field aliases.
- ClippyConfig is the user-facing configuration document clients read and update
    over IPC; ConfigStore persists it.
Contents:
- Settings Classes:
    - DaemonSettings:
        Home directory, log level, cleanup interval and key vault backend, plus
        computed paths for every persisted artifact.
- Re-exports:
    - ClippyConfig, ConfigStore, merge_config (user_config)
    - FactoryBaseSettings, get_settings (factory)
    - CLIPPY_HOME, ClippyHome (base)
Design Notes:
- Default values are provided for all fields enabling zero-configuration startup.
- Paths accept strings and are coerced to Path.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator

from .base import CLIPPY_HOME, ClippyHome
from .factory import FactoryBaseSettings
from .factory import get_settings  # noqa: F401  This is used externally
from .user_config import ClippyConfig, ConfigStore, merge_config


class DaemonSettings(FactoryBaseSettings):
    """
    Clipboard daemon process settings.
    """

    home_dir: Path = Field(
        default=CLIPPY_HOME,
        alias="CLIPPY_HOME",
        description="Directory holding config, history database, socket, keys and logs.",
    )
    log_level: str = Field(
        default="info",
        alias="CLIPPY_LOG_LEVEL",
        description="Log level for the daemon.",
    )
    cleanup_interval: float = Field(
        default=60.0,
        gt=0,
        alias="CLIPPY_CLEANUP_INTERVAL",
        description="Interval between retention cleanup runs. (Seconds) [Default: 60]",
    )
    key_vault: Literal["auto", "file", "keychain"] = Field(
        default="auto",
        alias="CLIPPY_KEY_VAULT",
        description="Where the encryption key is kept: macOS Keychain, a key file, or auto.",
    )

    @field_validator("home_dir", mode="after")
    def expand_home_dir(cls, v: Path) -> Path:
        return v.expanduser().resolve()

    @property
    def config_path(self) -> Path:
        """User config document."""
        return self.home_dir / "config.json"

    @property
    def db_path(self) -> Path:
        """Encrypted history database."""
        return self.home_dir / "clippy.db"

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path.as_posix()}"

    @property
    def socket_path(self) -> Path:
        """IPC listener address."""
        return self.home_dir / "clippy.sock"

    @property
    def pid_path(self) -> Path:
        """Single-instance PID marker."""
        return self.home_dir / "clippy.pid"

    @property
    def keys_dir(self) -> Path:
        """Key files for the file-backed key vault."""
        return self.home_dir / "keys"

    @property
    def logs_dir(self) -> Path:
        """Base directory for logs."""
        return self.home_dir / "logs"


__all__ = [
    "CLIPPY_HOME",
    "ClippyConfig",
    "ClippyHome",
    "ConfigStore",
    "DaemonSettings",
    "FactoryBaseSettings",
    "get_settings",
    "merge_config",
]
