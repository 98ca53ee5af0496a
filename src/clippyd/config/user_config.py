# region Docstring
"""
clippyd.config.user_config
User-facing daemon configuration: the document clients read and update over IPC.
Overview:
- ClippyConfig is the single active configuration value passed into each component
    that depends on it. Components never read it from a global; they receive updates
    through explicit `update_config`/`update_*` calls from the daemon.
- ConfigStore persists the document as JSON and fills defaults for missing fields.
Contents:
- Models:
    - ClippyConfig:
        Wipe delay, content/history limits, poll interval and display settings.
        Serialized with the camelCase keys clients expect (wipeDelay, pollInterval, ...).
- Functions:
    - merge_config(current, partial) -> ClippyConfig:
        Merge a partial mapping (JSON keys or attribute names) over a config and validate.
- Classes:
    - ConfigStore:
        load() -> ClippyConfig, save(config). A missing or unreadable document is
        replaced by the defaults and written back.
Design notes:
- Validation rejects out-of-range values (pydantic constraints); the caller decides
    what to do with the ValidationError. The daemon answers the client with an error
    frame and keeps the previous configuration.
"""
# endregion
# region Imports
import json
from logging import Logger as T_Logger
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

# endregion
# region ClippyConfig Model


class ClippyConfig(BaseModel):
    """Active daemon configuration."""

    wipe_delay_seconds: int = Field(
        5,
        ge=1,
        alias="wipeDelay",
        description="Seconds between a capture/restore and the clipboard wipe.",
    )
    max_content_length: int = Field(
        10000,
        ge=1,
        alias="maxContentLength",
        description="Captured content is truncated to this many characters.",
    )
    max_history_entries: int = Field(
        1000,
        ge=0,
        alias="maxHistoryEntries",
        description="Retention by count: entries kept after a cleanup run.",
    )
    max_history_age_days: int = Field(
        30,
        ge=0,
        alias="maxHistoryAge",
        description="Retention by age: entries created earlier are pruned. (Days)",
    )
    poll_interval_ms: int = Field(
        500,
        ge=50,
        alias="pollInterval",
        description="Clipboard poll interval. (Milliseconds)",
    )
    history_display_count: int = Field(
        20,
        ge=0,
        alias="historyDisplayCount",
        description="Number of entries included in each state broadcast.",
    )
    preview_length: int = Field(
        50,
        ge=1,
        alias="previewLength",
        description="Preview text length in each broadcast history item.",
    )

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "wipeDelay": 5,
                    "maxContentLength": 10000,
                    "maxHistoryEntries": 1000,
                    "maxHistoryAge": 30,
                    "pollInterval": 500,
                    "historyDisplayCount": 20,
                    "previewLength": 50,
                }
            ]
        },
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize with the JSON keys used on disk and over IPC."""
        return self.model_dump(by_alias=True)


# endregion
# region Helpers


def merge_config(
    current: Optional[ClippyConfig], partial: Mapping[str, Any]
) -> ClippyConfig:
    """
    Merge `partial` over `current` (or the defaults) and validate the result.

    Keys may be given either as JSON keys (`wipeDelay`) or attribute names
    (`wipe_delay_seconds`); unknown keys are ignored.

    Raises:
        pydantic.ValidationError: If a merged value is out of range or not an integer.
    """
    base = current.to_wire() if current is not None else {}
    by_attr = {
        name: field.alias for name, field in ClippyConfig.model_fields.items()
    }
    merged = dict(base)
    for key, value in partial.items():
        merged[by_attr.get(key, key)] = value
    return ClippyConfig.model_validate(merged)


# endregion
# region ConfigStore


class ConfigStore:
    """
    JSON persistence for ClippyConfig.

    Attributes:
        __path (Path): Location of the config document.
        __logger (Logger): The logger instance.
    """

    __path: Path
    __logger: T_Logger

    def __init__(self, path: Path, logger: T_Logger) -> None:
        self.__path = path
        self.__logger = logger.getChild(self.__class__.__name__)

    @property
    def path(self) -> Path:
        return self.__path

    def load(self) -> ClippyConfig:
        """
        Load the config document, filling defaults for missing fields.

        A missing, unparsable or invalid document is replaced by the defaults,
        which are written back.
        """
        try:
            raw = json.loads(self.__path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("config document is not an object")
            config = merge_config(None, raw)
        except FileNotFoundError:
            self.__logger.info("No config at %s, writing defaults.", self.__path)
            config = ClippyConfig()
            self.save(config)
        except (ValueError, ValidationError) as e:
            self.__logger.warning(
                "Config at %s is unreadable (%s), restoring defaults.", self.__path, e
            )
            config = ClippyConfig()
            self.save(config)
        return config

    def save(self, config: ClippyConfig) -> None:
        """Write the config document; the write is complete when this returns."""
        self.__path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.__path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(config.to_wire(), indent=2), encoding="utf-8")
        tmp_path.replace(self.__path)
        self.__logger.debug("Config saved to %s", self.__path)


# endregion

__all__ = ["ClippyConfig", "ConfigStore", "merge_config"]
