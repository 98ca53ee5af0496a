# region Docstring
"""
clippyd.config.factory
Factory module for creating and managing daemon settings with multi-source configuration support.
Overview:
- Provides a custom Pydantic BaseSettings subclass that loads configuration from
    environment variables, a `.env` file and a YAML file in the daemon home directory.
- Implements a cached factory function for settings instantiation.
Contents:
- Constants:
    - T: TypeVar bound to BaseSettings for generic typing support in the factory function.
- Classes:
    - FactoryBaseSettings:
        Custom BaseSettings subclass adding YAML support to the standard env loading.
        Configuration Priority (highest to lowest):
            1. Init kwargs
            2. Environment variables
            3. .env file values (CLIPPY_HOME/.env)
            4. YAML file (CLIPPY_HOME/daemon.yaml)
            5. Field defaults
- Functions:
    - get_settings(settings_cls: Type[T]) -> T:
        LRU-cached factory returning one settings instance per class.
Design notes:
- decode_complex_value keeps raw strings when a value is not JSON instead of failing,
    so plain paths and words can be set through the environment.
"""

# region Imports
import json
from functools import lru_cache
from typing import Any, Type, TypeVar

from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from .base import CLIPPY_HOME

# endregion
# region FactoryBaseSettings Class
T = TypeVar("T", bound=BaseSettings)


class FactoryBaseSettings(BaseSettings):
    """
    BaseSettings reading the daemon home .env and daemon.yaml in addition to the environment.
    Priority: Init kwargs > Env Vars > .env > YAML > Defaults
    """

    model_config = SettingsConfigDict(
        env_file=CLIPPY_HOME / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:

        yaml_settings = YamlConfigSettingsSource(
            settings_cls,
            yaml_file=CLIPPY_HOME / "daemon.yaml",
        )
        return (
            init_settings,  # Init kwargs (highest priority)
            env_settings,  # Environment variables
            dotenv_settings,  # .env file
            yaml_settings,  # YAML file
        )

    def decode_complex_value(
        self, field_name: str, field: FieldInfo, value: Any
    ) -> Any:
        """
        Return the raw string when a complex value is not valid JSON.
        """
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return value
        return value


# endregion
# region get_settings Factory Function


@lru_cache
def get_settings(settings_cls: Type[T]) -> T:
    """
    Return the process-wide instance of `settings_cls`.
    The .env and YAML sources are read on the first call only.
    """
    return settings_cls()


# endregion
