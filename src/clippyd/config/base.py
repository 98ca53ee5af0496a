# region Docstring
"""
clippyd.config.base

Per-user data directory resolution for the clipboard daemon.

Overview:
- Provides a utility class for locating the directory that holds every piece
    of persisted daemon state (config document, history database, socket,
    PID marker, key files and logs).
- Exposes a module-level constant with the resolved directory.

Contents:
- Classes:
    - ClippyHome:
        Class methods resolving the home directory from the CLIPPY_HOME
        environment variable or falling back to `~/.clippy`.

- Module-level Constants:
    - CLIPPY_HOME (Path): The resolved data directory at import time.

Design Notes:
- The directory is resolved at import time so the settings factory can point
    its `.env` and YAML sources at it. Settings instances may still override
    it through the `home_dir` field.
- Nothing is created here; directories are created by the daemon on startup.
"""
# endregion
# region Imports
import os
from pathlib import Path

# endregion
# region ClippyHome Class


class ClippyHome:
    """
    Data directory resolution utility.

    Attributes:
        ENV_VAR (str): Environment variable that overrides the directory.
        DIR_NAME (str): Directory name used under the user's home.
    """

    ENV_VAR: str = "CLIPPY_HOME"
    DIR_NAME: str = ".clippy"

    @classmethod
    def resolve(cls) -> Path:
        """Get the daemon data directory."""
        override = os.getenv(cls.ENV_VAR)
        if override:
            return Path(override).expanduser().resolve()
        return (Path.home() / cls.DIR_NAME).resolve()


# endregion
# region Module-level Constants

CLIPPY_HOME: Path = ClippyHome.resolve()
"""[Path] Directory holding all persisted daemon state."""
# endregion


__all__ = [
    "CLIPPY_HOME",
    "ClippyHome",
]
