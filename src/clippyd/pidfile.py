"""Single-instance enforcement through a PID marker file."""

import os
from pathlib import Path
from typing import Optional


class AlreadyRunningError(Exception):
    """Raised when another live daemon owns the PID marker."""

    def __init__(self, pid: int, path: Path) -> None:
        super().__init__(f"clippyd already running (pid {pid}, marker {path})")
        self.pid = pid


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to another user.
        return True
    return True


class PidLock:
    def __init__(self, path: Path) -> None:
        self.path = path

    def read_pid(self) -> Optional[int]:
        try:
            return int(self.path.read_text(encoding="ascii").strip())
        except (OSError, ValueError):
            return None

    def acquire(self) -> None:
        """
        Write our pid to the marker.

        Raises:
            AlreadyRunningError: If the marker names another live process.
        """
        if self.path.exists():
            pid = self.read_pid()
            if pid is not None and pid > 0 and pid != os.getpid() and _pid_alive(pid):
                raise AlreadyRunningError(pid, self.path)
            self.path.unlink(missing_ok=True)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(str(os.getpid()), encoding="ascii")

    def release(self) -> None:
        if self.read_pid() == os.getpid():
            self.path.unlink(missing_ok=True)

    def __enter__(self) -> "PidLock":
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()
