# region Docstring
"""
clippyd.clipboard
Clipboard access and change detection.
Overview:
- A clipboard backend reads, writes and clears the system clipboard. Backend calls
    may fail or hang; callers run them in worker threads and swallow failures.
- ClipboardMonitor polls a backend on a fixed interval and reports genuinely new
    content, suppressing the echo of content the daemon wrote itself.
Contents:
- Backends:
    - ClipboardBackend: Protocol with read(), write(text) and clear().
    - PyperclipBackend: System clipboard through pyperclip.
- Functions:
    - hash_content(content) -> str: SHA-256 hex digest of the UTF-8 bytes.
- Classes:
    - ClipboardChange: content and hash of a newly observed clipboard value.
    - ClipboardMonitor:
        - poll_once() -> ClipboardChange | None
        - start() / stop()
        - set_expected_hash(content_hash)
        - last_hash
        - update_interval(poll_interval_ms)
Design Notes:
- Tick state machine: empty content forgets the last hash, so the next non-empty
    value is always new; an unchanged hash is ignored; a new hash is remembered and
    then either consumes the one-shot expected hash or is reported.
- The expected hash must be registered before the daemon writes to the clipboard,
    otherwise a poll landing between the write and the registration reports the
    restore as a fresh copy.
"""
# endregion
# region Imports
import asyncio
import hashlib
from logging import Logger as T_Logger
from typing import Awaitable, Callable, NamedTuple, Optional, Protocol

import pyperclip

# endregion
# region Backends


class ClipboardBackend(Protocol):
    def read(self) -> str: ...

    def write(self, text: str) -> None: ...

    def clear(self) -> None: ...


class PyperclipBackend:
    """System clipboard through pyperclip (pbcopy/pbpaste, xclip, wl-clipboard, win32)."""

    def read(self) -> str:
        return pyperclip.paste() or ""

    def write(self, text: str) -> None:
        pyperclip.copy(text)

    def clear(self) -> None:
        pyperclip.copy("")


def hash_content(content: str) -> str:
    """
    SHA-256 hex digest of clipboard content.

    Example:
        >>> hash_content("hello")
        '2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


# endregion
# region ClipboardMonitor


class ClipboardChange(NamedTuple):
    content: str
    content_hash: str


class ClipboardMonitor:
    """
    Polls a clipboard backend and reports new content.

    Attributes:
        __backend (ClipboardBackend): Clipboard access.
        __poll_interval (float): Seconds between polls.
        __on_change (Callable): Awaited with each ClipboardChange.
        __logger (Logger): The logger instance.
        __last_hash (Optional[str]): Hash seen on the previous tick.
        __expected_hash (Optional[str]): One-shot suppression hash.
    """

    __backend: ClipboardBackend
    __poll_interval: float
    __on_change: Callable[[ClipboardChange], Awaitable[None]]
    __logger: T_Logger
    __last_hash: Optional[str]
    __expected_hash: Optional[str]
    __task: Optional[asyncio.Task]

    def __init__(
        self,
        backend: ClipboardBackend,
        poll_interval_ms: int,
        on_change: Callable[[ClipboardChange], Awaitable[None]],
        logger: T_Logger,
    ) -> None:
        self.__backend = backend
        self.__poll_interval = poll_interval_ms / 1000
        self.__on_change = on_change
        self.__logger = logger.getChild(self.__class__.__name__)
        self.__last_hash = None
        self.__expected_hash = None
        self.__task = None

    @property
    def running(self) -> bool:
        return self.__task is not None and not self.__task.done()

    @property
    def last_hash(self) -> Optional[str]:
        """Hash of the clipboard content seen on the previous tick, None if empty."""
        return self.__last_hash

    def set_expected_hash(self, content_hash: str) -> None:
        """Suppress the next change whose hash is `content_hash`, once."""
        self.__expected_hash = content_hash

    def update_interval(self, poll_interval_ms: int) -> None:
        """Takes effect from the next sleep."""
        self.__poll_interval = poll_interval_ms / 1000

    async def poll_once(self) -> Optional[ClipboardChange]:
        """Run one tick; return the change to report, if any."""
        try:
            content = await asyncio.to_thread(self.__backend.read)
        except Exception as e:
            self.__logger.debug("Clipboard read failed, skipping tick: %s", e)
            return None

        if not content:
            self.__last_hash = None
            return None

        content_hash = hash_content(content)
        if content_hash == self.__last_hash:
            return None
        self.__last_hash = content_hash

        if content_hash == self.__expected_hash:
            self.__expected_hash = None
            self.__logger.debug("Ignored clipboard write made by the daemon.")
            return None

        return ClipboardChange(content=content, content_hash=content_hash)

    async def _run(self) -> None:
        while True:
            change = await self.poll_once()
            if change is not None:
                try:
                    await self.__on_change(change)
                except Exception as e:
                    self.__logger.exception("Clipboard change handler failed. %s", e)
            await asyncio.sleep(self.__poll_interval)

    def start(self) -> None:
        """Poll immediately, then every interval. Requires a running event loop."""
        if self.running:
            return
        self.__task = asyncio.create_task(self._run(), name="clipboard-monitor")
        self.__logger.info("Polling clipboard every %.0f ms.", self.__poll_interval * 1000)

    async def stop(self) -> None:
        if self.__task is None:
            return
        task, self.__task = self.__task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


# endregion

__all__ = [
    "ClipboardBackend",
    "ClipboardChange",
    "ClipboardMonitor",
    "PyperclipBackend",
    "hash_content",
]
