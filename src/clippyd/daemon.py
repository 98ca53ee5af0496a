# region Docstring
"""
clippyd.daemon
Orchestrator wiring the clipboard monitor, store, wiper, cleanup and IPC server.
Overview:
- Components never call each other. They report events (clipboard changes, wiper
    ticks, wipes, client commands) to the Daemon, which performs every
    cross-component side effect and broadcasts the resulting state.
Contents:
- Exceptions:
    - DaemonStartupError: A startup step failed (directories, config, store, key, socket).
- Services:
    - Daemon:
        - start() / stop() / run()
        - request_shutdown()
        - build_state() -> StateMessage
        - push_state()
Design Notes:
- Startup order: config, store, key, IPC server, clipboard monitor, cleanup. The IPC
    server starts before the producers of state so early broadcasts reach clients.
- Shutdown is the reverse: monitor, countdown (without wiping), cleanup, IPC, store.
- State broadcasts are synchronous, so a broadcast is never reordered with respect
    to the store write that produced it.
- A history entry that fails to decrypt is shown as "[decryption failed]"; the rest
    of the history is unaffected.
- A restore registers the expected hash only when the clipboard holds something
    else; the monitor never sees a change otherwise and the expectation would
    swallow a later genuine copy of the same text.
"""
# endregion
# region Imports
import asyncio
import re
from logging import Logger as T_Logger
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from clippyd.cleanup import CleanupScheduler
from clippyd.clipboard import (
    ClipboardBackend,
    ClipboardChange,
    ClipboardMonitor,
    PyperclipBackend,
    hash_content,
)
from clippyd.config import ClippyConfig, ConfigStore, DaemonSettings, merge_config
from clippyd.crypto import (
    DecryptionError,
    KeyManager,
    KeyVault,
    KeyVaultError,
    create_key_vault,
    decrypt,
    encrypt,
)
from clippyd.database import DatabaseSessionGenerator
from clippyd.ipc import (
    CommandMessage,
    ConfigMessage,
    ErrorMessage,
    HistoryItem,
    IpcServer,
    Session,
    StateMessage,
)
from clippyd.models import HistoryEntry
from clippyd.store import ContentStore, ContentStoreError
from clippyd.wiper import Wiper, WiperState

UNDECRYPTABLE_PREVIEW = "[decryption failed]"
CONTENT_TYPE_TEXT = "text"
_LINE_BREAKS = re.compile(r"\r\n|\r|\n")


class DaemonStartupError(Exception):
    """Raised when the daemon cannot start."""

    pass


# endregion
# region Daemon


class Daemon:
    """
    Clipboard history daemon.

    Attributes:
        __settings (DaemonSettings): Process settings and file locations.
        __logger (Logger): The logger instance.
        __clipboard (ClipboardBackend): System clipboard access.
        __config_store (ConfigStore): Persistence of the user config.
        __store (ContentStore): Encrypted history.
        __keys (KeyManager): Encryption key provider.
        __config (ClippyConfig): Active configuration.
    """

    __settings: DaemonSettings
    __logger: T_Logger
    __clipboard: ClipboardBackend
    __config_store: ConfigStore
    __store: ContentStore
    __keys: KeyManager
    __config: Optional[ClippyConfig]
    __key: Optional[bytes]
    __wiper: Optional[Wiper]
    __monitor: Optional[ClipboardMonitor]
    __cleanup: Optional[CleanupScheduler]
    __ipc: Optional[IpcServer]

    def __init__(
        self,
        settings: DaemonSettings,
        logger: T_Logger,
        clipboard: Optional[ClipboardBackend] = None,
        key_vault: Optional[KeyVault] = None,
        wiper_tick_seconds: float = 1.0,
    ) -> None:
        self.__settings = settings
        self.__logger = logger.getChild(self.__class__.__name__)
        self.__clipboard = clipboard if clipboard is not None else PyperclipBackend()
        self.__config_store = ConfigStore(settings.config_path, logger)
        self.__store = ContentStore(
            DatabaseSessionGenerator(settings.database_url), logger
        )
        self.__keys = KeyManager(
            key_vault
            if key_vault is not None
            else create_key_vault(settings.key_vault, settings.keys_dir),
            logger,
        )
        self.__base_logger = logger
        self.__wiper_tick_seconds = wiper_tick_seconds
        self.__config = None
        self.__key = None
        self.__wiper = None
        self.__monitor = None
        self.__cleanup = None
        self.__ipc = None
        self.__shutdown = asyncio.Event()
        self.__running = False
        self.__commands: dict[
            str, Callable[[CommandMessage, Session], Awaitable[None]]
        ] = {
            "clear_clipboard": self._cmd_clear_clipboard,
            "pause_countdown": self._cmd_pause_countdown,
            "resume_countdown": self._cmd_resume_countdown,
            "delete_entry": self._cmd_delete_entry,
            "copy_entry": self._cmd_copy_entry,
            "clear_history": self._cmd_clear_history,
            "get_config": self._cmd_get_config,
            "update_config": self._cmd_update_config,
            "quit": self._cmd_quit,
        }

    # region Properties
    @property
    def config(self) -> Optional[ClippyConfig]:
        return self.__config

    @property
    def store(self) -> ContentStore:
        return self.__store

    @property
    def wiper(self) -> Optional[Wiper]:
        return self.__wiper

    @property
    def monitor(self) -> Optional[ClipboardMonitor]:
        return self.__monitor

    @property
    def ipc(self) -> Optional[IpcServer]:
        return self.__ipc

    @property
    def running(self) -> bool:
        return self.__running

    # endregion
    # region Lifecycle

    async def start(self) -> None:
        """
        Start every component in dependency order.

        Raises:
            DaemonStartupError: If config, store, key or socket setup fails.
        """
        self.__logger.info("Starting...")
        try:
            self.__settings.home_dir.mkdir(parents=True, exist_ok=True)
            self.__config = self.__config_store.load()
            self.__store.open()
            self.__key = self.__keys.get_or_create_key()
        except (OSError, ContentStoreError, KeyVaultError) as e:
            self.__logger.error("Startup failed: %s", e)
            self.__store.close()
            raise DaemonStartupError(str(e)) from e
        self.__logger.info("Encryption key ready")

        config = self.__config
        self.__wiper = Wiper(
            config.wipe_delay_seconds,
            on_wipe=self._handle_wipe,
            on_tick=self._handle_tick,
            logger=self.__base_logger,
            tick_seconds=self.__wiper_tick_seconds,
        )
        self.__monitor = ClipboardMonitor(
            self.__clipboard,
            config.poll_interval_ms,
            on_change=self._handle_clipboard_change,
            logger=self.__base_logger,
        )
        self.__cleanup = CleanupScheduler(
            self.__store,
            config,
            logger=self.__base_logger,
            interval=self.__settings.cleanup_interval,
        )
        self.__ipc = IpcServer(
            self.__settings.socket_path, self._handle_command, self.__base_logger
        )

        try:
            await self.__ipc.start()
        except OSError as e:
            self.__logger.error("Cannot listen on %s: %s", self.__settings.socket_path, e)
            self.__ipc = None
            self.__store.close()
            raise DaemonStartupError(f"Cannot listen on socket: {e}") from e

        self.__monitor.start()
        self.__cleanup.start()
        self.__running = True
        self.__logger.info("Ready")

    async def stop(self) -> None:
        """Stop components in reverse startup order."""
        if not self.__running:
            return
        self.__running = False
        self.__logger.info("Shutting down...")
        await self.__monitor.stop()
        self.__wiper.stop_countdown()
        await self.__cleanup.stop()
        await self.__ipc.stop()
        self.__store.close()
        self.__logger.info("Stopped")

    def request_shutdown(self) -> None:
        self.__shutdown.set()

    async def run(self) -> None:
        """Start, serve until a shutdown is requested, then stop."""
        await self.start()
        try:
            await self.__shutdown.wait()
        finally:
            await self.stop()

    # endregion
    # region Event handlers

    async def _handle_clipboard_change(self, change: ClipboardChange) -> None:
        config = self.__config
        content = change.content[: config.max_content_length]
        payload = encrypt(self.__key, content)
        result = self.__store.insert_or_touch(
            change.content_hash,
            payload.ciphertext,
            payload.nonce,
            CONTENT_TYPE_TEXT,
            len(content),
        )
        self.__logger.info(
            "Captured %d chars (entry %d, %s)",
            len(content),
            result.id,
            "new" if result.is_new else "existing",
        )
        self.__wiper.start_countdown()
        self.push_state()

    async def _handle_wipe(self) -> None:
        await self._clear_clipboard()
        self.__logger.info("Clipboard wiped")
        self.push_state()

    def _handle_tick(self, state: WiperState) -> None:
        self.push_state()

    async def _handle_command(self, command: CommandMessage, session: Session) -> None:
        handler = self.__commands[command.action]
        self.__logger.debug("Client #%d: %s", session.id, command.action)
        try:
            await handler(command, session)
        except SQLAlchemyError as e:
            self.__logger.error("Command %s failed: %s", command.action, e)
            self.__ipc.send(session, ErrorMessage(message=f"{command.action} failed"))

    # endregion
    # region Commands

    async def _cmd_clear_clipboard(self, command: CommandMessage, session: Session) -> None:
        await self._clear_clipboard()
        self.__wiper.stop_countdown()
        self.push_state()

    async def _cmd_pause_countdown(self, command: CommandMessage, session: Session) -> None:
        self.__wiper.pause()

    async def _cmd_resume_countdown(self, command: CommandMessage, session: Session) -> None:
        self.__wiper.resume()

    async def _cmd_delete_entry(self, command: CommandMessage, session: Session) -> None:
        if command.id is None:
            self.__ipc.send(session, ErrorMessage(message="delete_entry requires id"))
            return
        self.__store.delete_entry(command.id)
        self.push_state()

    async def _cmd_copy_entry(self, command: CommandMessage, session: Session) -> None:
        if command.id is None:
            self.__ipc.send(session, ErrorMessage(message="copy_entry requires id"))
            return
        entry = self.__store.get_by_id(command.id)
        if entry is None:
            self.__ipc.send(session, ErrorMessage(message=f"No entry with id {command.id}"))
            return
        try:
            plaintext = decrypt(self.__key, entry.ciphertext, entry.nonce)
        except DecryptionError as e:
            self.__logger.warning("Entry %d could not be decrypted: %s", entry.id, e)
            self.__ipc.send(
                session, ErrorMessage(message=f"Entry {entry.id} could not be decrypted")
            )
            return

        content_hash = hash_content(plaintext)
        if content_hash != self.__monitor.last_hash:
            self.__monitor.set_expected_hash(content_hash)
        await self._write_clipboard(plaintext)
        self.__store.touch(entry.id)
        self.__wiper.start_countdown()
        self.push_state()

    async def _cmd_clear_history(self, command: CommandMessage, session: Session) -> None:
        self.__store.delete_all()
        self.push_state()

    async def _cmd_get_config(self, command: CommandMessage, session: Session) -> None:
        self.__ipc.send(session, ConfigMessage(config=self.__config.to_wire()))

    async def _cmd_update_config(self, command: CommandMessage, session: Session) -> None:
        if command.config is None:
            self.__ipc.send(session, ErrorMessage(message="update_config requires config"))
            return
        try:
            new_config = merge_config(self.__config, command.config)
        except ValidationError as e:
            self.__logger.warning("Rejected config update: %s", e)
            self.__ipc.send(session, ErrorMessage(message=f"Invalid config: {e.errors()[0]['msg']}"))
            return
        try:
            self.__config_store.save(new_config)
        except OSError as e:
            self.__logger.error("Could not save config: %s", e)
            self.__ipc.send(session, ErrorMessage(message="Config could not be saved"))
            return

        self.__config = new_config
        self.__wiper.update_delay(new_config.wipe_delay_seconds)
        self.__cleanup.update_config(new_config)
        self.__monitor.update_interval(new_config.poll_interval_ms)
        self.__logger.info("Config updated")
        self.push_state()

    async def _cmd_quit(self, command: CommandMessage, session: Session) -> None:
        self.__logger.info("Quit requested by client #%d", session.id)
        self.request_shutdown()

    # endregion
    # region Clipboard writes

    async def _clear_clipboard(self) -> None:
        try:
            await asyncio.to_thread(self.__clipboard.clear)
        except Exception as e:
            self.__logger.warning("Clipboard clear failed: %s", e)

    async def _write_clipboard(self, text: str) -> None:
        try:
            await asyncio.to_thread(self.__clipboard.write, text)
        except Exception as e:
            self.__logger.warning("Clipboard write failed: %s", e)

    # endregion
    # region State

    def _preview(self, entry: HistoryEntry) -> str:
        try:
            plaintext = decrypt(self.__key, entry.ciphertext, entry.nonce)
        except DecryptionError:
            return UNDECRYPTABLE_PREVIEW
        return _LINE_BREAKS.sub(" ", plaintext[: self.__config.preview_length])

    def build_state(self) -> StateMessage:
        entries = self.__store.get_recent(self.__config.history_display_count)
        history = [
            HistoryItem(
                id=entry.id,
                preview=self._preview(entry),
                content_length=entry.content_length,
                created_at=entry.created_at,
                accessed_at=entry.accessed_at,
            )
            for entry in entries
        ]
        wiper_state = self.__wiper.state
        return StateMessage(
            countdown=wiper_state.countdown,
            paused=wiper_state.paused,
            history=history,
            entry_count=self.__store.get_count(),
        )

    def push_state(self) -> None:
        """Broadcast a fresh state snapshot to every client."""
        if self.__ipc is None:
            return
        try:
            state = self.build_state()
        except SQLAlchemyError as e:
            self.__logger.error("Could not assemble state: %s", e)
            return
        self.__ipc.broadcast(state)

    # endregion


# endregion

__all__ = ["Daemon", "DaemonStartupError", "UNDECRYPTABLE_PREVIEW"]
