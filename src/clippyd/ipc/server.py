# region Docstring
"""
clippyd.ipc.server
Multi-client Unix domain socket server for the daemon.
Overview:
- Clients connect to a filesystem socket, receive a hello frame naming the protocol
    version, send command frames and receive state broadcasts.
Contents:
- Classes:
    - Session: one connected client (id, stream writer, parse buffer).
    - IpcServer:
        - start(): remove a stale socket file, bind, listen
        - send(session, message) -> bool
        - broadcast(message): same frame to every open session
        - stop(): close sessions, listener, remove socket file
        - client_count
Design Notes:
- Command frames are validated into CommandMessage before dispatch; a frame that
    fails validation gets an error reply on its own connection only.
- A write failure drops that one session; other sessions still receive the frame.
- A session with more than MAX_WRITE_BUFFER bytes still unsent is dropped on the
    next write; a client that stops reading never holds daemon memory.
- A command handler failure is answered with an error frame; the connection stays open.
- The socket file is restricted to its owner (0600).
"""
# endregion
# region Imports
import asyncio
import itertools
import os
from dataclasses import dataclass, field
from logging import Logger as T_Logger
from pathlib import Path
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from .protocol import (
    CommandMessage,
    ErrorMessage,
    HelloMessage,
    Message,
    MessageFramer,
    encode_message,
)

READ_CHUNK = 65536
MAX_WRITE_BUFFER = 1024 * 1024

# endregion
# region Session


@dataclass
class Session:
    id: int
    writer: asyncio.StreamWriter
    framer: MessageFramer = field(default_factory=MessageFramer)

    @property
    def closing(self) -> bool:
        return self.writer.is_closing()

    @property
    def buffered(self) -> int:
        """Bytes written but not yet accepted by the socket."""
        return self.writer.transport.get_write_buffer_size()

    def write(self, payload: bytes) -> None:
        self.writer.write(payload)


# endregion
# region IpcServer

CommandHandler = Callable[[CommandMessage, Session], Awaitable[None]]


class IpcServer:
    """
    Local socket server keeping every client in sync with daemon state.

    Attributes:
        __socket_path (Path): Filesystem address of the listener.
        __on_command (CommandHandler): Awaited for each valid command frame.
        __logger (Logger): The logger instance.
        __sessions (dict[int, Session]): Open sessions by id.
        __max_write_buffer (int): Unsent bytes tolerated per session before it is dropped.
    """

    __socket_path: Path
    __on_command: CommandHandler
    __logger: T_Logger
    __sessions: dict[int, Session]
    __max_write_buffer: int
    __server: Optional[asyncio.AbstractServer]

    def __init__(
        self,
        socket_path: Path,
        on_command: CommandHandler,
        logger: T_Logger,
        max_write_buffer: int = MAX_WRITE_BUFFER,
    ) -> None:
        self.__socket_path = socket_path
        self.__on_command = on_command
        self.__max_write_buffer = max_write_buffer
        self.__logger = logger.getChild(self.__class__.__name__)
        self.__sessions = {}
        self.__handlers: set[asyncio.Task] = set()
        self.__ids = itertools.count(1)
        self.__server = None

    @property
    def socket_path(self) -> Path:
        return self.__socket_path

    @property
    def client_count(self) -> int:
        return len(self.__sessions)

    async def start(self) -> None:
        """
        Bind the listener, replacing a socket file left by an unclean shutdown.

        Raises:
            OSError: If the socket cannot be bound.
        """
        if self.__socket_path.exists() or self.__socket_path.is_symlink():
            self.__logger.info("Removing stale socket %s", self.__socket_path)
            self.__socket_path.unlink()
        self.__socket_path.parent.mkdir(parents=True, exist_ok=True)
        self.__server = await asyncio.start_unix_server(
            self._handle_connection, path=str(self.__socket_path)
        )
        os.chmod(self.__socket_path, 0o600)
        self.__logger.info("Listening on %s", self.__socket_path)

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self.__handlers.add(task)
        session = Session(id=next(self.__ids), writer=writer)
        self.__sessions[session.id] = session
        self.__logger.info("Client #%d connected", session.id)
        try:
            self.send(session, HelloMessage())
            while True:
                data = await reader.read(READ_CHUNK)
                if not data:
                    break
                for frame in session.framer.push(data):
                    await self._dispatch(frame, session)
        except (ConnectionError, OSError) as e:
            self.__logger.debug("Client #%d connection error: %s", session.id, e)
        finally:
            self._drop(session)
            if task is not None:
                self.__handlers.discard(task)

    async def _dispatch(self, frame: dict, session: Session) -> None:
        if frame.get("type") != "command":
            return
        try:
            command = CommandMessage.model_validate(frame)
        except ValidationError as e:
            self.__logger.warning("Client #%d sent an invalid command: %s", session.id, e)
            self.send(session, ErrorMessage(message=f"Invalid command: {_summarize(e)}"))
            return
        try:
            await self.__on_command(command, session)
        except Exception as e:
            self.__logger.exception(
                "Client #%d: %s failed. %s", session.id, command.action, e
            )
            self.send(session, ErrorMessage(message=f"{command.action} failed"))

    def send(self, session: Session, message: Message) -> bool:
        """Write one frame to one client; False if the client is gone."""
        return self._write(session, encode_message(message))

    def broadcast(self, message: Message) -> None:
        payload = encode_message(message)
        for session in list(self.__sessions.values()):
            self._write(session, payload)

    def _write(self, session: Session, payload: bytes) -> bool:
        if session.closing:
            self._drop(session)
            return False
        if session.buffered > self.__max_write_buffer:
            self.__logger.warning(
                "Dropping client #%d: %d bytes unread", session.id, session.buffered
            )
            session.writer.transport.abort()
            self._drop(session)
            return False
        try:
            session.write(payload)
            return True
        except (ConnectionError, OSError, RuntimeError) as e:
            self.__logger.debug("Dropping client #%d after write failure: %s", session.id, e)
            self._drop(session)
            return False

    def _drop(self, session: Session) -> None:
        if self.__sessions.pop(session.id, None) is None:
            return
        self.__logger.info("Client #%d disconnected", session.id)
        if not session.writer.is_closing():
            session.writer.close()

    async def stop(self) -> None:
        """Close every session and the listener, and remove the socket file."""
        for session in list(self.__sessions.values()):
            self._drop(session)
        current = asyncio.current_task()
        handlers = [t for t in self.__handlers if t is not current]
        for task in handlers:
            task.cancel()
        if handlers:
            await asyncio.gather(*handlers, return_exceptions=True)
        if self.__server is not None:
            self.__server.close()
            await self.__server.wait_closed()
            self.__server = None
        try:
            self.__socket_path.unlink()
        except FileNotFoundError:
            pass
        self.__logger.info("IPC server stopped")


def _summarize(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "frame"
    return f"{location}: {first.get('msg', 'invalid')}"


# endregion

__all__ = ["CommandHandler", "IpcServer", "Session"]
