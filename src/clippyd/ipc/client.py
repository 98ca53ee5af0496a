"""Blocking Unix socket client for the clipboard daemon, used by the CLI."""

import socket
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .protocol import PROTOCOL_VERSION, CommandMessage, MessageFramer, encode_message


class IpcClientError(Exception):
    """Raised when the daemon cannot be reached or answers with an error."""


class IpcClient:
    """Client for one connection to the daemon socket."""

    def __init__(self, socket_path: Path, timeout: Optional[float] = 5.0):
        """Initialize the client.

        Args:
            socket_path: Daemon socket address
            timeout: Socket timeout in seconds, None to block indefinitely
        """
        self.socket_path = socket_path
        self.timeout = timeout
        self.server_version: Optional[str] = None

        self._socket: Optional[socket.socket] = None
        self._framer = MessageFramer()
        self._pending: list[Dict[str, Any]] = []

    def __enter__(self) -> "IpcClient":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def connect(self) -> None:
        """Connect and wait for the hello frame."""
        if self._socket is not None:
            return
        try:
            self._socket = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            self._socket.settimeout(self.timeout)
            self._socket.connect(str(self.socket_path))
        except OSError as e:
            self.close()
            raise IpcClientError(f"Failed to connect to {self.socket_path}: {e}") from e

        hello = self.read_message()
        if hello.get("type") != "hello":
            self.close()
            raise IpcClientError(f"Expected hello frame, got {hello.get('type')!r}")
        self.server_version = hello.get("version")
        if self.server_version != PROTOCOL_VERSION:
            self.close()
            raise IpcClientError(
                f"Protocol mismatch: daemon speaks {self.server_version}, client {PROTOCOL_VERSION}"
            )

    def close(self) -> None:
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        self._framer.reset()
        self._pending.clear()

    def read_message(self) -> Dict[str, Any]:
        """Return the next frame from the daemon, blocking until one arrives."""
        if self._socket is None:
            raise IpcClientError("Not connected")
        while not self._pending:
            try:
                data = self._socket.recv(65536)
            except OSError as e:
                raise IpcClientError(f"Read from daemon failed: {e}") from e
            if not data:
                raise IpcClientError("Daemon closed the connection")
            self._pending.extend(self._framer.push(data))
        return self._pending.pop(0)

    def send_command(
        self,
        action: str,
        id: Optional[int] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> None:
        if self._socket is None:
            raise IpcClientError("Not connected")
        try:
            command = CommandMessage(action=action, id=id, config=config)
        except ValidationError as e:
            raise IpcClientError(f"Invalid command: {e.errors()[0]['msg']}") from e
        try:
            self._socket.sendall(encode_message(command))
        except OSError as e:
            raise IpcClientError(f"Write to daemon failed: {e}") from e

    def wait_for(self, *types: str) -> Dict[str, Any]:
        """Read frames until one of `types` (or an error frame) arrives."""
        while True:
            message = self.read_message()
            if message.get("type") == "error":
                raise IpcClientError(message.get("message", "daemon error"))
            if message.get("type") in types:
                return message

    def request_config(self) -> Dict[str, Any]:
        self.send_command("get_config")
        return self.wait_for("config")["config"]
