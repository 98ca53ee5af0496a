# region Docstring
"""
clippyd.ipc.protocol
Wire messages and newline-delimited JSON framing for the daemon socket.
Overview:
- Every message is one JSON object on one line, terminated by "\\n", UTF-8 encoded.
- Field names on the wire are camelCase; the Python models use snake_case with aliases.
Contents:
- Constants:
    - PROTOCOL_VERSION: Sent in the hello frame on connect.
    - ACTIONS: Command actions understood by the daemon.
- Models:
    - HelloMessage {version}                      server -> client, once on connect
    - HistoryItem {id, preview, contentLength, createdAt, accessedAt}
    - StateMessage {countdown, paused, history, entryCount}   broadcast
    - CommandMessage {action, id?, config?}       client -> server
    - ConfigMessage {config}                      reply to get_config
    - ErrorMessage {message}                      protocol-level failures
- Classes:
    - MessageFramer: incremental parser, push(data) -> list[dict], reset().
- Functions:
    - encode_message(message) -> bytes
Design Notes:
- The framer buffers bytes, not text, so a chunk boundary inside a multi-byte
    character does not corrupt the frame.
- Malformed lines (not JSON, or JSON that is not an object) are dropped; the
    caller never sees them and the connection stays open.
"""
# endregion
# region Imports
import json
from datetime import datetime
from typing import Any, Literal, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Field

PROTOCOL_VERSION = "0.1.0"
SQLITE_MAX_INTEGER = 2**63 - 1

Action = Literal[
    "clear_clipboard",
    "pause_countdown",
    "resume_countdown",
    "delete_entry",
    "copy_entry",
    "clear_history",
    "get_config",
    "update_config",
    "quit",
]
ACTIONS: tuple[str, ...] = get_args(Action)

# endregion
# region Models


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class HelloMessage(_WireModel):
    type: Literal["hello"] = "hello"
    version: str = PROTOCOL_VERSION


class HistoryItem(_WireModel):
    id: int
    preview: str
    content_length: int = Field(..., alias="contentLength")
    created_at: datetime = Field(..., alias="createdAt")
    accessed_at: datetime = Field(..., alias="accessedAt")


class StateMessage(_WireModel):
    type: Literal["state"] = "state"
    countdown: Optional[int] = None
    paused: bool = False
    history: list[HistoryItem] = Field(default_factory=list)
    entry_count: int = Field(0, alias="entryCount")


class CommandMessage(_WireModel):
    type: Literal["command"] = "command"
    action: Action
    id: Optional[int] = Field(None, ge=1, le=SQLITE_MAX_INTEGER)
    config: Optional[dict[str, Any]] = None


class ConfigMessage(_WireModel):
    type: Literal["config"] = "config"
    config: dict[str, Any]


class ErrorMessage(_WireModel):
    type: Literal["error"] = "error"
    message: str


Message = Union[HelloMessage, StateMessage, CommandMessage, ConfigMessage, ErrorMessage]


def encode_message(message: Message) -> bytes:
    """Serialize a message as one newline-terminated JSON line."""
    return (message.model_dump_json(by_alias=True, exclude_none=False) + "\n").encode(
        "utf-8"
    )


# endregion
# region MessageFramer


class MessageFramer:
    """Accumulates stream data and extracts complete JSON object frames."""

    def __init__(self) -> None:
        self.__buffer = bytearray()

    def push(self, data: Union[bytes, str]) -> list[dict[str, Any]]:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.__buffer.extend(data)

        frames: list[dict[str, Any]] = []
        while True:
            newline = self.__buffer.find(b"\n")
            if newline == -1:
                break
            line = bytes(self.__buffer[:newline]).strip()
            del self.__buffer[: newline + 1]
            if not line:
                continue
            try:
                frame = json.loads(line.decode("utf-8"))
            except ValueError:
                continue
            if isinstance(frame, dict):
                frames.append(frame)
        return frames

    def reset(self) -> None:
        self.__buffer.clear()

    @property
    def pending(self) -> int:
        """Bytes buffered without a terminating newline yet."""
        return len(self.__buffer)


# endregion

__all__ = [
    "ACTIONS",
    "PROTOCOL_VERSION",
    "CommandMessage",
    "ConfigMessage",
    "ErrorMessage",
    "HelloMessage",
    "HistoryItem",
    "Message",
    "MessageFramer",
    "StateMessage",
    "encode_message",
]
