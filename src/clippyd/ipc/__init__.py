"""
clippyd.ipc
Local socket protocol, server and client.
"""

from .client import IpcClient, IpcClientError  # noqa: F401
from .protocol import (  # noqa: F401
    ACTIONS,
    PROTOCOL_VERSION,
    CommandMessage,
    ConfigMessage,
    ErrorMessage,
    HelloMessage,
    HistoryItem,
    MessageFramer,
    StateMessage,
    encode_message,
)
from .server import IpcServer, Session  # noqa: F401
