"""Multicast IPC - build your own protocol on a UDP multicast socket."""

__version__ = "0.1.0"

from .channel import MessageChannel
from .config import SocketConfig
from .errors import (
    AcquisitionError,
    CloseError,
    ConfigError,
    IPCError,
    ReceiveError,
    TransmitError,
)
from .ipc import open_socket, with_socket
from .loops import repeat_for, repeat_while
from .network import DEFAULT_MULTICAST_ADDRESS, DEFAULT_PORT
from .resource import MulticastSocket, acquire

__all__ = [
    "with_socket",
    "open_socket",
    "acquire",
    "MulticastSocket",
    "MessageChannel",
    "SocketConfig",
    "repeat_while",
    "repeat_for",
    "IPCError",
    "ConfigError",
    "AcquisitionError",
    "TransmitError",
    "ReceiveError",
    "CloseError",
    "DEFAULT_PORT",
    "DEFAULT_MULTICAST_ADDRESS",
    "__version__",
]
