"""Exceptions raised by multicast-ipc."""


class IPCError(Exception):
    """Base class for all multicast-ipc errors."""


class ConfigError(IPCError, ValueError):
    """Raised when socket configuration values are invalid."""


class AcquisitionError(IPCError):
    """Raised when the socket cannot be created, bound or configured."""


class TransmitError(IPCError):
    """Raised when a datagram cannot be sent."""


class ReceiveError(IPCError):
    """Raised when the socket fails or closes while waiting for a message."""


class CloseError(IPCError):
    """Raised when the socket cannot be closed."""
