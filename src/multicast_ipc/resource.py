"""Multicast socket resource with guaranteed release."""

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Callable, List, Optional

from .errors import AcquisitionError, CloseError, ReceiveError, TransmitError
from .network import (
    Address,
    BUFFER_SIZE,
    DEFAULT_MULTICAST_ADDRESS,
    DEFAULT_PORT,
    configure_multicast,
    create_bound_socket,
    local_port,
)

logger = logging.getLogger(__name__)

MessageListener = Callable[[bytes, Address], None]  # (message, remote) -> None
ErrorListener = Callable[[Exception], None]


class MulticastSocket:
    """
    A UDP socket bound to one port and joined to one multicast group.

    Incoming datagrams are delivered to one-shot listeners registered with
    once_message(). A datagram that arrives while no listener is armed is
    discarded.

    Example:
        resource = MulticastSocket(port=61088)
        resource.open()
        try:
            await resource.send_to(b"hello", (resource.multicast_address, resource.port))
        finally:
            resource.close()
    """

    def __init__(
        self,
        port: int = DEFAULT_PORT,
        multicast_address: Optional[str] = DEFAULT_MULTICAST_ADDRESS,
    ):
        """
        Initialize the resource. Nothing is bound until open() is called.

        Args:
            port: Port to listen on and broadcast to (0 = auto-assign)
            multicast_address: Multicast group to join (default: 224.0.2.1)
        """
        self.port = port
        self.multicast_address = multicast_address or DEFAULT_MULTICAST_ADDRESS
        self._sock = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._used = False
        self._message_listeners: List[MessageListener] = []
        self._error_listeners: List[ErrorListener] = []

    @property
    def is_open(self) -> bool:
        """Whether the socket is bound and not yet closed."""
        return self._sock is not None

    def open(self) -> None:
        """
        Bind the socket, configure multicast and start reading datagrams.

        Must be called from a coroutine running on the event loop that
        will serve the socket.

        Raises:
            AcquisitionError: If any step fails (no handle is left open)
        """
        if self._used:
            raise AcquisitionError("Socket resource cannot be reopened")
        self._used = True

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise AcquisitionError("No running event loop") from exc

        try:
            sock = create_bound_socket(self.port)
        except (OSError, OverflowError, TypeError) as exc:
            raise AcquisitionError(f"Failed to bind UDP socket to port {self.port}: {exc}") from exc

        try:
            configure_multicast(sock, self.multicast_address)
            loop.add_reader(sock.fileno(), self._read_ready)
        except (OSError, TypeError, NotImplementedError) as exc:
            sock.close()
            raise AcquisitionError(
                f"Failed to join multicast group {self.multicast_address}: {exc}"
            ) from exc

        self._sock = sock
        self._loop = loop
        self.port = local_port(sock)
        logger.debug("Listening on port %s, joined %s", self.port, self.multicast_address)

    def close(self) -> None:
        """
        Close the socket. Closing an already closed socket does nothing.

        Pending listeners are failed with ReceiveError.

        Raises:
            CloseError: If the socket could not be closed
        """
        sock = self._sock
        if sock is None:
            return
        self._sock = None

        try:
            try:
                self._loop.remove_reader(sock.fileno())
            finally:
                sock.close()
        except OSError as exc:
            raise CloseError(f"Failed to close UDP socket: {exc}") from exc
        finally:
            self._emit_error(ReceiveError("Socket closed"))
            self._message_listeners.clear()

        logger.debug("Closed socket on port %s", self.port)

    async def send_to(self, data: bytes, address: Address) -> None:
        """
        Send one datagram.

        Args:
            data: Bytes to send
            address: Destination (ip, port); the ip must already be resolved

        Raises:
            TransmitError: If the socket is closed or sending fails
        """
        if self._sock is None:
            raise TransmitError("Socket is closed")

        try:
            await self._loop.sock_sendto(self._sock, data, address)
        except (OSError, OverflowError, TypeError, ValueError) as exc:
            raise TransmitError(f"Failed to send to {address[0]}:{address[1]}: {exc}") from exc

    def discard_pending(self) -> int:
        """
        Read and drop every datagram already queued on the socket.

        Returns:
            Number of datagrams dropped

        Raises:
            ReceiveError: If the socket is closed or reading fails
        """
        if self._sock is None:
            raise ReceiveError("Socket is closed")

        dropped = 0
        while True:
            try:
                self._sock.recvfrom(BUFFER_SIZE)
            except (BlockingIOError, InterruptedError):
                break
            except OSError as exc:
                raise ReceiveError(f"Failed to discard queued messages: {exc}") from exc
            dropped += 1

        if dropped:
            logger.debug("Dropped %s queued datagram(s) on port %s", dropped, self.port)
        return dropped

    def once_message(self, listener: MessageListener) -> None:
        """Register a listener for the next datagram only."""
        self._message_listeners.append(listener)

    def once_error(self, listener: ErrorListener) -> None:
        """Register a listener for the next socket error only."""
        self._error_listeners.append(listener)

    def remove_listener(self, listener: Callable) -> None:
        """Deregister a listener if it is still armed."""
        if listener in self._message_listeners:
            self._message_listeners.remove(listener)
        if listener in self._error_listeners:
            self._error_listeners.remove(listener)

    def listener_count(self) -> int:
        """Get the number of armed listeners."""
        return len(self._message_listeners) + len(self._error_listeners)

    def _read_ready(self) -> None:
        # One datagram per wakeup so a re-armed listener sees the next one
        if self._sock is None:
            return
        try:
            data, remote = self._sock.recvfrom(BUFFER_SIZE)
        except (BlockingIOError, InterruptedError):
            return
        except OSError as exc:
            self._emit_error(exc)
            return
        self._emit_message(data, remote)

    def _emit_message(self, data: bytes, remote: Address) -> None:
        listeners, self._message_listeners = self._message_listeners, []
        for listener in listeners:
            listener(data, remote)

    def _emit_error(self, exc: Exception) -> None:
        listeners, self._error_listeners = self._error_listeners, []
        if not listeners and not isinstance(exc, ReceiveError):
            logger.warning("Socket error with no pending receiver: %s", exc)
        for listener in listeners:
            listener(exc)

    def __repr__(self):
        status = "open" if self.is_open else "closed"
        return f"MulticastSocket({self.multicast_address}:{self.port}, {status})"


@contextlib.asynccontextmanager
async def acquire(
    port: int = DEFAULT_PORT,
    multicast_address: Optional[str] = DEFAULT_MULTICAST_ADDRESS,
) -> AsyncIterator[MulticastSocket]:
    """
    Open a multicast socket for the duration of an async with block.

    The socket is closed exactly once when the block exits, however it
    exits. A close failure raises CloseError only when the block itself
    succeeded; otherwise it is logged and the block's exception propagates.

    Args:
        port: Port to listen on (default: 61088)
        multicast_address: Multicast group to join (default: 224.0.2.1)

    Raises:
        AcquisitionError: If the socket cannot be opened
        CloseError: If the socket cannot be closed after a successful block
    """
    resource = MulticastSocket(port, multicast_address)
    resource.open()
    try:
        yield resource
    except BaseException:
        try:
            resource.close()
        except CloseError:
            logger.warning("Error closing %r after failure", resource, exc_info=True)
        raise
    resource.close()
