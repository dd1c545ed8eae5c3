"""Message channel: the API handed to a with_socket() callback."""

import asyncio
import inspect
import socket
from typing import Awaitable, Callable, Optional, Union

from .errors import ReceiveError, TransmitError
from .loops import repeat_for, repeat_while
from .network import Address, is_ip_literal, normalize_address
from .resource import MulticastSocket

MessageFilter = Callable[[bytes, Address], bool]  # (message, remote) -> accept?
Payload = Union[bytes, bytearray, memoryview, str]


def to_bytes(message: Payload) -> bytes:
    """
    Copy a message into an immutable bytes object.

    Raises:
        TransmitError: If the message is not bytes-like or a string
    """
    if isinstance(message, str):
        return message.encode("utf-8")
    if isinstance(message, (bytes, bytearray, memoryview)):
        return bytes(message)
    raise TransmitError(f"Cannot send message of type {type(message).__name__}")


class MessageChannel:
    """
    Convenience functions for implementing a custom communications protocol.

    A channel is bound to one open MulticastSocket and has no state of its
    own. It is only valid inside the scope that acquired the socket.

    Example:
        async def ping(channel):
            await channel.broadcast("ping")
            return await channel.wait_for_message(lambda msg, remote: msg == b"pong")
    """

    repeat_while = staticmethod(repeat_while)
    repeat_for = staticmethod(repeat_for)

    def __init__(self, resource: MulticastSocket):
        self._socket = resource

    @property
    def port(self) -> int:
        return self._socket.port

    @property
    def multicast_address(self) -> str:
        return self._socket.multicast_address

    def broadcast(self, message: Payload) -> Awaitable[None]:
        """
        Broadcast a message to all listeners.

        Listeners need to use the same port and multicast address as the
        sender to receive it. Loopback is enabled, so the sender receives its
        own broadcast too.

        Args:
            message: Message to send

        Returns:
            Awaitable that completes once the datagram is sent

        Raises:
            TransmitError: If the datagram could not be sent
        """
        return self.send(message, self.port, self.multicast_address)

    def send(self, message: Payload, port: int, address: Optional[str]) -> Awaitable[None]:
        """
        Send a message directly to a port/ip address.

        Works for 1:1 messages and for group messages when the address is in
        the multicast range. A hostname is resolved before sending; an empty
        address or "::1" sends to 127.0.0.1. The message is copied when
        send() is called, so the caller's buffer is safe to reuse at once.

        Args:
            message: The message to send
            port: UDP port to send data to
            address: Destination hostname or IP address

        Returns:
            Awaitable that completes once the datagram is sent

        Raises:
            TransmitError: If the message is not bytes-like, or (when awaited)
                if resolution or sending fails
        """
        return self._send(to_bytes(message), port, address)

    async def wait_for_message(self, filter: Optional[MessageFilter] = None) -> bytes:
        """
        Wait for a specific message.

        The filter is called with (message, remote) for every datagram that
        arrives; the first one it accepts is returned. Without a filter the
        next datagram is returned. Datagrams already queued on the socket
        when the call is made are discarded, never returned.

        Only one wait may be pending per channel at a time. Cancel the
        awaiting task (e.g. with asyncio.wait_for) to abandon the wait.

        Args:
            filter: Synchronous function called for every received datagram,
                returns True to accept

        Returns:
            The accepted message

        Raises:
            ReceiveError: If the socket fails or closes while waiting
            TypeError: If the filter returns an awaitable
            Exception: Whatever the filter raises
        """
        self._socket.discard_pending()
        return await repeat_while(
            lambda message: message is None,
            lambda _: self._receive_one(filter),
        )

    async def unbind(self) -> None:
        """
        Close the socket. No more communication is possible after this.

        Calling unbind() again does nothing.

        Raises:
            CloseError: If the socket could not be closed
        """
        self._socket.close()

    async def _receive_one(self, filter: Optional[MessageFilter]) -> Optional[bytes]:
        # Resolves with None when the filter rejects the datagram
        resource = self._socket
        if not resource.is_open:
            raise ReceiveError("Socket is closed")

        waiter = asyncio.get_running_loop().create_future()

        def on_message(message: bytes, remote: Address) -> None:
            if waiter.done():
                return
            try:
                accepted = filter is None or filter(message, remote)
            except Exception as exc:
                waiter.set_exception(exc)
                return
            if inspect.isawaitable(accepted):
                if inspect.iscoroutine(accepted):
                    accepted.close()
                waiter.set_exception(TypeError("Message filter must be synchronous"))
                return
            waiter.set_result(message if accepted else None)

        def on_error(exc: Exception) -> None:
            if waiter.done():
                return
            if isinstance(exc, ReceiveError):
                waiter.set_exception(exc)
                return
            error = ReceiveError(f"Failed to receive message: {exc}")
            error.__cause__ = exc
            waiter.set_exception(error)

        resource.once_message(on_message)
        resource.once_error(on_error)
        try:
            return await waiter
        finally:
            resource.remove_listener(on_message)
            resource.remove_listener(on_error)

    async def _send(self, data: bytes, port: int, address: Optional[str]) -> None:
        host = normalize_address(address)
        if not is_ip_literal(host):
            host = await self._resolve(host, port)
        await self._socket.send_to(data, (host, port))

    async def _resolve(self, host: str, port: int) -> str:
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(
                host, port, family=socket.AF_INET, type=socket.SOCK_DGRAM
            )
        except OSError as exc:
            raise TransmitError(f"Failed to resolve {host}: {exc}") from exc
        if not infos:
            raise TransmitError(f"No IPv4 address for {host}")
        return infos[0][4][0]
