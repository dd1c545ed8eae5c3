"""Entry points: scoped multicast sockets handed to user code."""

import contextlib
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

from .channel import MessageChannel
from .config import SocketConfig
from .loops import maybe_await
from .network import DEFAULT_MULTICAST_ADDRESS, DEFAULT_PORT
from .resource import acquire

Callback = Callable[[MessageChannel], Union[Any, Awaitable[Any]]]


@contextlib.asynccontextmanager
async def open_socket(
    port: int = DEFAULT_PORT,
    multicast_address: Optional[str] = DEFAULT_MULTICAST_ADDRESS,
    *,
    config: Optional[SocketConfig] = None,
) -> AsyncIterator[MessageChannel]:
    """
    Open a multicast socket and yield a MessageChannel for it.

    Args:
        port: Datagram port to listen on (default: 61088)
        multicast_address: Multicast address to group senders/listeners
        config: Overrides port and multicast_address when given

    Example:
        async with open_socket() as channel:
            await channel.broadcast("node:online")
    """
    if config is not None:
        config.validate()
        port, multicast_address = config.port, config.multicast_address

    async with acquire(port, multicast_address) as resource:
        yield MessageChannel(resource)


async def with_socket(
    callback: Callback,
    port: int = DEFAULT_PORT,
    multicast_address: Optional[str] = DEFAULT_MULTICAST_ADDRESS,
    *,
    config: Optional[SocketConfig] = None,
) -> Any:
    """
    Run a callback with a socket that listens for messages, allows sending
    messages and automatically cleans up after itself.

    The callback is invoked once the socket is set up and receives a
    MessageChannel. It may be a plain function or a coroutine function.

    Args:
        callback: Function that will be called with the channel
        port: Datagram port to listen on (default: 61088)
        multicast_address: Multicast address to group senders/listeners
        config: Overrides port and multicast_address when given

    Returns:
        Whatever the callback returns

    Raises:
        AcquisitionError: If the socket could not be set up
        CloseError: If the socket could not be closed after the callback
        Exception: Whatever the callback raises

    Example:
        async def announce(channel):
            await channel.broadcast("node:online")
            await channel.unbind()  # Optional, cleanup is automatic

        await with_socket(announce)
    """
    async with open_socket(port, multicast_address, config=config) as channel:
        return await maybe_await(callback(channel))
