"""Tests for the message channel."""

import asyncio
import errno
import pytest

from multicast_ipc import open_socket
from multicast_ipc.channel import MessageChannel, to_bytes
from multicast_ipc.errors import ReceiveError, TransmitError
from multicast_ipc.loops import repeat_for, repeat_while

from conftest import send_to_self, start_wait

NO_ROUTE_ERRNOS = {errno.ENETUNREACH, errno.EHOSTUNREACH}


def test_to_bytes_copies_buffers():
    """to_bytes() takes a copy of mutable buffers."""
    buffer = bytearray(b"hello")
    data = to_bytes(buffer)
    buffer[0:5] = b"XXXXX"

    assert data == b"hello"
    assert to_bytes(memoryview(b"view")) == b"view"


def test_to_bytes_encodes_strings():
    """Strings are sent as UTF-8."""
    assert to_bytes("héllo") == "héllo".encode("utf-8")


def test_to_bytes_rejects_other_types():
    with pytest.raises(TransmitError, match="int"):
        to_bytes(42)


def test_channel_exposes_loop_combinators():
    """The combinators are reachable from the channel."""
    assert MessageChannel.repeat_while is repeat_while
    assert MessageChannel.repeat_for is repeat_for


async def test_send_and_receive_round_trip(channel):
    """A datagram sent to the channel's port arrives unmodified."""
    payload = bytes(range(256))
    waiter = await start_wait(channel)

    await send_to_self(channel, payload)

    assert await asyncio.wait_for(waiter, 2.0) == payload


async def test_send_between_two_sockets(channel):
    """send() delivers to another process-like socket on a different port."""
    async with open_socket(port=0) as other:
        waiter = await start_wait(other)

        await channel.send(b"ping", other.port, "127.0.0.1")

        assert await asyncio.wait_for(waiter, 2.0) == b"ping"


async def test_send_empty_address_uses_loopback(channel):
    """An empty address sends to 127.0.0.1."""
    waiter = await start_wait(channel)

    await channel.send("hello", channel.port, "")

    assert await asyncio.wait_for(waiter, 2.0) == b"hello"


async def test_send_resolves_hostname(channel):
    """A hostname is resolved before sending."""
    waiter = await start_wait(channel)

    await channel.send(b"by name", channel.port, "localhost")

    assert await asyncio.wait_for(waiter, 2.0) == b"by name"


async def test_send_buffer_reusable_immediately(channel):
    """Mutating the buffer after send() does not change what was sent."""
    buffer = bytearray(b"original")
    waiter = await start_wait(channel)

    send = asyncio.create_task(channel.send(buffer, channel.port, "localhost"))
    buffer[:] = b"mutated!"
    await send

    assert await asyncio.wait_for(waiter, 2.0) == b"original"


async def test_send_unresolvable_host_fails(channel):
    """A resolution failure surfaces as TransmitError."""
    with pytest.raises(TransmitError):
        await channel.send(b"x", channel.port, "no-such-host.invalid")


async def test_send_error_leaves_channel_usable(channel):
    """The channel keeps working after a failed send."""
    with pytest.raises(TransmitError):
        await channel.send(b"x", 70000, "127.0.0.1")

    waiter = await start_wait(channel)
    await send_to_self(channel, b"still works")

    assert await asyncio.wait_for(waiter, 2.0) == b"still works"


async def test_wait_ignores_earlier_messages(channel):
    """wait_for_message() returns the first datagram after the call."""
    await send_to_self(channel, b"early")

    waiter = await start_wait(channel)
    await send_to_self(channel, b"late")

    assert await asyncio.wait_for(waiter, 2.0) == b"late"


async def test_wait_discards_queued_messages(channel):
    """Datagrams queued before successive waits are never returned."""
    await send_to_self(channel, b"a")
    await send_to_self(channel, b"b")

    received = []
    for message in (b"c", b"d"):
        waiter = await start_wait(channel)
        await send_to_self(channel, message)
        received.append(await asyncio.wait_for(waiter, 2.0))

    assert received == [b"c", b"d"]


async def test_discard_pending_counts_dropped(channel):
    """discard_pending() empties the socket queue."""
    await send_to_self(channel, b"one")
    await send_to_self(channel, b"two")

    assert channel._socket.discard_pending() == 2
    assert channel._socket.discard_pending() == 0


async def test_wait_async_filter_rejected(channel):
    """A coroutine filter fails the wait with TypeError instead of accepting."""
    async def never(message, remote):
        return False

    waiter = await start_wait(channel, never)
    await send_to_self(channel, b"x")

    with pytest.raises(TypeError, match="synchronous"):
        await asyncio.wait_for(waiter, 2.0)

    assert channel._socket.listener_count() == 0


async def test_wait_with_filter(channel):
    """Rejected datagrams are skipped until the filter accepts one."""
    seen = []

    def only_yes(message, remote):
        seen.append((message, remote))
        return message == b"yes"

    waiter = await start_wait(channel, only_yes)

    for message in (b"no", b"nope", b"yes"):
        await send_to_self(channel, message)
        await asyncio.sleep(0.01)

    assert await asyncio.wait_for(waiter, 2.0) == b"yes"
    assert [message for message, remote in seen] == [b"no", b"nope", b"yes"]
    assert seen[0][1] == ("127.0.0.1", channel.port)


async def test_wait_filter_error_propagates(channel):
    """An exception from the filter fails the wait."""
    def broken(message, remote):
        raise KeyError("bad filter")

    waiter = await start_wait(channel, broken)
    await send_to_self(channel, b"anything")

    with pytest.raises(KeyError):
        await asyncio.wait_for(waiter, 2.0)

    assert channel._socket.listener_count() == 0


async def test_wait_accepts_empty_datagram(channel):
    """An empty datagram is a message, not a rejection."""
    waiter = await start_wait(channel)
    await send_to_self(channel, b"")

    assert await asyncio.wait_for(waiter, 2.0) == b""


async def test_wait_timeout_removes_listener(channel):
    """A wait abandoned through asyncio.wait_for() leaves no listener."""
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(channel.wait_for_message(lambda m, r: False), 0.05)

    assert channel._socket.listener_count() == 0


async def test_abandoned_waits_do_not_leak(channel):
    """A thousand cancelled waits leave no listeners behind."""
    for _ in range(1000):
        waiter = await start_wait(channel, lambda message, remote: False)
        assert channel._socket.listener_count() == 2

        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

    assert channel._socket.listener_count() == 0


async def test_abandoned_wait_does_not_steal_later_message(channel):
    """A stale wait never receives a message meant for a later wait."""
    stale = await start_wait(channel)
    stale.cancel()
    with pytest.raises(asyncio.CancelledError):
        await stale

    waiter = await start_wait(channel)
    await send_to_self(channel, b"fresh")

    assert await asyncio.wait_for(waiter, 2.0) == b"fresh"


async def test_unbind_fails_pending_wait(channel):
    """Closing the socket fails a pending wait with ReceiveError."""
    waiter = await start_wait(channel)

    await channel.unbind()

    with pytest.raises(ReceiveError, match="closed"):
        await asyncio.wait_for(waiter, 2.0)


async def test_wait_after_unbind_fails(channel):
    """Waiting on a closed channel fails instead of hanging."""
    await channel.unbind()

    with pytest.raises(ReceiveError):
        await channel.wait_for_message()


async def test_unbind_twice(channel):
    """unbind() a second time does not raise."""
    await channel.unbind()
    await channel.unbind()


async def test_send_after_unbind_fails(channel):
    """Sending after unbind() raises TransmitError."""
    await channel.unbind()

    with pytest.raises(TransmitError, match="closed"):
        await channel.send(b"late", 9, "127.0.0.1")

    with pytest.raises(TransmitError):
        await channel.broadcast(b"late")


async def test_request_response_with_repeat_for(channel):
    """Loop combinators drive a multi-step exchange over the channel."""
    async with open_socket(port=0) as server:
        async def serve():
            async def answer():
                request = await server.wait_for_message()
                await server.send(b"ack:" + request, channel.port, "127.0.0.1")

            return await server.repeat_for(3, answer)

        server_task = asyncio.create_task(serve())
        await asyncio.sleep(0)

        replies = []

        async def request():
            waiter = await start_wait(channel)
            await channel.send(b"req%d" % len(replies), server.port, "127.0.0.1")
            replies.append(await asyncio.wait_for(waiter, 2.0))

        assert await channel.repeat_for(3, request) == 0
        assert await asyncio.wait_for(server_task, 2.0) == 0
        assert replies == [b"ack:req0", b"ack:req1", b"ack:req2"]


async def test_broadcast_reaches_group_members():
    """A broadcast reaches every socket in the group, the sender included."""
    async with open_socket(port=0) as sender:
        async with open_socket(port=sender.port) as listener:
            sender_wait = await start_wait(sender)
            listener_wait = await start_wait(listener)

            try:
                await sender.broadcast(b"hello group")
            except TransmitError as e:
                if getattr(e.__cause__, "errno", None) not in NO_ROUTE_ERRNOS:
                    raise
                sender_wait.cancel()
                listener_wait.cancel()
                pytest.skip(f"No multicast route here: {e}")

            assert await asyncio.wait_for(listener_wait, 2.0) == b"hello group"
            assert await asyncio.wait_for(sender_wait, 2.0) == b"hello group"
