"""Shared fixtures for multicast-ipc tests."""

import asyncio
import os
import sys

import pytest

from multicast_ipc import open_socket


@pytest.fixture
async def channel():
    """A channel on an auto-assigned port, closed after the test."""
    async with open_socket(port=0) as channel:
        yield channel


async def send_to_self(channel, message):
    """Send a message to the channel's own port over loopback."""
    await channel.send(message, channel.port, "127.0.0.1")


async def start_wait(channel, filter=None) -> asyncio.Task:
    """Start wait_for_message() in a task and let it arm its listener."""
    task = asyncio.create_task(channel.wait_for_message(filter))
    await asyncio.sleep(0)
    return task


def open_fd_count() -> int:
    """Count file descriptors open in this process (Linux only)."""
    if not sys.platform.startswith("linux"):
        pytest.skip("Requires /proc/self/fd")
    return len(os.listdir("/proc/self/fd"))
