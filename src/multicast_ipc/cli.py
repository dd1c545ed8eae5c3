"""Command-line interface for multicast-ipc."""

import argparse
import asyncio
import logging
import sys
import time
from datetime import datetime

from .channel import MessageChannel
from .config import SocketConfig
from .errors import ConfigError, IPCError
from .ipc import with_socket

logger = logging.getLogger(__name__)


def format_timestamp(ts: float) -> str:
    """Format a timestamp for display."""
    return datetime.fromtimestamp(ts).strftime("%H:%M:%S")


def format_message(message: bytes, remote) -> str:
    """Format a received datagram for display."""
    text = message.decode("utf-8", errors="replace")
    return f"[{format_timestamp(time.time())}] {remote[0]}:{remote[1]}: {text}"


async def cmd_broadcast(args: argparse.Namespace, config: SocketConfig) -> None:
    """Broadcast a message to the group and exit."""
    await with_socket(lambda channel: channel.broadcast(args.message), config=config)
    print(f"Broadcast to {config.multicast_address}:{config.port}: {args.message}")


async def cmd_send(args: argparse.Namespace, config: SocketConfig) -> None:
    """Send a message to a single host and exit."""
    to_port = args.to_port if args.to_port is not None else config.port

    async def send(channel: MessageChannel) -> None:
        await channel.send(args.message, to_port, args.host)

    await with_socket(send, config=config)
    print(f"Sent to {args.host}:{to_port}: {args.message}")


async def cmd_listen(args: argparse.Namespace, config: SocketConfig) -> None:
    """Print received messages until the count is reached (or forever)."""

    async def listen(channel: MessageChannel) -> None:
        print(f"Listening on {channel.multicast_address}:{channel.port}... (Ctrl+C to stop)")

        def show(message: bytes, remote) -> bool:
            print(format_message(message, remote), flush=True)
            return True

        if args.count is None:
            await channel.repeat_while(
                lambda _: True, lambda _: channel.wait_for_message(show)
            )
        else:
            await channel.repeat_for(args.count, lambda: channel.wait_for_message(show))

    await with_socket(listen, config=config)


COMMANDS = {
    "broadcast": cmd_broadcast,
    "send": cmd_send,
    "listen": cmd_listen,
}


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    defaults = SocketConfig.from_env()

    parser = argparse.ArgumentParser(
        prog="multicast-ipc",
        description="Send and receive UDP multicast messages",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=defaults.port,
        help=f"Port to listen/broadcast on (default: {defaults.port})",
    )
    parser.add_argument(
        "--group",
        default=defaults.multicast_address,
        help=f"Multicast group address (default: {defaults.multicast_address})",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # broadcast command
    broadcast_parser = subparsers.add_parser("broadcast", help="Broadcast a message and exit")
    broadcast_parser.add_argument("message", help="Message to broadcast")

    # send command
    send_parser = subparsers.add_parser("send", help="Send a message to one host and exit")
    send_parser.add_argument("message", help="Message to send")
    send_parser.add_argument("host", help="Destination hostname or IP address")
    send_parser.add_argument(
        "--to-port",
        type=int,
        default=None,
        help="Destination port (default: same as --port)",
    )

    # listen command
    listen_parser = subparsers.add_parser("listen", help="Print received messages")
    listen_parser.add_argument(
        "--count",
        type=int,
        default=None,
        help="Stop after this many messages (default: run until Ctrl+C)",
    )

    return parser


def main(argv=None) -> None:
    """Main entry point."""
    try:
        parser = build_parser()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = SocketConfig(port=args.port, multicast_address=args.group)
    try:
        config.validate()
        asyncio.run(COMMANDS[args.command](args, config))
    except KeyboardInterrupt:
        print("\nStopping...")
    except IPCError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
