"""Cross-platform UDP multicast socket setup."""

import ipaddress
import socket
import struct
import sys
from typing import Optional, Tuple

# Multicast configuration
DEFAULT_PORT = 61088
DEFAULT_MULTICAST_ADDRESS = "224.0.2.1"
MULTICAST_TTL = 1  # Stay on local network
BUFFER_SIZE = 65535
LOOPBACK_ADDRESS = "127.0.0.1"

Address = Tuple[str, int]


def create_bound_socket(port: int) -> socket.socket:
    """
    Create a non-blocking UDP socket bound to a port on all interfaces.

    Args:
        port: Local port to bind to (0 = auto-assign)

    Returns:
        Bound datagram socket

    Raises:
        OSError: If the socket cannot be created or bound
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        # Allow multiple processes to bind to the same port
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # macOS requires SO_REUSEPORT for multiple listeners
        if sys.platform == "darwin":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)

        sock.setblocking(False)
        sock.bind(("", port))
    except OSError:
        sock.close()
        raise

    return sock


def configure_multicast(sock: socket.socket, multicast_address: str) -> None:
    """
    Enable broadcast and multicast loopback, set the TTL and join a group.

    Must be called after the socket is bound.

    Args:
        sock: Socket created by create_bound_socket()
        multicast_address: IPv4 multicast group to join
    """
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)

    # Enable loopback so sender can receive its own messages
    sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 1)
    sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, MULTICAST_TTL)

    mreq = struct.pack("4sl", socket.inet_aton(multicast_address), socket.INADDR_ANY)
    sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)


def local_port(sock: socket.socket) -> int:
    """Return the port a bound socket is listening on."""
    return sock.getsockname()[1]


def is_ip_literal(address: str) -> bool:
    """Check whether an address is an IP literal rather than a hostname."""
    try:
        ipaddress.ip_address(address)
    except ValueError:
        return False
    return True


def normalize_address(address: Optional[str]) -> str:
    """
    Map empty and IPv6 loopback addresses onto the IPv4 loopback.

    Args:
        address: Destination hostname or IP address

    Returns:
        Address usable with an IPv4 socket (hostnames are returned unchanged)
    """
    if not address or address == "::1":
        return LOOPBACK_ADDRESS
    return address


def is_multicast_address(address: str) -> bool:
    """Check whether an address is an IPv4 multicast literal."""
    try:
        return ipaddress.IPv4Address(address).is_multicast
    except ValueError:
        return False
