"""Socket setup for the multicast announce and listen endpoints."""

import logging
import socket

from config import MULTICAST_TTL
from discovery.errors import TransportError

logger = logging.getLogger(__name__)

INTERFACE_ANY = "0.0.0.0"


def open_listen_socket(
    listen_address: str,
    multicast_address: str,
    multicast_port: int,
    interface_address: str = INTERFACE_ANY,
) -> socket.socket:
    """
    Create a non-blocking UDP socket bound to the multicast port and joined to
    the multicast group.

    Address reuse is enabled so several discoverers on one host can share the
    port.

    :raises TransportError: If the socket cannot be bound or the group joined.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    except OSError as e:
        raise TransportError(f"Failed to open listen socket: {e}") from e

    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if hasattr(socket, "SO_REUSEPORT"):
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        sock.setblocking(False)
        sock.bind((listen_address, multicast_port))

        membership = socket.inet_aton(multicast_address) + socket.inet_aton(interface_address)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
    except OSError as e:
        sock.close()
        raise TransportError(
            f"Failed to listen on {multicast_address}:{multicast_port} "
            f"via {listen_address}: {e}"
        ) from e

    logger.debug(f"Joined {multicast_address} on {listen_address}:{multicast_port}")
    return sock


def open_announce_socket(ttl: int = MULTICAST_TTL, loopback: bool = True) -> socket.socket:
    """
    Create a non-blocking UDP socket for sending to a multicast group.

    Loopback is on by default so discoverers on the announcing host hear it.

    :raises TransportError: If the socket cannot be created or configured.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    except OSError as e:
        raise TransportError(f"Failed to open announce socket: {e}") from e

    try:
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, ttl)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 1 if loopback else 0)
        sock.setblocking(False)
    except OSError as e:
        sock.close()
        raise TransportError(f"Failed to configure announce socket: {e}") from e

    return sock
