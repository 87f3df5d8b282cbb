"""
UDP multicast service announcer.

Sends ``<service_name>:<host_name>:<port>`` to the multicast group once a
second so ServiceDiscoverer instances on the LAN can find the service. The
announcer is not coupled to the service itself; it only claims the port.
"""

import asyncio
import logging
import socket
from typing import Callable, Optional

from config import ANNOUNCE_INTERVAL, MAXIMUM_MESSAGE_SIZE, MULTICAST_ADDRESS, MULTICAST_PORT
from discovery.codec import encode
from discovery.errors import TransportError
from discovery.models import AnnouncerSettings, validate_settings
from discovery.transport import open_announce_socket

logger = logging.getLogger(__name__)


class AnnouncerProtocol(asyncio.DatagramProtocol):
    """asyncio UDP protocol for the send-only announce socket."""

    def __init__(self, announcer: "ServiceAnnouncer"):
        self.announcer = announcer

    def error_received(self, exc: Exception) -> None:
        # the next tick resends regardless
        logger.warning(f"Announcement send failed: {exc}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc is not None:
            logger.error(f"Announce transport lost: {exc}")
        self.announcer._connection_lost()


class ServiceAnnouncer:
    """Announces ``service_name`` listening on ``service_port`` at a fixed interval."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        service_name: str,
        service_port: int,
        multicast_port: int = MULTICAST_PORT,
        multicast_address: str = MULTICAST_ADDRESS,
        interval: float = ANNOUNCE_INTERVAL,
        resolve_host_name: Callable[[], str] = socket.gethostname,
    ) -> None:
        self.settings: AnnouncerSettings = validate_settings(
            AnnouncerSettings,
            service_name=service_name,
            service_port=service_port,
            multicast_port=multicast_port,
            multicast_address=multicast_address,
            interval=interval,
        )
        self._loop = loop
        self._resolve_host_name = resolve_host_name
        self._transport: asyncio.DatagramTransport | None = None
        self._announce_task: asyncio.Task | None = None
        self.announcements_sent = 0

    @property
    def service_name(self) -> str:
        return self.settings.service_name

    @property
    def running(self) -> bool:
        return self._announce_task is not None and not self._announce_task.done()

    async def start(self) -> None:
        """Open the socket, announce once right away and then every interval.

        :raises TransportError: If the socket cannot be set up.
        """
        if self._transport is not None:
            raise RuntimeError("Announcer already started")

        settings = self.settings
        logger.info(
            f"Announcing {settings.service_name!r} on port {settings.service_port} "
            f"to {settings.multicast_address}:{settings.multicast_port}"
        )
        sock = open_announce_socket()
        try:
            transport, _ = await self._loop.create_datagram_endpoint(
                lambda: AnnouncerProtocol(self),
                sock=sock,
            )
        except OSError as e:
            sock.close()
            raise TransportError(f"Failed to start announce transport: {e}") from e
        self._transport = transport
        self._announce_task = self._loop.create_task(self._announce_loop())

    async def stop(self) -> None:
        """Stop announcing and close the socket."""
        if self._announce_task is not None:
            self._announce_task.cancel()
            try:
                await self._announce_task
            except asyncio.CancelledError:
                pass
            self._announce_task = None
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            logger.info(f"Stopped announcing {self.service_name!r}")

    async def __aenter__(self) -> "ServiceAnnouncer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def announce(self) -> bool:
        """Send one announcement. Returns False if it could not be sent."""
        if self._transport is None or self._transport.is_closing():
            return False

        try:
            # resolved every time so a renamed host is picked up
            host_name = self._resolve_host_name()
        except OSError as e:
            logger.warning(f"Failed to resolve local host name: {e}")
            return False

        message = encode(self.settings.service_name, host_name, self.settings.service_port)
        if len(message) > MAXIMUM_MESSAGE_SIZE:
            logger.warning(
                f"Announcement of {len(message)} bytes exceeds the datagram limit, not sent"
            )
            return False

        try:
            self._transport.sendto(
                message, (self.settings.multicast_address, self.settings.multicast_port)
            )
        except OSError as e:
            logger.warning(f"Announcement send failed: {e}")
            return False

        self.announcements_sent += 1
        return True

    async def _announce_loop(self) -> None:
        """Periodically send an announcement."""
        while True:
            try:
                self.announce()
            except Exception as e:
                logger.warning(f"Announcement failed: {e}")

            await asyncio.sleep(self.settings.interval)

    def _connection_lost(self) -> None:
        if self._announce_task is not None:
            self._announce_task.cancel()
