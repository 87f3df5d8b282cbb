"""
UDP multicast service discovery.

Listens for announcements of one named service and keeps the set of providers
that have been heard from recently. Every change to the set is reported to a
callback, on the event loop the discoverer was created with.
"""

import asyncio
import logging
from typing import Callable, Optional

from config import (
    DEFAULT_MAX_IDLE,
    DEFAULT_MAX_SERVICES,
    LISTEN_ADDRESS,
    MULTICAST_ADDRESS,
    MULTICAST_PORT,
)
from discovery.codec import decode
from discovery.errors import DecodeError, TimerError, TransportError
from discovery.models import DiscovererSettings, ServiceRecord, validate_settings
from discovery.store import DiscoverySet
from discovery.transport import open_listen_socket

logger = logging.getLogger(__name__)

ServicesChanged = Callable[[tuple[ServiceRecord, ...]], None]


class DiscoveryProtocol(asyncio.DatagramProtocol):
    """asyncio UDP protocol for receiving service announcements."""

    def __init__(self, discoverer: "ServiceDiscoverer"):
        self.discoverer = discoverer

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self.discoverer.handle_message(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"Discovery UDP error: {exc}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.discoverer._connection_lost(exc)


class ServiceDiscoverer:
    """
    Discovers providers of ``listen_for_service`` announced by ServiceAnnouncer.

    ``on_services_changed`` is called with the whole set, as a tuple in
    canonical order, each time a matching announcement arrives and each time
    idle services are dropped. To protect against a flood of announcers, at
    most ``max_services`` providers are kept; the one heard from least
    recently gives way to a new one.

    Example::

        discoverer = ServiceDiscoverer(loop, "my_service", print, max_idle=5.0)
        await discoverer.start()
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        listen_for_service: str,
        on_services_changed: ServicesChanged,
        max_idle: float = DEFAULT_MAX_IDLE,
        max_services: int = DEFAULT_MAX_SERVICES,
        multicast_port: int = MULTICAST_PORT,
        listen_address: str = LISTEN_ADDRESS,
        multicast_address: str = MULTICAST_ADDRESS,
    ) -> None:
        self.settings: DiscovererSettings = validate_settings(
            DiscovererSettings,
            listen_for_service=listen_for_service,
            max_idle=max_idle,
            max_services=max_services,
            multicast_port=multicast_port,
            listen_address=listen_address,
            multicast_address=multicast_address,
        )
        self._loop = loop
        self._on_services_changed = on_services_changed
        self._services = DiscoverySet(
            max_services=self.settings.max_services,
            max_idle=self.settings.max_idle,
            clock=loop.time,
        )
        self._transport: asyncio.DatagramTransport | None = None
        self._idle_check: asyncio.TimerHandle | None = None
        self._closing = False
        self._closed: asyncio.Future = loop.create_future()

    @property
    def listen_for_service(self) -> str:
        return self.settings.listen_for_service

    @property
    def services(self) -> tuple[ServiceRecord, ...]:
        """The currently known providers, in canonical order."""
        return self._services.snapshot()

    @property
    def running(self) -> bool:
        return self._transport is not None and not self._closing

    @property
    def error(self) -> Optional[TransportError]:
        """The transport failure that ended discovery, if any."""
        if not self._closed.done() or self._closed.cancelled():
            return None
        return self._closed.exception()

    @property
    def port(self) -> int:
        """The UDP port actually bound, useful when configured with port 0."""
        if self._transport is None:
            raise RuntimeError("Discoverer is not started")
        return self._transport.get_extra_info("sockname")[1]

    async def start(self) -> None:
        """Bind, join the multicast group and start receiving announcements.

        :raises TransportError: If the socket cannot be set up.
        """
        if self._transport is not None or self._closing:
            raise RuntimeError("Discoverer can only be started once")

        settings = self.settings
        logger.info(
            f"Discovering {settings.listen_for_service!r} on "
            f"{settings.multicast_address}:{settings.multicast_port}"
        )
        sock = open_listen_socket(
            settings.listen_address,
            settings.multicast_address,
            settings.multicast_port,
        )
        try:
            transport, _ = await self._loop.create_datagram_endpoint(
                lambda: DiscoveryProtocol(self),
                sock=sock,
            )
        except OSError as e:
            sock.close()
            raise TransportError(f"Failed to start discovery transport: {e}") from e
        self._transport = transport

    async def stop(self) -> None:
        """Stop receiving and cancel the idle check. No callback fires after this."""
        if self._closing:
            # a lost transport is reported by wait_closed and error, not by stop
            if self._closed.done() and not self._closed.cancelled():
                self._closed.exception()
            return
        self._closing = True
        self._cancel_idle_check()
        if self._transport is not None:
            self._transport.close()
            await asyncio.shield(self._closed)
        elif not self._closed.done():
            self._closed.set_result(None)
        logger.info(f"Stopped discovering {self.listen_for_service!r}")

    async def wait_closed(self) -> None:
        """Wait until the discoverer is stopped.

        :raises TransportError: If the transport was lost rather than stopped.
        """
        await asyncio.shield(self._closed)

    async def __aenter__(self) -> "ServiceDiscoverer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def handle_message(self, data: bytes, addr: tuple[str, int]) -> None:
        """Process one datagram received from ``addr``."""
        if self._closing:
            return

        try:
            announcement = decode(data)
        except DecodeError as e:
            logger.warning(f"Ignoring invalid announcement from {addr[0]}: {e}")
            return

        if announcement.service_name != self.listen_for_service:
            logger.debug(
                f"Ignoring announcement of {announcement.service_name!r} from {addr[0]}"
            )
            return

        record = ServiceRecord(
            service_name=announcement.service_name,
            host_name=announcement.host_name,
            address=addr[0],
            port=announcement.port,
            last_seen=self._loop.time(),
        )
        # replace rather than keep, so last_seen is refreshed
        self._services.upsert(record)
        self._services.remove_idle()
        self._services.evict_over_capacity()
        self._schedule_idle_check()
        self._notify()

    def _schedule_idle_check(self) -> None:
        """Wake up when the oldest service becomes idle, if there is one."""
        self._cancel_idle_check()
        expiry = self._services.next_expiry()
        if expiry is None:
            return
        try:
            self._idle_check = self._arm_idle_check(expiry)
        except TimerError as e:
            logger.error(f"{e}")

    def _arm_idle_check(self, when: float) -> asyncio.TimerHandle:
        try:
            return self._loop.call_at(when, self._on_idle_check)
        except RuntimeError as e:
            raise TimerError(f"Failed to arm idle check: {e}") from e

    def _cancel_idle_check(self) -> None:
        if self._idle_check is not None:
            self._idle_check.cancel()
            self._idle_check = None

    def _on_idle_check(self) -> None:
        self._idle_check = None
        if self._closing:
            return

        removed = self._services.remove_idle()
        # the timer may fire a little early, so rearm even if nothing went idle
        self._schedule_idle_check()
        if removed:
            self._notify()

    def _notify(self) -> None:
        services = self._services.snapshot()
        try:
            self._on_services_changed(services)
        except Exception as e:
            logger.error(f"Services changed callback failed: {e}", exc_info=True)

    def _connection_lost(self, exc: Optional[Exception]) -> None:
        if self._closed.done():
            return
        stopped = self._closing
        self._closing = True
        self._cancel_idle_check()

        if stopped:
            self._closed.set_result(None)
        elif exc is None:
            logger.warning(f"Discovery transport for {self.listen_for_service!r} was closed")
            self._closed.set_result(None)
        else:
            logger.error(f"Discovery transport lost: {exc}")
            self._closed.set_exception(TransportError(f"Discovery transport lost: {exc}"))
