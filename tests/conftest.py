"""
Shared fixtures.

``network`` replaces the multicast sockets with an in-process network so the
discoverer and announcer can be driven deterministically on one event loop.
"""

import asyncio
import itertools
import socket
import time

import pytest
import pytest_asyncio

SENDER_ADDRESS = "127.0.0.1"


class FakeSocket:
    """Stands in for a bound multicast listen socket."""

    def __init__(self, port: int):
        self.port = port
        self.closed = False

    def close(self):
        self.closed = True


class FakeTransport(asyncio.DatagramTransport):
    def __init__(self, network, protocol, port):
        super().__init__()
        self.network = network
        self.protocol = protocol
        self.port = port
        self.sent = []
        self._closing = False

    def sendto(self, data, addr=None):
        self.sent.append((data, addr))
        self.network.send(self, data, addr)

    def close(self):
        if self._closing:
            return
        self._closing = True
        self.network.detach(self)
        self.network.loop.call_soon(self.protocol.connection_lost, None)

    def abort(self, exc=None):
        self._closing = True
        self.network.detach(self)
        self.network.loop.call_soon(self.protocol.connection_lost, exc)

    def is_closing(self):
        return self._closing

    def get_extra_info(self, name, default=None):
        if name == "sockname":
            return (SENDER_ADDRESS, self.port)
        return default


class FakeNetwork:
    def __init__(self, loop):
        self.loop = loop
        self.listeners: list[FakeTransport] = []
        self.transports: list[FakeTransport] = []
        self._ports = itertools.count(40000)

    async def create_datagram_endpoint(self, protocol_factory, sock=None, **kwargs):
        protocol = protocol_factory()
        if isinstance(sock, FakeSocket):
            transport = FakeTransport(self, protocol, sock.port)
            self.listeners.append(transport)
        else:
            if sock is not None:
                sock.close()
            transport = FakeTransport(self, protocol, next(self._ports))
        self.transports.append(transport)
        protocol.connection_made(transport)
        return transport, protocol

    def detach(self, transport):
        if transport in self.listeners:
            self.listeners.remove(transport)

    def send(self, source, data, addr):
        self.inject(data, addr[1], sender=(SENDER_ADDRESS, source.port))

    def inject(self, data: bytes, port: int, sender=(SENDER_ADDRESS, 50000)):
        """Deliver a datagram to every listener on ``port`` on the next loop iteration."""
        for transport in self.listeners:
            if transport.port == port and not transport.is_closing():
                self.loop.call_soon(transport.protocol.datagram_received, data, sender)


@pytest_asyncio.fixture
async def network(monkeypatch):
    loop = asyncio.get_running_loop()
    fake = FakeNetwork(loop)

    def open_listen_socket(listen_address, multicast_address, multicast_port, *args):
        return FakeSocket(multicast_port)

    monkeypatch.setattr("discovery.service.open_listen_socket", open_listen_socket)
    monkeypatch.setattr(loop, "create_datagram_endpoint", fake.create_datagram_endpoint)
    return fake


@pytest.fixture
def loopback_listen_socket(monkeypatch):
    """
    Make the discoverer listen with a plain UDP socket on 127.0.0.1 instead of
    joining a multicast group, so the real asyncio transport can be tested on
    hosts without a multicast route. Returns the bound port.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.setblocking(False)
    sock.bind((SENDER_ADDRESS, 0))
    port = sock.getsockname()[1]

    def open_listen_socket(*args, **kwargs):
        return sock

    monkeypatch.setattr("discovery.service.open_listen_socket", open_listen_socket)
    yield port
    sock.close()


class ChangeRecorder:
    """Collects every set passed to a services changed callback."""

    def __init__(self):
        self.calls = []

    def __call__(self, services):
        self.calls.append((time.monotonic(), services))

    @property
    def sets(self):
        return [services for _, services in self.calls]

    @property
    def last(self):
        return self.calls[-1][1] if self.calls else None


@pytest.fixture
def recorder():
    return ChangeRecorder()
