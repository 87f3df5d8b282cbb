"""Pydantic models for service discovery."""

import ipaddress

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from config import (
    ANNOUNCE_INTERVAL,
    DEFAULT_MAX_IDLE,
    DEFAULT_MAX_SERVICES,
    LISTEN_ADDRESS,
    MULTICAST_ADDRESS,
    MULTICAST_PORT,
)
from discovery.errors import InvalidConfiguration


class ServiceRecord(BaseModel):
    """A provider of a service discovered on the LAN.

    Two records are the same provider when service name, host name and
    endpoint match. ``last_seen`` takes no part in equality, hashing or
    ordering, so a refreshed record compares equal to the one it replaces.
    """
    model_config = ConfigDict(frozen=True)

    service_name: str
    host_name: str  # self-reported by the provider
    address: str  # sender address of the announcement packet
    port: int
    last_seen: float  # event loop time of the latest announcement

    @property
    def endpoint(self) -> tuple[str, int]:
        return (self.address, self.port)

    @property
    def identity(self) -> tuple[str, str, str, int]:
        return (self.service_name, self.host_name, self.address, self.port)

    @property
    def sort_key(self) -> tuple[str, str, int, int, int]:
        """Identity with the address compared numerically."""
        ip = ipaddress.ip_address(self.address)
        return (self.service_name, self.host_name, ip.version, int(ip), self.port)

    @field_validator("address")
    @classmethod
    def check_address(cls, value: str) -> str:
        ipaddress.ip_address(value)
        return value

    def age(self, now: float) -> float:
        """Seconds since this provider was last heard from."""
        return now - self.last_seen

    def __eq__(self, other) -> bool:
        if not isinstance(other, ServiceRecord):
            return NotImplemented
        return self.identity == other.identity

    def __hash__(self) -> int:
        return hash(self.identity)

    def __lt__(self, other) -> bool:
        if not isinstance(other, ServiceRecord):
            return NotImplemented
        return self.sort_key < other.sort_key

    def __str__(self) -> str:
        return f"{self.service_name} on {self.host_name} ({self.address}:{self.port})"


class Announcement(BaseModel):
    """The payload of one announcement datagram."""
    model_config = ConfigDict(frozen=True)

    service_name: str
    host_name: str
    port: int = Field(ge=0, le=65535)


def _ipv4(value: str) -> ipaddress.IPv4Address:
    try:
        return ipaddress.IPv4Address(value)
    except ValueError as e:
        raise ValueError(f"not an IPv4 address: {value!r}") from e


class DiscovererSettings(BaseModel):
    """Validated configuration of a ServiceDiscoverer."""
    listen_for_service: str
    max_idle: float = Field(default=DEFAULT_MAX_IDLE, gt=0)  # seconds
    max_services: int = Field(default=DEFAULT_MAX_SERVICES, gt=0)
    multicast_port: int = Field(default=MULTICAST_PORT, ge=0, le=65535)
    listen_address: str = LISTEN_ADDRESS
    multicast_address: str = MULTICAST_ADDRESS

    @field_validator("listen_address")
    @classmethod
    def check_listen_address(cls, value: str) -> str:
        _ipv4(value)
        return value

    @field_validator("multicast_address")
    @classmethod
    def check_multicast_address(cls, value: str) -> str:
        if not _ipv4(value).is_multicast:
            raise ValueError(f"not a multicast address: {value}")
        return value


class AnnouncerSettings(BaseModel):
    """Validated configuration of a ServiceAnnouncer."""
    service_name: str
    service_port: int = Field(ge=0, le=65535)
    multicast_port: int = Field(default=MULTICAST_PORT, ge=0, le=65535)
    multicast_address: str = MULTICAST_ADDRESS
    interval: float = Field(default=ANNOUNCE_INTERVAL, gt=0)  # seconds

    @field_validator("multicast_address")
    @classmethod
    def check_multicast_address(cls, value: str) -> str:
        if not _ipv4(value).is_multicast:
            raise ValueError(f"not a multicast address: {value}")
        return value


def validate_settings(model: type[BaseModel], **values) -> BaseModel:
    """Build a settings model, reporting any rejection as InvalidConfiguration."""
    try:
        return model(**values)
    except ValidationError as e:
        raise InvalidConfiguration(str(e)) from e
