"""Exceptions raised by the discovery and announce services."""


class DiscoveryError(Exception):
    """Base class for all service discovery errors."""


class InvalidConfiguration(DiscoveryError, ValueError):
    """A discoverer or announcer was configured with unusable settings."""


class TransportError(DiscoveryError, OSError):
    """Opening, binding, joining or using a multicast socket failed."""


class DecodeError(DiscoveryError, ValueError):
    """An announcement payload could not be decoded."""


class MalformedMessage(DecodeError):
    """The payload does not consist of exactly three fields."""


class InvalidPort(DecodeError):
    """The port field is not an unsigned 16-bit integer."""


class TimerError(DiscoveryError):
    """The idle check timer could not be armed or cancelled."""
