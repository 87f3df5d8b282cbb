"""Application-wide configuration constants.

Deployment settings are read from ``LSD_*`` environment variables, e.g.
``LSD_MULTICAST_PORT=30002``.
"""

import os

from pydantic import BaseModel, Field, ValidationError

from discovery.errors import InvalidConfiguration

ENV_PREFIX = "LSD_"

# --- Fixed ---
MULTICAST_TTL = 1  # stay on the local segment
ANNOUNCE_INTERVAL = 1.0  # seconds
MAXIMUM_MESSAGE_SIZE = 65507  # largest IPv4 UDP payload

DEFAULT_MAX_IDLE = 30.0  # seconds before a service is considered gone
DEFAULT_MAX_SERVICES = 10


class EnvironmentSettings(BaseModel):
    """Settings overridable from the environment."""
    api_host: str = "0.0.0.0"
    api_port: int = Field(default=8766, ge=0, le=65535)

    multicast_address: str = "239.255.0.1"
    multicast_port: int = Field(default=30001, ge=0, le=65535)  # UDP
    listen_address: str = "0.0.0.0"

    max_idle: float = Field(default=DEFAULT_MAX_IDLE, gt=0)
    max_services: int = Field(default=DEFAULT_MAX_SERVICES, gt=0)

    # discovery / announcing is disabled when empty
    discover_service: str = ""
    announce_service: str = ""
    announce_port: int = Field(default=0, ge=0, le=65535)


def load_environment(environ=os.environ) -> EnvironmentSettings:
    """Read ``LSD_*`` variables, reporting bad values as InvalidConfiguration."""
    values = {
        name[len(ENV_PREFIX):].lower(): value
        for name, value in environ.items()
        if name.startswith(ENV_PREFIX)
    }
    try:
        return EnvironmentSettings(**values)
    except ValidationError as e:
        raise InvalidConfiguration(f"Invalid {ENV_PREFIX}* environment: {e}") from e


_env = load_environment()

# --- Networking ---
API_HOST = _env.api_host
API_PORT = _env.api_port

MULTICAST_ADDRESS = _env.multicast_address
MULTICAST_PORT = _env.multicast_port
LISTEN_ADDRESS = _env.listen_address

# --- Discovery ---
MAX_IDLE = _env.max_idle
MAX_SERVICES = _env.max_services

DISCOVER_SERVICE = _env.discover_service
ANNOUNCE_SERVICE = _env.announce_service
ANNOUNCE_PORT = _env.announce_port
