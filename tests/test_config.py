import pytest

from config import load_environment
from discovery.errors import InvalidConfiguration


def test_defaults():
    settings = load_environment({})
    assert settings.multicast_address == "239.255.0.1"
    assert settings.multicast_port == 30001
    assert settings.max_idle == 30.0
    assert settings.max_services == 10
    assert settings.discover_service == ""


def test_environment_overrides():
    settings = load_environment(
        {
            "LSD_MULTICAST_PORT": "30002",
            "LSD_MAX_IDLE": "2.5",
            "LSD_DISCOVER_SERVICE": "svc",
            "PATH": "/usr/bin",
        }
    )
    assert settings.multicast_port == 30002
    assert settings.max_idle == 2.5
    assert settings.discover_service == "svc"


@pytest.mark.parametrize(
    "environ",
    [
        {"LSD_MULTICAST_PORT": "not a port"},
        {"LSD_MULTICAST_PORT": "70000"},
        {"LSD_MAX_IDLE": "soon"},
        {"LSD_MAX_SERVICES": "0"},
    ],
)
def test_malformed_environment(environ):
    with pytest.raises(InvalidConfiguration):
        load_environment(environ)
