import pytest
from pydantic import ValidationError

from discovery.errors import InvalidConfiguration
from discovery.models import (
    AnnouncerSettings,
    DiscovererSettings,
    ServiceRecord,
    validate_settings,
)


def make_record(host_name="host", address="10.0.0.1", port=1337, last_seen=0.0, service_name="svc"):
    return ServiceRecord(
        service_name=service_name,
        host_name=host_name,
        address=address,
        port=port,
        last_seen=last_seen,
    )


def test_equality_ignores_last_seen():
    assert make_record(last_seen=1.0) == make_record(last_seen=5.0)
    assert hash(make_record(last_seen=1.0)) == hash(make_record(last_seen=5.0))


@pytest.mark.parametrize(
    "other",
    [
        make_record(service_name="other"),
        make_record(host_name="other"),
        make_record(address="10.0.0.2"),
        make_record(port=1338),
    ],
)
def test_identity_components(other):
    assert make_record() != other


def test_ordering_is_by_identity():
    records = [
        make_record(host_name="b", last_seen=1.0),
        make_record(host_name="a", port=2, last_seen=3.0),
        make_record(host_name="a", port=1, last_seen=2.0),
    ]
    assert [(r.host_name, r.port) for r in sorted(records)] == [("a", 1), ("a", 2), ("b", 1337)]


def test_ordering_compares_addresses_numerically():
    records = [make_record(address="10.0.0.10"), make_record(address="10.0.0.9")]
    assert [r.address for r in sorted(records)] == ["10.0.0.9", "10.0.0.10"]


def test_address_must_be_an_ip_address():
    with pytest.raises(ValidationError):
        make_record(address="not an address")


def test_record_is_immutable():
    record = make_record()
    with pytest.raises(Exception):
        record.last_seen = 3.0


def test_record_helpers():
    record = make_record(last_seen=10.0)
    assert record.endpoint == ("10.0.0.1", 1337)
    assert record.age(12.5) == pytest.approx(2.5)
    assert str(record) == "svc on host (10.0.0.1:1337)"


def test_discoverer_settings_defaults():
    settings = DiscovererSettings(listen_for_service="svc")
    assert settings.max_idle == 30.0
    assert settings.max_services == 10
    assert settings.multicast_port == 30001
    assert settings.multicast_address == "239.255.0.1"
    assert settings.listen_address == "0.0.0.0"


@pytest.mark.parametrize(
    "values",
    [
        {"max_services": 0},
        {"max_services": -1},
        {"max_idle": 0},
        {"max_idle": -2.0},
        {"multicast_port": 70000},
        {"multicast_address": "10.0.0.1"},
        {"multicast_address": "not an address"},
        {"listen_address": "localhost"},
    ],
)
def test_invalid_discoverer_settings(values):
    with pytest.raises(InvalidConfiguration):
        validate_settings(DiscovererSettings, listen_for_service="svc", **values)


@pytest.mark.parametrize(
    "values",
    [
        {"service_port": -1},
        {"service_port": 65536},
        {"service_port": 80, "interval": 0},
        {"service_port": 80, "multicast_address": "192.168.0.1"},
    ],
)
def test_invalid_announcer_settings(values):
    with pytest.raises(InvalidConfiguration):
        validate_settings(AnnouncerSettings, service_name="svc", **values)


def test_invalid_configuration_is_value_error():
    with pytest.raises(ValueError):
        validate_settings(DiscovererSettings, listen_for_service="svc", max_services=0)
