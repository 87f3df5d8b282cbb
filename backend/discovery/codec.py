"""
Wire format of service announcements.

An announcement is a single UDP datagram holding the UTF-8 text
``<service_name>:<host_name>:<port>``. The datagram boundary is the message
boundary, there is no length prefix.
"""

from discovery.errors import InvalidPort, MalformedMessage
from discovery.models import Announcement

DELIMITER = ":"
MAX_PORT = 65535


def encode(service_name: str, host_name: str, port: int) -> bytes:
    """Encode an announcement.

    Neither name may contain the delimiter; this is not checked.
    """
    return f"{service_name}{DELIMITER}{host_name}{DELIMITER}{port}".encode("utf-8")


def decode(data: bytes) -> Announcement:
    """Decode an announcement datagram.

    Raises:
        MalformedMessage: The payload is not UTF-8 or does not have exactly
            three fields.
        InvalidPort: The third field is not a decimal integer in [0, 65535].
    """
    try:
        message = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedMessage(f"announcement is not valid UTF-8: {e}") from e

    # maxsplit bounds the work on payloads packed with delimiters
    fields = message.split(DELIMITER, 3)
    if len(fields) != 3:
        raise MalformedMessage(
            f"expected 3 fields in announcement, got {message.count(DELIMITER) + 1}"
        )

    service_name, host_name, port_text = fields
    if not (port_text.isascii() and port_text.isdigit()):
        raise InvalidPort(f"invalid port in announcement: {port_text[:16]!r}")
    # leading zeros are allowed, the length guard bounds int() on the rest
    digits = port_text.lstrip("0") or "0"
    if len(digits) > len(str(MAX_PORT)) or int(digits) > MAX_PORT:
        raise InvalidPort(f"port out of range in announcement: {port_text[:16]!r}")

    return Announcement(service_name=service_name, host_name=host_name, port=int(digits))
