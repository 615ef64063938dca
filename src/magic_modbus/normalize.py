"""Parse and validate user-entered addresses, ports, endpoints and cell values."""

import re
from ipaddress import ip_address

from .errors import InputValidationError
from .types import LAST_ADDRESS, WORD_MAX, Endpoint, RegisterSpace, Value

# [v6]:port or host:port; bare v6 addresses contain ':' and are handled separately
_BRACKETED_PATTERN = re.compile(r"^\[(?P<ip>[^\]]+)\](?::(?P<port>\d+))?$")

_TRUE_WORDS = frozenset({"true", "1", "on", "yes"})
_FALSE_WORDS = frozenset({"false", "0", "off", "no"})


def parse_bool(value: str) -> bool:
    """Parse boolean value from string."""
    v = value.lower().strip()
    if v in _TRUE_WORDS:
        return True
    if v in _FALSE_WORDS:
        return False
    raise InputValidationError(value, f"Invalid boolean value: {value!r}")


def _parse_number(value: str) -> int:
    v = value.strip()
    try:
        if v.lower().startswith("0x"):
            return int(v, 16)
        return int(v)
    except ValueError:
        raise InputValidationError(value, f"Invalid number: {value!r}") from None


def parse_word(value: str, signed: bool = False) -> int:
    """
    Parse a 16-bit register value (decimal or 0x hex).

    With signed=True, accepts -32768..32767 and returns the unsigned
    two's-complement word that goes on the wire.
    """
    num = _parse_number(value)
    if signed:
        if not (-32768 <= num <= 32767):
            raise InputValidationError(value, f"Signed 16-bit integer out of range: {num}")
        return from_signed(num)
    if not (0 <= num <= WORD_MAX):
        raise InputValidationError(value, f"Unsigned 16-bit integer out of range: {num}")
    return num


def parse_value(space: RegisterSpace, value: str, signed: bool = False) -> Value:
    """Parse value text in the domain of space."""
    if space.is_bit:
        return parse_bool(value)
    return parse_word(value, signed)


def parse_address(value: str) -> int:
    """Parse a zero-based cell address (decimal or 0x hex) in 0..65534."""
    num = _parse_number(value)
    if not (0 <= num <= LAST_ADDRESS):
        raise InputValidationError(value, f"Address out of range 0-{LAST_ADDRESS}: {num}")
    return num


def parse_port(value: str | int) -> int:
    if isinstance(value, int):
        num = value
    else:
        v = value.strip()
        if not v.isdigit():
            raise InputValidationError(value, f"Invalid port: {value!r}")
        num = int(v)
    if not (1 <= num <= 65535):
        raise InputValidationError(value, f"Port out of range 1-65535: {num}")
    return num


def parse_endpoint(host: str, port: str | int = 502) -> Endpoint:
    """Build an Endpoint from an IP literal (IPv4 or IPv6, brackets allowed) and a port."""
    h = host.strip()
    if h.startswith("[") and h.endswith("]"):
        h = h[1:-1]
    if not h:
        raise InputValidationError(host, "IP address cannot be empty")
    try:
        ip = ip_address(h)
    except ValueError:
        raise InputValidationError(host, f"Invalid IP address: {host!r}") from None
    return Endpoint(ip=ip, port=parse_port(port))


def parse_socket_address(raw: str, default_port: int = 502) -> Endpoint:
    """
    Parse "host:port" text into an Endpoint.

    Accepts 10.0.0.5:502, 10.0.0.5, [fe80::1]:502, [fe80::1] and bare IPv6
    literals (which never carry a port).
    """
    s = raw.strip()
    if not s:
        raise InputValidationError(raw, "Endpoint cannot be empty")

    m = _BRACKETED_PATTERN.match(s)
    if m:
        return parse_endpoint(m.group("ip"), m.group("port") or default_port)

    if s.count(":") == 1:
        host, port = s.split(":")
        return parse_endpoint(host, port)
    return parse_endpoint(s, default_port)


def parse_assignment(space: RegisterSpace, raw: str, signed: bool = False) -> tuple[int, Value]:
    """Parse "ADDRESS=VALUE" text, e.g. 5=true or 0x64=1234."""
    if "=" not in raw:
        raise InputValidationError(raw, f"Expected ADDRESS=VALUE, got {raw!r}")
    addr_text, value_text = raw.split("=", 1)
    return parse_address(addr_text), parse_value(space, value_text, signed)


def to_signed(value: int) -> int:
    """Convert unsigned 16-bit to signed."""
    if value > 32767:
        return value - 65536
    return value


def from_signed(value: int) -> int:
    """Convert signed 16-bit to unsigned."""
    if value < 0:
        return value + 65536
    return value


def format_value(value: Value, signed: bool = False) -> str:
    """Format value for display."""
    if isinstance(value, bool):
        return str(value).lower()
    if signed:
        return str(to_signed(value))
    return str(value)
