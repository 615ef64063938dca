"""Core data model: register spaces, cells, endpoints and connection state."""

from dataclasses import dataclass
from enum import Enum
from ipaddress import IPv4Address, IPv6Address

Value = bool | int

# Addresses 0..65534; 65535 is never a valid cell.
ADDRESS_SPACE_SIZE = 65535
LAST_ADDRESS = ADDRESS_SPACE_SIZE - 1
WORD_MAX = 0xFFFF


class RegisterSpace(str, Enum):
    """The four Modbus memory spaces, in display order."""

    COILS = "coil"
    DISCRETE_INPUTS = "discrete_input"
    INPUT_REGISTERS = "input_register"
    HOLDING_REGISTERS = "holding_register"

    @property
    def ordinal(self) -> int:
        return _ORDER.index(self)

    @property
    def label(self) -> str:
        return _TITLES[self]

    @property
    def is_bit(self) -> bool:
        return self in (RegisterSpace.COILS, RegisterSpace.DISCRETE_INPUTS)

    @property
    def is_writable(self) -> bool:
        return self in (RegisterSpace.COILS, RegisterSpace.HOLDING_REGISTERS)

    @property
    def zero(self) -> Value:
        return False if self.is_bit else 0

    @property
    def prefix(self) -> int:
        """Leading digit of the classic reference number (0x, 1x, 3x, 4x)."""
        return _PREFIXES[self]

    def next(self) -> "RegisterSpace":
        return _ORDER[min(self.ordinal + 1, len(_ORDER) - 1)]

    def previous(self) -> "RegisterSpace":
        return _ORDER[max(self.ordinal - 1, 0)]

    def coerce(self, value: Value) -> Value:
        """Return value in this space's domain; bool for bits, 0..65535 for words."""
        if self.is_bit:
            if isinstance(value, bool):
                return value
            if isinstance(value, int) and value in (0, 1):
                return bool(value)
            raise ValueError(f"{self.label} values must be boolean, got {value!r}")
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{self.label} values must be integers, got {value!r}")
        if not 0 <= value <= WORD_MAX:
            raise ValueError(f"Unsigned 16-bit integer out of range: {value}")
        return value

    def display_address(self, address: int) -> str:
        """One-based reference form used in listings, e.g. 0x40065 for holding register 100."""
        return f"0x{self.prefix}{address + 1:04X}"


_ORDER: tuple[RegisterSpace, ...] = tuple(RegisterSpace)

_TITLES: dict[RegisterSpace, str] = {
    RegisterSpace.COILS: "Coils",
    RegisterSpace.DISCRETE_INPUTS: "Discrete Inputs",
    RegisterSpace.INPUT_REGISTERS: "Input Registers",
    RegisterSpace.HOLDING_REGISTERS: "Holding Registers",
}

_PREFIXES: dict[RegisterSpace, int] = {
    RegisterSpace.COILS: 0,
    RegisterSpace.DISCRETE_INPUTS: 1,
    RegisterSpace.INPUT_REGISTERS: 3,
    RegisterSpace.HOLDING_REGISTERS: 4,
}


class CellStatus(str, Enum):
    CLEAN = "clean"
    PENDING = "pending"


@dataclass
class Cell:
    """One address: last confirmed device value plus the locally staged value."""

    original_value: Value
    pending_value: Value

    @classmethod
    def empty(cls, space: RegisterSpace) -> "Cell":
        return cls(original_value=space.zero, pending_value=space.zero)

    @property
    def status(self) -> CellStatus:
        if self.pending_value != self.original_value:
            return CellStatus.PENDING
        return CellStatus.CLEAN

    @property
    def is_pending(self) -> bool:
        return self.status is CellStatus.PENDING

    @property
    def displayed_value(self) -> Value:
        return self.pending_value if self.is_pending else self.original_value


@dataclass(frozen=True)
class Endpoint:
    """Target device: IPv4/IPv6 address and TCP port."""

    ip: IPv4Address | IPv6Address
    port: int = 502

    def __post_init__(self) -> None:
        if not 1 <= self.port <= 65535:
            raise ValueError(f"port must be 1-65535, got {self.port}")

    @property
    def host(self) -> str:
        return str(self.ip)

    def __str__(self) -> str:
        if self.ip.version == 6:
            return f"[{self.ip}]:{self.port}"
        return f"{self.ip}:{self.port}"


@dataclass(frozen=True)
class ConnectionState:
    """Disconnected when endpoint is None, otherwise connected to endpoint."""

    endpoint: Endpoint | None = None

    @property
    def connected(self) -> bool:
        return self.endpoint is not None

    def __str__(self) -> str:
        return f"Connected ({self.endpoint})" if self.endpoint else "Not Connected"


DISCONNECTED = ConnectionState()
