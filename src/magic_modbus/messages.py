"""Messages exchanged between the session and the network worker."""

from dataclasses import dataclass, field
from typing import Iterable, Union

from .errors import ConnectionLost, InputValidationError, ProtocolError
from .pending import PendingItem
from .types import ADDRESS_SPACE_SIZE, LAST_ADDRESS, RegisterSpace, Value


@dataclass(frozen=True)
class ReadBatch:
    """One protocol read: count cells of space starting at start."""

    space: RegisterSpace
    start: int
    count: int

    def __post_init__(self) -> None:
        if not 0 <= self.start <= LAST_ADDRESS:
            raise InputValidationError(self.start, f"Start address out of range: {self.start}")
        if self.count < 1 or self.start + self.count > ADDRESS_SPACE_SIZE:
            raise InputValidationError(self.count, f"Invalid count {self.count} at address {self.start}")


@dataclass(frozen=True)
class WriteCommand:
    """Set one cell of a writable space (coils or holding registers)."""

    space: RegisterSpace
    address: int
    value: Value

    def __post_init__(self) -> None:
        if not self.space.is_writable:
            raise InputValidationError(self.space, f"{self.space.label} are read-only")
        if not 0 <= self.address <= LAST_ADDRESS:
            raise InputValidationError(self.address, f"Address out of range 0-{LAST_ADDRESS}: {self.address}")
        try:
            object.__setattr__(self, "value", self.space.coerce(self.value))
        except ValueError as e:
            raise InputValidationError(self.value, str(e)) from None

    def describe(self) -> str:
        kind = "Coil" if self.space is RegisterSpace.COILS else "Register"
        value = str(self.value).lower() if isinstance(self.value, bool) else str(self.value)
        return f"Setting {kind} {self.space.display_address(self.address)} to {value}"


@dataclass(frozen=True)
class ReadRequest:
    batches: tuple[ReadBatch, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, *batches: ReadBatch) -> "ReadRequest":
        return cls(tuple(batches))


@dataclass(frozen=True)
class WriteRequest:
    commands: tuple[WriteCommand, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, *commands: WriteCommand) -> "WriteRequest":
        return cls(tuple(commands))

    @classmethod
    def from_pending(cls, items: Iterable[PendingItem]) -> "WriteRequest":
        """Commands for the writable entries of a PendingSet, in PendingSet order."""
        return cls(
            tuple(
                WriteCommand(item.space, item.address, item.pending_value)
                for item in items
                if item.space.is_writable
            )
        )

    def __len__(self) -> int:
        return len(self.commands)


Request = Union[ReadRequest, WriteRequest]


@dataclass(frozen=True)
class CellUpdate:
    """A value the device reported for one cell (any space, read-only ones included)."""

    space: RegisterSpace
    address: int
    value: Value


@dataclass(frozen=True)
class ReadCompleted:
    """Every value read for one ReadRequest, delivered in a single message."""

    generation: int
    updates: tuple[CellUpdate, ...]


@dataclass(frozen=True)
class WriteCompleted:
    generation: int
    request: WriteRequest


@dataclass(frozen=True)
class WorkerFailed:
    generation: int
    error: ProtocolError | ConnectionLost
    request: Request | None = None

    @property
    def connection_lost(self) -> bool:
        return isinstance(self.error, ConnectionLost)


WorkerEvent = Union[ReadCompleted, WriteCompleted, WorkerFailed]
