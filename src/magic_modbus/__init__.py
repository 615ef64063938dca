"""magic-modbus: Modbus TCP address-space client with replayable .magmod macros."""

__version__ = "0.1.0"

from .address_space import AddressSpace
from .client import MagicModbusClient
from .errors import (
    CodecError,
    ConnectionLost,
    FileExistsConflict,
    InputValidationError,
    InvalidTransition,
    MacroIOError,
    MagicModbusError,
    NotConnectedError,
    ProtocolError,
)
from .macro import MacroFile
from .messages import ReadBatch, ReadRequest, WriteCommand, WriteRequest
from .replay import run_macro
from .session import Session, SessionConfig
from .types import Cell, CellStatus, Endpoint, RegisterSpace

__all__ = [
    "__version__",
    "AddressSpace",
    "MagicModbusClient",
    "CodecError",
    "ConnectionLost",
    "FileExistsConflict",
    "InputValidationError",
    "InvalidTransition",
    "MacroIOError",
    "MagicModbusError",
    "NotConnectedError",
    "ProtocolError",
    "MacroFile",
    "ReadBatch",
    "ReadRequest",
    "WriteCommand",
    "WriteRequest",
    "run_macro",
    "Session",
    "SessionConfig",
    "Cell",
    "CellStatus",
    "Endpoint",
    "RegisterSpace",
]
