"""
MacroFile: binary .magmod codec.

Layout (big-endian, no padding):

    magic          6 bytes   b"MAGMOD"
    ip_version     1 byte    4 or 6
    ip_bytes       4 or 16 bytes
    port           2 bytes
    command_count  4 bytes
    records[command_count], 5 bytes each:
        function_code  1 byte   5 = write single coil, 6 = write single register
        address        2 bytes
        value          2 bytes  coil: 0xFF00 / 0x0000, register: raw word
"""

import logging
import struct
from dataclasses import dataclass, field
from ipaddress import IPv4Address, IPv6Address
from pathlib import Path
from typing import Iterable

from .errors import CodecError, FileExistsConflict, InputValidationError, MacroIOError
from .messages import WriteCommand, WriteRequest
from .pending import PendingItem
from .types import LAST_ADDRESS, Endpoint, RegisterSpace

logger = logging.getLogger(__name__)

MAGIC = b"MAGMOD"
SUFFIX = ".magmod"

FC_WRITE_COIL = 5
FC_WRITE_REGISTER = 6

COIL_ON = 0xFF00
COIL_OFF = 0x0000

_PORT_COUNT = struct.Struct(">HI")
_RECORD = struct.Struct(">BHH")

_FUNCTION_CODES: dict[RegisterSpace, int] = {
    RegisterSpace.COILS: FC_WRITE_COIL,
    RegisterSpace.HOLDING_REGISTERS: FC_WRITE_REGISTER,
}


class _Reader:
    """Cursor over bytes; running past the end is a CodecError."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self.offset = 0

    def take(self, n: int, what: str) -> bytes:
        end = self.offset + n
        if end > len(self._data):
            raise CodecError(f"Truncated macro: missing {what}", offset=self.offset)
        chunk = self._data[self.offset:end]
        self.offset = end
        return chunk

    def unpack(self, fmt: struct.Struct, what: str) -> tuple[int, ...]:
        return fmt.unpack(self.take(fmt.size, what))

    @property
    def remaining(self) -> int:
        return len(self._data) - self.offset


@dataclass(frozen=True)
class MacroFile:
    """A target endpoint plus the ordered write commands to replay against it."""

    endpoint: Endpoint
    commands: tuple[WriteCommand, ...] = field(default_factory=tuple)

    @classmethod
    def from_pending(cls, endpoint: Endpoint, items: Iterable[PendingItem]) -> "MacroFile":
        """Freeze the writable part of a PendingSet into a macro."""
        return cls(endpoint, WriteRequest.from_pending(items).commands)

    @property
    def command_count(self) -> int:
        return len(self.commands)

    def to_request(self) -> WriteRequest:
        return WriteRequest(self.commands)

    def with_endpoint(self, endpoint: Endpoint) -> "MacroFile":
        return MacroFile(endpoint, self.commands)

    # ------------------------------------------------------------------
    # Codec
    # ------------------------------------------------------------------

    def encode(self) -> bytes:
        out = bytearray(MAGIC)
        out.append(self.endpoint.ip.version)
        out += self.endpoint.ip.packed
        out += _PORT_COUNT.pack(self.endpoint.port, len(self.commands))
        for command in self.commands:
            if command.space is RegisterSpace.COILS:
                value = COIL_ON if command.value else COIL_OFF
            else:
                value = int(command.value)
            out += _RECORD.pack(_FUNCTION_CODES[command.space], command.address, value)
        return bytes(out)

    @classmethod
    def decode(cls, data: bytes) -> "MacroFile":
        """Parse .magmod bytes; any violation raises CodecError and nothing is returned."""
        reader = _Reader(data)

        if reader.take(len(MAGIC), "header") != MAGIC:
            raise CodecError("Bad header: not a .magmod file", offset=0)

        ip_version = reader.take(1, "IP version")[0]
        ip: IPv4Address | IPv6Address
        if ip_version == 4:
            ip = IPv4Address(reader.take(4, "IPv4 address"))
        elif ip_version == 6:
            ip = IPv6Address(reader.take(16, "IPv6 address"))
        else:
            raise CodecError(f"Unknown IP version {ip_version}", offset=len(MAGIC))

        port_offset = reader.offset
        port, command_count = reader.unpack(_PORT_COUNT, "port and command count")
        try:
            endpoint = Endpoint(ip, port)
        except ValueError:
            raise CodecError(f"Port {port} in header is outside the port range 1-65535", offset=port_offset) from None

        commands: list[WriteCommand] = []
        for index in range(command_count):
            record_offset = reader.offset
            function_code, address, raw = reader.unpack(_RECORD, f"record {index}")
            space: RegisterSpace
            value: bool | int
            if function_code == FC_WRITE_COIL:
                space = RegisterSpace.COILS
                if raw == COIL_ON:
                    value = True
                elif raw == COIL_OFF:
                    value = False
                else:
                    raise CodecError(f"Invalid coil value 0x{raw:04X} in record {index}", offset=record_offset)
            elif function_code == FC_WRITE_REGISTER:
                space, value = RegisterSpace.HOLDING_REGISTERS, raw
            else:
                raise CodecError(f"Unsupported function code {function_code} in record {index}", offset=record_offset)
            if address > LAST_ADDRESS:
                raise CodecError(
                    f"Record {index} address {address} is outside the address range 0-{LAST_ADDRESS}",
                    offset=record_offset,
                )
            try:
                commands.append(WriteCommand(space, address, value))
            except InputValidationError as e:
                raise CodecError(f"Invalid record {index}: {e}", offset=record_offset) from None

        if reader.remaining:
            logger.debug("Ignoring %d trailing bytes after %d records", reader.remaining, command_count)
        return cls(endpoint, tuple(commands))

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def to_file(self, filename: str | Path, overwrite: bool = False) -> Path:
        """
        Write the macro under the current working directory, adding .magmod if missing.

        Raises FileExistsConflict when the target exists and overwrite is False,
        MacroIOError for any other I/O failure. Returns the written path.
        """
        name = str(filename).strip()
        if not name:
            raise MacroIOError("Macro filename cannot be empty")
        if not name.endswith(SUFFIX):
            name += SUFFIX
        path = Path.cwd() / name
        data = self.encode()
        try:
            with open(path, "wb" if overwrite else "xb") as f:
                f.write(data)
        except FileExistsError:
            raise FileExistsConflict(path) from None
        except OSError as e:
            raise MacroIOError(f"Could not write {path}: {e}", path=path, cause=e) from e
        logger.debug("Wrote %d commands to %s", self.command_count, path)
        return path

    @classmethod
    def from_file(cls, path: str | Path) -> "MacroFile":
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise MacroIOError(f"Could not read {path}: {e}", path=path, cause=e) from e
        return cls.decode(data)
