"""Tests for the .magmod codec and macro file I/O."""

from ipaddress import IPv6Address
from pathlib import Path

import pytest

from magic_modbus.address_space import AddressSpace
from magic_modbus.errors import CodecError, FileExistsConflict, MacroIOError
from magic_modbus.macro import MAGIC, MacroFile
from magic_modbus.messages import WriteCommand
from magic_modbus.normalize import parse_endpoint
from magic_modbus.pending import collect_pending
from magic_modbus.types import RegisterSpace

SCENARIO_BYTES = (
    b"MAGMOD"
    + b"\x04"
    + bytes([10, 0, 0, 5])
    + b"\x01\xf6"
    + b"\x00\x00\x00\x02"
    + b"\x05\x00\x05\xff\x00"
    + b"\x06\x00\x64\x04\xd2"
)


@pytest.fixture
def macro() -> MacroFile:
    return MacroFile(
        parse_endpoint("10.0.0.5", 502),
        (
            WriteCommand(RegisterSpace.COILS, 5, True),
            WriteCommand(RegisterSpace.HOLDING_REGISTERS, 100, 1234),
        ),
    )


# ============================================================================
# Encoding Tests
# ============================================================================


class TestEncode:
    """Test the byte layout of encoded macros."""

    def test_layout(self, macro: MacroFile) -> None:
        data = macro.encode()
        assert data[:6] == b"MAGMOD"
        assert data[6] == 4
        assert data[7:11] == bytes([10, 0, 0, 5])
        assert data[11:13] == b"\x01\xf6"
        assert data[13:17] == b"\x00\x00\x00\x02"
        assert len(data[17:]) == 10
        assert data == SCENARIO_BYTES

    def test_coil_off_value(self) -> None:
        macro = MacroFile(parse_endpoint("10.0.0.5"), (WriteCommand(RegisterSpace.COILS, 1, False),))
        assert macro.encode()[-5:] == b"\x05\x00\x01\x00\x00"

    def test_ipv6_header(self) -> None:
        macro = MacroFile(parse_endpoint("fe80::1", 1502))
        data = macro.encode()
        assert data[6] == 6
        assert data[7:23] == IPv6Address("fe80::1").packed
        assert data[23:25] == (1502).to_bytes(2, "big")
        assert len(data) == 6 + 1 + 16 + 2 + 4

    def test_empty_macro(self) -> None:
        data = MacroFile(parse_endpoint("127.0.0.1")).encode()
        assert data[-4:] == b"\x00\x00\x00\x00"


# ============================================================================
# Decoding Tests
# ============================================================================


class TestDecode:
    """Test decoding and validation of macro bytes."""

    def test_round_trip(self, macro: MacroFile) -> None:
        decoded = MacroFile.decode(macro.encode())
        assert decoded == macro
        assert decoded.encode() == macro.encode()

    def test_decode_known_bytes(self) -> None:
        decoded = MacroFile.decode(SCENARIO_BYTES)
        assert str(decoded.endpoint) == "10.0.0.5:502"
        assert decoded.commands[0] == WriteCommand(RegisterSpace.COILS, 5, True)
        assert decoded.commands[1] == WriteCommand(RegisterSpace.HOLDING_REGISTERS, 100, 1234)

    def test_ipv6_round_trip(self) -> None:
        macro = MacroFile(
            parse_endpoint("2001:db8::7", 5020),
            (WriteCommand(RegisterSpace.HOLDING_REGISTERS, 65534, 65535),),
        )
        assert MacroFile.decode(macro.encode()) == macro

    def test_bad_magic(self) -> None:
        """A wrong header is rejected before anything else is read."""
        with pytest.raises(CodecError, match="Bad header"):
            MacroFile.decode(b"MAGMOX" + SCENARIO_BYTES[6:])

    def test_empty_input(self) -> None:
        with pytest.raises(CodecError):
            MacroFile.decode(b"")

    def test_unknown_ip_version(self) -> None:
        data = bytearray(SCENARIO_BYTES)
        data[6] = 5
        with pytest.raises(CodecError, match="Unknown IP version 5"):
            MacroFile.decode(bytes(data))

    def test_zero_port(self) -> None:
        data = bytearray(SCENARIO_BYTES)
        data[11:13] = b"\x00\x00"
        with pytest.raises(CodecError, match="outside the port range 1-65535") as exc_info:
            MacroFile.decode(bytes(data))
        assert exc_info.value.offset == 11

    def test_unsupported_function_code(self) -> None:
        data = bytearray(SCENARIO_BYTES)
        data[17] = 3
        with pytest.raises(CodecError, match="Unsupported function code 3") as exc_info:
            MacroFile.decode(bytes(data))
        assert exc_info.value.offset == 17

    def test_invalid_coil_value(self) -> None:
        data = bytearray(SCENARIO_BYTES)
        data[20:22] = b"\x00\x01"
        with pytest.raises(CodecError, match="Invalid coil value"):
            MacroFile.decode(bytes(data))

    def test_address_65535_rejected(self) -> None:
        """The record names the address range it falls outside of."""
        data = bytearray(SCENARIO_BYTES)
        data[18:20] = b"\xff\xff"
        with pytest.raises(CodecError, match="address 65535 is outside the address range 0-65534") as exc_info:
            MacroFile.decode(bytes(data))
        assert exc_info.value.offset == 17

    def test_register_address_65535_rejected(self) -> None:
        data = bytearray(SCENARIO_BYTES)
        data[23:25] = b"\xff\xff"
        with pytest.raises(CodecError, match="Record 1 address 65535 is outside the address range") as exc_info:
            MacroFile.decode(bytes(data))
        assert exc_info.value.offset == 22

    def test_truncated_records(self) -> None:
        with pytest.raises(CodecError, match="Truncated"):
            MacroFile.decode(SCENARIO_BYTES[:-1])

    def test_truncated_header(self) -> None:
        with pytest.raises(CodecError, match="Truncated"):
            MacroFile.decode(SCENARIO_BYTES[:9])

    def test_count_larger_than_records(self) -> None:
        data = bytearray(SCENARIO_BYTES)
        data[13:17] = b"\x00\x00\x00\x03"
        with pytest.raises(CodecError, match="record 2"):
            MacroFile.decode(bytes(data))

    def test_trailing_bytes_ignored(self, macro: MacroFile) -> None:
        assert MacroFile.decode(SCENARIO_BYTES + b"\x00\x01") == macro


# ============================================================================
# Pending Set and File Tests
# ============================================================================


class TestFromPending:
    def test_only_writable_spaces(self) -> None:
        spaces = {space: AddressSpace(space) for space in RegisterSpace}
        spaces[RegisterSpace.HOLDING_REGISTERS].stage_write(100, 1234)
        spaces[RegisterSpace.COILS].stage_write(5, True)
        spaces[RegisterSpace.INPUT_REGISTERS].stage_write(1, 9)

        macro = MacroFile.from_pending(parse_endpoint("10.0.0.5"), collect_pending(spaces.values()))
        assert macro.encode() == SCENARIO_BYTES
        assert macro.to_request().commands == macro.commands


class TestFiles:
    """Test saving and loading macro files."""

    def test_to_file_appends_suffix(self, macro: MacroFile, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        path = macro.to_file("startup")
        assert path.resolve() == (tmp_path / "startup.magmod").resolve()
        assert path.read_bytes() == SCENARIO_BYTES

    def test_to_file_keeps_existing_suffix(
        self, macro: MacroFile, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        assert macro.to_file("startup.magmod").name == "startup.magmod"

    def test_existing_file_conflict(self, macro: MacroFile, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        (tmp_path / "startup.magmod").write_bytes(b"keep me")
        with pytest.raises(FileExistsConflict):
            macro.to_file("startup")
        assert (tmp_path / "startup.magmod").read_bytes() == b"keep me"

    def test_overwrite(self, macro: MacroFile, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        (tmp_path / "startup.magmod").write_bytes(b"old")
        macro.to_file("startup", overwrite=True)
        assert (tmp_path / "startup.magmod").read_bytes() == SCENARIO_BYTES

    def test_empty_name(self, macro: MacroFile) -> None:
        with pytest.raises(MacroIOError):
            macro.to_file("   ")

    def test_from_file(self, macro: MacroFile, tmp_path: Path) -> None:
        path = tmp_path / "m.magmod"
        path.write_bytes(SCENARIO_BYTES)
        assert MacroFile.from_file(path) == macro

    def test_from_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(MacroIOError, match="Could not read"):
            MacroFile.from_file(tmp_path / "missing.magmod")

    def test_from_file_bad_content(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.magmod"
        path.write_bytes(MAGIC[:3])
        with pytest.raises(CodecError):
            MacroFile.from_file(path)
