"""Tests for input parsing: booleans, words, addresses, ports and endpoints."""

from ipaddress import IPv4Address, IPv6Address

import pytest

from magic_modbus.errors import InputValidationError
from magic_modbus.normalize import (
    format_value,
    from_signed,
    parse_address,
    parse_assignment,
    parse_bool,
    parse_endpoint,
    parse_port,
    parse_socket_address,
    parse_value,
    parse_word,
    to_signed,
)
from magic_modbus.types import RegisterSpace

# ============================================================================
# Value Parsing Tests
# ============================================================================


class TestParseBool:
    """Test boolean value parsing."""

    def test_true_variants(self) -> None:
        """Test all valid true variants."""
        for val in ["true", "True", "TRUE", "1", "on", "ON", "yes", "YES"]:
            assert parse_bool(val) is True

    def test_false_variants(self) -> None:
        """Test all valid false variants."""
        for val in ["false", "False", "FALSE", "0", "off", "OFF", "no", "NO"]:
            assert parse_bool(val) is False

    def test_whitespace_handling(self) -> None:
        """Test whitespace is trimmed."""
        assert parse_bool("  true  ") is True
        assert parse_bool("\tfalse\n") is False

    def test_invalid_values(self) -> None:
        """Test invalid boolean values raise InputValidationError."""
        with pytest.raises(InputValidationError, match="Invalid boolean value"):
            parse_bool("maybe")
        with pytest.raises(ValueError):
            parse_bool("2")


class TestParseWord:
    """Test 16-bit register value parsing."""

    def test_decimal_unsigned(self) -> None:
        assert parse_word("0") == 0
        assert parse_word("1234") == 1234
        assert parse_word("65535") == 65535

    def test_hexadecimal(self) -> None:
        assert parse_word("0x0") == 0
        assert parse_word("0xFFFF") == 65535
        assert parse_word("0x04d2") == 1234

    def test_signed_returns_wire_word(self) -> None:
        """Signed input is converted to the unsigned word sent to the device."""
        assert parse_word("-1", signed=True) == 0xFFFF
        assert parse_word("-32768", signed=True) == 0x8000
        assert parse_word("32767", signed=True) == 32767

    def test_range_validation(self) -> None:
        with pytest.raises(InputValidationError, match="out of range"):
            parse_word("65536")
        with pytest.raises(InputValidationError, match="out of range"):
            parse_word("-1")
        with pytest.raises(InputValidationError, match="out of range"):
            parse_word("32768", signed=True)

    def test_invalid_values(self) -> None:
        with pytest.raises(InputValidationError):
            parse_word("abc")
        with pytest.raises(InputValidationError):
            parse_word("")


class TestParseValue:
    """Test value parsing in the domain of a register space."""

    def test_bit_spaces_take_booleans(self) -> None:
        assert parse_value(RegisterSpace.COILS, "on") is True
        assert parse_value(RegisterSpace.DISCRETE_INPUTS, "0") is False

    def test_word_spaces_take_integers(self) -> None:
        assert parse_value(RegisterSpace.HOLDING_REGISTERS, "0x10") == 16
        assert parse_value(RegisterSpace.INPUT_REGISTERS, "-2", signed=True) == 0xFFFE


class TestSignedConversion:
    """Test signed/unsigned 16-bit conversion."""

    def test_to_signed(self) -> None:
        assert to_signed(0) == 0
        assert to_signed(32767) == 32767
        assert to_signed(32768) == -32768
        assert to_signed(65535) == -1

    def test_from_signed(self) -> None:
        assert from_signed(0) == 0
        assert from_signed(-1) == 65535
        assert from_signed(-32768) == 32768


class TestFormatValue:
    """Test value formatting."""

    def test_bool_formatting(self) -> None:
        assert format_value(True) == "true"
        assert format_value(False) == "false"

    def test_int_formatting(self) -> None:
        assert format_value(1234) == "1234"
        assert format_value(65535, signed=True) == "-1"


# ============================================================================
# Address and Endpoint Parsing Tests
# ============================================================================


class TestParseAddress:
    """Test zero-based address parsing."""

    def test_decimal_and_hex(self) -> None:
        assert parse_address("0") == 0
        assert parse_address("100") == 100
        assert parse_address("0xFFFE") == 65534

    def test_last_address_is_65534(self) -> None:
        """65535 is outside the address space."""
        assert parse_address("65534") == 65534
        with pytest.raises(InputValidationError, match="out of range"):
            parse_address("65535")

    def test_negative_rejected(self) -> None:
        with pytest.raises(InputValidationError):
            parse_address("-1")


class TestParsePort:
    def test_valid_ports(self) -> None:
        assert parse_port("502") == 502
        assert parse_port(" 1 ") == 1
        assert parse_port(65535) == 65535

    def test_invalid_ports(self) -> None:
        for raw in ["0", "65536", "abc", "", "-5"]:
            with pytest.raises(InputValidationError):
                parse_port(raw)


class TestParseEndpoint:
    """Test endpoint parsing for IPv4 and IPv6."""

    def test_ipv4(self) -> None:
        ep = parse_endpoint("10.0.0.5", 502)
        assert ep.ip == IPv4Address("10.0.0.5")
        assert ep.port == 502
        assert str(ep) == "10.0.0.5:502"

    def test_ipv6_with_brackets(self) -> None:
        ep = parse_endpoint("[fe80::1]", "1502")
        assert ep.ip == IPv6Address("fe80::1")
        assert str(ep) == "[fe80::1]:1502"

    def test_hostnames_rejected(self) -> None:
        """Only IP literals are accepted; macros store raw address bytes."""
        with pytest.raises(InputValidationError, match="Invalid IP address"):
            parse_endpoint("plc.local")

    def test_empty_rejected(self) -> None:
        with pytest.raises(InputValidationError):
            parse_endpoint("  ")


class TestParseSocketAddress:
    def test_host_and_port(self) -> None:
        ep = parse_socket_address("192.168.1.10:5020")
        assert (str(ep.ip), ep.port) == ("192.168.1.10", 5020)

    def test_default_port(self) -> None:
        assert parse_socket_address("192.168.1.10").port == 502
        assert parse_socket_address("192.168.1.10", default_port=1502).port == 1502

    def test_bracketed_ipv6(self) -> None:
        ep = parse_socket_address("[::1]:502")
        assert ep.ip == IPv6Address("::1")
        assert parse_socket_address("[::1]").port == 502

    def test_bare_ipv6(self) -> None:
        ep = parse_socket_address("2001:db8::2")
        assert ep.ip == IPv6Address("2001:db8::2")
        assert ep.port == 502

    def test_bad_port(self) -> None:
        with pytest.raises(InputValidationError):
            parse_socket_address("10.0.0.1:99999")


class TestParseAssignment:
    def test_coil_assignment(self) -> None:
        assert parse_assignment(RegisterSpace.COILS, "5=true") == (5, True)

    def test_register_assignment_hex_address(self) -> None:
        assert parse_assignment(RegisterSpace.HOLDING_REGISTERS, "0x64=1234") == (100, 1234)

    def test_missing_equals(self) -> None:
        with pytest.raises(InputValidationError, match="ADDRESS=VALUE"):
            parse_assignment(RegisterSpace.COILS, "5")
