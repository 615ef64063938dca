"""Exceptions for magic-modbus: connection, device, macro file and input errors."""

from pathlib import Path


class MagicModbusError(Exception):
    """Base exception for magic-modbus."""

    pass


class ConnectionLost(MagicModbusError):
    """Raised when the transport fails (connect, read/write I/O, disconnect).

    The connection is unusable afterwards and must be re-established by the user.
    """

    def __init__(
        self,
        message: str = "Connection was lost",
        *,
        space: str | None = None,
        address: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.space = space
        self.address = address
        self.cause = cause
        super().__init__(message)


class NotConnectedError(MagicModbusError):
    """Raised when an operation needs a live connection and there is none."""

    def __init__(self, message: str = "Connect to a server first.") -> None:
        super().__init__(message)


class ProtocolError(MagicModbusError):
    """Raised when the device rejects an operation with a Modbus exception response."""

    def __init__(
        self,
        message: str,
        *,
        space: str | None = None,
        address: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.space = space
        self.address = address
        self.cause = cause
        super().__init__(message)


class CodecError(MagicModbusError):
    """Raised when macro file content is malformed, truncated or unrecognized."""

    def __init__(self, message: str, *, offset: int | None = None) -> None:
        self.offset = offset
        super().__init__(message)


class MacroIOError(MagicModbusError):
    """Raised when a macro file cannot be read or written."""

    def __init__(self, message: str, *, path: Path | None = None, cause: BaseException | None = None) -> None:
        self.path = path
        self.cause = cause
        super().__init__(message)


class FileExistsConflict(MacroIOError):
    """Raised when saving a macro would replace an existing file without overwrite."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"File already exists: {path}", path=path)


class InputValidationError(MagicModbusError, ValueError):
    """Raised when a user-supplied address, port, endpoint or value is malformed."""

    def __init__(self, raw: object, message: str | None = None) -> None:
        self.raw = raw
        self._msg = message or f"Invalid input: {raw!r}"
        super().__init__(self._msg)


class InvalidTransition(MagicModbusError):
    """Raised when a trigger is not allowed in the current UI mode."""

    def __init__(self, mode: object, trigger: object) -> None:
        self.mode = mode
        self.trigger = trigger
        super().__init__(f"Trigger {trigger!s} not allowed in mode {mode!s}")
