#!/usr/bin/env python3
"""Command-line interface for magic-modbus macros using Typer."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from . import __version__  # type: ignore
from .client import MagicModbusClient
from .errors import (
    CodecError,
    ConnectionLost,
    FileExistsConflict,
    InputValidationError,
    MacroIOError,
    ProtocolError,
)
from .macro import MacroFile
from .messages import WriteCommand
from .normalize import format_value, parse_assignment, parse_socket_address
from .replay import run_macro
from .types import Endpoint, RegisterSpace

app = typer.Typer(
    name="magmod",
    help="Replay, inspect and build .magmod Modbus TCP macro files.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Shared options and helpers
# ============================================================================

HostOption = Annotated[
    Optional[str],
    typer.Option("--host", "-h", help="Target IP address, optionally with :port or [ipv6]:port", envvar="MAGMOD_HOST"),
]
PortOption = Annotated[
    int,
    typer.Option("--port", "-p", help="Modbus TCP port", envvar="MAGMOD_PORT"),
]
UnitIdOption = Annotated[
    int,
    typer.Option("--unit-id", "-u", help="Modbus unit ID", envvar="MAGMOD_UNIT_ID"),
]
TimeoutOption = Annotated[
    float,
    typer.Option("--timeout", "-t", help="Transport timeout in seconds", envvar="MAGMOD_TIMEOUT"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]
MacroArgument = Annotated[
    Path,
    typer.Argument(help="Path to a .magmod file"),
]


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbose flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def client_factory(unit_id: int, timeout: float):
    """Return a factory building MagicModbusClients with the given settings."""

    def factory(endpoint: Endpoint) -> MagicModbusClient:
        return MagicModbusClient(endpoint, unit_id=unit_id, timeout=timeout)

    return factory


def require_endpoint(host: Optional[str], port: int) -> Endpoint:
    if not host:
        typer.echo("Error: --host is required for this command", err=True)
        raise typer.Exit(2)
    return parse_socket_address(host, default_port=port)


def fail(e: Exception, verbose: bool) -> typer.Exit:
    """Print e and return the Exit carrying its exit code (2 input, 3 device, 4 other)."""
    if isinstance(e, (InputValidationError, CodecError, MacroIOError)):
        typer.echo(f"Error: {e}", err=True)
        return typer.Exit(2)
    if isinstance(e, (ConnectionLost, ProtocolError)):
        typer.echo(f"Error: Connection/Modbus error: {e}", err=True)
        return typer.Exit(3)
    typer.echo(f"Error: Unexpected error: {e}", err=True)
    if verbose:
        import traceback
        traceback.print_exc()
    return typer.Exit(4)


def macro_to_dict(macro: MacroFile) -> dict:
    return {
        "ip": str(macro.endpoint.ip),
        "port": macro.endpoint.port,
        "command_count": macro.command_count,
        "commands": [
            {"space": c.space.value, "address": c.address, "value": c.value}
            for c in macro.commands
        ],
    }


# ============================================================================
# Commands
# ============================================================================

@app.command()
def run(
    macro_path: MacroArgument,
    confirm: Annotated[bool, typer.Option("--confirm", "-c", help="Confirm or change the target before running")] = False,
    check_connection: Annotated[
        bool, typer.Option("--check-connection", help="Only connect and disconnect; send no commands")
    ] = False,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Print the commands without touching the network")] = False,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 3.0,
    verbose: VerboseOption = False,
) -> None:
    """
    Replay a macro file against its stored target.

    Commands are sent in file order over one connection; the run stops at the
    first failing command. --check-connection and --dry-run are exclusive.
    """
    setup_logging(verbose)

    if check_connection and dry_run:
        typer.echo("Error: --check-connection and --dry-run cannot be combined", err=True)
        raise typer.Exit(2)

    try:
        macro = MacroFile.from_file(macro_path)
        asyncio.run(
            run_macro(
                macro,
                confirm=confirm,
                check_connection=check_connection,
                dry_run=dry_run,
                client_factory=client_factory(unit_id, timeout),
            )
        )
    except (typer.Exit, typer.Abort):
        raise
    except Exception as e:
        raise fail(e, verbose)


@app.command()
def show(
    macro_path: MacroArgument,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Show the target endpoint and the commands stored in a macro file.

    Does not require a connection.
    """
    setup_logging(verbose)

    try:
        macro = MacroFile.from_file(macro_path)
    except Exception as e:
        raise fail(e, verbose)

    if json_output:
        typer.echo(json.dumps(macro_to_dict(macro), indent=2))
        return
    typer.echo(f"Target:    {macro.endpoint}")
    typer.echo(f"Commands:  {macro.command_count}")
    for command in macro.commands:
        typer.echo(f"  {command.space.label:<18} {command.space.display_address(command.address)}  "
                   f"{format_value(command.value)}")


@app.command()
def create(
    name: Annotated[str, typer.Argument(help="Macro file name (.magmod is appended when missing)")],
    host: HostOption = None,
    port: PortOption = 502,
    coil: Annotated[
        Optional[list[str]],
        typer.Option("--coil", help="Coil write as ADDRESS=VALUE (e.g. 5=true); repeatable"),
    ] = None,
    register: Annotated[
        Optional[list[str]],
        typer.Option("--register", help="Holding register write as ADDRESS=VALUE (e.g. 0x64=1234); repeatable"),
    ] = None,
    signed: Annotated[
        bool, typer.Option("--signed", help="Accept signed 16-bit register values (-32768 to 32767)")
    ] = False,
    force: Annotated[bool, typer.Option("--force", "-f", help="Overwrite an existing file")] = False,
    verbose: VerboseOption = False,
) -> None:
    """
    Build a macro file from command-line writes.

    Coil writes come first, then register writes, each in the order given.
    Addresses are zero-based.
    """
    setup_logging(verbose)

    try:
        endpoint = require_endpoint(host, port)
        commands: list[WriteCommand] = []
        for raw in coil or []:
            address, value = parse_assignment(RegisterSpace.COILS, raw)
            commands.append(WriteCommand(RegisterSpace.COILS, address, value))
        for raw in register or []:
            address, value = parse_assignment(RegisterSpace.HOLDING_REGISTERS, raw, signed)
            commands.append(WriteCommand(RegisterSpace.HOLDING_REGISTERS, address, value))
        if not commands:
            typer.echo("Error: At least one --coil or --register write is required", err=True)
            raise typer.Exit(2)

        path = MacroFile(endpoint, tuple(commands)).to_file(name, overwrite=force)
        typer.echo(f"OK: Wrote {len(commands)} commands to {path}")
    except (typer.Exit, typer.Abort):
        raise
    except FileExistsConflict as e:
        typer.echo(f"Error: {e} (use --force to overwrite)", err=True)
        raise typer.Exit(2)
    except Exception as e:
        raise fail(e, verbose)


@app.command()
def ping(
    host: HostOption = None,
    port: PortOption = 502,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 3.0,
    verbose: VerboseOption = False,
) -> None:
    """Test connectivity to a Modbus TCP device (connect, then disconnect)."""
    setup_logging(verbose)

    try:
        endpoint = require_endpoint(host, port)
        asyncio.run(
            run_macro(
                MacroFile(endpoint),
                check_connection=True,
                echo=lambda line: logger.debug("%s", line),
                client_factory=client_factory(unit_id, timeout),
            )
        )
        typer.echo(f"OK: Connected to {endpoint}")
    except (typer.Exit, typer.Abort):
        raise
    except Exception as e:
        raise fail(e, verbose)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"magic-modbus {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """magmod - replay and build Modbus TCP macro files."""
    pass


if __name__ == "__main__":
    app()
