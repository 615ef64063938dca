"""Replay a MacroFile against its target: connection check, dry run, or execution."""

import logging
from typing import Callable

import typer

from .client import MagicModbusClient
from .errors import InputValidationError
from .macro import MacroFile
from .normalize import parse_endpoint
from .types import Endpoint

logger = logging.getLogger(__name__)

Prompt = Callable[[str, str], str]
Echo = Callable[[str], None]
ClientFactory = Callable[[Endpoint], MagicModbusClient]

DRY_RUN = "[DRY RUN] "


def typer_prompt(message: str, default: str) -> str:
    """Interactive prompt on the terminal."""
    return typer.prompt(message, default=default)


def confirm_endpoint(endpoint: Endpoint, prompt: Prompt) -> Endpoint:
    """Ask for the target address and port, offering the stored ones as defaults."""
    ip_text = prompt("Confirm Target IP Address", str(endpoint.ip))
    port_text = prompt("Confirm Target Port (1-65535)", str(endpoint.port))
    return parse_endpoint(str(ip_text), str(port_text))


async def run_macro(
    macro: MacroFile,
    *,
    confirm: bool = False,
    check_connection: bool = False,
    dry_run: bool = False,
    prompt: Prompt | None = None,
    echo: Echo | None = None,
    client_factory: ClientFactory | None = None,
) -> Endpoint:
    """
    Replay macro and return the endpoint that was used.

    check_connection: connect, report, disconnect; no commands are sent.
    dry_run: no network at all; print what each command would do, in order.
    otherwise: connect once, send every command in file order, stop at the
    first failure (the error propagates), and always disconnect.

    With confirm, the target endpoint can be overridden through prompt before
    anything else happens.
    """
    if check_connection and dry_run:
        raise InputValidationError(
            (check_connection, dry_run), "check-connection and dry-run cannot be combined"
        )
    say: Echo = echo or typer.echo
    endpoint = macro.endpoint
    if confirm:
        endpoint = confirm_endpoint(endpoint, prompt or typer_prompt)
        logger.debug("Macro target confirmed as %s", endpoint)

    if dry_run:
        say(f"{DRY_RUN}Connecting to {endpoint}...")
        say(f"{DRY_RUN}Connection established. Beginning command-flow...")
        for command in macro.commands:
            say(f"{DRY_RUN} {command.describe()}")
        say(f"{DRY_RUN}Command-flow completed. Disconnecting from client...")
        return endpoint

    factory = client_factory or MagicModbusClient
    client = factory(endpoint)

    if check_connection:
        say(f"Checking connection to {endpoint}...")
        async with client:
            say("Connection successful.")
        return endpoint

    say(f"Connecting to {endpoint}...")
    async with client:
        say("Connection established. Beginning command-flow...")
        for command in macro.commands:
            say(f"  {command.describe()}")
            await client.write(command)
        say("Command-flow completed. Disconnecting from client...")
    return endpoint
