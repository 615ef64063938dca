#!/usr/bin/env python3
"""Example: connect, read a page of holding registers, stage writes, commit, then save a macro."""

import asyncio
import sys

from magic_modbus import Session
from magic_modbus.errors import MagicModbusError
from magic_modbus.normalize import parse_endpoint
from magic_modbus.types import RegisterSpace


async def next_result(session: Session) -> None:
    await session.dispatch(await asyncio.wait_for(session.inbox.get(), timeout=5.0))


async def main() -> None:
    endpoint = parse_endpoint("192.168.1.10", 502)  # change to your device IP
    session = Session()

    try:
        await session.connect(endpoint)
        session.select_space(RegisterSpace.HOLDING_REGISTERS)

        session.read_page()
        await next_result(session)
        for address, cell in session.current.visible_cells()[:8]:
            print(f"{session.selected.display_address(address)} = {cell.displayed_value}")

        # Stage two writes; nothing is sent until commit
        session.go_to(100)
        session.stage(1234)
        session.select_space(RegisterSpace.COILS)
        session.go_to(5)
        session.toggle()
        for item in session.pending_set():
            print(f"pending: {item}")

        # Freeze the staged writes before committing them
        path = session.save_macro("example", overwrite=True)
        print(f"saved macro to {path}")

        session.commit()
        await next_result(session)
        if session.notifications:
            print(f"Modbus/connection error: {session.notifications[-1]}", file=sys.stderr)
            sys.exit(1)
        print("committed")
    except MagicModbusError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        await session.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
