#!/usr/bin/env python3
"""Example: refresh the coil page every second and take commands from stdin; Ctrl+D to stop.

Usage: python examples/watch.py [HOST[:PORT]]
"""

import asyncio
import sys

from magic_modbus import Session, SessionConfig
from magic_modbus.normalize import parse_socket_address
from magic_modbus.session import Connect, Exit


async def stdin_lines():
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            yield "quit"
            return
        yield line.strip()


async def handle(session: Session, line: str) -> None:
    """Commands: next, prev, down, up, toggle, commit, quit."""
    moves = {"next": "page_down", "prev": "page_up", "down": "move_down", "up": "move_up"}
    if line in moves:
        session.navigate(moves[line])
    elif line == "toggle":
        session.toggle()
    elif line == "commit":
        session.commit()
    elif line == "quit":
        session.post(Exit())
    print(f"{session.connection} cursor={session.current.address} pending={len(session.pending_set())}")


async def main() -> None:
    session = Session(SessionConfig(tick_interval=1.0), input_handler=handle)
    session.tick_refresh = True
    session.page_refresh = True
    target = sys.argv[1] if len(sys.argv) > 1 else "192.168.1.10:502"  # change to your device IP
    session.post(Connect(parse_socket_address(target)))
    print("Watching coils (Ctrl+D or 'quit' to stop)...")
    await session.run(stdin_lines())
    for message in session.notifications:
        print(message, file=sys.stderr)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nStopped.")
