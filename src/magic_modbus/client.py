"""MagicModbusClient: async pymodbus wrapper that classifies every failure."""

import asyncio
import logging
from typing import Any

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException as PymodbusException

from .errors import ConnectionLost, ProtocolError
from .messages import CellUpdate, ReadBatch, WriteCommand
from .types import Endpoint, RegisterSpace, Value

logger = logging.getLogger(__name__)

_READ_FUNCTIONS: dict[RegisterSpace, str] = {
    RegisterSpace.COILS: "read_coils",
    RegisterSpace.DISCRETE_INPUTS: "read_discrete_inputs",
    RegisterSpace.INPUT_REGISTERS: "read_input_registers",
    RegisterSpace.HOLDING_REGISTERS: "read_holding_registers",
}

# Anything the transport can raise while the link is going away.
_TRANSPORT_ERRORS = (PymodbusException, OSError, asyncio.TimeoutError, EOFError)


class MagicModbusClient:
    """
    One Modbus TCP connection to an Endpoint.

    Device exception responses raise ProtocolError and leave the connection
    usable. Transport failures raise ConnectionLost for every register space
    alike; the caller must discard the client afterwards. pymodbus retries and
    automatic reconnects are switched off.
    """

    def __init__(self, endpoint: Endpoint, unit_id: int = 1, timeout: float = 3.0) -> None:
        self._endpoint = endpoint
        self._unit_id = unit_id
        self._timeout = timeout
        self._client: AsyncModbusTcpClient | None = None

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def connected(self) -> bool:
        return self._client is not None and bool(self._client.connected)

    def _get_client(self) -> AsyncModbusTcpClient:
        if self._client is None:
            raise ConnectionLost(f"Not connected to {self._endpoint}")
        return self._client

    async def connect(self) -> None:
        """Establish the TCP connection; raises ConnectionLost on failure."""
        if self._client is not None:
            return
        client = AsyncModbusTcpClient(
            self._endpoint.host,
            port=self._endpoint.port,
            timeout=self._timeout,
            retries=0,
            reconnect_delay=0,
        )
        try:
            ok = await client.connect()
        except _TRANSPORT_ERRORS as e:
            client.close()
            raise ConnectionLost(f"Failed to connect to {self._endpoint}: {e}", cause=e) from e
        if not ok:
            client.close()
            raise ConnectionLost(f"Failed to connect to {self._endpoint}")
        self._client = client
        logger.debug("Connected to %s", self._endpoint)

    def close(self) -> None:
        """Close the TCP connection."""
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning("Error closing Modbus client: %s", e)
            self._client = None
            logger.debug("Disconnected from %s", self._endpoint)

    async def __aenter__(self) -> "MagicModbusClient":
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        self.close()

    def _check_response(self, rr: Any, space: RegisterSpace, address: int) -> None:
        if rr.isError():
            raise ProtocolError(
                f"Modbus Error: {rr}",
                space=space.value,
                address=address,
                cause=getattr(rr, "exception", None),
            )

    def _lost(self, e: BaseException, space: RegisterSpace, address: int) -> ConnectionLost:
        self.close()
        return ConnectionLost(
            f"Connection Was Lost ({e.__class__.__name__}: {e})",
            space=space.value,
            address=address,
            cause=e,
        )

    async def read(self, batch: ReadBatch) -> list[CellUpdate]:
        """Run one protocol read and return one CellUpdate per address, in address order."""
        client = self._get_client()
        space, start, count = batch.space, batch.start, batch.count
        func = getattr(client, _READ_FUNCTIONS[space])
        try:
            rr = await func(start, count=count, device_id=self._unit_id)
        except _TRANSPORT_ERRORS as e:
            raise self._lost(e, space, start) from e
        self._check_response(rr, space, start)

        values: list[Value]
        if space.is_bit:
            bits = getattr(rr, "bits", None)
            if bits is None or len(bits) < count:
                raise ProtocolError("Short bit response", space=space.value, address=start)
            values = [bool(b) for b in bits[:count]]
        else:
            registers = getattr(rr, "registers", None)
            if registers is None or len(registers) < count:
                raise ProtocolError("Short register response", space=space.value, address=start)
            values = [int(r) for r in registers[:count]]
        return [CellUpdate(space, start + i, v) for i, v in enumerate(values)]

    async def write(self, command: WriteCommand) -> None:
        """Write a single coil or holding register."""
        client = self._get_client()
        space, address = command.space, command.address
        try:
            if space is RegisterSpace.COILS:
                rr = await client.write_coil(address, bool(command.value), device_id=self._unit_id)
            else:
                rr = await client.write_register(address, int(command.value), device_id=self._unit_id)
        except _TRANSPORT_ERRORS as e:
            raise self._lost(e, space, address) from e
        self._check_response(rr, space, address)
