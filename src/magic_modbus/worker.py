"""ModbusWorker: the single task that owns the live connection and runs requests serially."""

import asyncio
import logging
from typing import Callable

from .client import MagicModbusClient
from .errors import ConnectionLost, ProtocolError
from .messages import (
    CellUpdate,
    ReadCompleted,
    ReadRequest,
    Request,
    WorkerEvent,
    WorkerFailed,
    WriteCompleted,
    WriteRequest,
)
from .types import Endpoint

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Endpoint], MagicModbusClient]

DEFAULT_STOP_GRACE = 0.05


class ModbusWorker:
    """
    Executes ReadRequests and WriteRequests against one connection, one at a time.

    Results go to outbox as WorkerEvents tagged with this worker's generation,
    so the receiver can drop anything produced by a worker it has replaced.

    - ReadRequest: one read per batch, in order, all values in one ReadCompleted.
      A ProtocolError on a batch is reported and the other batches still run.
    - WriteRequest: commands in order, stopping at the first failure. Earlier
      writes are not rolled back; the batch is reported failed as a whole.
    - Any transport failure ends the worker with WorkerFailed(ConnectionLost).
    """

    def __init__(
        self,
        endpoint: Endpoint,
        outbox: "asyncio.Queue[object]",
        generation: int = 0,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.generation = generation
        self._outbox = outbox
        self._client = client_factory(endpoint) if client_factory is not None else MagicModbusClient(endpoint)
        self._requests: asyncio.Queue[Request] = asyncio.Queue()
        self._cancelled = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("worker already started")
        self._task = asyncio.create_task(self._run(), name=f"modbus-worker-{self.generation}")

    def submit(self, request: Request) -> None:
        """Queue a request; it runs after everything queued before it."""
        if self.cancelled or (self._task is not None and self._task.done()):
            raise ConnectionLost(f"Worker for {self.endpoint} is no longer running")
        self._requests.put_nowait(request)

    async def stop(self, grace: float = DEFAULT_STOP_GRACE) -> None:
        """Cancel the worker outright; queued and in-flight requests are dropped."""
        self._cancelled.set()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task}, timeout=grace)
        self._client.close()

    def _emit(self, event: WorkerEvent) -> None:
        self._outbox.put_nowait(event)

    def _unexpected(self, e: Exception) -> ConnectionLost:
        logger.exception("Worker for %s failed unexpectedly", self.endpoint)
        return ConnectionLost(f"Connection Was Lost ({e.__class__.__name__}: {e})", cause=e)

    async def _run(self) -> None:
        try:
            await self._client.connect()
        except ConnectionLost as e:
            logger.warning("Connection to %s failed: %s", self.endpoint, e)
            self._emit(WorkerFailed(self.generation, e))
            self._client.close()
            return
        except Exception as e:
            self._emit(WorkerFailed(self.generation, self._unexpected(e)))
            self._client.close()
            return

        request: Request | None = None
        try:
            while not self._cancelled.is_set():
                request = await self._requests.get()
                if isinstance(request, ReadRequest):
                    await self._handle_read(request)
                else:
                    await self._handle_write(request)
                request = None
        except ConnectionLost as e:
            logger.warning("Connection to %s lost: %s", self.endpoint, e)
            self._emit(WorkerFailed(self.generation, e, request))
        except Exception as e:
            self._emit(WorkerFailed(self.generation, self._unexpected(e), request))
        finally:
            self._client.close()

    async def _handle_read(self, request: ReadRequest) -> None:
        updates: list[CellUpdate] = []
        for batch in request.batches:
            logger.debug("Reading %d %s from %d", batch.count, batch.space.value, batch.start)
            try:
                updates.extend(await self._client.read(batch))
            except ProtocolError as e:
                logger.warning("Read of %s at %d rejected: %s", batch.space.value, batch.start, e)
                self._emit(WorkerFailed(self.generation, e, request))
        self._emit(ReadCompleted(self.generation, tuple(updates)))

    async def _handle_write(self, request: WriteRequest) -> None:
        for command in request.commands:
            logger.debug("%s", command.describe())
            try:
                await self._client.write(command)
            except ProtocolError as e:
                logger.warning("Write batch stopped at %s: %s", command.describe(), e)
                self._emit(WorkerFailed(self.generation, e, request))
                return
        self._emit(WriteCompleted(self.generation, request))
