"""Session: the control loop that owns the address spaces, the worker and the connection."""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Union

from .address_space import AddressSpace
from .client import MagicModbusClient
from .errors import (
    ConnectionLost,
    FileExistsConflict,
    InputValidationError,
    InvalidTransition,
    MagicModbusError,
    NotConnectedError,
)
from .macro import MacroFile
from .messages import (
    ReadBatch,
    ReadCompleted,
    ReadRequest,
    WorkerFailed,
    WriteCompleted,
    WriteRequest,
)
from .modes import ModeKind, ModeMachine, Trigger
from .normalize import parse_value
from .pending import PendingItem, collect_pending
from .types import DISCONNECTED, ConnectionState, Endpoint, RegisterSpace, Value
from .worker import ModbusWorker

logger = logging.getLogger(__name__)


@dataclass
class SessionConfig:
    """Timing and connection settings for a Session."""

    tick_interval: float = 1.0
    shutdown_grace: float = 0.05
    worker_stop_grace: float = 0.05
    unit_id: int = 1
    timeout: float = 3.0
    notification_limit: int = 100


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class Connect:
    endpoint: Endpoint


@dataclass(frozen=True)
class Disconnect:
    pass


@dataclass(frozen=True)
class Exit:
    pass


@dataclass(frozen=True)
class Input:
    """An event from the attached input source (key press, command line, ...)."""

    payload: Any


Action = Union[Tick, Connect, Disconnect, Exit, Input, ReadCompleted, WriteCompleted, WorkerFailed]
InputHandler = Callable[["Session", Any], Union[Awaitable[None], None]]


class Session:
    """
    Headless control layer for one interactive client.

    All AddressSpace state is mutated here and only here. The worker, the
    periodic timer and the input source talk to the session through inbox;
    run() processes one action at a time and never waits on network I/O.
    Errors are surfaced through notify() rather than raised out of run().
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        client_factory: Callable[[Endpoint], MagicModbusClient] | None = None,
        input_handler: InputHandler | None = None,
    ) -> None:
        self.config = config or SessionConfig()
        self.spaces: dict[RegisterSpace, AddressSpace] = {space: AddressSpace(space) for space in RegisterSpace}
        self.selected = RegisterSpace.COILS
        self.connection: ConnectionState = DISCONNECTED
        self.modes = ModeMachine()
        self.notifications: deque[str] = deque(maxlen=self.config.notification_limit)
        self.page_refresh = False
        self.tick_refresh = False
        self.inbox: asyncio.Queue[Action] = asyncio.Queue()

        self._client_factory = client_factory or self._default_client
        self._input_handler = input_handler
        self._worker: ModbusWorker | None = None
        self._generation = 0
        self._exit = False
        self._timer_task: asyncio.Task[None] | None = None
        self._input_task: asyncio.Task[None] | None = None
        self._input_cancelled = asyncio.Event()

    def _default_client(self, endpoint: Endpoint) -> MagicModbusClient:
        return MagicModbusClient(endpoint, unit_id=self.config.unit_id, timeout=self.config.timeout)

    # ------------------------------------------------------------------
    # Views for the presentation layer
    # ------------------------------------------------------------------

    @property
    def current(self) -> AddressSpace:
        return self.spaces[self.selected]

    @property
    def connected(self) -> bool:
        return self.connection.connected

    def pending_set(self) -> list[PendingItem]:
        return collect_pending(self.spaces.values())

    def notify(self, message: str | MagicModbusError) -> None:
        """Record a user-visible message and raise the error popup."""
        text = str(message)
        logger.warning("%s", text)
        self.notifications.append(text)
        self.modes.fail(text)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, endpoint: Endpoint) -> None:
        """Replace any existing worker with a new one connected to endpoint."""
        await self._drop_worker()
        self._generation += 1
        worker = ModbusWorker(endpoint, self.inbox, self._generation, self._client_factory)
        worker.start()
        self._worker = worker
        self.connection = ConnectionState(endpoint)
        logger.info("Connecting to %s (worker %d)", endpoint, self._generation)

    async def disconnect(self) -> None:
        await self._drop_worker()

    async def _drop_worker(self) -> None:
        worker, self._worker = self._worker, None
        self.connection = DISCONNECTED
        if worker is not None:
            await worker.stop(self.config.worker_stop_grace)

    def _require_worker(self) -> ModbusWorker:
        if self._worker is None or not self.connected:
            raise NotConnectedError()
        return self._worker

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def read_page(self, space: RegisterSpace | None = None) -> ReadRequest:
        """Ask the worker to read every cell on the visible page of space."""
        worker = self._require_worker()
        target = self.spaces[space or self.selected]
        start, count = target.page_bounds()
        request = ReadRequest.of(ReadBatch(target.space, start, count))
        worker.submit(request)
        return request

    def commit(self) -> WriteRequest | None:
        """Send every staged write to the device as one batch."""
        worker = self._require_worker()
        request = WriteRequest.from_pending(self.pending_set())
        if not request.commands:
            return None
        worker.submit(request)
        logger.debug("Committing %d writes", len(request))
        return request

    # ------------------------------------------------------------------
    # Editing at the cursor
    # ------------------------------------------------------------------

    def _require_writable(self) -> AddressSpace:
        space = self.current
        if not space.space.is_writable:
            raise InputValidationError(space.space.value, f"{space.space.label} are read-only")
        return space

    def stage(self, value: Value) -> None:
        space = self._require_writable()
        space.stage_write(space.address, value)

    def stage_text(self, text: str, signed: bool = False) -> None:
        space = self._require_writable()
        space.stage_write(space.address, parse_value(space.space, text, signed))

    def toggle(self) -> None:
        space = self._require_writable()
        space.toggle(space.address)

    def revert(self) -> None:
        self.current.revert(self.current.address)

    def revert_all(self) -> None:
        for item in self.pending_set():
            self.spaces[item.space].revert(item.address)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def select_space(self, space: RegisterSpace) -> None:
        self.selected = space

    def next_space(self) -> None:
        self.selected = self.selected.next()

    def previous_space(self) -> None:
        self.selected = self.selected.previous()

    def navigate(self, move: str) -> None:
        """Run a cursor move by name (move_up, page_down, ...) and refresh a changed page."""
        space = self.current
        if move not in _MOVES:
            raise InputValidationError(move, f"Unknown move: {move!r}")
        page = space.page_offset
        getattr(space, move)()
        if space.page_offset != page:
            self._page_changed()

    def go_to(self, address: int) -> None:
        page = self.current.page_offset
        self.current.go_to(address)
        if self.current.page_offset != page:
            self._page_changed()

    def _page_changed(self) -> None:
        if self.page_refresh and self.connected:
            self.read_page()

    # ------------------------------------------------------------------
    # Macros
    # ------------------------------------------------------------------

    def build_macro(self) -> MacroFile:
        if self.connection.endpoint is None:
            raise NotConnectedError()
        return MacroFile.from_pending(self.connection.endpoint, self.pending_set())

    def save_macro(self, name: str, overwrite: bool = False) -> Path | None:
        """
        Save the staged writes as a macro.

        Drives the save popup: an existing file moves it to the overwrite
        warning and returns None; success moves it to the saved notice.
        """
        macro = self.build_macro()
        if self.modes.mode.kind is not ModeKind.SAVE_MACRO:
            self.modes.fire(Trigger.OPEN_SAVE)
        # Both outcomes must be reachable before anything touches the disk.
        if not (self.modes.can_fire(Trigger.SAVED) and self.modes.can_fire(Trigger.SAVE_CONFLICT)):
            raise InvalidTransition(self.modes.mode, Trigger.SAVED.value)
        try:
            path = macro.to_file(name, overwrite=overwrite)
        except FileExistsConflict as e:
            logger.info("%s", e)
            self.modes.fire(Trigger.SAVE_CONFLICT)
            return None
        self.modes.fire(Trigger.SAVED)
        return path

    # ------------------------------------------------------------------
    # Worker results
    # ------------------------------------------------------------------

    def _is_stale(self, generation: int) -> bool:
        if generation != self._generation or self._worker is None:
            logger.debug("Dropping result from replaced worker %d", generation)
            return True
        return False

    def _on_read(self, event: ReadCompleted) -> None:
        for update in event.updates:
            self.spaces[update.space].apply(update.address, update.value)

    def _on_write(self, event: WriteCompleted) -> None:
        for command in event.request.commands:
            space = self.spaces[command.space]
            if space.cell(command.address).pending_value == command.value:
                space.apply(command.address)
            else:
                # Restaged while the batch was in flight; the device holds the committed value.
                space.apply(command.address, command.value)

    async def _on_failure(self, event: WorkerFailed) -> None:
        if isinstance(event.error, ConnectionLost):
            await self._drop_worker()
        self.notify(event.error)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def post(self, action: Action) -> None:
        self.inbox.put_nowait(action)

    async def dispatch(self, action: Action) -> None:
        """Handle one inbox action; taxonomy errors become notifications."""
        try:
            if isinstance(action, Tick):
                if self.tick_refresh and self.connected:
                    self.read_page()
            elif isinstance(action, Connect):
                await self.connect(action.endpoint)
            elif isinstance(action, Disconnect):
                await self.disconnect()
            elif isinstance(action, Exit):
                self._exit = True
            elif isinstance(action, Input):
                if self._input_handler is not None:
                    result = self._input_handler(self, action.payload)
                    if result is not None:
                        await result
            elif isinstance(action, ReadCompleted):
                if not self._is_stale(action.generation):
                    self._on_read(action)
            elif isinstance(action, WriteCompleted):
                if not self._is_stale(action.generation):
                    self._on_write(action)
            elif isinstance(action, WorkerFailed):
                if not self._is_stale(action.generation):
                    await self._on_failure(action)
            else:
                logger.warning("Unknown action %r", action)
        except MagicModbusError as e:
            self.notify(e)

    def attach_input(self, source: AsyncIterator[Any]) -> None:
        """Forward every item of source into the inbox as an Input action."""
        if self._input_task is not None:
            raise RuntimeError("an input source is already attached")
        self._input_cancelled.clear()
        self._input_task = asyncio.create_task(self._pump_input(source), name="session-input")

    async def _pump_input(self, source: AsyncIterator[Any]) -> None:
        async for item in source:
            if self._input_cancelled.is_set():
                break
            self.post(Input(item))

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.tick_interval)
            self.post(Tick())

    async def run(self, inputs: AsyncIterator[Any] | None = None) -> None:
        """Process inbox actions until Exit, then shut down background tasks."""
        self._exit = False
        self._timer_task = asyncio.create_task(self._tick_loop(), name="session-timer")
        if inputs is not None:
            self.attach_input(inputs)
        try:
            while not self._exit:
                action = await self.inbox.get()
                await self.dispatch(action)
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Signal the input task, give it a short grace period, then cancel it."""
        self._input_cancelled.set()
        input_task, self._input_task = self._input_task, None
        if input_task is not None:
            await asyncio.wait({input_task}, timeout=self.config.shutdown_grace)
            if not input_task.done():
                logger.debug("Input task ignored cancellation signal, cancelling")
                input_task.cancel()
            await asyncio.gather(input_task, return_exceptions=True)
        timer_task, self._timer_task = self._timer_task, None
        if timer_task is not None:
            timer_task.cancel()
            await asyncio.gather(timer_task, return_exceptions=True)
        await self._drop_worker()


_MOVES = frozenset({"move_up", "move_down", "move_left", "move_right", "page_up", "page_down"})
