"""AddressSpace: sparse cell store for one register space plus viewport cursor and paging."""

import logging

from .errors import InputValidationError
from .pending import PendingItem
from .types import ADDRESS_SPACE_SIZE, LAST_ADDRESS, Cell, RegisterSpace, Value

logger = logging.getLogger(__name__)

DEFAULT_ROWS = 8
DEFAULT_BIT_COLS = 16
DEFAULT_WORD_COLS = 8


class AddressSpace:
    """
    One Modbus memory space (65535 cells) seen through a rows x cols viewport.

    Cells live in a dict keyed by address and are only created when touched;
    anything not in the dict reads as the space's zero value and is Clean.

    The cursor is (page_offset, row, col) and always maps to a valid address:
        address = page_offset * rows * cols + row * cols + col
    """

    def __init__(self, space: RegisterSpace, rows: int = DEFAULT_ROWS, cols: int | None = None) -> None:
        self.space = space
        self._cells: dict[int, Cell] = {}
        if cols is None:
            cols = DEFAULT_BIT_COLS if space.is_bit else DEFAULT_WORD_COLS
        self._check_geometry(rows, cols)
        self.rows = rows
        self.cols = cols
        self.page_offset = 0
        self.row = 0
        self.col = 0

    # ------------------------------------------------------------------
    # Cell store
    # ------------------------------------------------------------------

    def _check_address(self, address: int) -> None:
        if not 0 <= address <= LAST_ADDRESS:
            raise InputValidationError(address, f"Address out of range 0-{LAST_ADDRESS}: {address}")

    def _coerce(self, value: Value) -> Value:
        try:
            return self.space.coerce(value)
        except ValueError as e:
            raise InputValidationError(value, str(e)) from None

    def _touch(self, address: int) -> Cell:
        self._check_address(address)
        cell = self._cells.get(address)
        if cell is None:
            cell = self._cells[address] = Cell.empty(self.space)
        return cell

    def cell(self, address: int) -> Cell:
        """Return a copy of the cell at address (a fresh Clean cell when untouched)."""
        self._check_address(address)
        cell = self._cells.get(address)
        if cell is None:
            return Cell.empty(self.space)
        return Cell(cell.original_value, cell.pending_value)

    def read(self, address: int) -> Value:
        """Displayed value: the staged value if Pending, else the confirmed one."""
        return self.cell(address).displayed_value

    def is_pending(self, address: int) -> bool:
        return self.cell(address).is_pending

    def stage_write(self, address: int, value: Value) -> None:
        """Stage value; the cell is Pending unless value equals the confirmed value."""
        value = self._coerce(value)
        self._touch(address).pending_value = value

    def toggle(self, address: int) -> None:
        """Flip a staged bit. Word spaces are left untouched."""
        if not self.space.is_bit:
            return
        cell = self._touch(address)
        cell.pending_value = not cell.pending_value

    def revert(self, address: int) -> None:
        self._check_address(address)
        cell = self._cells.get(address)
        if cell is not None:
            cell.pending_value = cell.original_value

    def apply(self, address: int, value: Value | None = None) -> None:
        """
        Record a value confirmed by the device.

        Without value: the staged value was written successfully and becomes
        the confirmed one. With value: a read returned value; Clean cells follow
        it, Pending cells keep their staged value and become Clean only when the
        device already holds it.
        """
        cell = self._touch(address)
        if value is None:
            cell.original_value = cell.pending_value
            return
        value = self._coerce(value)
        was_pending = cell.is_pending
        cell.original_value = value
        if not was_pending:
            cell.pending_value = value

    def pending_items(self) -> list[PendingItem]:
        return [
            PendingItem(self.space, address, cell.original_value, cell.pending_value)
            for address, cell in sorted(self._cells.items())
            if cell.is_pending
        ]

    def __len__(self) -> int:
        """Number of touched cells."""
        return len(self._cells)

    # ------------------------------------------------------------------
    # Address <-> cursor arithmetic
    # ------------------------------------------------------------------

    @staticmethod
    def _check_geometry(rows: int, cols: int) -> None:
        if rows < 1 or cols < 1:
            raise InputValidationError((rows, cols), f"Viewport must be at least 1x1, got {rows}x{cols}")

    @property
    def page_size(self) -> int:
        return self.rows * self.cols

    def page_count(self) -> int:
        return (ADDRESS_SPACE_SIZE + self.page_size - 1) // self.page_size

    def cursor_to_address(self, page_offset: int, row: int, col: int) -> int | None:
        """Linear address of a cursor, or None when the cursor is outside the space."""
        if page_offset < 0 or not 0 <= row < self.rows or not 0 <= col < self.cols:
            return None
        address = page_offset * self.page_size + row * self.cols + col
        if address > LAST_ADDRESS:
            return None
        return address

    def address_to_cursor(self, address: int) -> tuple[int, int, int]:
        self._check_address(address)
        page_offset = address // self.page_size
        row = (address // self.cols) % self.rows
        col = address % self.cols
        return page_offset, row, col

    def last_cursor(self) -> tuple[int, int, int]:
        return self.address_to_cursor(LAST_ADDRESS)

    @property
    def cursor(self) -> tuple[int, int, int]:
        return self.page_offset, self.row, self.col

    @property
    def address(self) -> int:
        """Address under the cursor."""
        address = self.cursor_to_address(self.page_offset, self.row, self.col)
        if address is None:
            # Cursor invariants guarantee this never happens.
            raise RuntimeError(f"Cursor {self.cursor} is outside the address space")
        return address

    def _set_cursor(self, page_offset: int, row: int, col: int) -> None:
        self.page_offset, self.row, self.col = page_offset, row, col
        self._clamp()

    def _clamp(self) -> None:
        """Pull an invalid cursor back onto the last valid row, then the last valid cell."""
        if self.cursor_to_address(self.page_offset, self.row, self.col) is not None:
            return
        last_page, last_row, last_col = self.last_cursor()
        logger.debug("Cursor %s invalid for %s, clamping", self.cursor, self.space.value)
        self.page_offset = last_page
        if self.cursor_to_address(last_page, last_row, self.col) is not None:
            self.row = last_row
        else:
            self.row, self.col = last_row, last_col

    def page_bounds(self) -> tuple[int, int]:
        """(first address, cell count) of the current page, truncated at the end of the space."""
        start = self.page_offset * self.page_size
        return start, min(self.page_size, ADDRESS_SPACE_SIZE - start)

    def visible_cells(self) -> list[tuple[int, Cell]]:
        start, count = self.page_bounds()
        return [(address, self.cell(address)) for address in range(start, start + count)]

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def resize(self, rows: int, cols: int) -> None:
        """Change viewport geometry, keeping page/row/col where they still fit."""
        self._check_geometry(rows, cols)
        self.rows, self.cols = rows, cols
        self._set_cursor(
            min(self.page_offset, self.page_count() - 1),
            min(self.row, rows - 1),
            min(self.col, cols - 1),
        )

    def go_to(self, address: int) -> None:
        self._set_cursor(*self.address_to_cursor(address))

    def move_right(self) -> None:
        address = self.address
        self.go_to(0 if address == LAST_ADDRESS else address + 1)

    def move_left(self) -> None:
        address = self.address
        self.go_to(LAST_ADDRESS if address == 0 else address - 1)

    def move_down(self) -> None:
        last_page, last_row, _ = self.last_cursor()
        if self.page_offset == last_page and self.row == last_row:
            self._set_cursor(0, 0, self.col)
        elif self.row < self.rows - 1:
            self._set_cursor(self.page_offset, self.row + 1, self.col)
        else:
            self._set_cursor(self.page_offset + 1, 0, self.col)

    def move_up(self) -> None:
        if self.row > 0:
            self._set_cursor(self.page_offset, self.row - 1, self.col)
        elif self.page_offset > 0:
            self._set_cursor(self.page_offset - 1, self.rows - 1, self.col)
        else:
            self._set_cursor(self.page_count() - 1, self.rows - 1, self.col)

    def page_down(self) -> None:
        next_page = self.page_offset + 1
        if next_page >= self.page_count():
            next_page = 0
        self._set_cursor(next_page, self.row, self.col)

    def page_up(self) -> None:
        previous_page = self.page_offset - 1
        if previous_page < 0:
            previous_page = self.page_count() - 1
        self._set_cursor(previous_page, self.row, self.col)
