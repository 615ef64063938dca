"""PendingSet: staged cells across all register spaces, ordered for display and commit."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from .types import RegisterSpace, Value

if TYPE_CHECKING:
    from .address_space import AddressSpace


@dataclass(frozen=True)
class PendingItem:
    """One staged cell: where it lives and the value change it represents."""

    space: RegisterSpace
    address: int
    original_value: Value
    pending_value: Value

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.space.ordinal, self.address)

    @property
    def memory_address(self) -> str:
        return self.space.display_address(self.address)

    @property
    def original_text(self) -> str:
        return f"{int(self.original_value):05}"

    @property
    def pending_text(self) -> str:
        return f"{int(self.pending_value):05}"

    def __str__(self) -> str:
        return f"{self.space.label} {self.memory_address} {self.original_text} -> {self.pending_text}"


def collect_pending(spaces: Iterable["AddressSpace"]) -> list[PendingItem]:
    """Merge each space's pending items into one list ordered by (space ordinal, address)."""
    items: list[PendingItem] = []
    for space in spaces:
        items.extend(space.pending_items())
    return sorted(items, key=lambda item: item.sort_key)
