"""Explicit allocation state for one compilation unit.

Qubit and result identity is a tagged value (`IndexedValue`: kind + index).
Liveness is tracked in a side table (`AllocationRecord`) that is opened at module
start, passed explicitly to the passes that need it, and closed at module end.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field

from ._ir import TypedValue, index_literal
from ._kinds import ElementKind
from ._str_enum_with_doc import StrEnumWithDoc

DEFAULT_INDEX_WIDTH = 32


def index_capacity(index_width: int) -> int:
    """Number of distinct indices representable in the signed `i<index_width>` field."""
    if index_width < 2:  # noqa: PLR2004
        msg = f"Index width must be at least 2 bits, got {index_width}"
        raise ValueError(msg)
    return 2 ** (index_width - 1)


class IndexState(StrEnumWithDoc):
    """Lifecycle of one element index."""

    UNALLOCATED = "unallocated", "Not yet extracted from a live allocation"
    LIVE = "live", "Extracted after allocation and not yet released"
    RELEASED = "released", "Its allocation was released"


@dataclass(frozen=True, slots=True, order=True)
class IndexedValue:
    """A qubit or result identified by its integer index."""

    kind: ElementKind
    index: int

    def to_operand(self) -> TypedValue:
        """The constant literal `%Qubit {i32 N}` / `%Result {i32 N}`."""
        return index_literal(self.kind.type_name, self.index)

    def __str__(self) -> str:
        return f"{self.kind}[{self.index}]"


@dataclass(slots=True)
class IndexAllocator:
    """Hands out the lowest free indices of one kind; released indices are reused."""

    capacity: int
    high_water: int = 0
    _next: int = 0
    _free: list[int] = field(default_factory=list)

    @property
    def live_count(self) -> int:
        return self._next - len(self._free)

    @property
    def available(self) -> int:
        return self.capacity - self.live_count

    def can_allocate(self, count: int) -> bool:
        return 0 <= count <= self.available

    def allocate(self, count: int) -> tuple[int, ...]:
        if not self.can_allocate(count):
            msg = f"Cannot allocate {count} index(es); {self.available} available"
            raise ValueError(msg)
        indices: list[int] = []
        while len(indices) < count and self._free:
            indices.append(heapq.heappop(self._free))
        while len(indices) < count:
            indices.append(self._next)
            self._next += 1
        self.high_water = max(self.high_water, self._next)
        return tuple(sorted(indices))

    def release(self, indices: tuple[int, ...]) -> None:
        for index in indices:
            heapq.heappush(self._free, index)


@dataclass(slots=True)
class ArrayAllocation:
    """One allocation call: an array of `size` elements (or a single element).

    Attributes:
        kind: Qubit or result.
        function: Function containing the allocation.
        name: SSA name holding the array (or the single element).
        size: Number of elements, or None when the count is not a compile-time constant.
        indices: Element indices in the unit's index space, or None when `size` is None.
        live: Element offsets extracted since allocation.
        released: Whether the allocation has been released.

    """

    kind: ElementKind
    function: str
    name: str
    size: int | None
    indices: tuple[int, ...] | None = None
    live: set[int] = field(default_factory=set)
    released: bool = False

    def state(self, offset: int) -> IndexState:
        if self.released:
            return IndexState.RELEASED
        if offset in self.live:
            return IndexState.LIVE
        return IndexState.UNALLOCATED

    def in_range(self, offset: int) -> bool:
        if offset < 0:
            return False
        return self.size is None or offset < self.size

    def index_of(self, offset: int) -> int | None:
        if self.indices is None or not 0 <= offset < len(self.indices):
            return None
        return self.indices[offset]


@dataclass(slots=True)
class AllocationRecord:
    """Live qubit and result allocations of a compilation unit."""

    index_width: int = DEFAULT_INDEX_WIDTH
    allocators: dict[ElementKind, IndexAllocator] = field(default_factory=dict)
    arrays: dict[tuple[str, str], ArrayAllocation] = field(default_factory=dict)
    history: list[ArrayAllocation] = field(default_factory=list)
    closed: bool = False

    @classmethod
    def open(cls, index_width: int = DEFAULT_INDEX_WIDTH) -> AllocationRecord:
        """Start tracking a new compilation unit."""
        capacity = index_capacity(index_width)
        return cls(
            index_width=index_width,
            allocators={kind: IndexAllocator(capacity=capacity) for kind in ElementKind},
        )

    @property
    def capacity(self) -> int:
        return index_capacity(self.index_width)

    def can_allocate(self, kind: ElementKind, count: int) -> bool:
        return self.allocators[kind].can_allocate(count)

    def allocate(self, kind: ElementKind, function: str, name: str, size: int | None) -> ArrayAllocation:
        """Record an allocation. Constant sizes reserve indices; dynamic sizes do not.

        Raises:
            ValueError: If the record is closed or `size` exceeds the available indices.

        """
        if self.closed:
            msg = "Allocation record is closed"
            raise ValueError(msg)
        indices = self.allocators[kind].allocate(size) if size is not None else None
        allocation = ArrayAllocation(kind=kind, function=function, name=name, size=size, indices=indices)
        self.arrays[function, name] = allocation
        self.history.append(allocation)
        return allocation

    def lookup(self, function: str, name: str) -> ArrayAllocation | None:
        return self.arrays.get((function, name))

    def release(self, allocation: ArrayAllocation) -> None:
        """Release an allocation. Its indices become available to later allocations."""
        allocation.released = True
        if allocation.indices is not None:
            self.allocators[allocation.kind].release(allocation.indices)

    def high_water(self, kind: ElementKind) -> int:
        return self.allocators[kind].high_water

    def close(self) -> list[ArrayAllocation]:
        """End the compilation unit. Returns the allocations that were never released."""
        self.closed = True
        return [a for a in self.history if not a.released]
