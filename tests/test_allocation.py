"""Tests for the allocation record."""

import pytest

from qirval import AllocationRecord, ElementKind, IndexedValue, IndexState
from qirval._allocation import index_capacity


class TestIndexCapacity:
    """Tests for index_capacity."""

    @pytest.mark.parametrize(("width", "capacity"), [(2, 2), (4, 8), (32, 2**31)])
    def test_signed_capacity(self, width: int, capacity: int) -> None:
        """The sign bit is not part of the index space."""
        assert index_capacity(width) == capacity

    def test_rejects_width_one(self) -> None:
        """A one-bit field cannot hold a non-negative index."""
        with pytest.raises(ValueError, match="at least 2 bits"):
            index_capacity(1)


class TestAllocationRecord:
    """Tests for AllocationRecord."""

    def test_lowest_free_indices_are_reused(self) -> None:
        """Released indices are handed out again, lowest first."""
        record = AllocationRecord.open()
        a = record.allocate(ElementKind.QUBIT, "main", "a", 3)
        b = record.allocate(ElementKind.QUBIT, "main", "b", 2)
        record.release(a)

        c = record.allocate(ElementKind.QUBIT, "main", "c", 4)

        assert b.indices == (3, 4)
        assert c.indices == (0, 1, 2, 5)
        assert record.high_water(ElementKind.QUBIT) == 6

    def test_kinds_are_independent(self) -> None:
        """Qubits and results have separate index spaces."""
        record = AllocationRecord.open()
        record.allocate(ElementKind.QUBIT, "main", "q", 2)

        r = record.allocate(ElementKind.RESULT, "main", "r", 1)

        assert r.indices == (0,)
        assert record.high_water(ElementKind.RESULT) == 1

    def test_capacity(self) -> None:
        """Allocation fails once the index space is used up."""
        record = AllocationRecord.open(index_width=3)

        assert record.can_allocate(ElementKind.QUBIT, 4)
        assert not record.can_allocate(ElementKind.QUBIT, 5)
        with pytest.raises(ValueError, match="4 available"):
            record.allocate(ElementKind.QUBIT, "main", "a", 5)

    def test_dynamic_size_reserves_nothing(self) -> None:
        """A dynamically sized allocation accepts any non-negative offset."""
        record = AllocationRecord.open()
        allocation = record.allocate(ElementKind.QUBIT, "main", "qs", None)

        assert allocation.indices is None
        assert allocation.in_range(1000)
        assert not allocation.in_range(-1)
        assert allocation.index_of(0) is None
        assert record.high_water(ElementKind.QUBIT) == 0

    def test_element_states(self) -> None:
        """Offsets move from unallocated to live to released."""
        record = AllocationRecord.open()
        allocation = record.allocate(ElementKind.QUBIT, "main", "qs", 2)
        allocation.live.add(1)

        assert allocation.state(0) is IndexState.UNALLOCATED
        assert allocation.state(1) is IndexState.LIVE
        record.release(allocation)
        assert allocation.state(1) is IndexState.RELEASED

    def test_close_returns_unreleased(self) -> None:
        """Closing lists what was never released and stops further allocation."""
        record = AllocationRecord.open()
        a = record.allocate(ElementKind.QUBIT, "main", "a", 1)
        b = record.allocate(ElementKind.RESULT, "main", "b", 1)
        record.release(a)

        assert record.close() == [b]
        with pytest.raises(ValueError, match="closed"):
            record.allocate(ElementKind.QUBIT, "main", "c", 1)

    def test_lookup(self) -> None:
        """Allocations are found by function and SSA name."""
        record = AllocationRecord.open()
        allocation = record.allocate(ElementKind.QUBIT, "main", "a", 1)

        assert record.lookup("main", "a") is allocation
        assert record.lookup("other", "a") is None


class TestIndexedValue:
    """Tests for IndexedValue."""

    def test_operand(self) -> None:
        """An indexed value becomes a literal operand."""
        value = IndexedValue(ElementKind.RESULT, 3)

        assert str(value.to_operand()) == "%Result {i32 3}"
        assert str(value) == "result[3]"
