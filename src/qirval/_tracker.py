"""Uniqueness Tracker: follow every qubit and result index through its lifecycle.

Each element index moves `unallocated -> live -> released` and is never used
outside its live range. For restricted profiles any violation is fatal. For the
full representation, where sizes and offsets may only be known at run time, the
tracker reports what it can verify and logs the rest.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from ._allocation import DEFAULT_INDEX_WIDTH, AllocationRecord, IndexState
from ._catalog import DEFAULT_CATALOG, Role
from ._constants import ConstantEnv
from ._errors import DanglingIndexError, IndexExhaustionError, QirvalError
from ._ir import Call, LocalRef, literal_index
from ._kinds import ElementKind

if TYPE_CHECKING:
    from ._allocation import ArrayAllocation
    from ._catalog import FunctionCatalog
    from ._ir import Function, Instruction, Module
    from ._registry import TypeRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IndexEvent:
    """A lifecycle transition of one element.

    Attributes:
        function: Function in which the transition happens.
        kind: Qubit or result.
        array: SSA name of the allocation, or None for a constant literal.
        offset: Element offset in the allocation (the index itself for literals),
            or None when it is not a compile-time constant.
        state: The state the element moves to.
        position: Position of the instruction within the function, counted from 0.

    """

    function: str
    kind: ElementKind
    array: str | None
    offset: int | None
    state: IndexState
    position: int


@dataclass(frozen=True, slots=True)
class LiveRange:
    """Positions between which an element is live. `end` is None if it is never released."""

    function: str
    kind: ElementKind
    array: str | None
    offset: int
    index: int | None
    start: int
    end: int | None


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A tracking violation collected instead of raised."""

    function: str
    error: str
    message: str

    @classmethod
    def from_error(cls, function: str, error: QirvalError) -> Diagnostic:
        return cls(function=function, error=type(error).__name__, message=str(error))


@dataclass(slots=True)
class TrackingReport:
    events: list[IndexEvent] = field(default_factory=list)
    live_ranges: list[LiveRange] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    unreleased: list[ArrayAllocation] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.diagnostics


def _required_counts(module: Module) -> dict[ElementKind, int]:
    counts: dict[ElementKind, int] = {}
    for kind in ElementKind:
        value = module.entry_attribute(kind.required_count_attribute)
        if value is not None and value.strip().isdigit():
            counts[kind] = int(value)
    return counts


@dataclass(frozen=True, slots=True)
class _TrackingContext:
    registry: TypeRegistry
    catalog: FunctionCatalog
    required: dict[ElementKind, int]


class _FunctionTracker:
    """Tracks the instructions of one function against the shared allocation record."""

    def __init__(
        self,
        function: Function,
        record: AllocationRecord,
        report: TrackingReport,
        context: _TrackingContext,
    ) -> None:
        self.function = function
        self.record = record
        self.report = report
        self.context = context
        self.consts = ConstantEnv()
        self.position = 0
        # Element SSA name -> (allocation, offset) it was extracted from.
        self.elements: dict[str, tuple[ArrayAllocation, int | None]] = {}
        self.open_ranges: dict[tuple[ElementKind, str | None, int], LiveRange] = {}

    @property
    def name(self) -> str:
        return self.function.name

    def _event(self, kind: ElementKind, array: str | None, offset: int | None, state: IndexState) -> None:
        self.report.events.append(IndexEvent(self.name, kind, array, offset, state, self.position))

    def _open_range(self, kind: ElementKind, array: str | None, offset: int, index: int | None) -> None:
        key = (kind, array, offset)
        if key not in self.open_ranges:
            self.open_ranges[key] = LiveRange(self.name, kind, array, offset, index, self.position, None)

    def _close_range(self, kind: ElementKind, array: str | None, offset: int) -> None:
        live_range = self.open_ranges.pop((kind, array, offset), None)
        if live_range is not None:
            self.report.live_ranges.append(replace(live_range, end=self.position))

    def finish(self) -> None:
        self.report.live_ranges.extend(self.open_ranges.values())
        self.open_ranges.clear()

    # ---- runtime calls ---------------------------------------------------

    def _allocate(self, call: Call, kind: ElementKind, count: int | None) -> ArrayAllocation | None:
        if call.result is None:
            return None
        if count is not None and not self.record.can_allocate(kind, count):
            raise IndexExhaustionError(
                self.name,
                str(call),
                kind=str(kind),
                requested=count,
                capacity=self.record.allocators[kind].available,
            )
        if count is None:
            logger.debug("@%s: %%%s has a dynamic size; its offsets cannot be verified", self.name, call.result)
        allocation = self.record.allocate(kind, self.name, call.result, count)
        self._event(kind, call.result, None, IndexState.UNALLOCATED)
        return allocation

    def _lookup(self, call: Call, kind: ElementKind) -> ArrayAllocation:
        operand = call.args[0]
        allocation = None
        if isinstance(operand.value, LocalRef):
            allocation = self.record.lookup(self.name, operand.value.name)
        if allocation is None:
            raise DanglingIndexError(
                self.name,
                str(call),
                kind=str(kind),
                index="*",
                reason=f"is read from {operand}, which is not a known allocation",
            )
        return allocation

    def _extract(self, call: Call, kind: ElementKind) -> None:
        allocation = self._lookup(call, kind)
        offset = self.consts.evaluate_operand(call.args[1])
        if allocation.released:
            raise DanglingIndexError(
                self.name,
                str(call),
                kind=str(kind),
                index="?" if offset is None else offset,
                reason=f"is extracted from %{allocation.name} after it was released",
            )
        if offset is None:
            logger.debug("@%s: dynamic offset into %%%s cannot be verified", self.name, allocation.name)
            self._event(kind, allocation.name, None, IndexState.LIVE)
        else:
            if not allocation.in_range(offset):
                raise DanglingIndexError(
                    self.name,
                    str(call),
                    kind=str(kind),
                    index=offset,
                    reason=f"is outside %{allocation.name} (size {allocation.size})",
                )
            if allocation.state(offset) is IndexState.UNALLOCATED:
                allocation.live.add(offset)
                self._event(kind, allocation.name, offset, IndexState.LIVE)
                self._open_range(kind, allocation.name, offset, allocation.index_of(offset))
        if call.result is not None:
            self.elements[call.result] = (allocation, offset)

    def _release(self, call: Call, kind: ElementKind) -> None:
        allocation = self._lookup(call, kind)
        if allocation.released:
            raise DanglingIndexError(
                self.name,
                str(call),
                kind=str(kind),
                index="*",
                reason=f"of %{allocation.name} is released twice",
            )
        self.record.release(allocation)
        for offset in sorted(allocation.live):
            self._event(kind, allocation.name, offset, allocation.state(offset))
            self._close_range(kind, allocation.name, offset)

    def _runtime(self, call: Call, role: Role, kind: ElementKind) -> None:
        match role:
            case Role.ALLOCATE_ARRAY:
                self._allocate(call, kind, self.consts.evaluate_operand(call.args[0]))
            case Role.ALLOCATE:
                allocation = self._allocate(call, kind, 1)
                if allocation is not None and call.result is not None:
                    allocation.live.add(0)
                    self._event(kind, call.result, 0, IndexState.LIVE)
                    self._open_range(kind, call.result, 0, allocation.index_of(0))
                    self.elements[call.result] = (allocation, 0)
            case Role.GET_ELEMENT:
                self._extract(call, kind)
            case Role.RELEASE_ARRAY | Role.RELEASE:
                self._release(call, kind)
            case _:
                pass

    # ---- operands --------------------------------------------------------

    def _check_uses(self, instruction: Instruction) -> None:
        for name in sorted(instruction.uses()):
            element = self.elements.get(name)
            if element is None:
                continue
            allocation, offset = element
            if allocation.released:
                raise DanglingIndexError(
                    self.name,
                    str(instruction),
                    kind=str(allocation.kind),
                    index="?" if offset is None else offset,
                    reason=f"(%{name}) is used after %{allocation.name} was released",
                )

    def _check_literals(self, call: Call) -> None:
        for arg in call.args:
            kind = self.context.registry.element_kind(arg.type)
            index = literal_index(arg)
            if kind is None or index is None:
                continue
            if not 0 <= index < self.record.capacity:
                raise IndexExhaustionError(
                    self.name,
                    str(call),
                    kind=str(kind),
                    requested=index + 1,
                    capacity=self.record.capacity,
                )
            required = self.context.required.get(kind)
            if required is not None and index >= required:
                raise DanglingIndexError(
                    self.name,
                    str(call),
                    kind=str(kind),
                    index=index,
                    reason=f"is not below {kind.required_count_attribute}={required}",
                )
            if (kind, None, index) not in self.open_ranges:
                self._event(kind, None, index, IndexState.LIVE)
                self._open_range(kind, None, index, index)

    def step(self, instruction: Instruction) -> None:
        self.consts.observe(instruction)
        self._check_uses(instruction)
        if isinstance(instruction, Call):
            spec = self.context.catalog.get(instruction.callee)
            if spec is not None and spec.kind is not None:
                self._runtime(instruction, spec.role, spec.kind)
            self._check_literals(instruction)


def track_module(
    module: Module,
    registry: TypeRegistry,
    *,
    strict: bool,
    index_width: int = DEFAULT_INDEX_WIDTH,
    catalog: FunctionCatalog = DEFAULT_CATALOG,
) -> TrackingReport:
    """Track every qubit and result index of a module through its lifecycle.

    Functions are visited in module order and instructions in textual order; one
    allocation record spans the whole module, so indices released in one function
    can be handed out again in a later one.

    Args:
        module: The module to track (full representation or lowered).
        registry: Result of `check_reserved_types` for the module.
        strict: Raise on the first violation instead of collecting diagnostics.
        index_width: Bit width of the index field of `%Qubit`/`%Result`.
        catalog: Function catalog used to recognize runtime calls.

    Returns:
        The lifecycle events, live ranges, diagnostics and unreleased allocations.

    Raises:
        DanglingIndexError: In strict mode, if an index is used outside its live range.
        IndexExhaustionError: In strict mode, if the index space is too small.

    """
    record = AllocationRecord.open(index_width)
    report = TrackingReport()
    context = _TrackingContext(registry=registry, catalog=catalog, required=_required_counts(module))

    for function in module.functions:
        tracker = _FunctionTracker(function, record, report, context)
        for position, instruction in enumerate(function.instructions()):
            tracker.position = position
            try:
                tracker.step(instruction)
            except (DanglingIndexError, IndexExhaustionError) as error:
                if strict:
                    raise
                logger.warning("%s", error)
                report.diagnostics.append(Diagnostic.from_error(function.name, error))
        tracker.finish()

    report.unreleased = record.close()
    for allocation in report.unreleased:
        logger.debug("@%s: %%%s is never released", allocation.function, allocation.name)
    logger.debug(
        "Tracked %d event(s), %d live range(s), %d diagnostic(s)",
        len(report.events),
        len(report.live_ranges),
        len(report.diagnostics),
    )
    return report
