"""Profile-Aware Lowering: rewrite dynamic registers into constant qubit and result literals.

For restricted profiles every allocation, extraction and release whose operands
fold to compile-time constants is removed; the extracted values become inline
literals such as `%Qubit {i32 0}`. The inverse, `expand_module`, turns a
literal-only module back into the full representation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from ._allocation import DEFAULT_INDEX_WIDTH, AllocationRecord, IndexedValue
from ._catalog import DEFAULT_CATALOG, QIS_PREFIX, Role, surface_of
from ._constants import ConstantEnv
from ._errors import DanglingIndexError, IndexExhaustionError, NonStaticIndexError
from ._ir import (
    I64,
    VOID,
    Block,
    Call,
    FunctionDecl,
    IntConst,
    LocalRef,
    NamedType,
    Param,
    Ret,
    TypeDef,
    TypedValue,
    literal_index,
)
from ._kinds import ElementKind, Profile
from ._registry import RESERVED_LAYOUTS

if TYPE_CHECKING:
    from ._allocation import ArrayAllocation
    from ._catalog import FunctionCatalog, FunctionSpec
    from ._ir import Function, Instruction, Module, Value
    from ._registry import TypeRegistry

logger = logging.getLogger(__name__)

PROFILE_ATTRIBUTE = "qir_profiles"
MZ_NAME = f"{QIS_PREFIX}mz__body"
EXPANSION_PREFIX = "__qirval_"

# Runtime roles that only exist in the full representation.
DYNAMIC_ROLES = frozenset({Role.ALLOCATE_ARRAY, Role.GET_ELEMENT, Role.RELEASE_ARRAY, Role.ALLOCATE, Role.RELEASE})


@dataclass(frozen=True, slots=True)
class LoweringResult:
    """Output of `lower_module`.

    Attributes:
        module: The lowered module (the input module itself for the full profile).
        profile: The target profile.
        qubit_count: Number of distinct qubit indices the lowered module needs.
        result_count: Number of distinct result indices the lowered module needs.
        index_map: For every rewritten SSA value, `(function, name) -> IndexedValue`.

    """

    module: Module
    profile: Profile
    qubit_count: int = 0
    result_count: int = 0
    index_map: dict[tuple[str, str], IndexedValue] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProfileSummary:
    """Literal qubit and result indices used by a module that conforms to a restricted profile."""

    qubits: frozenset[int]
    results: frozenset[int]


@dataclass(frozen=True, slots=True)
class TraceEntry:
    """One quantum operation or output-recording call, with the indices it touches."""

    callee: str
    qubits: tuple[int, ...]
    results: tuple[int, ...]


def declared_profile(module: Module) -> Profile | None:
    """The profile named by the `qir_profiles` entry-point attribute, if any."""
    value = module.entry_attribute(PROFILE_ATTRIBUTE)
    if value is None:
        return None
    return Profile.from_attribute(value)


def _spec_for(instruction: Instruction, catalog: FunctionCatalog) -> FunctionSpec | None:
    if isinstance(instruction, Call):
        return catalog.get(instruction.callee)
    return None


def _array_type_names() -> set[str]:
    return {kind.array_type_name for kind in ElementKind}


class _FunctionLowering:
    """Lowers the instructions of one function into literal form."""

    def __init__(
        self,
        function: Function,
        record: AllocationRecord,
        registry: TypeRegistry,
        catalog: FunctionCatalog,
    ) -> None:
        self.function = function
        self.record = record
        self.registry = registry
        self.catalog = catalog
        self.consts = ConstantEnv()
        self.substitutions: dict[str, Value] = {}
        self.index_map: dict[tuple[str, str], IndexedValue] = {}
        self.arrays: set[str] = set()
        self.elements: dict[str, tuple[ArrayAllocation, int]] = {}
        self.emitted_mz = False

    @property
    def name(self) -> str:
        return self.function.name

    def _constant(self, call: Call, position: int) -> int:
        operand = call.args[position]
        value = self.consts.evaluate_operand(operand)
        if value is None:
            raise NonStaticIndexError(self.name, str(call), operand=str(operand))
        return value

    def _bind(self, name: str, value: IndexedValue) -> None:
        self.substitutions[name] = value.to_operand().value
        self.index_map[self.name, name] = value
        logger.debug("  %%%s -> %s", name, value)

    def _allocate(self, call: Call, kind: ElementKind, count: int, name: str) -> ArrayAllocation:
        if not self.record.can_allocate(kind, count):
            raise IndexExhaustionError(
                self.name,
                str(call),
                kind=str(kind),
                requested=count,
                capacity=self.record.allocators[kind].available,
            )
        return self.record.allocate(kind, self.name, name, count)

    def _allocate_element(self, call: Call, kind: ElementKind, name: str) -> IndexedValue:
        allocation = self._allocate(call, kind, 1, name)
        index = allocation.index_of(0)
        if index is None:
            msg = f"Allocation %{name} in '@{self.name}' has no index for its single element"
            raise RuntimeError(msg)
        allocation.live.add(0)
        self.elements[name] = (allocation, index)
        return IndexedValue(kind, index)

    def _lookup(self, call: Call, kind: ElementKind, offset: int | str) -> ArrayAllocation:
        operand = call.args[0]
        allocation = None
        if isinstance(operand.value, LocalRef):
            allocation = self.record.lookup(self.name, operand.value.name)
        if allocation is None:
            raise NonStaticIndexError(
                self.name,
                str(call),
                operand=str(operand),
                reason=f"{kind} {operand} does not come from a constant-size allocation in this function",
            )
        if allocation.released:
            raise DanglingIndexError(
                self.name,
                str(call),
                kind=str(kind),
                index=offset,
                reason=f"belongs to %{allocation.name}, which was already released",
            )
        return allocation

    def _lower_runtime(self, call: Call, spec: FunctionSpec) -> None:
        kind = spec.kind
        if kind is None:
            msg = f"Catalog entry '@{spec.name}' has role '{spec.role}' but no element kind"
            raise ValueError(msg)
        match spec.role:
            case Role.ALLOCATE_ARRAY if call.result is not None:
                self._allocate(call, kind, self._constant(call, 0), call.result)
                self.arrays.add(call.result)
            case Role.ALLOCATE if call.result is not None:
                self._bind(call.result, self._allocate_element(call, kind, call.result))
            case Role.GET_ELEMENT:
                offset = self._constant(call, 1)
                allocation = self._lookup(call, kind, offset)
                index = allocation.index_of(offset)
                if index is None:
                    raise DanglingIndexError(
                        self.name,
                        str(call),
                        kind=str(kind),
                        index=offset,
                        reason=f"is outside %{allocation.name} (size {allocation.size})",
                    )
                allocation.live.add(offset)
                if call.result is not None:
                    self.elements[call.result] = (allocation, index)
                    self._bind(call.result, IndexedValue(kind, index))
            case Role.RELEASE_ARRAY | Role.RELEASE:
                self.record.release(self._lookup(call, kind, "*"))
            case _:
                pass

    def _lower_measure(self, call: Call) -> Call:
        """Rewrite `%r = call %Result @m(%Qubit q)` into `mz(q, %Result {i32 N})`."""
        qubit_operand = call.substitute(self.substitutions).args[0]
        value = self._allocate_element(call, ElementKind.RESULT, call.result or f"{EXPANSION_PREFIX}discarded")
        if call.result is not None:
            self._bind(call.result, value)
        self.emitted_mz = True
        return Call(callee=MZ_NAME, return_type=VOID, args=(qubit_operand, value.to_operand()))

    def _check_uses(self, instruction: Instruction) -> None:
        for name in sorted(instruction.uses()):
            element = self.elements.get(name)
            if element is None:
                continue
            allocation, index = element
            if allocation.released:
                raise DanglingIndexError(
                    self.name,
                    str(instruction),
                    kind=str(allocation.kind),
                    index=index,
                    reason=f"(%{name}) is used after %{allocation.name} was released",
                )

    def _check_escape(self, instruction: Instruction) -> None:
        escaping = instruction.uses() & self.arrays
        if escaping:
            name = sorted(escaping)[0]
            raise NonStaticIndexError(
                self.name,
                str(instruction),
                operand=f"%{name}",
                reason=f"array %{name} escapes into an instruction that cannot be lowered",
            )
        if instruction.types() & _array_type_names():
            raise NonStaticIndexError(
                self.name,
                str(instruction),
                operand=str(instruction),
                reason="array types are not allowed in a restricted profile",
            )

    def lower(self) -> Function:
        logger.debug("Lowering @%s", self.name)
        for param in self.function.decl.params:
            if self.registry.array_kind(param.type) is not None:
                raise NonStaticIndexError(
                    self.name,
                    self.function.decl.header("define"),
                    operand=str(param),
                    reason="array parameters cannot be lowered to a restricted profile",
                )
        blocks: list[Block] = []
        for block in self.function.blocks:
            instructions: list[Instruction] = []
            for instruction in block.instructions:
                self._check_uses(instruction)
                self.consts.observe(instruction)
                spec = _spec_for(instruction, self.catalog)
                if spec is not None and isinstance(instruction, Call):
                    if spec.role in DYNAMIC_ROLES:
                        self._lower_runtime(instruction, spec)
                        continue
                    if spec.role is Role.MEASURE:
                        instructions.append(self._lower_measure(instruction))
                        continue
                self._check_escape(instruction)
                instructions.append(instruction.substitute(self.substitutions))
            blocks.append(Block(label=block.label, instructions=tuple(instructions)))
        return replace(self.function, blocks=tuple(_drop_dead_arithmetic(blocks, self.consts)))


def _drop_dead_arithmetic(blocks: list[Block], consts: ConstantEnv) -> list[Block]:
    """Remove folded integer definitions that nothing reads any more."""
    while True:
        used = {name for block in blocks for instruction in block.instructions for name in instruction.uses()}
        dead = {
            instruction.result_name
            for block in blocks
            for instruction in block.instructions
            if instruction.result_name in consts.values and instruction.result_name not in used
        }
        if not dead:
            return blocks
        blocks = [
            replace(block, instructions=tuple(i for i in block.instructions if i.result_name not in dead))
            for block in blocks
        ]


def _uses_dynamic_registers(module: Module, catalog: FunctionCatalog) -> Call | None:
    for function in module.functions:
        for instruction in function.instructions():
            spec = _spec_for(instruction, catalog)
            if spec is not None and spec.role in DYNAMIC_ROLES and isinstance(instruction, Call):
                return instruction
    return None


def _finalize_module(
    module: Module,
    functions: list[Function],
    catalog: FunctionCatalog,
    *,
    emitted_mz: bool,
) -> Module:
    called = {i.callee for f in functions for i in f.instructions() if isinstance(i, Call)}

    def _keep(decl: FunctionDecl) -> bool:
        spec = catalog.get(decl.name)
        if spec is None or decl.name in called:
            return True
        return spec.role not in DYNAMIC_ROLES and spec.role is not Role.MEASURE

    declarations = [d for d in module.declarations if _keep(d)]
    if emitted_mz and module.get_declaration(MZ_NAME) is None:
        params = (Param(type=NamedType(ElementKind.QUBIT.type_name)), Param(type=NamedType(ElementKind.RESULT.type_name)))
        declarations.append(FunctionDecl(name=MZ_NAME, return_type=VOID, params=params))

    type_defs = [t for t in module.type_defs if t.name not in _array_type_names()]
    if emitted_mz and module.get_type_def(ElementKind.RESULT.type_name) is None:
        type_defs.append(TypeDef(name=ElementKind.RESULT.type_name, body=RESERVED_LAYOUTS[ElementKind.RESULT.type_name]))

    return replace(
        module,
        type_defs=tuple(type_defs),
        functions=tuple(functions),
        declarations=tuple(declarations),
    )


def _with_entry_attributes(module: Module, values: dict[str, str]) -> Module:
    entry_groups = {ref for f in module.entry_points() for ref in f.attr_refs}
    if not entry_groups:
        logger.debug("No entry point attributes found; required index counts are not recorded")
        return module
    groups = tuple(g.with_values(values) if g.id in entry_groups else g for g in module.attribute_groups)
    return replace(module, attribute_groups=groups)


def lower_module(
    module: Module,
    registry: TypeRegistry,
    profile: Profile,
    *,
    catalog: FunctionCatalog = DEFAULT_CATALOG,
    index_width: int = DEFAULT_INDEX_WIDTH,
) -> LoweringResult:
    """Lower a full-representation module to `profile`.

    Args:
        module: A module that passed type and signature validation.
        registry: Result of `check_reserved_types` for the module.
        profile: Target profile. `Profile.FULL` returns the module unchanged
            unless it declares a restricted profile it does not satisfy.
        catalog: Function catalog used to recognize runtime calls.
        index_width: Bit width of the index field of `%Qubit`/`%Result`.

    Returns:
        The lowered module together with the number of indices it needs.

    Raises:
        NonStaticIndexError: If an allocation count or extraction index is not a
            compile-time constant, an array value escapes, or the module declares
            a restricted profile but still allocates registers, whatever the target.
        DanglingIndexError: If an extraction is out of range or follows the release,
            or an extracted element is used after its allocation was released.
        IndexExhaustionError: If the index space is too small.

    """
    claimed = declared_profile(module)
    if claimed is not None and claimed.is_restricted:
        offender = _uses_dynamic_registers(module, catalog)
        if offender is not None:
            raise NonStaticIndexError(
                "<module>",
                str(offender),
                operand=f"@{offender.callee}",
                reason=f"module declares the {claimed} profile, which forbids dynamic registers",
            )

    if not profile.is_restricted:
        return LoweringResult(module=module, profile=profile)

    record = AllocationRecord.open(index_width)
    functions: list[Function] = []
    index_map: dict[tuple[str, str], IndexedValue] = {}
    emitted_mz = False
    for function in module.functions:
        lowering = _FunctionLowering(function, record, registry, catalog)
        functions.append(lowering.lower())
        index_map.update(lowering.index_map)
        emitted_mz = emitted_mz or lowering.emitted_mz
    unreleased = record.close()
    if unreleased:
        logger.debug("%d allocation(s) were never released", len(unreleased))

    lowered = _finalize_module(module, functions, catalog, emitted_mz=emitted_mz)
    summary = check_profile(lowered, registry, profile, catalog=catalog)
    # Literals already present in the input count towards the totals as well.
    qubit_count = max(record.high_water(ElementKind.QUBIT), max(summary.qubits, default=-1) + 1)
    result_count = max(record.high_water(ElementKind.RESULT), max(summary.results, default=-1) + 1)
    lowered = _with_entry_attributes(
        lowered,
        {
            PROFILE_ATTRIBUTE: profile.attribute_value,
            ElementKind.QUBIT.required_count_attribute: str(qubit_count),
            ElementKind.RESULT.required_count_attribute: str(result_count),
        },
    )

    logger.debug("Lowered to %s: %d qubit(s), %d result(s)", profile, qubit_count, result_count)
    return LoweringResult(
        module=lowered,
        profile=profile,
        qubit_count=qubit_count,
        result_count=result_count,
        index_map=index_map,
    )


def check_profile(  # noqa: C901
    module: Module,
    registry: TypeRegistry,
    profile: Profile,
    *,
    catalog: FunctionCatalog = DEFAULT_CATALOG,
) -> ProfileSummary:
    """Confirm that a module fits a restricted profile.

    No `%QubitArray`/`%ResultArray` type may be defined or used, no allocation,
    extraction or release call may remain, and every qubit or result operand of a
    runtime or instruction-set call must be a constant literal.

    Returns:
        The literal indices the module uses.

    Raises:
        NonStaticIndexError: Naming the first construct that violates the profile.

    """
    qubits: set[int] = set()
    results: set[int] = set()
    if not profile.is_restricted:
        return ProfileSummary(frozenset(), frozenset())

    for type_def in module.type_defs:
        if type_def.name in _array_type_names():
            raise NonStaticIndexError(
                "<module>",
                str(type_def),
                operand=f"%{type_def.name}",
                reason=f"array types are not allowed in the {profile} profile",
            )
    for decl in module.headers():
        if registry.array_kind(decl.return_type) is not None or any(
            registry.array_kind(p.type) is not None for p in decl.params
        ):
            raise NonStaticIndexError(
                decl.name,
                decl.header("declare"),
                operand=decl.name,
                reason=f"array types are not allowed in the {profile} profile",
            )

    for function in module.functions:
        for instruction in function.instructions():
            if instruction.types() & _array_type_names():
                raise NonStaticIndexError(
                    function.name,
                    str(instruction),
                    operand=str(instruction),
                    reason=f"array types are not allowed in the {profile} profile",
                )
            if not isinstance(instruction, Call) or surface_of(instruction.callee) is None:
                continue
            spec = catalog.get(instruction.callee)
            if spec is not None and (spec.role in DYNAMIC_ROLES or spec.role is Role.MEASURE):
                raise NonStaticIndexError(
                    function.name,
                    str(instruction),
                    operand=f"@{instruction.callee}",
                    reason=f"@{instruction.callee} is not available in the {profile} profile",
                )
            for arg in instruction.args:
                kind = registry.element_kind(arg.type)
                if kind is None:
                    continue
                index = literal_index(arg)
                if index is None:
                    raise NonStaticIndexError(function.name, str(instruction), operand=str(arg))
                (qubits if kind is ElementKind.QUBIT else results).add(index)

    return ProfileSummary(frozenset(qubits), frozenset(results))


def gate_trace(
    module: Module,
    registry: TypeRegistry,
    *,
    catalog: FunctionCatalog = DEFAULT_CATALOG,
) -> list[TraceEntry]:
    """List quantum operations and output recording calls in program order.

    Modules in the full representation are lowered to the base profile first so
    that every operand is a literal index.
    """
    if _uses_dynamic_registers(module, catalog) is not None:
        module = lower_module(module, registry, Profile.BASE, catalog=catalog).module

    trace: list[TraceEntry] = []
    for function in module.functions:
        for instruction in function.instructions():
            if not isinstance(instruction, Call) or surface_of(instruction.callee) is None:
                continue
            spec = catalog.get(instruction.callee)
            if spec is not None and spec.role not in {Role.OPERATION, Role.RECORD}:
                continue
            qubits: list[int] = []
            results: list[int] = []
            for arg in instruction.args:
                kind = registry.element_kind(arg.type)
                index = literal_index(arg)
                if kind is None or index is None:
                    continue
                (qubits if kind is ElementKind.QUBIT else results).append(index)
            trace.append(TraceEntry(callee=instruction.callee, qubits=tuple(qubits), results=tuple(results)))
    return trace


# =============================================================================
# Expansion (base profile -> full representation)
# =============================================================================


def _element_name(kind: ElementKind, index: int) -> str:
    return f"{EXPANSION_PREFIX}{kind.value[0]}{index}"


def _array_name(kind: ElementKind) -> str:
    return f"{EXPANSION_PREFIX}{kind.value}s"


def _used_literals(function: Function, registry: TypeRegistry) -> dict[ElementKind, set[int]]:
    used: dict[ElementKind, set[int]] = {kind: set() for kind in ElementKind}
    for instruction in function.instructions():
        if not isinstance(instruction, Call):
            continue
        for arg in instruction.args:
            kind = registry.element_kind(arg.type)
            index = literal_index(arg)
            if kind is not None and index is not None:
                used[kind].add(index)
    return used


def _expand_function(function: Function, registry: TypeRegistry, catalog: FunctionCatalog) -> Function:
    used = _used_literals(function, registry)
    if not any(used.values()):
        return function

    prologue: list[Instruction] = []
    epilogue: list[Instruction] = []
    for kind in ElementKind:
        if not used[kind]:
            continue
        allocate = catalog.find(Role.ALLOCATE_ARRAY, kind)
        get = catalog.find(Role.GET_ELEMENT, kind)
        release = catalog.find(Role.RELEASE_ARRAY, kind)
        array_type = NamedType(kind.array_type_name)
        array = TypedValue(type=array_type, value=LocalRef(_array_name(kind)))
        prologue.append(
            Call(
                callee=allocate.name,
                return_type=array_type,
                args=(TypedValue(type=I64, value=IntConst(64, max(used[kind]) + 1)),),
                result=_array_name(kind),
            ),
        )
        prologue.extend(
            Call(
                callee=get.name,
                return_type=NamedType(kind.type_name),
                args=(array, TypedValue(type=I64, value=IntConst(64, index))),
                result=_element_name(kind, index),
            )
            for index in sorted(used[kind])
        )
        epilogue.append(Call(callee=release.name, return_type=VOID, args=(array,)))

    def _rewrite(instruction: Instruction) -> Instruction:
        if not isinstance(instruction, Call):
            return instruction
        args: list[TypedValue] = []
        for arg in instruction.args:
            kind = registry.element_kind(arg.type)
            index = literal_index(arg)
            if kind is not None and index is not None:
                arg = replace(arg, value=LocalRef(_element_name(kind, index)))  # noqa: PLW2901
            args.append(arg)
        return replace(instruction, args=tuple(args))

    blocks: list[Block] = []
    for i, block in enumerate(function.blocks):
        instructions: list[Instruction] = list(prologue) if i == 0 else []
        for instruction in block.instructions:
            if isinstance(instruction, Ret):
                instructions.extend(epilogue)
            instructions.append(_rewrite(instruction))
        blocks.append(Block(label=block.label, instructions=tuple(instructions)))
    return replace(function, blocks=tuple(blocks))


def expand_module(
    module: Module,
    registry: TypeRegistry,
    *,
    catalog: FunctionCatalog = DEFAULT_CATALOG,
) -> Module:
    """Rewrite a literal-only (base profile) module into the full representation.

    Each function that uses literals gets one array allocation per kind at its
    start, an extraction per literal index, and a release before every `ret`.
    Lowering the result to the base profile reproduces the original operations.
    """
    check_profile(module, registry, Profile.BASE, catalog=catalog)
    functions = [_expand_function(f, registry, catalog) for f in module.functions]

    type_defs = list(module.type_defs)
    defined = {t.name for t in type_defs}
    for kind in ElementKind:
        for name in (kind.type_name, kind.array_type_name):
            if name not in defined:
                type_defs.append(TypeDef(name=name, body=RESERVED_LAYOUTS[name]))
                defined.add(name)

    declarations = list(module.declarations)
    declared = {d.name for d in declarations}
    called = {i.callee for f in functions for i in f.instructions() if isinstance(i, Call)}
    for kind in ElementKind:
        for role in (Role.ALLOCATE_ARRAY, Role.GET_ELEMENT, Role.RELEASE_ARRAY):
            spec = catalog.find(role, kind)
            if spec.name in called and spec.name not in declared:
                declarations.append(
                    FunctionDecl(
                        name=spec.name,
                        return_type=spec.signature.return_type,
                        params=tuple(Param(type=t) for t in spec.signature.params),
                    ),
                )
                declared.add(spec.name)

    drop = {PROFILE_ATTRIBUTE, *(kind.required_count_attribute for kind in ElementKind)}
    groups = tuple(replace(g, items=tuple(a for a in g.items if a.key not in drop)) for g in module.attribute_groups)

    return replace(
        module,
        type_defs=tuple(type_defs),
        functions=tuple(functions),
        declarations=tuple(declarations),
        attribute_groups=groups,
    )
