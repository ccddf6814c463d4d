"""Catalog of runtime (`__quantum__rt__*`) and instruction-set (`__quantum__qis__*`) functions.

Each entry records the value-semantic signature the function must have and the
role it plays for lowering and index tracking.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum, auto
from typing import TYPE_CHECKING

from ._ir import parse_signature
from ._kinds import ElementKind

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from ._ir import FunctionType

RT_PREFIX = "__quantum__rt__"
QIS_PREFIX = "__quantum__qis__"

# The generic pointer-returning extraction the typed `*_array_get_element` functions replace.
LEGACY_EXTRACTION_PREFIX = RT_PREFIX + "array_get_element_ptr"


class Surface(StrEnum):
    """Which part of the QIR surface a function belongs to."""

    RUNTIME = auto()
    INSTRUCTION_SET = auto()


class Role(StrEnum):
    """What a cataloged function does to qubit and result values."""

    ALLOCATE_ARRAY = auto()  # (i64 count) -> array
    GET_ELEMENT = auto()  # (array, i64 index) -> element
    RELEASE_ARRAY = auto()  # (array) -> void
    ALLOCATE = auto()  # () -> element
    RELEASE = auto()  # (element) -> void
    MEASURE = auto()  # (qubit) -> result, full representation only
    RECORD = auto()  # output recording
    OPERATION = auto()  # gates, mz, reset, read_result
    OTHER = auto()


@dataclass(frozen=True, slots=True)
class FunctionSpec:
    name: str
    signature: FunctionType
    surface: Surface
    role: Role = Role.OPERATION
    kind: ElementKind | None = None

    @property
    def short_name(self) -> str:
        prefix = RT_PREFIX if self.surface is Surface.RUNTIME else QIS_PREFIX
        return self.name.removeprefix(prefix)


def surface_of(name: str) -> Surface | None:
    """Return the surface a function name belongs to, or None for user functions."""
    if name.startswith(RT_PREFIX):
        return Surface.RUNTIME
    if name.startswith(QIS_PREFIX):
        return Surface.INSTRUCTION_SET
    return None


def _rt(short: str, signature: str, role: Role = Role.OTHER, kind: ElementKind | None = None) -> FunctionSpec:
    return FunctionSpec(
        name=RT_PREFIX + short,
        signature=parse_signature(signature),
        surface=Surface.RUNTIME,
        role=role,
        kind=kind,
    )


def _qis(short: str, signature: str, role: Role = Role.OPERATION) -> FunctionSpec:
    return FunctionSpec(
        name=f"{QIS_PREFIX}{short}__body",
        signature=parse_signature(signature),
        surface=Surface.INSTRUCTION_SET,
        role=role,
    )


def _default_entries() -> Iterator[FunctionSpec]:
    qubit, result = ElementKind.QUBIT, ElementKind.RESULT
    yield _rt("qubit_allocate_array", "%QubitArray (i64)", Role.ALLOCATE_ARRAY, qubit)
    yield _rt("result_allocate_array", "%ResultArray (i64)", Role.ALLOCATE_ARRAY, result)
    yield _rt("qubit_array_get_element", "%Qubit (%QubitArray, i64)", Role.GET_ELEMENT, qubit)
    yield _rt("result_array_get_element", "%Result (%ResultArray, i64)", Role.GET_ELEMENT, result)
    yield _rt("qubit_release_array", "void (%QubitArray)", Role.RELEASE_ARRAY, qubit)
    yield _rt("result_release_array", "void (%ResultArray)", Role.RELEASE_ARRAY, result)
    yield _rt("qubit_allocate", "%Qubit ()", Role.ALLOCATE, qubit)
    yield _rt("qubit_release", "void (%Qubit)", Role.RELEASE, qubit)
    yield _rt("initialize", "void (i8*)")
    yield _rt("result_record_output", "void (%Result, i8*)", Role.RECORD, result)
    yield _rt("bool_record_output", "void (i1, i8*)", Role.RECORD)
    yield _rt("int_record_output", "void (i64, i8*)", Role.RECORD)
    yield _rt("double_record_output", "void (double, i8*)", Role.RECORD)
    yield _rt("tuple_record_output", "void (i64, i8*)", Role.RECORD)
    yield _rt("array_record_output", "void (i64, i8*)", Role.RECORD)
    yield _rt("tuple_start_record_output", "void ()", Role.RECORD)
    yield _rt("tuple_end_record_output", "void ()", Role.RECORD)
    yield _rt("array_start_record_output", "void ()", Role.RECORD)
    yield _rt("array_end_record_output", "void ()", Role.RECORD)

    for gate in ("h", "x", "y", "z", "s", "s__adj", "t", "t__adj", "reset"):
        yield _qis(gate, "void (%Qubit)")
    for gate in ("rx", "ry", "rz"):
        yield _qis(gate, "void (double, %Qubit)")
    for gate in ("cnot", "cx", "cz", "swap"):
        yield _qis(gate, "void (%Qubit, %Qubit)")
    yield _qis("ccx", "void (%Qubit, %Qubit, %Qubit)")
    yield _qis("mz", "void (%Qubit, %Result)")
    yield _qis("m", "%Result (%Qubit)", Role.MEASURE)
    yield _qis("read_result", "i1 (%Result)")


@dataclass(frozen=True, slots=True)
class FunctionCatalog:
    """Known runtime and instruction-set functions, by full name."""

    entries: dict[str, FunctionSpec] = field(default_factory=dict)

    @classmethod
    def default(cls) -> FunctionCatalog:
        return cls(entries={spec.name: spec for spec in _default_entries()})

    def get(self, name: str) -> FunctionSpec | None:
        return self.entries.get(name)

    def find(self, role: Role, kind: ElementKind | None = None) -> FunctionSpec:
        """Return the entry with the given role and kind.

        Raises:
            KeyError: If the catalog has no such entry.

        """
        for spec in self.entries.values():
            if spec.role is role and spec.kind is kind:
                return spec
        msg = f"No catalog entry with role {role} for {kind}"
        raise KeyError(msg)

    def with_signatures(self, signatures: Mapping[str, str]) -> FunctionCatalog:
        """Return a catalog extended (or overridden) with `name -> "ret (params)"` entries.

        Raises:
            ValueError: If a name is not a runtime or instruction-set function.
            QirParseError: If a signature cannot be parsed.

        """
        entries = dict(self.entries)
        for name, text in signatures.items():
            surface = surface_of(name)
            if surface is None:
                msg = f"'{name}' is not a runtime ({RT_PREFIX}*) or instruction-set ({QIS_PREFIX}*) function"
                raise ValueError(msg)
            existing = entries.get(name)
            entries[name] = FunctionSpec(
                name=name,
                signature=parse_signature(text),
                surface=surface,
                role=existing.role if existing is not None else Role.OPERATION,
                kind=existing.kind if existing is not None else None,
            )
        return FunctionCatalog(entries=entries)

    def __contains__(self, name: str) -> bool:
        return name in self.entries

    def __len__(self) -> int:
        return len(self.entries)


DEFAULT_CATALOG = FunctionCatalog.default()
