"""Module, function and instruction containers.

All containers are immutable; passes build new modules with `dataclasses.replace`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from ._types import FunctionType, IrType, named_types_in
from ._values import LocalRef, StructConst, TypedValue, Value

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

_LOCAL_TOKEN_RE = re.compile(r'%(?:"([^"]*)"|([-a-zA-Z$._0-9]+))')
_ATTR_REF_RE = re.compile(r"#(\d+)")


def _substitute_value(value: Value, mapping: Mapping[str, Value]) -> Value:
    match value:
        case LocalRef(name=name) if name in mapping:
            return mapping[name]
        case StructConst(fields=fields):
            return StructConst(fields=tuple(_substitute(f, mapping) for f in fields))
        case _:
            return value


def _substitute(operand: TypedValue, mapping: Mapping[str, Value]) -> TypedValue:
    new_value = _substitute_value(operand.value, mapping)
    if new_value is operand.value:
        return operand
    return replace(operand, value=new_value)


def _local_names(operand: TypedValue) -> Iterator[str]:
    match operand.value:
        case LocalRef(name=name):
            yield name
        case StructConst(fields=fields):
            for f in fields:
                yield from _local_names(f)
        case _:
            pass


# =============================================================================
# Instructions
# =============================================================================


class Instruction:
    """Base class for instructions inside a basic block."""

    __slots__ = ()

    @property
    def result_name(self) -> str | None:
        return None

    def uses(self) -> set[str]:
        """Local SSA names read by this instruction."""
        return set()

    def types(self) -> set[str]:
        """Names of identified struct types mentioned by this instruction."""
        return set()

    def substitute(self, mapping: Mapping[str, Value]) -> Instruction:  # noqa: ARG002
        """Return a copy with local references replaced according to `mapping`."""
        return self


@dataclass(slots=True, frozen=True)
class Call(Instruction):
    callee: str
    return_type: IrType
    args: tuple[TypedValue, ...]
    result: str | None = None
    prefix: str = "call"
    suffix: str = ""

    @property
    def result_name(self) -> str | None:
        return self.result

    @property
    def signature(self) -> FunctionType:
        """Function type implied by this call site."""
        return FunctionType(return_type=self.return_type, params=tuple(a.type for a in self.args))

    def uses(self) -> set[str]:
        return {name for arg in self.args for name in _local_names(arg)}

    def types(self) -> set[str]:
        return named_types_in(self.signature)

    def substitute(self, mapping: Mapping[str, Value]) -> Call:
        return replace(self, args=tuple(_substitute(a, mapping) for a in self.args))

    def __str__(self) -> str:
        args = ", ".join(str(a) for a in self.args)
        text = f"{self.prefix} {self.return_type} @{self.callee}({args})"
        if self.suffix:
            text += f" {self.suffix}"
        if self.result is not None:
            text = f"%{self.result} = {text}"
        return text


@dataclass(slots=True, frozen=True)
class BinaryOp(Instruction):
    result: str
    opcode: str
    type: IrType
    lhs: Value
    rhs: Value
    flags: tuple[str, ...] = ()

    @property
    def result_name(self) -> str | None:
        return self.result

    def uses(self) -> set[str]:
        return {v.name for v in (self.lhs, self.rhs) if isinstance(v, LocalRef)}

    def types(self) -> set[str]:
        return named_types_in(self.type)

    def substitute(self, mapping: Mapping[str, Value]) -> BinaryOp:
        return replace(
            self,
            lhs=_substitute_value(self.lhs, mapping),
            rhs=_substitute_value(self.rhs, mapping),
        )

    def __str__(self) -> str:
        op = " ".join([self.opcode, *self.flags])
        return f"%{self.result} = {op} {self.type} {self.lhs}, {self.rhs}"


@dataclass(slots=True, frozen=True)
class Phi(Instruction):
    result: str
    type: IrType
    incoming: tuple[tuple[Value, str], ...]

    @property
    def result_name(self) -> str | None:
        return self.result

    def uses(self) -> set[str]:
        return {v.name for v, _ in self.incoming if isinstance(v, LocalRef)}

    def types(self) -> set[str]:
        return named_types_in(self.type)

    def substitute(self, mapping: Mapping[str, Value]) -> Phi:
        return replace(
            self,
            incoming=tuple((_substitute_value(v, mapping), label) for v, label in self.incoming),
        )

    def __str__(self) -> str:
        pairs = ", ".join(f"[ {v}, %{label} ]" for v, label in self.incoming)
        return f"%{self.result} = phi {self.type} {pairs}"


@dataclass(slots=True, frozen=True)
class Ret(Instruction):
    value: TypedValue | None = None

    def uses(self) -> set[str]:
        if self.value is None:
            return set()
        return set(_local_names(self.value))

    def types(self) -> set[str]:
        if self.value is None:
            return set()
        return named_types_in(self.value.type)

    def substitute(self, mapping: Mapping[str, Value]) -> Ret:
        if self.value is None:
            return self
        return Ret(value=_substitute(self.value, mapping))

    def __str__(self) -> str:
        if self.value is None:
            return "ret void"
        return f"ret {self.value}"


@dataclass(slots=True, frozen=True)
class Opaque(Instruction):
    """An instruction kept as text; only its SSA tokens are inspected."""

    text: str
    result: str | None = None

    @property
    def result_name(self) -> str | None:
        return self.result

    def _tokens(self) -> set[str]:
        body = self.text.split("=", 1)[1] if self.result is not None else self.text
        return {m.group(1) if m.group(1) is not None else m.group(2) for m in _LOCAL_TOKEN_RE.finditer(body)}

    def uses(self) -> set[str]:
        return self._tokens()

    def types(self) -> set[str]:
        # Type names and SSA names share the `%` sigil; callers intersect with known types.
        return self._tokens()

    def substitute(self, mapping: Mapping[str, Value]) -> Opaque:
        if not mapping:
            return self

        def _replace(match: re.Match[str]) -> str:
            name = match.group(1) if match.group(1) is not None else match.group(2)
            return str(mapping[name]) if name in mapping else match.group(0)

        if self.result is not None:
            head, body = self.text.split("=", 1)
            return replace(self, text=head + "=" + _LOCAL_TOKEN_RE.sub(_replace, body))
        return replace(self, text=_LOCAL_TOKEN_RE.sub(_replace, self.text))

    def __str__(self) -> str:
        return self.text


# =============================================================================
# Functions
# =============================================================================


@dataclass(slots=True, frozen=True)
class Param:
    type: IrType
    name: str | None = None
    attrs: tuple[str, ...] = ()

    def __str__(self) -> str:
        parts = [str(self.type), *self.attrs]
        if self.name is not None:
            parts.append(f"%{self.name}")
        return " ".join(parts)


@dataclass(slots=True, frozen=True)
class FunctionDecl:
    """A function header: `declare` line, or the first line of a `define`."""

    name: str
    return_type: IrType
    params: tuple[Param, ...] = ()
    varargs: bool = False
    prefix: tuple[str, ...] = ()
    suffix: str = ""

    @property
    def signature(self) -> FunctionType:
        return FunctionType(
            return_type=self.return_type,
            params=tuple(p.type for p in self.params),
            varargs=self.varargs,
        )

    @property
    def attr_refs(self) -> tuple[int, ...]:
        return tuple(int(m) for m in _ATTR_REF_RE.findall(self.suffix))

    def header(self, keyword: str) -> str:
        params = [str(p) for p in self.params]
        if self.varargs:
            params.append("...")
        parts = [keyword, *self.prefix, str(self.return_type), f"@{self.name}({', '.join(params)})"]
        if self.suffix:
            parts.append(self.suffix)
        return " ".join(parts)

    def __str__(self) -> str:
        return self.header("declare")


@dataclass(slots=True, frozen=True)
class Block:
    label: str | None
    instructions: tuple[Instruction, ...] = ()


@dataclass(slots=True, frozen=True)
class Function:
    """A function definition with its basic blocks in program order."""

    decl: FunctionDecl
    blocks: tuple[Block, ...] = ()

    @property
    def name(self) -> str:
        return self.decl.name

    @property
    def attr_refs(self) -> tuple[int, ...]:
        return self.decl.attr_refs

    def instructions(self) -> Iterator[Instruction]:
        for block in self.blocks:
            yield from block.instructions

    def local_names(self) -> set[str]:
        names = {p.name for p in self.decl.params if p.name is not None}
        names.update(i.result_name for i in self.instructions() if i.result_name is not None)
        names.update(b.label for b in self.blocks if b.label is not None)
        return names


# =============================================================================
# Module
# =============================================================================


@dataclass(slots=True, frozen=True)
class TypeDef:
    name: str
    body: IrType

    def __str__(self) -> str:
        return f"%{self.name} = type {self.body}"


@dataclass(slots=True, frozen=True)
class Attribute:
    key: str
    value: str | None = None
    quoted: bool = True

    def __str__(self) -> str:
        if not self.quoted:
            return self.key if self.value is None else f"{self.key}={self.value}"
        if self.value is None:
            return f'"{self.key}"'
        return f'"{self.key}"="{self.value}"'


@dataclass(slots=True, frozen=True)
class AttributeGroup:
    id: int
    items: tuple[Attribute, ...] = ()

    def has(self, key: str) -> bool:
        return any(a.key == key for a in self.items)

    def get(self, key: str) -> str | None:
        for item in self.items:
            if item.key == key:
                return item.value
        return None

    def with_values(self, values: Mapping[str, str]) -> AttributeGroup:
        """Return a copy where each quoted `key=value` in `values` is set (added or replaced)."""
        items = [a for a in self.items if a.key not in values]
        items.extend(Attribute(key=k, value=v) for k, v in values.items())
        return replace(self, items=tuple(items))

    def __str__(self) -> str:
        return f"attributes #{self.id} = {{ " + " ".join(str(a) for a in self.items) + " }"


ENTRY_POINT_ATTRIBUTES = ("entry_point", "EntryPoint")


@dataclass(slots=True, frozen=True)
class Module:
    header: tuple[str, ...] = ()
    type_defs: tuple[TypeDef, ...] = ()
    globals: tuple[str, ...] = ()
    functions: tuple[Function, ...] = ()
    declarations: tuple[FunctionDecl, ...] = ()
    attribute_groups: tuple[AttributeGroup, ...] = ()
    metadata: tuple[str, ...] = ()

    def get_type_def(self, name: str) -> TypeDef | None:
        for type_def in self.type_defs:
            if type_def.name == name:
                return type_def
        return None

    def get_function(self, name: str) -> Function | None:
        for function in self.functions:
            if function.name == name:
                return function
        return None

    def get_declaration(self, name: str) -> FunctionDecl | None:
        for decl in self.declarations:
            if decl.name == name:
                return decl
        return None

    def get_attribute_group(self, group_id: int) -> AttributeGroup | None:
        for group in self.attribute_groups:
            if group.id == group_id:
                return group
        return None

    def function_attributes(self, function: Function) -> list[AttributeGroup]:
        return [g for ref in function.attr_refs if (g := self.get_attribute_group(ref)) is not None]

    def is_entry_point(self, function: Function) -> bool:
        return any(g.has(key) for g in self.function_attributes(function) for key in ENTRY_POINT_ATTRIBUTES)

    def entry_points(self) -> list[Function]:
        return [f for f in self.functions if self.is_entry_point(f)]

    def entry_attribute(self, key: str) -> str | None:
        """Value of attribute `key` on the first entry point that carries it."""
        for function in self.entry_points():
            for group in self.function_attributes(function):
                value = group.get(key)
                if value is not None:
                    return value
        return None

    def headers(self) -> Iterator[FunctionDecl]:
        """All function headers: declarations and definitions."""
        yield from self.declarations
        for function in self.functions:
            yield function.decl

    def referenced_type_names(self) -> set[str]:
        """Names of identified struct types referenced outside their own definitions."""
        names: set[str] = set()
        for type_def in self.type_defs:
            names |= named_types_in(type_def.body)
        for decl in self.headers():
            names |= named_types_in(decl.signature)
        for function in self.functions:
            locals_ = function.local_names()
            for instruction in function.instructions():
                found = instruction.types()
                if isinstance(instruction, Opaque):
                    found -= locals_
                names |= found
        return names
