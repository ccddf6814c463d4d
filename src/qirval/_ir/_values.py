"""Operands: SSA references and constants."""

from __future__ import annotations

from dataclasses import dataclass

from ._types import I32, IntType, IrType, NamedType


class Value:
    __slots__ = ()


@dataclass(slots=True, frozen=True)
class LocalRef(Value):
    name: str

    def __str__(self) -> str:
        return f"%{self.name}"


@dataclass(slots=True, frozen=True)
class GlobalRef(Value):
    name: str

    def __str__(self) -> str:
        return f"@{self.name}"


@dataclass(slots=True, frozen=True)
class IntConst(Value):
    bits: int
    value: int

    def __str__(self) -> str:
        if self.bits == 1:
            return "true" if self.value else "false"
        return str(self.value)


@dataclass(slots=True, frozen=True)
class KeywordConst(Value):
    """`null`, `undef`, `poison`, `zeroinitializer` and friends."""

    keyword: str

    def __str__(self) -> str:
        return self.keyword


@dataclass(slots=True, frozen=True)
class RawConst(Value):
    """Any constant kept verbatim (floats, strings, constant expressions)."""

    text: str

    def __str__(self) -> str:
        return self.text


@dataclass(slots=True, frozen=True)
class StructConst(Value):
    """An inline struct literal such as `{i32 0}`."""

    fields: tuple[TypedValue, ...]

    def __str__(self) -> str:
        return "{" + ", ".join(str(f) for f in self.fields) + "}"


@dataclass(slots=True, frozen=True)
class TypedValue:
    """An operand as written in an instruction: its type, attributes and value."""

    type: IrType
    value: Value
    attrs: tuple[str, ...] = ()

    def __str__(self) -> str:
        parts = [str(self.type), *self.attrs, str(self.value)]
        return " ".join(parts)


def index_literal(type_name: str, index: int) -> TypedValue:
    """Build the constant form `%<type_name> {i32 <index>}`."""
    return TypedValue(
        type=NamedType(type_name),
        value=StructConst(fields=(TypedValue(type=I32, value=IntConst(bits=32, value=index)),)),
    )


def literal_index(operand: TypedValue) -> int | None:
    """Return N if `operand` is a single-integer struct literal `{iK N}`, else None."""
    match operand.value:
        case StructConst(fields=(TypedValue(type=IntType(), value=IntConst(value=index)),)):
            return index
        case _:
            return None
