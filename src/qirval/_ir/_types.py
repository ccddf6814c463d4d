"""Type expressions of the IR subset understood by qirval."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class IrType:
    __slots__ = ()


@dataclass(slots=True, frozen=True)
class IntType(IrType):
    bits: int

    def __str__(self) -> str:
        return f"i{self.bits}"


@dataclass(slots=True, frozen=True)
class FloatType(IrType):
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(slots=True, frozen=True)
class VoidType(IrType):
    def __str__(self) -> str:
        return "void"


@dataclass(slots=True, frozen=True)
class LabelType(IrType):
    def __str__(self) -> str:
        return "label"


@dataclass(slots=True, frozen=True)
class OpaqueType(IrType):
    """Body of a `%Name = type opaque` definition."""

    def __str__(self) -> str:
        return "opaque"


@dataclass(slots=True, frozen=True)
class PointerType(IrType):
    """A typed pointer (`T*`) or, when `pointee` is None, an opaque `ptr`."""

    pointee: IrType | None = None

    @property
    def is_opaque(self) -> bool:
        return self.pointee is None

    def __str__(self) -> str:
        if self.pointee is None:
            return "ptr"
        return f"{self.pointee}*"


@dataclass(slots=True, frozen=True)
class NamedType(IrType):
    """Reference to an identified struct type such as `%Qubit`."""

    name: str

    def __str__(self) -> str:
        return f"%{self.name}"


@dataclass(slots=True, frozen=True)
class StructType(IrType):
    """A literal struct type such as `{ i32 }`."""

    fields: tuple[IrType, ...]

    def __str__(self) -> str:
        if not self.fields:
            return "{}"
        return "{ " + ", ".join(str(f) for f in self.fields) + " }"


@dataclass(slots=True, frozen=True)
class ArrayType(IrType):
    count: int
    element: IrType

    def __str__(self) -> str:
        return f"[{self.count} x {self.element}]"


@dataclass(slots=True, frozen=True)
class FunctionType(IrType):
    return_type: IrType
    params: tuple[IrType, ...]
    varargs: bool = False

    def __str__(self) -> str:
        params = [str(p) for p in self.params]
        if self.varargs:
            params.append("...")
        return f"{self.return_type} ({', '.join(params)})"


VOID = VoidType()
I1 = IntType(1)
I8 = IntType(8)
I32 = IntType(32)
I64 = IntType(64)
DOUBLE = FloatType("double")


def walk_type(ty: IrType) -> Iterator[IrType]:
    """Yield `ty` and every type nested inside it, depth first."""
    yield ty
    match ty:
        case PointerType(pointee=pointee) if pointee is not None:
            yield from walk_type(pointee)
        case StructType(fields=fields):
            for field in fields:
                yield from walk_type(field)
        case ArrayType(element=element):
            yield from walk_type(element)
        case FunctionType(return_type=ret, params=params):
            yield from walk_type(ret)
            for param in params:
                yield from walk_type(param)
        case _:
            pass


def named_types_in(ty: IrType) -> set[str]:
    """Return the names of all identified struct types referenced by `ty`."""
    return {t.name for t in walk_type(ty) if isinstance(t, NamedType)}
