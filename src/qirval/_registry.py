"""Type Registry: validation of the reserved qubit and result types.

The four reserved names and their canonical layouts are

    %Qubit = type { i32 }
    %Result = type { i32 }
    %QubitArray = type { %Qubit* }
    %ResultArray = type { %Result* }

The check is pure: it only reads the module and returns a `TypeRegistry`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ._errors import SchemaMismatch
from ._ir import I32, IrType, NamedType, PointerType, StructType
from ._kinds import ElementKind

if TYPE_CHECKING:
    from ._ir import Module

logger = logging.getLogger(__name__)

RESERVED_LAYOUTS: dict[str, StructType] = {
    "Qubit": StructType((I32,)),
    "Result": StructType((I32,)),
    "QubitArray": StructType((PointerType(NamedType("Qubit")),)),
    "ResultArray": StructType((PointerType(NamedType("Result")),)),
}

# Array layouts written with an opaque `ptr` field denote the same struct in modern LLVM.
_EQUIVALENT_LAYOUTS: dict[str, tuple[StructType, ...]] = {
    "QubitArray": (StructType((PointerType(None),)),),
    "ResultArray": (StructType((PointerType(None),)),),
}

# Legacy opaque types that the value-typed representation replaces.
LEGACY_OPAQUE_TYPES = frozenset({"Array"})


def _layout_matches(name: str, body: IrType) -> bool:
    if body == RESERVED_LAYOUTS[name]:
        return True
    return body in _EQUIVALENT_LAYOUTS.get(name, ())


@dataclass(frozen=True, slots=True)
class TypeRegistry:
    """The reserved types a module declares, plus its other type definitions.

    Attributes:
        declared: Reserved type names defined in the module with the canonical layout.
        others: Non-reserved type definitions, by name.

    """

    declared: frozenset[str] = field(default_factory=frozenset)
    others: dict[str, IrType] = field(default_factory=dict)

    @staticmethod
    def is_reserved(name: str) -> bool:
        return name in RESERVED_LAYOUTS

    def declares(self, name: str) -> bool:
        return name in self.declared

    def element_kind(self, ty: IrType) -> ElementKind | None:
        """Return the kind if `ty` is `%Qubit` or `%Result` (by value), else None."""
        if isinstance(ty, NamedType):
            for kind in ElementKind:
                if ty.name == kind.type_name:
                    return kind
        return None

    def array_kind(self, ty: IrType) -> ElementKind | None:
        """Return the kind if `ty` is `%QubitArray` or `%ResultArray` (by value), else None."""
        if isinstance(ty, NamedType):
            for kind in ElementKind:
                if ty.name == kind.array_type_name:
                    return kind
        return None

    def pointer_kind(self, ty: IrType) -> ElementKind | None:
        """Return the kind if `ty` is the legacy `%Qubit*` or `%Result*`, else None."""
        if isinstance(ty, PointerType) and ty.pointee is not None:
            return self.element_kind(ty.pointee)
        return None


def check_reserved_types(module: Module) -> TypeRegistry:
    """Check the reserved type definitions of a module.

    Args:
        module: The module to check.

    Returns:
        A TypeRegistry describing the reserved and other types of the module.

    Raises:
        SchemaMismatch: If a reserved name is defined with a different structure
            (including the legacy `type opaque` form), or is used without a definition.

    """
    declared: set[str] = set()
    others: dict[str, IrType] = {}

    for type_def in module.type_defs:
        if type_def.name in RESERVED_LAYOUTS:
            if not _layout_matches(type_def.name, type_def.body):
                raise SchemaMismatch(
                    type_def.name,
                    expected=str(RESERVED_LAYOUTS[type_def.name]),
                    actual=str(type_def.body),
                )
            if type_def.name in declared:
                raise SchemaMismatch(
                    type_def.name,
                    expected=str(RESERVED_LAYOUTS[type_def.name]),
                    actual="<defined more than once>",
                )
            declared.add(type_def.name)
        else:
            others[type_def.name] = type_def.body

    referenced = module.referenced_type_names()
    for name in sorted(referenced & RESERVED_LAYOUTS.keys()):
        if name not in declared:
            raise SchemaMismatch(name, expected=str(RESERVED_LAYOUTS[name]), actual="<undefined>")

    logger.debug("Reserved types declared: %s", ", ".join(sorted(declared)) or "none")
    return TypeRegistry(declared=frozenset(declared), others=others)
