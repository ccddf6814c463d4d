"""Signature Validator: runtime and instruction-set functions must take values, not pointers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ._catalog import DEFAULT_CATALOG, LEGACY_EXTRACTION_PREFIX, Role, Surface, surface_of
from ._errors import SignatureMismatch
from ._ir import I8, Call, FunctionType, IrType, NamedType, PointerType, StructType, walk_type
from ._kinds import ElementKind
from ._registry import LEGACY_OPAQUE_TYPES

if TYPE_CHECKING:
    from ._catalog import FunctionCatalog
    from ._ir import Function, FunctionDecl, Module
    from ._registry import TypeRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SignatureCheck:
    """One runtime or instruction-set function that passed validation."""

    name: str
    surface: Surface
    signature: FunctionType
    cataloged: bool
    call_sites: int


def _types_compatible(expected: IrType, actual: IrType) -> bool:
    if expected == actual:
        return True
    # `i8*` and opaque `ptr` are interchangeable for tag and string arguments.
    if isinstance(expected, PointerType) and isinstance(actual, PointerType):
        return {expected.pointee, actual.pointee} <= {I8, None}
    return False


def _signatures_compatible(expected: FunctionType, actual: FunctionType) -> bool:
    if not _types_compatible(expected.return_type, actual.return_type):
        return False
    if len(expected.params) != len(actual.params):
        return False
    return all(_types_compatible(e, a) for e, a in zip(expected.params, actual.params, strict=True))


def _by_value(ty: IrType, registry: TypeRegistry) -> IrType:
    """Rewrite legacy `%Qubit*` / `%Result*` pointers to the value-semantic form."""
    if (kind := registry.pointer_kind(ty)) is not None:
        return NamedType(kind.type_name)
    if isinstance(ty, PointerType) and isinstance(ty.pointee, NamedType) and ty.pointee.name in LEGACY_OPAQUE_TYPES:
        return NamedType(ElementKind.QUBIT.array_type_name)
    return ty


def _legacy_reason(name: str, signature: FunctionType, registry: TypeRegistry) -> str | None:
    """Explain why an uncataloged signature violates the value-semantic convention, or None."""
    surface = surface_of(name)
    for position, ty in enumerate((signature.return_type, *signature.params)):
        where = "return type" if position == 0 else f"parameter {position}"
        for inner in walk_type(ty):
            if (kind := registry.pointer_kind(inner)) is not None:
                return f"{where} passes %{kind.type_name} by pointer; pass it by value"
            if isinstance(inner, NamedType) and inner.name in LEGACY_OPAQUE_TYPES:
                return f"{where} uses the legacy opaque %{inner.name}; use a typed array struct"
        if surface is Surface.INSTRUCTION_SET and isinstance(ty, PointerType) and ty.is_opaque:
            return f"{where} is an opaque pointer; instruction-set functions take %Qubit/%Result by value"
        if isinstance(ty, StructType):
            return f"{where} is an anonymous struct; use the named %Qubit/%Result types"
    return None


def _expected_for(name: str, actual: FunctionType, registry: TypeRegistry, catalog: FunctionCatalog) -> FunctionType:
    spec = catalog.get(name)
    if spec is not None:
        return spec.signature
    return FunctionType(
        return_type=_by_value(actual.return_type, registry),
        params=tuple(_by_value(p, registry) for p in actual.params),
        varargs=actual.varargs,
    )


def _check_legacy_extraction(name: str, actual: FunctionType, catalog: FunctionCatalog, caller: str | None) -> None:
    if not name.startswith(LEGACY_EXTRACTION_PREFIX):
        return
    replacement = catalog.find(Role.GET_ELEMENT, ElementKind.QUBIT)
    raise SignatureMismatch(
        name,
        expected=str(replacement.signature),
        actual=str(actual),
        caller=caller,
        reason=(
            "Generic element-pointer extraction is not allowed; "
            f"use '@{replacement.name}' which takes the array by value and returns a %Qubit"
        ),
    )


def _check_signature(
    name: str,
    actual: FunctionType,
    registry: TypeRegistry,
    catalog: FunctionCatalog,
    caller: str | None = None,
) -> bool:
    """Check one signature. Returns whether the function is cataloged."""
    _check_legacy_extraction(name, actual, catalog, caller)
    spec = catalog.get(name)
    if spec is not None:
        if not _signatures_compatible(spec.signature, actual):
            raise SignatureMismatch(name, expected=str(spec.signature), actual=str(actual), caller=caller)
        return True
    reason = _legacy_reason(name, actual, registry)
    if reason is not None:
        raise SignatureMismatch(
            name,
            expected=str(_expected_for(name, actual, registry, catalog)),
            actual=str(actual),
            caller=caller,
            reason=reason[0].upper() + reason[1:],
        )
    return False


def _check_call_site(
    call: Call,
    caller: Function,
    declared: dict[str, FunctionDecl],
    registry: TypeRegistry,
    catalog: FunctionCatalog,
) -> None:
    actual = call.signature
    decl = declared.get(call.callee)
    if decl is None:
        _check_signature(call.callee, actual, registry, catalog, caller=caller.name)
        return
    _check_legacy_extraction(call.callee, actual, catalog, caller.name)
    expected = decl.signature
    fixed = FunctionType(expected.return_type, expected.params)
    if expected.varargs:
        actual = FunctionType(actual.return_type, actual.params[: len(expected.params)])
    if not _signatures_compatible(fixed, actual):
        raise SignatureMismatch(
            call.callee,
            expected=str(expected),
            actual=str(call.signature),
            caller=caller.name,
            reason="Call site does not match the declaration",
        )


def validate_signatures(
    module: Module,
    registry: TypeRegistry,
    catalog: FunctionCatalog = DEFAULT_CATALOG,
) -> list[SignatureCheck]:
    """Validate every runtime and instruction-set declaration and call site.

    Cataloged functions must match their catalog signature exactly (`i8*` and `ptr`
    are interchangeable). Other `__quantum__rt__*` / `__quantum__qis__*` functions
    must not pass `%Qubit`/`%Result` by pointer, use the legacy opaque `%Array`,
    or (for instruction-set functions) take opaque pointers. The generic
    `__quantum__rt__array_get_element_ptr*` extraction is always rejected.

    Args:
        module: The module to validate.
        registry: Result of `check_reserved_types` for the module.
        catalog: Known functions and their expected signatures.

    Returns:
        One SignatureCheck per validated function, in declaration order.

    Raises:
        SignatureMismatch: On the first function or call site that violates the convention.

    """
    declared: dict[str, FunctionDecl] = {}
    cataloged: dict[str, bool] = {}
    for decl in module.headers():
        if surface_of(decl.name) is None:
            continue
        cataloged[decl.name] = _check_signature(decl.name, decl.signature, registry, catalog)
        declared[decl.name] = decl

    call_counts: dict[str, int] = dict.fromkeys(declared, 0)
    signatures: dict[str, FunctionType] = {name: d.signature for name, d in declared.items()}
    for function in module.functions:
        for instruction in function.instructions():
            if not isinstance(instruction, Call) or surface_of(instruction.callee) is None:
                continue
            _check_call_site(instruction, function, declared, registry, catalog)
            if instruction.callee not in cataloged:
                cataloged[instruction.callee] = instruction.callee in catalog
                signatures[instruction.callee] = instruction.signature
            call_counts[instruction.callee] = call_counts.get(instruction.callee, 0) + 1

    checks = [
        SignatureCheck(
            name=name,
            surface=surface,
            signature=signatures[name],
            cataloged=cataloged[name],
            call_sites=call_counts.get(name, 0),
        )
        for name in cataloged
        if (surface := surface_of(name)) is not None
    ]
    logger.debug("Validated %d runtime/instruction-set function(s)", len(checks))
    return checks
