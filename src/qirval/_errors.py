"""Error taxonomy for qirval passes.

Structural errors (parse, schema, signature) abort processing of a whole module.
Lowering errors abort only the lowering stage. Tracking errors are fatal for
restricted-profile output and advisory for the full representation.
"""

from __future__ import annotations


class QirvalError(Exception):
    """Base class for all errors raised by qirval."""


class QirParseError(QirvalError):
    """The IR text could not be read."""

    def __init__(self, message: str, *, line: int | None = None) -> None:
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class SchemaMismatch(QirvalError):  # noqa: N818 - public name
    """A reserved type name is defined with an incompatible structure."""

    def __init__(self, type_name: str, *, expected: str, actual: str) -> None:
        self.type_name = type_name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Reserved type '%{type_name}' has an incompatible definition: expected {expected!r}, got {actual!r}",
        )


class SignatureMismatch(QirvalError):  # noqa: N818 - public name
    """A runtime or instruction-set function does not follow the value-semantic convention."""

    def __init__(
        self,
        function: str,
        *,
        expected: str,
        actual: str,
        caller: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.function = function
        self.expected = expected
        self.actual = actual
        self.caller = caller
        self.reason = reason
        where = f" (called from '@{caller}')" if caller else ""
        msg = f"Signature of '@{function}'{where} does not match: expected {expected!r}, got {actual!r}"
        if reason:
            msg += f". {reason}"
        super().__init__(msg)


class LoweringError(QirvalError):
    """Lowering to a restricted profile failed."""


class NonStaticIndexError(LoweringError):
    """A restricted profile needs a compile-time constant but found a dynamic value."""

    def __init__(self, function: str, instruction: str, *, operand: str, reason: str | None = None) -> None:
        self.function = function
        self.instruction = instruction
        self.operand = operand
        detail = reason or f"operand {operand!r} is not a compile-time constant"
        super().__init__(f"In '@{function}': {detail} in `{instruction}`")


class DanglingIndexError(QirvalError):
    """A qubit or result index is referenced while it is not live."""

    def __init__(self, function: str, instruction: str, *, kind: str, index: int | str, reason: str) -> None:
        self.function = function
        self.instruction = instruction
        self.kind = kind
        self.index = index
        super().__init__(f"In '@{function}': {kind} index {index} {reason} in `{instruction}`")


class IndexExhaustionError(QirvalError):
    """The requested number of indices cannot be represented in the index width."""

    def __init__(self, function: str, instruction: str, *, kind: str, requested: int, capacity: int) -> None:
        self.function = function
        self.instruction = instruction
        self.kind = kind
        self.requested = requested
        self.capacity = capacity
        super().__init__(
            f"In '@{function}': cannot allocate {requested} {kind} index(es), "
            f"only {capacity} are representable in `{instruction}`",
        )
