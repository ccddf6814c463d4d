"""Constant propagation restricted to integer SSA values."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ._ir import BinaryOp, IntConst, IntType, LocalRef, Phi

if TYPE_CHECKING:
    from ._ir import Instruction, TypedValue, Value


def _wrap(value: int, bits: int) -> int:
    """Two's-complement wrap of `value` to a signed `bits`-bit integer."""
    mask = (1 << bits) - 1
    value &= mask
    if bits > 1 and value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def _unsigned(value: int, bits: int) -> int:
    return value & ((1 << bits) - 1)


def fold_binary(opcode: str, lhs: int, rhs: int, bits: int) -> int | None:  # noqa: C901, PLR0911
    """Evaluate an integer binary operation, or return None if it cannot be folded."""
    match opcode:
        case "add":
            return _wrap(lhs + rhs, bits)
        case "sub":
            return _wrap(lhs - rhs, bits)
        case "mul":
            return _wrap(lhs * rhs, bits)
        case "shl":
            return _wrap(lhs << rhs, bits) if 0 <= rhs < bits else None
        case "lshr":
            return _wrap(_unsigned(lhs, bits) >> rhs, bits) if 0 <= rhs < bits else None
        case "ashr":
            return _wrap(lhs >> rhs, bits) if 0 <= rhs < bits else None
        case "and":
            return _wrap(lhs & rhs, bits)
        case "or":
            return _wrap(lhs | rhs, bits)
        case "xor":
            return _wrap(lhs ^ rhs, bits)
        case "udiv" | "urem" if rhs != 0:
            a, b = _unsigned(lhs, bits), _unsigned(rhs, bits)
            return _wrap(a // b if opcode == "udiv" else a % b, bits)
        case "sdiv" | "srem" if rhs != 0:
            quotient = abs(lhs) // abs(rhs) * (1 if (lhs < 0) == (rhs < 0) else -1)
            return _wrap(quotient if opcode == "sdiv" else lhs - quotient * rhs, bits)
        case _:
            return None


@dataclass(slots=True)
class ConstantEnv:
    """Known integer values of SSA names within one function."""

    values: dict[str, int] = field(default_factory=dict)

    def evaluate(self, value: Value) -> int | None:
        match value:
            case IntConst(value=v):
                return v
            case LocalRef(name=name):
                return self.values.get(name)
            case _:
                return None

    def evaluate_operand(self, operand: TypedValue) -> int | None:
        return self.evaluate(operand.value)

    def observe(self, instruction: Instruction) -> int | None:
        """Record the value defined by `instruction` if it folds to a constant."""
        match instruction:
            case BinaryOp(result=result, opcode=opcode, type=IntType(bits=bits), lhs=lhs, rhs=rhs):
                a, b = self.evaluate(lhs), self.evaluate(rhs)
                if a is None or b is None:
                    return None
                folded = fold_binary(opcode, a, b, bits)
            case Phi(result=result, type=IntType(), incoming=incoming):
                candidates = {self.evaluate(v) for v, _ in incoming}
                folded = candidates.pop() if len(candidates) == 1 else None
            case _:
                return None
        if folded is not None:
            self.values[result] = folded
        return folded
