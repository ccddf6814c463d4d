"""Tests for integer constant folding."""

import pytest

from qirval._constants import ConstantEnv, fold_binary
from qirval._ir import I64, BinaryOp, IntConst, LocalRef, Phi


@pytest.mark.parametrize(
    ("opcode", "lhs", "rhs", "bits", "expected"),
    [
        ("add", 2, 3, 64, 5),
        ("add", 127, 1, 8, -128),
        ("sub", 0, 1, 8, -1),
        ("mul", 3, -4, 64, -12),
        ("shl", 1, 4, 32, 16),
        ("shl", 1, 32, 32, None),
        ("lshr", -1, 4, 8, 15),
        ("ashr", -16, 2, 8, -4),
        ("sdiv", -7, 2, 64, -3),
        ("srem", -7, 2, 64, -1),
        ("udiv", -2, 2, 8, 127),
        ("sdiv", 1, 0, 64, None),
        ("xor", 6, 3, 64, 5),
        ("icmp", 1, 1, 64, None),
    ],
)
def test_fold_binary(opcode: str, lhs: int, rhs: int, bits: int, expected: int | None) -> None:
    assert fold_binary(opcode, lhs, rhs, bits) == expected


class TestConstantEnv:
    """Tests for ConstantEnv."""

    def test_chained_arithmetic(self) -> None:
        """Values defined from earlier constants fold transitively."""
        env = ConstantEnv()
        env.observe(BinaryOp("a", "add", I64, IntConst(64, 1), IntConst(64, 1)))
        env.observe(BinaryOp("b", "mul", I64, LocalRef("a"), IntConst(64, 3)))

        assert env.values == {"a": 2, "b": 6}
        assert env.evaluate(LocalRef("b")) == 6

    def test_unknown_operand(self) -> None:
        """A parameter or unknown name does not fold."""
        env = ConstantEnv()

        assert env.observe(BinaryOp("a", "add", I64, LocalRef("n"), IntConst(64, 1))) is None
        assert "a" not in env.values

    def test_phi_with_agreeing_inputs(self) -> None:
        """A phi folds only when every incoming value is the same constant."""
        env = ConstantEnv()
        env.observe(Phi("a", I64, ((IntConst(64, 4), "x"), (IntConst(64, 4), "y"))))
        env.observe(Phi("b", I64, ((IntConst(64, 4), "x"), (IntConst(64, 5), "y"))))

        assert env.values == {"a": 4}
