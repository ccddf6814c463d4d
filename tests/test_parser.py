"""Tests for reading and writing IR text."""

import pytest

from qirval import QirParseError, parse_module, print_module
from qirval._ir import (
    I64,
    BinaryOp,
    Call,
    FunctionType,
    IntConst,
    LocalRef,
    NamedType,
    Opaque,
    Phi,
    PointerType,
    Ret,
    StructType,
    index_literal,
    literal_index,
    parse_signature,
    parse_type,
)


class TestParseType:
    """Tests for type expressions."""

    def test_named_pointer(self) -> None:
        """A trailing star wraps the type in a typed pointer."""
        assert parse_type("%Qubit*") == PointerType(NamedType("Qubit"))

    def test_opaque_pointer(self) -> None:
        """`ptr` is a pointer without a pointee."""
        ty = parse_type("ptr")
        assert isinstance(ty, PointerType)
        assert ty.is_opaque

    def test_struct_round_trips(self) -> None:
        """Struct types print back in the canonical spacing."""
        ty = parse_type("{i32}")
        assert ty == StructType((parse_type("i32"),))
        assert str(ty) == "{ i32 }"

    def test_signature(self) -> None:
        """A function type is written as return type followed by parameters."""
        sig = parse_signature("%Result (%Qubit)")
        assert sig == FunctionType(NamedType("Result"), (NamedType("Qubit"),))
        assert str(sig) == "%Result (%Qubit)"

    def test_signature_rejects_plain_type(self) -> None:
        """A type that is not a function type is rejected."""
        with pytest.raises(QirParseError, match="Not a function type"):
            parse_signature("%Qubit")


class TestParseModule:
    """Tests for parse_module."""

    def test_sections(self, bell_base: str) -> None:
        """Each top-level entity lands in its section."""
        module = parse_module(bell_base)

        assert module.header == ("; ModuleID = 'bell'", 'source_filename = "bell"')
        assert [t.name for t in module.type_defs] == ["Qubit", "Result"]
        assert [f.name for f in module.functions] == ["main"]
        assert len(module.declarations) == 5
        assert len(module.metadata) == 2
        assert module.get_attribute_group(0) is not None
        assert module.get_function("main") is module.functions[0]
        assert module.get_declaration("__quantum__qis__h__body") is module.declarations[0]
        assert module.get_type_def("Result") is module.type_defs[1]
        assert module.get_function("missing") is None

    def test_literal_operands(self, bell_base: str) -> None:
        """Inline `%Qubit {i32 N}` literals are parsed as struct constants."""
        main = parse_module(bell_base).functions[0]
        cnot = list(main.instructions())[1]
        assert isinstance(cnot, Call)
        assert cnot.callee == "__quantum__qis__cnot__body"
        assert [literal_index(a) for a in cnot.args] == [0, 1]
        assert cnot.args[0] == index_literal("Qubit", 0)

    def test_entry_point_attributes(self, bell_base: str) -> None:
        """Entry point attribute values are available by key."""
        module = parse_module(bell_base)

        assert [f.name for f in module.entry_points()] == ["main"]
        assert module.entry_attribute("qir_profiles") == "base_profile"
        assert module.entry_attribute("required_num_qubits") == "2"
        assert module.entry_attribute("missing") is None

    def test_call_with_result(self, full_qir: str) -> None:
        """Calls keep their result name, return type and arguments."""
        main = parse_module(full_qir).functions[0]
        extract = list(main.instructions())[1]

        assert isinstance(extract, Call)
        assert extract.result == "q0"
        assert extract.return_type == NamedType("Qubit")
        assert extract.args[0].value == LocalRef("qs")
        assert extract.args[1].value == IntConst(64, 0)
        assert extract.uses() == {"qs"}

    def test_arithmetic_phi_and_ret(self) -> None:
        """Integer arithmetic, phi nodes and returns are parsed structurally."""
        text = """\
define i64 @f(i64 %a) {
entry:
  %b = add nsw i64 %a, 1
  br label %next
next:
  %c = phi i64 [ %b, %entry ], [ 2, %other ]
  ret i64 %c
}
"""
        function = parse_module(text).functions[0]
        add, branch, phi, ret = function.instructions()

        assert add == BinaryOp("b", "add", I64, LocalRef("a"), IntConst(64, 1), ("nsw",))
        assert isinstance(branch, Opaque)
        assert isinstance(phi, Phi)
        assert phi.incoming == ((LocalRef("b"), "entry"), (IntConst(64, 2), "other"))
        assert isinstance(ret, Ret)
        assert [b.label for b in function.blocks] == ["entry", "next"]

    def test_indirect_call_is_opaque(self) -> None:
        """Calls through a pointer are kept verbatim."""
        text = "define void @f(ptr %fn) {\nentry:\n  call void %fn()\n  ret void\n}\n"
        call = next(parse_module(text).functions[0].instructions())

        assert isinstance(call, Opaque)
        assert call.uses() == {"fn"}

    def test_comments_are_ignored(self) -> None:
        """Trailing comments inside bodies are dropped."""
        text = "define void @f() {\nentry: ; the only block\n  ret void ; done\n}\n"
        function = parse_module(text).functions[0]

        assert list(function.instructions()) == [Ret()]

    def test_unknown_line_reports_line_number(self) -> None:
        """Unrecognized top-level text is an error carrying its line number."""
        with pytest.raises(QirParseError, match="line 2: Unrecognized") as excinfo:
            parse_module("%Qubit = type { i32 }\nnonsense\n")
        assert excinfo.value.line == 2

    def test_unterminated_function(self) -> None:
        """A body without its closing brace is an error."""
        with pytest.raises(QirParseError, match="Unterminated"):
            parse_module("define void @f() {\nentry:\n  ret void\n")


class TestPrintModule:
    """Tests for print_module."""

    @pytest.mark.parametrize("fixture", ["full_qir", "static_qir", "bell_base"])
    def test_reparse_is_stable(self, fixture: str, request: pytest.FixtureRequest) -> None:
        """Printing and re-reading a module yields the same module."""
        module = parse_module(request.getfixturevalue(fixture))
        text = print_module(module)

        assert parse_module(text) == module
        assert print_module(parse_module(text)) == text

    def test_literal_form(self, bell_base: str) -> None:
        """Literals print in the compact `{i32 N}` form."""
        text = print_module(parse_module(bell_base))

        assert "call void @__quantum__qis__cnot__body(%Qubit {i32 0}, %Qubit {i32 1})" in text
        assert "%Qubit = type { i32 }" in text
