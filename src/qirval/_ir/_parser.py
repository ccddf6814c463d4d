"""Reader for the textual IR subset.

The reader is line oriented: top-level entities occupy one line, function bodies
run from the `define ... {` line to the closing `}`. Inside a body the
instructions qirval reasons about (calls, integer arithmetic, phi, ret) are parsed
into structured form. Everything else is kept verbatim as `Opaque`.
"""

from __future__ import annotations

import logging
import re

from qirval._errors import QirParseError

from ._module import (
    Attribute,
    AttributeGroup,
    BinaryOp,
    Block,
    Call,
    Function,
    FunctionDecl,
    Instruction,
    Module,
    Opaque,
    Param,
    Phi,
    Ret,
    TypeDef,
)
from ._types import (
    ArrayType,
    FloatType,
    FunctionType,
    IntType,
    IrType,
    LabelType,
    NamedType,
    OpaqueType,
    PointerType,
    StructType,
    VoidType,
)
from ._values import GlobalRef, IntConst, KeywordConst, LocalRef, RawConst, StructConst, TypedValue, Value

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r'"([^"]*)"|([-a-zA-Z$._0-9]+)')
_INT_TYPE_RE = re.compile(r"i(\d+)\b")
_WORD_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_.]*")
_INT_RE = re.compile(r"-?\d+(?![\d.eE])")
_NUMBER_RE = re.compile(r"-?(?:0x[0-9A-Fa-f]+|\d+(?:\.\d*)?(?:[eE][-+]?\d+)?)")
_RESULT_RE = re.compile(r'^%("[^"]*"|[-a-zA-Z$._0-9]+)\s*=\s*(.*)$')
_LABEL_RE = re.compile(r'^("[^"]*"|[-a-zA-Z$._0-9]+):(?:\s*;.*)?$')
_TYPEDEF_RE = re.compile(r'^%("[^"]*"|[-a-zA-Z$._0-9]+)\s*=\s*type\s+(.*)$')
_ATTR_GROUP_RE = re.compile(r"^attributes\s+#(\d+)\s*=\s*\{(.*)\}\s*$")
_ATTR_ITEM_RE = re.compile(r'"(?P<qk>[^"]*)"(?:="(?P<qv>[^"]*)")?|(?P<bare>[^\s"=]+)(?:=(?P<bv>[^\s"]+))?')
_FUNC_HEADER_RE = re.compile(r'^(?P<kw>define|declare)\s+(?P<prefix>.*?)@(?P<name>"[^"]*"|[-a-zA-Z$._0-9]+)\s*\(')

FLOAT_TYPE_NAMES = frozenset({"half", "bfloat", "float", "double", "fp128", "x86_fp80", "ppc_fp128"})
KEYWORD_CONSTANTS = frozenset({"null", "undef", "poison", "zeroinitializer", "none"})
BINARY_OPCODES = frozenset({"add", "sub", "mul", "shl", "udiv", "sdiv", "urem", "srem", "and", "or", "xor", "lshr", "ashr"})
BINARY_FLAGS = frozenset({"nuw", "nsw", "exact", "disjoint"})
# Words that may appear between `call` and the return type, or before an operand.
CALL_MODIFIERS = frozenset(
    {
        "fast", "nnan", "ninf", "nsz", "arcp", "contract", "afn", "reassoc",
        "ccc", "fastcc", "coldcc", "tailcc", "swiftcc",
        "noundef", "zeroext", "signext", "inreg", "noalias", "nonnull",
    },
)  # fmt: skip
PARAM_ATTRIBUTES = frozenset(
    {
        "noundef", "nonnull", "readonly", "writeonly", "readnone", "nocapture", "noalias",
        "immarg", "signext", "zeroext", "inreg", "returned", "nofree", "byval", "sret",
    },
)  # fmt: skip
LINKAGE_KEYWORDS = frozenset(
    {
        "private", "internal", "external", "weak", "linkonce", "linkonce_odr", "weak_odr",
        "available_externally", "extern_weak", "common", "dso_local", "dso_preemptable",
        "hidden", "protected", "default", "unnamed_addr", "local_unnamed_addr",
        "ccc", "fastcc", "coldcc", "noundef", "zeroext", "signext", "inreg", "noalias", "nonnull",
    },
)  # fmt: skip


def _unquote(name: str) -> str:
    if name.startswith('"') and name.endswith('"'):
        return name[1:-1]
    return name


class _Reader:
    """Cursor over a single line of IR text."""

    def __init__(self, text: str, *, line: int | None = None) -> None:
        self.text = text
        self.pos = 0
        self.line = line

    def error(self, message: str) -> QirParseError:
        return QirParseError(f"{message} at column {self.pos + 1}: {self.text!r}", line=self.line)

    def skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def at_end(self) -> bool:
        self.skip_ws()
        return self.pos >= len(self.text)

    def peek(self, s: str) -> bool:
        self.skip_ws()
        return self.text.startswith(s, self.pos)

    def eat(self, s: str) -> bool:
        if self.peek(s):
            self.pos += len(s)
            return True
        return False

    def expect(self, s: str) -> None:
        if not self.eat(s):
            msg = f"Expected {s!r}"
            raise self.error(msg)

    def match(self, pattern: re.Pattern[str]) -> re.Match[str] | None:
        self.skip_ws()
        m = pattern.match(self.text, self.pos)
        if m is not None:
            self.pos = m.end()
        return m

    def peek_word(self) -> str | None:
        self.skip_ws()
        m = _WORD_RE.match(self.text, self.pos)
        return m.group(0) if m else None

    def word(self) -> str:
        m = self.match(_WORD_RE)
        if m is None:
            msg = "Expected a keyword"
            raise self.error(msg)
        return m.group(0)

    def name(self) -> str:
        m = _NAME_RE.match(self.text, self.pos)
        if m is None:
            msg = "Expected a name"
            raise self.error(msg)
        self.pos = m.end()
        return m.group(1) if m.group(1) is not None else m.group(2)

    def rest(self) -> str:
        text = self.text[self.pos :].strip()
        self.pos = len(self.text)
        return text

    def balanced(self) -> str:
        """Consume text up to and including the bracket matching the one at the cursor."""
        self.skip_ws()
        pairs = {"(": ")", "[": "]", "{": "}", "<": ">"}
        start = self.pos
        stack: list[str] = []
        in_string = False
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            self.pos += 1
            if in_string:
                in_string = ch != '"'
                continue
            if ch == '"':
                in_string = True
            elif ch in pairs:
                stack.append(pairs[ch])
            elif stack and ch == stack[-1]:
                stack.pop()
                if not stack:
                    return self.text[start : self.pos]
        msg = "Unbalanced brackets"
        raise self.error(msg)

    # -------------------------------------------------------------------------
    # Types
    # -------------------------------------------------------------------------

    def type(self, *, allow_function: bool = True) -> IrType:
        ty = self._base_type()
        while True:
            if self.eat("*"):
                ty = PointerType(ty)
            elif allow_function and self.peek("(") and not isinstance(ty, LabelType):
                ty = self._function_type(ty)
            else:
                return ty

    def _base_type(self) -> IrType:
        self.skip_ws()
        if (m := self.match(_INT_TYPE_RE)) is not None:
            return IntType(int(m.group(1)))
        if self.eat("%"):
            return NamedType(self.name())
        if self.eat("{"):
            fields: list[IrType] = []
            if not self.eat("}"):
                while True:
                    fields.append(self.type())
                    if self.eat("}"):
                        break
                    self.expect(",")
            return StructType(tuple(fields))
        if self.eat("["):
            count = self.match(re.compile(r"\d+"))
            if count is None:
                msg = "Expected array length"
                raise self.error(msg)
            self.expect("x")
            element = self.type()
            self.expect("]")
            return ArrayType(int(count.group(0)), element)
        word = self.peek_word()
        if word in FLOAT_TYPE_NAMES:
            self.word()
            return FloatType(word)
        match word:
            case "void":
                self.word()
                return VoidType()
            case "label":
                self.word()
                return LabelType()
            case "opaque":
                self.word()
                return OpaqueType()
            case "ptr":
                self.word()
                if self.peek("addrspace"):
                    msg = "Address spaces are not supported"
                    raise self.error(msg)
                return PointerType(None)
            case _:
                msg = "Expected a type"
                raise self.error(msg)

    def _function_type(self, return_type: IrType) -> FunctionType:
        self.expect("(")
        params: list[IrType] = []
        varargs = False
        if not self.eat(")"):
            while True:
                if self.eat("..."):
                    varargs = True
                else:
                    params.append(self.type())
                if self.eat(")"):
                    break
                self.expect(",")
        return FunctionType(return_type, tuple(params), varargs)

    # -------------------------------------------------------------------------
    # Values
    # -------------------------------------------------------------------------

    def value(self, ty: IrType) -> Value:
        self.skip_ws()
        if self.eat("%"):
            return LocalRef(self.name())
        if self.eat("@"):
            return GlobalRef(self.name())
        if self.peek("{"):
            self.expect("{")
            fields: list[TypedValue] = []
            if not self.eat("}"):
                while True:
                    fields.append(self.typed_value())
                    if self.eat("}"):
                        break
                    self.expect(",")
            return StructConst(tuple(fields))
        if self.peek("c\""):
            start = self.pos
            self.pos += 1
            end = self.text.index('"', self.pos + 1)
            self.pos = end + 1
            return RawConst(self.text[start : self.pos])
        if isinstance(ty, IntType) and (m := self.match(_INT_RE)) is not None:
            return IntConst(ty.bits, int(m.group(0)))
        if (m := self.match(_NUMBER_RE)) is not None:
            return RawConst(m.group(0))
        word = self.peek_word()
        if word in {"true", "false"}:
            self.word()
            return IntConst(1, int(word == "true"))
        if word in KEYWORD_CONSTANTS:
            self.word()
            return KeywordConst(word)
        if word is not None:
            # Constant expression: `getelementptr inbounds (...)`, `bitcast (...)`.
            start = self.pos
            while self.peek_word() is not None:
                self.word()
            self.skip_ws()
            if self.peek("("):
                self.balanced()
                return RawConst(self.text[start : self.pos].strip())
        msg = "Expected a value"
        raise self.error(msg)

    def typed_value(self) -> TypedValue:
        ty = self.type()
        attrs: list[str] = []
        while (word := self.peek_word()) in PARAM_ATTRIBUTES:
            attrs.append(self.word())
        return TypedValue(type=ty, value=self.value(ty), attrs=tuple(attrs))


def parse_type(text: str) -> IrType:
    """Parse a single type expression such as `%Qubit*` or `{ i32 }`."""
    reader = _Reader(text)
    ty = reader.type()
    if not reader.at_end():
        msg = "Unexpected trailing text"
        raise reader.error(msg)
    return ty


def parse_signature(text: str) -> FunctionType:
    """Parse a function type written as `ret (params)`, e.g. `void (%Qubit, %Result)`."""
    ty = parse_type(text)
    if not isinstance(ty, FunctionType):
        msg = f"Not a function type: {text!r}"
        raise QirParseError(msg)
    return ty


# =============================================================================
# Instructions
# =============================================================================


def _parse_call(reader: _Reader, result: str | None, text: str) -> Instruction:
    prefix_words: list[str] = []
    while (word := reader.peek_word()) in {"tail", "musttail", "notail"}:
        prefix_words.append(reader.word())
    reader.expect("call")
    prefix_words.append("call")
    while (word := reader.peek_word()) in CALL_MODIFIERS:
        prefix_words.append(reader.word())
    ty = reader.type()
    if not reader.eat("@"):
        # Indirect call through a pointer: nothing to check statically.
        return Opaque(text=text, result=result)
    callee = reader.name()
    reader.expect("(")
    args: list[TypedValue] = []
    if not reader.eat(")"):
        while True:
            args.append(reader.typed_value())
            if reader.eat(")"):
                break
            reader.expect(",")
    return_type = ty.return_type if isinstance(ty, FunctionType) else ty
    return Call(
        callee=_unquote(callee),
        return_type=return_type,
        args=tuple(args),
        result=result,
        prefix=" ".join(prefix_words),
        suffix=reader.rest(),
    )


def _parse_instruction(text: str, line: int) -> Instruction:
    result: str | None = None
    body = text
    if (m := _RESULT_RE.match(text)) is not None:
        result = _unquote(m.group(1))
        body = m.group(2)
    reader = _Reader(body, line=line)
    opcode = reader.peek_word()

    if opcode in {"call", "tail", "musttail", "notail"}:
        return _parse_call(reader, result, text)

    if opcode in BINARY_OPCODES and result is not None:
        reader.word()
        flags: list[str] = []
        while reader.peek_word() in BINARY_FLAGS:
            flags.append(reader.word())
        ty = reader.type()
        lhs = reader.value(ty)
        reader.expect(",")
        rhs = reader.value(ty)
        if not reader.at_end():
            return Opaque(text=text, result=result)
        return BinaryOp(result=result, opcode=opcode, type=ty, lhs=lhs, rhs=rhs, flags=tuple(flags))

    if opcode == "phi" and result is not None:
        reader.word()
        ty = reader.type()
        incoming: list[tuple[Value, str]] = []
        while True:
            reader.expect("[")
            value = reader.value(ty)
            reader.expect(",")
            reader.expect("%")
            label = reader.name()
            reader.expect("]")
            incoming.append((value, label))
            if not reader.eat(","):
                break
        return Phi(result=result, type=ty, incoming=tuple(incoming))

    if opcode == "ret" and result is None:
        reader.word()
        if reader.peek_word() == "void":
            reader.word()
            return Ret()
        return Ret(value=reader.typed_value())

    return Opaque(text=text, result=result)


# =============================================================================
# Top level
# =============================================================================


def _strip_comment(line: str) -> str:
    """Remove a trailing `;` comment that is not inside a string literal."""
    in_string = False
    for i, ch in enumerate(line):
        if ch == '"':
            in_string = not in_string
        elif ch == ";" and not in_string:
            return line[:i].rstrip()
    return line.rstrip()


def _parse_params(reader: _Reader) -> tuple[tuple[Param, ...], bool]:
    params: list[Param] = []
    varargs = False
    reader.expect("(")
    if reader.eat(")"):
        return (), False
    while True:
        if reader.eat("..."):
            varargs = True
        else:
            ty = reader.type(allow_function=False)
            attrs: list[str] = []
            while (word := reader.peek_word()) is not None and word in PARAM_ATTRIBUTES:
                attrs.append(reader.word())
            name = reader.name() if reader.eat("%") else None
            params.append(Param(type=ty, name=name, attrs=tuple(attrs)))
        if reader.eat(")"):
            return tuple(params), varargs
        reader.expect(",")


def _parse_function_header(text: str, line: int) -> tuple[str, FunctionDecl]:
    m = _FUNC_HEADER_RE.match(text)
    if m is None:
        msg = "Malformed function header"
        raise QirParseError(msg, line=line)
    keyword = m.group("kw")
    prefix_reader = _Reader(m.group("prefix"), line=line)
    prefix_words: list[str] = []
    while (word := prefix_reader.peek_word()) in LINKAGE_KEYWORDS:
        prefix_words.append(prefix_reader.word())
    return_type = prefix_reader.type()
    if not prefix_reader.at_end():
        msg = f"Unexpected text before function name: {prefix_reader.rest()!r}"
        raise QirParseError(msg, line=line)

    reader = _Reader(text, line=line)
    reader.pos = m.end() - 1
    params, varargs = _parse_params(reader)
    suffix = reader.rest()
    if keyword == "define":
        if not suffix.endswith("{"):
            msg = "Function definition must open its body with '{' on the header line"
            raise QirParseError(msg, line=line)
        suffix = suffix[:-1].rstrip()
    decl = FunctionDecl(
        name=_unquote(m.group("name")),
        return_type=return_type,
        params=params,
        varargs=varargs,
        prefix=tuple(prefix_words),
        suffix=suffix,
    )
    return keyword, decl


def _parse_attribute_group(m: re.Match[str]) -> AttributeGroup:
    items: list[Attribute] = []
    for item in _ATTR_ITEM_RE.finditer(m.group(2)):
        if item.group("qk") is not None:
            items.append(Attribute(key=item.group("qk"), value=item.group("qv")))
        else:
            items.append(Attribute(key=item.group("bare"), value=item.group("bv"), quoted=False))
    return AttributeGroup(id=int(m.group(1)), items=tuple(items))


def parse_module(text: str) -> Module:  # noqa: C901, PLR0912, PLR0915
    """Parse IR text into a `Module`.

    Args:
        text: The module source.

    Returns:
        The parsed module.

    Raises:
        QirParseError: If a line cannot be read. The error carries the 1-based line number.

    """
    header: list[str] = []
    type_defs: list[TypeDef] = []
    globals_: list[str] = []
    functions: list[Function] = []
    declarations: list[FunctionDecl] = []
    attribute_groups: list[AttributeGroup] = []
    metadata: list[str] = []

    current: FunctionDecl | None = None
    blocks: list[Block] = []
    label: str | None = None
    instructions: list[Instruction] = []

    for lineno, raw in enumerate(text.splitlines(), start=1):
        stripped = raw.strip()

        if current is not None:
            line = _strip_comment(stripped)
            if not line:
                continue
            if line == "}":
                if instructions or label is not None:
                    blocks.append(Block(label=label, instructions=tuple(instructions)))
                functions.append(Function(decl=current, blocks=tuple(blocks)))
                current, blocks, label, instructions = None, [], None, []
                continue
            if (m := _LABEL_RE.match(line)) is not None:
                if instructions or label is not None:
                    blocks.append(Block(label=label, instructions=tuple(instructions)))
                label, instructions = _unquote(m.group(1)), []
                continue
            instructions.append(_parse_instruction(line, lineno))
            continue

        if not stripped:
            continue
        if stripped.startswith(";"):
            if stripped.startswith("; ModuleID") and not header:
                header.append(stripped)
            continue
        if stripped.startswith(("source_filename", "target ")):
            header.append(stripped)
        elif (m := _TYPEDEF_RE.match(stripped)) is not None:
            reader = _Reader(m.group(2), line=lineno)
            body = reader.type()
            if not reader.at_end():
                msg = f"Unexpected text after type definition: {reader.rest()!r}"
                raise QirParseError(msg, line=lineno)
            type_defs.append(TypeDef(name=_unquote(m.group(1)), body=body))
        elif stripped.startswith("@"):
            globals_.append(stripped)
        elif stripped.startswith(("define", "declare")):
            keyword, decl = _parse_function_header(_strip_comment(stripped), lineno)
            if keyword == "declare":
                declarations.append(decl)
            else:
                current = decl
        elif (m := _ATTR_GROUP_RE.match(stripped)) is not None:
            attribute_groups.append(_parse_attribute_group(m))
        elif stripped.startswith("!"):
            metadata.append(stripped)
        else:
            msg = f"Unrecognized top-level entity: {stripped!r}"
            raise QirParseError(msg, line=lineno)

    if current is not None:
        msg = f"Unterminated body of function '@{current.name}'"
        raise QirParseError(msg)

    logger.debug(
        "Parsed module: %d type(s), %d definition(s), %d declaration(s)",
        len(type_defs),
        len(functions),
        len(declarations),
    )

    return Module(
        header=tuple(header),
        type_defs=tuple(type_defs),
        globals=tuple(globals_),
        functions=tuple(functions),
        declarations=tuple(declarations),
        attribute_groups=tuple(attribute_groups),
        metadata=tuple(metadata),
    )
