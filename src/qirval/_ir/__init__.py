"""In-memory representation of QIR modules.

This package holds pure, immutable data structures for the subset of the textual
IR that qirval reasons about, together with a reader and a writer:
- Types: IntType, PointerType, NamedType, StructType, FunctionType, ...
- Values: LocalRef, IntConst, StructConst, TypedValue, ...
- Module: TypeDef, FunctionDecl, Function, Block, Call and other instructions
- parse_module / print_module: text <-> Module
"""

from ._module import (
    ENTRY_POINT_ATTRIBUTES,
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
from ._parser import parse_module, parse_signature, parse_type
from ._printer import print_module
from ._types import (
    DOUBLE,
    I1,
    I8,
    I32,
    I64,
    VOID,
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
    named_types_in,
    walk_type,
)
from ._values import (
    GlobalRef,
    IntConst,
    KeywordConst,
    LocalRef,
    RawConst,
    StructConst,
    TypedValue,
    Value,
    index_literal,
    literal_index,
)

__all__ = [
    "DOUBLE",
    "ENTRY_POINT_ATTRIBUTES",
    "I1",
    "I8",
    "I32",
    "I64",
    "VOID",
    "ArrayType",
    "Attribute",
    "AttributeGroup",
    "BinaryOp",
    "Block",
    "Call",
    "FloatType",
    "Function",
    "FunctionDecl",
    "FunctionType",
    "GlobalRef",
    "Instruction",
    "IntConst",
    "IntType",
    "IrType",
    "KeywordConst",
    "LabelType",
    "LocalRef",
    "Module",
    "NamedType",
    "Opaque",
    "OpaqueType",
    "Param",
    "Phi",
    "PointerType",
    "RawConst",
    "Ret",
    "StructConst",
    "StructType",
    "TypeDef",
    "TypedValue",
    "Value",
    "VoidType",
    "index_literal",
    "literal_index",
    "named_types_in",
    "parse_module",
    "parse_signature",
    "parse_type",
    "print_module",
    "walk_type",
]
