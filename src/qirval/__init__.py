"""Validation and profile-aware lowering for value-typed QIR modules."""

__all__ = [
    "DEFAULT_CATALOG",
    "AllocationRecord",
    "DanglingIndexError",
    "Diagnostic",
    "ElementKind",
    "FunctionCatalog",
    "FunctionSpec",
    "IndexEvent",
    "IndexExhaustionError",
    "IndexState",
    "IndexedValue",
    "LiveRange",
    "LoweringError",
    "LoweringResult",
    "ModuleReport",
    "NonStaticIndexError",
    "PipelineResult",
    "Profile",
    "ProfileSummary",
    "QirParseError",
    "QirvalError",
    "Role",
    "SchemaMismatch",
    "SignatureCheck",
    "SignatureMismatch",
    "Surface",
    "TraceEntry",
    "TrackingReport",
    "TypeRegistry",
    "build_report",
    "check_profile",
    "check_reserved_types",
    "expand_module",
    "export_report",
    "gate_trace",
    "lower_module",
    "parse_module",
    "print_module",
    "process_module",
    "process_text",
    "track_module",
    "validate_signatures",
]

from ._allocation import AllocationRecord, IndexedValue, IndexState
from ._catalog import DEFAULT_CATALOG, FunctionCatalog, FunctionSpec, Role, Surface
from ._errors import (
    DanglingIndexError,
    IndexExhaustionError,
    LoweringError,
    NonStaticIndexError,
    QirParseError,
    QirvalError,
    SchemaMismatch,
    SignatureMismatch,
)
from ._ir import parse_module, print_module
from ._kinds import ElementKind, Profile
from ._lowering import LoweringResult, ProfileSummary, TraceEntry, check_profile, expand_module, gate_trace, lower_module
from ._pipeline import PipelineResult, process_module, process_text
from ._registry import TypeRegistry, check_reserved_types
from ._report import ModuleReport, build_report, export_report
from ._signatures import SignatureCheck, validate_signatures
from ._tracker import Diagnostic, IndexEvent, LiveRange, TrackingReport, track_module
