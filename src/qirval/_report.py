"""Machine-readable reports built from a pipeline run."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Literal

import tomli_w
from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from ._pipeline import PipelineResult

logger = logging.getLogger(__name__)


class _ReportModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class DiagnosticModel(_ReportModel):
    function: str
    error: str = Field(description="Name of the error class, e.g. DanglingIndexError")
    message: str


class LiveRangeModel(_ReportModel):
    """Instruction positions between which one qubit or result is live."""

    function: str
    kind: Literal["qubit", "result"]
    array: str | None = Field(default=None, description="SSA name of the allocation; absent for literals")
    offset: int
    index: int | None = None
    start: int
    end: int | None = Field(default=None, description="Absent if the element is never released")


class SignatureModel(_ReportModel):
    name: str
    surface: Literal["runtime", "instruction_set"]
    signature: str
    cataloged: bool
    call_sites: int


class ModuleReport(_ReportModel):
    """Summary of validating, lowering and tracking one module."""

    profile: Literal["full", "base", "adaptive"]
    functions: list[str] = Field(default_factory=list)
    qubit_count: int | None = Field(default=None, description="Qubit indices needed by the lowered module")
    result_count: int | None = Field(default=None, description="Result indices needed by the lowered module")
    signatures: list[SignatureModel] = Field(default_factory=list)
    live_ranges: list[LiveRangeModel] = Field(default_factory=list)
    diagnostics: list[DiagnosticModel] = Field(default_factory=list)
    unreleased: list[str] = Field(default_factory=list, description="Allocations never released, as '@function:%name'")
    lowering_error: str | None = None


def build_report(result: PipelineResult) -> ModuleReport:
    """Convert a `PipelineResult` into its report model."""
    lowered = result.lowered
    tracking = result.tracking
    return ModuleReport(
        profile=result.profile.value,
        functions=[f.name for f in result.module.functions],
        qubit_count=lowered.qubit_count if lowered is not None and result.profile.is_restricted else None,
        result_count=lowered.result_count if lowered is not None and result.profile.is_restricted else None,
        signatures=[
            SignatureModel(
                name=check.name,
                surface=check.surface.value,
                signature=str(check.signature),
                cataloged=check.cataloged,
                call_sites=check.call_sites,
            )
            for check in result.signatures
        ],
        live_ranges=[
            LiveRangeModel(
                function=r.function,
                kind=r.kind.value,
                array=r.array,
                offset=r.offset,
                index=r.index,
                start=r.start,
                end=r.end,
            )
            for r in tracking.live_ranges
        ],
        diagnostics=[DiagnosticModel(function=d.function, error=d.error, message=d.message) for d in tracking.diagnostics],
        unreleased=[f"@{a.function}:%{a.name}" for a in tracking.unreleased],
        lowering_error=str(result.lowering_error) if result.lowering_error is not None else None,
    )


def export_report(report: ModuleReport, path: Path | str, *, indent: int = 2) -> None:
    """Write a report as JSON (`.json`) or TOML (`.toml`).

    Raises:
        ValueError: If the file suffix is neither `.json` nor `.toml`.

    """
    path = Path(path)
    match path.suffix.lower():
        case ".json":
            path.write_text(report.model_dump_json(indent=indent) + "\n", encoding="utf-8")
        case ".toml":
            # TOML has no null; absent values are omitted.
            with path.open("wb") as f:
                tomli_w.dump(report.model_dump(mode="json", exclude_none=True), f)
        case _:
            msg = f"Unsupported report format {path.suffix!r}; use .json or .toml"
            raise ValueError(msg)
    logger.debug("Exported report to %s", path)
