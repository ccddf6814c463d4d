"""Run the passes in order on one module.

Type Registry -> Signature Validator -> Profile-Aware Lowering -> Uniqueness Tracker.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ._allocation import DEFAULT_INDEX_WIDTH
from ._catalog import DEFAULT_CATALOG
from ._errors import DanglingIndexError, IndexExhaustionError, LoweringError
from ._ir import parse_module
from ._kinds import Profile
from ._lowering import lower_module
from ._registry import check_reserved_types
from ._signatures import validate_signatures
from ._tracker import track_module

if TYPE_CHECKING:
    from ._catalog import FunctionCatalog
    from ._errors import QirvalError
    from ._ir import Module
    from ._lowering import LoweringResult
    from ._registry import TypeRegistry
    from ._signatures import SignatureCheck
    from ._tracker import TrackingReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PipelineResult:
    """Everything the passes produced for one module.

    Attributes:
        module: The input module, in the full representation.
        registry: Reserved and other type definitions of the module.
        signatures: Validated runtime and instruction-set functions.
        profile: Target profile.
        lowered: Lowering output, or None if lowering failed.
        lowering_error: The error that stopped lowering, if any. Besides
            `LoweringError`, this is a `DanglingIndexError` or `IndexExhaustionError`
            found while rewriting registers into literals.
        tracking: Uniqueness tracking of the lowered module, or of the input
            module when lowering failed or the target is the full profile.

    """

    module: Module
    registry: TypeRegistry
    signatures: list[SignatureCheck]
    profile: Profile
    lowered: LoweringResult | None
    lowering_error: QirvalError | None
    tracking: TrackingReport

    @property
    def output(self) -> Module:
        """The module to emit: lowered if lowering succeeded, the input otherwise."""
        return self.lowered.module if self.lowered is not None else self.module

    @property
    def ok(self) -> bool:
        return self.lowering_error is None and self.tracking.ok


def process_module(
    module: Module,
    *,
    profile: Profile = Profile.FULL,
    catalog: FunctionCatalog = DEFAULT_CATALOG,
    strict_tracking: bool | None = None,
    index_width: int = DEFAULT_INDEX_WIDTH,
) -> PipelineResult:
    """Validate, lower and track one module.

    Args:
        module: The parsed module.
        profile: Target profile.
        catalog: Known runtime and instruction-set functions.
        strict_tracking: Raise on the first tracking violation. Defaults to
            True for restricted profiles and False for the full profile.
        index_width: Bit width of the index field of `%Qubit`/`%Result`.

    Returns:
        The output of every pass.

    Raises:
        SchemaMismatch: If a reserved type has an incompatible definition.
        SignatureMismatch: If a runtime or instruction-set function is not value-semantic.
        DanglingIndexError: If strict tracking finds an index outside its live range.
        IndexExhaustionError: If strict tracking runs out of indices.

    """
    registry = check_reserved_types(module)
    signatures = validate_signatures(module, registry, catalog)

    lowered: LoweringResult | None = None
    lowering_error: QirvalError | None = None
    try:
        lowered = lower_module(module, registry, profile, catalog=catalog, index_width=index_width)
    except (LoweringError, DanglingIndexError, IndexExhaustionError) as error:
        logger.debug("Lowering to %s failed: %s", profile, error)
        lowering_error = error

    if lowered is not None and profile.is_restricted:
        strict = profile.is_restricted if strict_tracking is None else strict_tracking
        tracking = track_module(lowered.module, registry, strict=strict, index_width=index_width, catalog=catalog)
    else:
        # Without a restricted output the tracker can only advise.
        strict = bool(strict_tracking) and lowering_error is None
        tracking = track_module(module, registry, strict=strict, index_width=index_width, catalog=catalog)

    return PipelineResult(
        module=module,
        registry=registry,
        signatures=signatures,
        profile=profile,
        lowered=lowered,
        lowering_error=lowering_error,
        tracking=tracking,
    )


def process_text(
    text: str,
    *,
    profile: Profile = Profile.FULL,
    catalog: FunctionCatalog = DEFAULT_CATALOG,
    strict_tracking: bool | None = None,
    index_width: int = DEFAULT_INDEX_WIDTH,
) -> PipelineResult:
    """Parse IR text and run `process_module` on it."""
    return process_module(
        parse_module(text),
        profile=profile,
        catalog=catalog,
        strict_tracking=strict_tracking,
        index_width=index_width,
    )
