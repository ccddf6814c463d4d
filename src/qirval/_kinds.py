"""Profiles and element kinds shared by all passes."""

from __future__ import annotations

from ._str_enum_with_doc import StrEnumWithDoc


class Profile(StrEnumWithDoc):
    """Target profile of a compilation."""

    FULL = "full", "Unrestricted representation: dynamic qubit and result arrays are allowed"
    BASE = "base", "Base profile: statically sized, every qubit and result is a constant literal"
    ADAPTIVE = "adaptive", "Adaptive profile: restricted like base for qubit and result values"

    @property
    def is_restricted(self) -> bool:
        return self is not Profile.FULL

    @property
    def attribute_value(self) -> str:
        """Value of the `qir_profiles` entry-point attribute for this profile."""
        return f"{self.value}_profile"

    @classmethod
    def from_attribute(cls, value: str) -> Profile | None:
        """Map a `qir_profiles` attribute value (`base_profile`, `adaptive_profile`, ...) to a profile."""
        for name in value.split(","):
            stem = name.strip().removesuffix("_profile")
            if stem in cls._value2member_map_:
                return cls(stem)
        return None


class ElementKind(StrEnumWithDoc):
    """The two kinds of indexed values."""

    QUBIT = "qubit", "A qubit, `%Qubit = type { i32 }`"
    RESULT = "result", "A measurement result slot, `%Result = type { i32 }`"

    @property
    def type_name(self) -> str:
        return "Qubit" if self is ElementKind.QUBIT else "Result"

    @property
    def array_type_name(self) -> str:
        return f"{self.type_name}Array"

    @property
    def required_count_attribute(self) -> str:
        """Entry-point attribute holding the number of indices the program uses."""
        return f"required_num_{self.value}s"
