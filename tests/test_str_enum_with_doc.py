from enum import unique

import pytest

from qirval import ElementKind, Profile
from qirval._str_enum_with_doc import StrEnumWithDoc


class Gate(StrEnumWithDoc):
    H = "h", "Hadamard"
    CNOT = "cnot", "Controlled NOT"
    RESET = "reset"  # No docstring provided


def test_enum_value() -> None:
    assert Gate.H.value == "h"
    assert Gate.RESET.value == "reset"


def test_enum_docstring() -> None:
    assert Gate.H.__doc__ == "Hadamard"
    assert Gate.RESET.__doc__ == ""


def test_enum_is_str() -> None:
    assert isinstance(Gate.CNOT, str)
    assert Gate.CNOT == "cnot"
    assert f"{Gate.CNOT}" == "cnot"


def test_enum_by_value() -> None:
    assert Gate("h") is Gate.H
    assert Gate["CNOT"] is Gate.CNOT


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("base", Profile.BASE),
        ("  Adaptive ", Profile.ADAPTIVE),
        ("FULL", Profile.FULL),
    ],
)
def test_parse(text: str, expected: Profile) -> None:
    assert Profile.parse(text) is expected


def test_parse_unknown_lists_choices() -> None:
    with pytest.raises(ValueError, match="Unknown Profile 'quantum'; expected one of: full, base, adaptive"):
        Profile.parse("quantum")


def test_domain_enums_carry_docs() -> None:
    assert all(member.__doc__ for member in Profile)
    assert ElementKind.QUBIT.__doc__.startswith("A qubit")


def test_profile_attribute_values() -> None:
    assert Profile.BASE.attribute_value == "base_profile"
    assert Profile.from_attribute("custom, adaptive_profile") is Profile.ADAPTIVE
    assert Profile.from_attribute("custom") is None


def test_unique_decorator_rejects_duplicate_values_with_different_docs() -> None:
    """Ensure @unique considers only values, not docstrings."""
    with pytest.raises(ValueError, match="duplicate values"):

        @unique
        class DuplicateGate(StrEnumWithDoc):
            X = "x", "Pauli X"
            NOT = "x", "Bit flip"
