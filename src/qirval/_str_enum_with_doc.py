"""String enums whose members carry their own docstrings."""

from enum import StrEnum
from typing import Self


class StrEnumWithDoc(StrEnum):
    """Base class for string enums with per-member docstrings.

    Members are declared as `NAME = "value", "doc"`; the doc part is optional.
    Implementation based on this article: https://guicommits.com/add-docstrings-python-enum-members/
    """

    def __new__(cls, value: str, doc: str = "") -> Self:
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.__doc__ = doc
        return obj

    @classmethod
    def parse(cls, text: str) -> Self:
        """Look a member up by value, case-insensitively, with a readable error."""
        try:
            return cls(text.strip().lower())
        except ValueError:
            choices = ", ".join(m.value for m in cls)
            msg = f"Unknown {cls.__name__} {text!r}; expected one of: {choices}"
            raise ValueError(msg) from None
