from __future__ import annotations


class MMTFError(Exception):
    """Base class for errors raised while transforming MMTF data."""


class MissingFieldError(MMTFError, KeyError):
    """A required dictionary field is absent or holds a value of the wrong kind."""

    def __init__(self, field: str, reason: str = "missing"):
        self.field = field
        self.reason = reason
        super().__init__(f"MMTF field '{field}': {reason}")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class IndexOutOfBoundsError(MMTFError, IndexError):
    """An index stored in one array points outside the table it refers to."""


class ArrayLengthMismatchError(MMTFError, ValueError):
    """Parallel arrays disagree about their length."""


class ChargeParseError(MMTFError, ValueError):
    """A charge string is not a valid signed integer."""


class CodecError(MMTFError, ValueError):
    """Raised when bytes cannot be decoded into an MMTF dictionary."""
