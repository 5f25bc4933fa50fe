"""
Exception hierarchy for bitmatch.

All errors derive from ValueError so callers that already guard bad input
with ``except ValueError`` keep working.

Null inputs and empty intersections are NOT errors and have no class here.
"""


class BitMatchError(ValueError):
    """Base class for all bitmatch errors."""


class UnsupportedValueError(BitMatchError):
    """A value of a type with no canonical text form reached the hasher."""

    def __init__(self, value, kind=None):
        self.value = value
        self.kind = kind
        if kind is not None:
            msg = f"Value {value!r} of type {type(value).__name__} cannot be read as {kind}"
        else:
            msg = f"Unsupported value type: {type(value).__name__}"
        super().__init__(msg)


class CorruptEncodingError(BitMatchError):
    """A byte sequence is not a valid bit vector encoding."""


class AccumulatorStateError(BitMatchError):
    """An accumulator operation was called in a mode or state that forbids it."""


__all__ = [
    'BitMatchError',
    'UnsupportedValueError',
    'CorruptEncodingError',
    'AccumulatorStateError',
]
