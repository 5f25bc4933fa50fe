"""
Row Normalization - canonical text form of scalar values

Every scalar is reduced to ONE stable string before it is hashed, so the
same logical value always lands on the same bit no matter which worker,
process or release produced it.

Canonical forms:
    BOOLEAN    "true" / "false"
    INTEGER    decimal text ("-42")
    FLOAT      Java Float.toString text (32-bit shortest digits)
    DOUBLE     Java Double.toString text ("1.0", "1.0E10", "1.0E-4")
    DECIMAL    digits of the unscaled value, no sign, no point ("1.50" -> "15")
    DATE       "yyyy-MM-dd"
    TIMESTAMP  "yyyy-MM-dd HH:mm:ss[.fraction]" (fraction without trailing zeros)
    CHAR       string with trailing pad spaces stripped
    VARCHAR    raw string
    STRING     raw string
    BINARY     not applicable, contributes nothing

NOTE: the DATE and DOUBLE forms are pinned. Any drift in them silently
changes bit indices and breaks matching against stored fingerprints.
"""

from __future__ import annotations
from typing import Any, Callable, Optional
from enum import Enum
import datetime
import decimal
import math

import numpy as np

from .exceptions import UnsupportedValueError


class ValueKind(Enum):
    """Scalar categories with a canonical text form."""
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    DOUBLE = "double"
    DECIMAL = "decimal"
    DATE = "date"
    TIMESTAMP = "timestamp"
    CHAR = "char"
    VARCHAR = "varchar"
    STRING = "string"
    BINARY = "binary"


_BINARY_TYPES = (bytes, bytearray, memoryview)


def infer_kind(value: Any) -> ValueKind:
    """
    Pick the ValueKind for a Python value.

    Order matters: bool is an int subclass and datetime is a date subclass.
    """
    if isinstance(value, (bool, np.bool_)):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, np.integer)):
        return ValueKind.INTEGER
    if isinstance(value, np.float32):
        return ValueKind.FLOAT
    if isinstance(value, (float, np.floating)):
        return ValueKind.DOUBLE
    if isinstance(value, decimal.Decimal):
        return ValueKind.DECIMAL
    if isinstance(value, datetime.datetime):
        return ValueKind.TIMESTAMP
    if isinstance(value, datetime.date):
        return ValueKind.DATE
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, _BINARY_TYPES):
        return ValueKind.BINARY
    raise UnsupportedValueError(value)


# =============================================================================
# Java-compatible floating point text
# =============================================================================

def _java_float_text(shortest: str, value: float) -> str:
    """
    Render shortest round-trip digits the way Java's toString does.

    Plain notation for 1e-3 <= |x| < 1e7, otherwise d.dddE<exp>.
    """
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0.0:
        return "-0.0" if math.copysign(1.0, value) < 0 else "0.0"

    sign, digits, exponent = decimal.Decimal(shortest).as_tuple()
    digits = list(digits)
    while len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1
    text = "".join(str(d) for d in digits)
    sci = len(text) + exponent - 1
    prefix = "-" if sign else ""

    if 1e-3 <= abs(value) < 1e7:
        if sci >= 0:
            whole = text[:sci + 1].ljust(sci + 1, "0")
            frac = text[sci + 1:] or "0"
            return f"{prefix}{whole}.{frac}"
        return f"{prefix}0.{'0' * (-sci - 1)}{text}"
    return f"{prefix}{text[0]}.{text[1:] or '0'}E{sci}"


def _double_text(value: Any) -> str:
    value = float(value)
    return _java_float_text(repr(value), value)


def _float_text(value: Any) -> str:
    value32 = np.float32(value)
    return _java_float_text(str(value32), float(value32))


def _decimal_digits(value: Any) -> str:
    """Digits of the unscaled value after dropping trailing fractional zeros."""
    value = decimal.Decimal(value)
    if not value.is_finite():
        raise UnsupportedValueError(value, ValueKind.DECIMAL)
    _, digits, exponent = value.as_tuple()
    digits = list(digits)
    while exponent < 0 and len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1
    if exponent > 0:
        digits.extend([0] * exponent)
    text = "".join(str(d) for d in digits).lstrip("0")
    return text or "0"


def _date_text(value: datetime.date) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def _timestamp_text(value: datetime.datetime) -> str:
    text = (f"{_date_text(value)} "
            f"{value.hour:02d}:{value.minute:02d}:{value.second:02d}")
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    return text


# =============================================================================
# Per-kind formatters
# =============================================================================

def _as_boolean(value):
    if not isinstance(value, (bool, np.bool_)):
        raise UnsupportedValueError(value, ValueKind.BOOLEAN)
    return "true" if value else "false"


def _as_integer(value):
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, np.integer)):
        raise UnsupportedValueError(value, ValueKind.INTEGER)
    return str(int(value))


def _as_float(value):
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, float, np.number)):
        raise UnsupportedValueError(value, ValueKind.FLOAT)
    return _float_text(value)


def _as_double(value):
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, float, np.number)):
        raise UnsupportedValueError(value, ValueKind.DOUBLE)
    return _double_text(value)


def _as_decimal(value):
    if isinstance(value, bool) or not isinstance(value, (decimal.Decimal, int)):
        raise UnsupportedValueError(value, ValueKind.DECIMAL)
    return _decimal_digits(value)


def _as_date(value):
    if isinstance(value, datetime.datetime):
        value = value.date()
    if not isinstance(value, datetime.date):
        raise UnsupportedValueError(value, ValueKind.DATE)
    return _date_text(value)


def _as_timestamp(value):
    if not isinstance(value, datetime.date):
        raise UnsupportedValueError(value, ValueKind.TIMESTAMP)
    if not isinstance(value, datetime.datetime):
        value = datetime.datetime(value.year, value.month, value.day)
    return _timestamp_text(value)


def _as_char(value):
    if not isinstance(value, str):
        raise UnsupportedValueError(value, ValueKind.CHAR)
    return value.rstrip(" ")


def _as_string(value):
    if not isinstance(value, str):
        raise UnsupportedValueError(value, ValueKind.STRING)
    return value


def _as_binary(value):
    if not isinstance(value, _BINARY_TYPES):
        raise UnsupportedValueError(value, ValueKind.BINARY)
    return None


_FORMATTERS = {
    ValueKind.BOOLEAN: _as_boolean,
    ValueKind.INTEGER: _as_integer,
    ValueKind.FLOAT: _as_float,
    ValueKind.DOUBLE: _as_double,
    ValueKind.DECIMAL: _as_decimal,
    ValueKind.DATE: _as_date,
    ValueKind.TIMESTAMP: _as_timestamp,
    ValueKind.CHAR: _as_char,
    ValueKind.VARCHAR: _as_string,
    ValueKind.STRING: _as_string,
    ValueKind.BINARY: _as_binary,
}


def canonicalize(value: Any, kind: Optional[ValueKind] = None) -> Optional[str]:
    """
    Canonical text form of a scalar value.

    Args:
        value: Scalar to normalize (None allowed)
        kind: Declared column kind; inferred from the value when omitted

    Returns:
        Canonical string, or None when the value contributes nothing
        (null input or binary data)

    Raises:
        UnsupportedValueError: value has no canonical form for the kind
    """
    if value is None:
        return None
    if kind is None:
        kind = infer_kind(value)
    return _FORMATTERS[kind](value)


def canonicalizer_for(kind: Optional[ValueKind] = None) -> Callable[[Any], Optional[str]]:
    """Bind canonicalize() to one column kind."""
    def _canonical(value: Any) -> Optional[str]:
        return canonicalize(value, kind)
    return _canonical


__all__ = [
    'ValueKind',
    'infer_kind',
    'canonicalize',
    'canonicalizer_for',
]
