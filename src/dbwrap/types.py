"""
Parameter typing for bound statements.

This module provides:
- BindType: How a parameter is encoded when bound (integer/double/text/binary)
- Param: Tagged parameter value, built by the caller or inferred
- infer_bind_type: Narrow, explicit type check used when the caller passes raw values
- bind_params: Convert a sequence of raw values or Params into driver values
"""
import datetime
import decimal
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Self

from dbwrap.exceptions import ArgumentError

logger = logging.getLogger(__name__)

TEXT_TYPES = (str, decimal.Decimal, datetime.date, datetime.time)
BINARY_TYPES = (bytes, bytearray, memoryview)

# Signed 64-bit range accepted by every supported driver for integer binds
INT64_MIN = -2**63
INT64_MAX = 2**63 - 1


class BindType(Enum):
    """Bind type of a statement parameter.

    Values are the single-letter codes used by prepared-statement APIs.
    """
    INTEGER = 'i'
    DOUBLE = 'd'
    TEXT = 's'
    BINARY = 'b'


def infer_bind_type(value: Any) -> BindType:
    """Infer the bind type of a raw Python value.

    Evaluated in order: bool or int -> INTEGER, binary -> BINARY,
    float -> DOUBLE, text-like values and None -> TEXT.

    >>> infer_bind_type(True)
    <BindType.INTEGER: 'i'>
    >>> infer_bind_type(None)
    <BindType.TEXT: 's'>

    Raises
        ArgumentError: For any other type
    """
    if isinstance(value, bool | int):
        return BindType.INTEGER
    if isinstance(value, BINARY_TYPES):
        return BindType.BINARY
    if isinstance(value, float):
        return BindType.DOUBLE
    if value is None or isinstance(value, TEXT_TYPES):
        return BindType.TEXT
    raise ArgumentError(f'Cannot infer bind type for {type(value).__name__}: {value!r}')


def check_int64(value: int) -> int:
    """Return `value` unchanged, or raise ArgumentError outside the signed 64-bit range.

    >>> check_int64(2**63 - 1)
    9223372036854775807
    """
    if not INT64_MIN <= value <= INT64_MAX:
        raise ArgumentError(f'Integer {value} is outside the 64-bit range')
    return value


def _as_integer(value: Any) -> int:
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f'{value!r} is not integral')
    if isinstance(value, decimal.Decimal) and value != value.to_integral_value():
        raise ValueError(f'{value!r} is not integral')
    return check_int64(int(value))


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value.isoformat(sep=' ')
    if isinstance(value, datetime.date | datetime.time):
        return value.isoformat()
    if isinstance(value, decimal.Decimal):
        return format(value, 'f')
    return str(value)


_COERCE = {
    BindType.INTEGER: _as_integer,
    BindType.DOUBLE: float,
    BindType.TEXT: _as_text,
    BindType.BINARY: bytes,
    }


@dataclass(frozen=True, slots=True)
class Param:
    """Statement parameter tagged with its bind type.

    The value is coerced to the bind type on construction; None stays None
    for every bind type. INTEGER values must be integral and fit in a
    signed 64-bit integer.
    """
    bind_type: BindType
    value: Any

    def __post_init__(self):
        if self.value is None:
            return
        try:
            coerced = _COERCE[self.bind_type](self.value)
        except (TypeError, ValueError, OverflowError) as exc:
            raise ArgumentError(f'Cannot bind {self.value!r} as {self.bind_type.name}') from exc
        object.__setattr__(self, 'value', coerced)

    @classmethod
    def infer(cls, value: Any) -> Self:
        return cls(infer_bind_type(value), value)

    @classmethod
    def integer(cls, value: Any) -> Self:
        return cls(BindType.INTEGER, value)

    @classmethod
    def double(cls, value: Any) -> Self:
        return cls(BindType.DOUBLE, value)

    @classmethod
    def text(cls, value: Any) -> Self:
        return cls(BindType.TEXT, value)

    @classmethod
    def binary(cls, value: Any) -> Self:
        return cls(BindType.BINARY, value)

    @classmethod
    def null(cls) -> Self:
        return cls(BindType.TEXT, None)


def bind_params(args: tuple | list) -> tuple[tuple, str]:
    """Convert raw values or Params into driver values.

    Returns
        Tuple of (driver values, bind type signature such as 'isd')
    """
    params = [arg if isinstance(arg, Param) else Param.infer(arg) for arg in args]
    signature = ''.join(p.bind_type.value for p in params)
    logger.debug(f'Bind signature: {signature}')
    return tuple(p.value for p in params), signature
