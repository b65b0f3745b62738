"""
Type handling for record binding and row decoding.

This module provides:
- TypeConverter: Convert Python values to database-compatible formats
- resolve_annotation: Split a field annotation into (type, nullable)
- from_db: Convert a column value to a field's annotated type
- convert_date / convert_datetime: SQLite column converters
"""
import datetime
import decimal
import enum
import json
import logging
import math
import types
import typing
from collections.abc import Callable
from typing import Annotated, Any, Union

import dateutil.parser
import numpy as np
import pandas as pd

from sqlrecord.exceptions import TypeConversionError

logger = logging.getLogger(__name__)

NUMPY_FLOAT_TYPES = (np.floating,)
NUMPY_INT_TYPES = (np.integer, np.unsignedinteger)
NoneType = type(None)


def _convert_numpy_value(val: Any) -> float | int | bool | datetime.datetime | None:
    """Convert NumPy scalar to Python native type."""
    if isinstance(val, NUMPY_FLOAT_TYPES):
        return None if np.isnan(val) else float(val)
    if isinstance(val, NUMPY_INT_TYPES):
        return int(val)
    if isinstance(val, np.bool_):
        return bool(val)
    if isinstance(val, np.datetime64):
        if np.isnat(val):
            return None
        return pd.Timestamp(val).to_pydatetime()
    return val.item()


class TypeConverter:
    """Type conversion for bound parameters.

    Handles NumPy and Pandas scalars, enums and non-finite floats.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single value to a database-compatible format."""
        if value is None:
            return None

        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None

        if isinstance(value, np.generic):
            return _convert_numpy_value(value)

        if value is pd.NaT or value is pd.NA:
            return None

        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()

        if isinstance(value, enum.Enum):
            return value.value

        return value

    @staticmethod
    def convert_params(params: Any) -> Any:
        """Convert a collection of parameters for database operations."""
        if params is None:
            return None

        if isinstance(params, dict):
            return {k: TypeConverter.convert_value(v) for k, v in params.items()}

        if isinstance(params, list | tuple):
            return type(params)(TypeConverter.convert_value(v) for v in params)

        return TypeConverter.convert_value(params)


def resolve_annotation(annotation: Any) -> tuple[Any, bool]:
    """Return the concrete type behind an annotation and whether it admits None.

    >>> resolve_annotation(int | None)
    (<class 'int'>, True)
    >>> resolve_annotation(str)
    (<class 'str'>, False)
    """
    origin = typing.get_origin(annotation)
    if origin is Annotated:
        return resolve_annotation(typing.get_args(annotation)[0])
    if origin is Union or origin is types.UnionType:
        args = typing.get_args(annotation)
        concrete = [a for a in args if a is not NoneType]
        nullable = len(concrete) != len(args)
        if len(concrete) == 1:
            target, _ = resolve_annotation(concrete[0])
            return target, nullable
        return Any, nullable
    if annotation is Any or annotation is NoneType:
        return Any, True
    return annotation, False


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int | np.integer) and value in {0, 1}:
        return bool(value)
    if isinstance(value, str) and value.lower() in {'t', 'true', '1', 'f', 'false', '0'}:
        return value.lower() in {'t', 'true', '1'}
    raise ValueError(f'not a boolean: {value!r}')


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float | decimal.Decimal):
        if value != int(value):
            raise ValueError(f'{value!r} is not integral')
        return int(value)
    if isinstance(value, str | bytes):
        return int(value)
    raise TypeError(f'cannot convert {type(value).__name__} to int')


def _to_float(value: Any) -> float:
    if isinstance(value, bool | datetime.date):
        raise TypeError(f'cannot convert {type(value).__name__} to float')
    return float(value)


def _to_decimal(value: Any) -> decimal.Decimal:
    if isinstance(value, decimal.Decimal):
        return value
    try:
        return decimal.Decimal(str(value))
    except decimal.InvalidOperation as err:
        raise ValueError(f'not a decimal: {value!r}') from err


def _to_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value).decode('utf-8')
    return str(value)


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value)
    if isinstance(value, str):
        return value.encode('utf-8')
    raise TypeError(f'cannot convert {type(value).__name__} to bytes')


def _parse_timestamp(value: str | bytes) -> datetime.datetime:
    if isinstance(value, bytes):
        value = value.decode('utf-8')
    try:
        return dateutil.parser.isoparse(value)
    except ValueError:
        return dateutil.parser.parse(value)


def convert_date(value: bytes) -> datetime.date:
    """SQLite converter for columns declared as date."""
    return _parse_timestamp(value).date()


def convert_datetime(value: bytes) -> datetime.datetime:
    """SQLite converter for columns declared as datetime or timestamp."""
    return _parse_timestamp(value)


def _to_datetime(value: Any) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time())
    if isinstance(value, str | bytes):
        return _parse_timestamp(value)
    raise TypeError(f'cannot convert {type(value).__name__} to datetime')


def _to_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str | bytes):
        return _parse_timestamp(value).date()
    raise TypeError(f'cannot convert {type(value).__name__} to date')


def _to_time(value: Any) -> datetime.time:
    if isinstance(value, datetime.time):
        return value
    if isinstance(value, datetime.datetime):
        return value.time()
    if isinstance(value, str | bytes):
        text = value.decode('utf-8') if isinstance(value, bytes) else value
        return datetime.time.fromisoformat(text)
    raise TypeError(f'cannot convert {type(value).__name__} to time')


def _to_json(target: type) -> Callable[[Any], Any]:
    def convert(value: Any) -> Any:
        if isinstance(value, str | bytes):
            value = json.loads(value)
        if not isinstance(value, target):
            raise TypeError(f'expected {target.__name__}, got {type(value).__name__}')
        return value
    return convert


_DECODERS: dict[type, Callable[[Any], Any]] = {
    bool: _to_bool,
    int: _to_int,
    float: _to_float,
    decimal.Decimal: _to_decimal,
    str: _to_str,
    bytes: _to_bytes,
    datetime.datetime: _to_datetime,
    datetime.date: _to_date,
    datetime.time: _to_time,
    dict: _to_json(dict),
    list: _to_json(list),
}


def from_db(value: Any, annotation: Any) -> Any:
    """Convert a column value to the annotated field type.

    Raises
        TypeConversionError: NULL into a non-optional field, or a value that
            cannot be represented as the target type

    >>> from_db('2006-01-02 15:04:05', datetime.datetime)
    datetime.datetime(2006, 1, 2, 15, 4, 5)
    >>> from_db(1, bool)
    True
    """
    target, nullable = resolve_annotation(annotation)
    if value is None:
        if nullable:
            return None
        raise TypeConversionError(f'cannot convert NULL to {getattr(target, "__name__", target)}')

    if target is Any or not isinstance(target, type):
        return value

    try:
        decoder = _DECODERS.get(target)
        if decoder is not None:
            return decoder(value)
        if issubclass(target, enum.Enum):
            return target(value)
        if isinstance(value, target):
            return value
        return target(value)
    except (ValueError, TypeError, OverflowError) as err:
        raise TypeConversionError(
            f'cannot convert {value!r} to {target.__name__}: {err}') from err


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
