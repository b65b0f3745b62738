"""
Tag-driven reflection over record types.

A record is a dataclass whose fields declare their column under a metadata
key (``'db'`` by default)::

    @dataclass
    class Address:
        street: str = column('street', omitempty=True, default='')

    @dataclass
    class User:
        id: int = column('id', omitempty=True, default=0)
        name: str = field(default='', metadata={'db': 'name'})
        address: Address = field(default_factory=Address)

The tag grammar is ``<column>[,omitempty]``. A column name of ``-`` (or an
empty one) marks the field as not mapped. A dataclass-typed field without a
tag is embedded: its columns are spliced into the parent's column list at
the field's position, so ``columns(User) == ['id', 'name', 'street']``.
Fields without a tag that are not dataclasses are ignored.

`describe` is the schema descriptor every other module builds on; its
result is cached per (type, tag).
"""
import dataclasses
import decimal
import logging
import typing
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import numpy as np

from sqlrecord.exceptions import RecordDecodeError, SchemaError
from sqlrecord.exceptions import TypeConversionError
from sqlrecord.types import from_db, resolve_annotation

logger = logging.getLogger(__name__)

__all__ = [
    'DEFAULT_TAG',
    'Column',
    'column',
    'describe',
    'columns',
    'bindings',
    'to_map',
    'from_row',
    'is_empty',
]

DEFAULT_TAG = 'db'

_EMPTY_TYPES = (bool, int, float, decimal.Decimal, str, bytes, bytearray,
                list, tuple, dict, set, frozenset, np.generic)


@dataclass(frozen=True, slots=True)
class Column:
    """One mapped field of a record type.

    Attributes
        name: column name
        omitempty: drop the column from writes while it holds a zero value
        path: attribute path from the record root (embedded fields first)
        annotation: the field's resolved type annotation
        nullable_parent: an embedding field on the path admits None
    """
    name: str
    omitempty: bool
    path: tuple[str, ...]
    annotation: Any
    nullable_parent: bool = False

    def value(self, record: Any) -> Any:
        """Read this column's value from a record instance."""
        for attr in self.path:
            if record is None:
                return None
            record = getattr(record, attr)
        return record


class _Embedded(dict):
    """Values collected for an embedded record during decoding."""


class _Null(typing.NamedTuple):
    """NULL read under an optional embedding field. Decoded only when the
    embedded record turns out to be present."""
    column: Column

    def decode(self) -> Any:
        try:
            return from_db(None, self.column.annotation)
        except TypeConversionError as err:
            raise RecordDecodeError(f'column {self.column.name!r}: {err}') from err


def column(name: str, *, omitempty: bool = False, tag: str = DEFAULT_TAG,
           **kwargs: Any) -> Any:
    """Declare a dataclass field mapped to column `name`.

    Extra keyword arguments (``default``, ``default_factory``, ...) are
    passed to `dataclasses.field`.
    """
    metadata = dict(kwargs.pop('metadata', None) or {})
    metadata[tag] = f'{name},omitempty' if omitempty else name
    return dataclasses.field(metadata=metadata, **kwargs)


def parse_tag(value: str) -> tuple[str, bool] | None:
    """Split a tag into (column name, omitempty), None if unmapped.

    >>> parse_tag('name,omitempty')
    ('name', True)
    >>> parse_tag('-') is None
    True
    """
    name, *options = (part.strip() for part in value.split(','))
    if not name or name == '-':
        return None
    return name, 'omitempty' in options


@lru_cache(maxsize=256)
def _type_hints(record_type: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(record_type, include_extras=True)
    except NameError:
        logger.debug(f'Unresolvable annotations on {record_type.__name__}, using raw field types')
        return {f.name: f.type for f in dataclasses.fields(record_type)}


def _embedded_type(annotation: Any) -> tuple[type | None, bool]:
    target, nullable = resolve_annotation(annotation)
    if isinstance(target, type) and dataclasses.is_dataclass(target):
        return target, nullable
    return None, nullable


def _walk(record_type: type, tag: str, prefix: tuple[str, ...],
          nullable_parent: bool, visiting: frozenset) -> Iterator[Column]:
    hints = _type_hints(record_type)
    for f in dataclasses.fields(record_type):
        annotation = hints.get(f.name, f.type)
        raw = f.metadata.get(tag)
        if raw is None:
            embedded, nullable = _embedded_type(annotation)
            if embedded is None:
                continue
            if embedded in visiting:
                raise SchemaError(f'{record_type.__name__}.{f.name} embeds {embedded.__name__} recursively')
            yield from _walk(embedded, tag, (*prefix, f.name),
                             nullable_parent or nullable, visiting | {embedded})
            continue
        parsed = parse_tag(raw)
        if parsed is None:
            continue
        name, omitempty = parsed
        yield Column(name, omitempty, (*prefix, f.name), annotation, nullable_parent)


@lru_cache(maxsize=256)
def describe(record_type: type, tag: str = DEFAULT_TAG) -> tuple[Column, ...]:
    """Return the ordered column descriptors of a record type.

    Raises
        TypeError: `record_type` is not a dataclass type
        SchemaError: a column name is declared twice
    """
    if not (isinstance(record_type, type) and dataclasses.is_dataclass(record_type)):
        raise TypeError(f'{record_type!r} is not a dataclass type')

    cols = tuple(_walk(record_type, tag, (), False, frozenset({record_type})))
    seen: dict[str, Column] = {}
    for col in cols:
        if col.name in seen:
            first = '.'.join(seen[col.name].path)
            raise SchemaError(
                f'column {col.name!r} declared by both {first} and '
                f'{".".join(col.path)} in {record_type.__name__}')
        seen[col.name] = col
    return cols


def columns(record_type: type | Any, tag: str = DEFAULT_TAG) -> list[str]:
    """Ordered column names declared by a record type (or instance).

    The result depends only on the type, never on field values.
    """
    if not isinstance(record_type, type):
        record_type = type(record_type)
    return [col.name for col in describe(record_type, tag)]


def is_empty(value: Any) -> bool:
    """Check whether a value is its type's zero value.

    >>> [is_empty(v) for v in (None, 0, '', False, [], 'a', 1)]
    [True, True, True, True, True, False, False]
    """
    if value is None:
        return True
    if isinstance(value, _EMPTY_TYPES):
        return not value
    return False


def bindings(record: Any, omit_empty: bool = True, include_id: bool = True,
             id_column: str = 'id', tag: str = DEFAULT_TAG) -> list[tuple[str, Any]]:
    """Ordered (column, value) pairs of a record instance for writing.

    Parameters
        record: dataclass instance
        omit_empty: skip ``omitempty`` columns holding a zero value
        include_id: when False, skip `id_column` (RETURNING style inserts)
        id_column: name of the identifying column
        tag: metadata key holding the column tags
    """
    result = []
    for col in describe(type(record), tag):
        if not include_id and col.name == id_column:
            continue
        value = col.value(record)
        if omit_empty and col.omitempty and is_empty(value):
            continue
        result.append((col.name, value))
    return result


def to_map(record: Any, omit_empty: bool = True, include_id: bool = True,
           id_column: str = 'id', tag: str = DEFAULT_TAG) -> dict[str, Any]:
    """Same as `bindings`, as an insertion ordered dict."""
    return dict(bindings(record, omit_empty, include_id, id_column, tag))


def _construct(record_type: type, values: Mapping[str, Any]) -> Any:
    hints = _type_hints(record_type)
    kwargs: dict[str, Any] = {}
    late: dict[str, Any] = {}
    for f in dataclasses.fields(record_type):
        if f.name not in values:
            continue
        value = values[f.name]
        if isinstance(value, _Embedded):
            embedded, nullable = _embedded_type(hints.get(f.name, f.type))
            if nullable and _all_null(value):
                value = None
            else:
                value = _construct(embedded, value)
        elif isinstance(value, _Null):
            value = value.decode()
        if f.init:
            kwargs[f.name] = value
        else:
            late[f.name] = value
    record = record_type(**kwargs)
    for name, value in late.items():
        object.__setattr__(record, name, value)
    return record


def _all_null(values: Mapping[str, Any]) -> bool:
    return all(_all_null(v) if isinstance(v, _Embedded) else v is None or isinstance(v, _Null)
               for v in values.values())


def from_row(record_type: type, row: Mapping[str, Any],
             tag: str = DEFAULT_TAG) -> Any:
    """Populate a fresh record from a ``{column: value}`` row.

    Values are converted to the annotated field types; embedded records
    are constructed along the way. Declared columns missing from the row
    keep their field defaults.

    Raises
        RecordDecodeError: the row has a column the record does not declare,
            a value cannot be converted, or the record cannot be constructed
    """
    by_name = {col.name: col for col in describe(record_type, tag)}
    tree = _Embedded()
    for name, value in row.items():
        col = by_name.get(name)
        if col is None:
            raise RecordDecodeError(f'missing destination name {name!r} in {record_type.__name__}')
        if value is None and col.nullable_parent:
            converted = _Null(col)
        else:
            try:
                converted = from_db(value, col.annotation)
            except TypeConversionError as err:
                raise RecordDecodeError(f'column {name!r}: {err}') from err
        node = tree
        for attr in col.path[:-1]:
            node = node.setdefault(attr, _Embedded())
        node[col.path[-1]] = converted

    try:
        return _construct(record_type, tree)
    except (TypeError, ValueError) as err:
        raise RecordDecodeError(f'cannot construct {record_type.__name__}: {err}') from err


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
