"""
Shortcuts for the most common table layout: an ``id`` primary key column
(and, for imported data, an ``integration_id`` column).
"""
from typing import TYPE_CHECKING, Any, TypeVar

from sqlrecord.records import delete, exists, select_row, update

if TYPE_CHECKING:
    from sqlrecord.connection import ConnectionWrapper
    from sqlrecord.context import Context

__all__ = [
    'select_row_by_id',
    'select_row_by_integration_id',
    'update_by_id',
    'delete_by_id',
    'exists_by_id',
    'just_err',
]

T = TypeVar('T')


def select_row_by_id(cn: 'ConnectionWrapper', table: str, record_type: type[T],
                     id: int, *, ctx: 'Context | None' = None) -> T:
    """Select a row by its ``id`` column."""
    return select_row(cn, table, record_type, {'id': id}, ctx=ctx)


def select_row_by_integration_id(cn: 'ConnectionWrapper', table: str,
                                 record_type: type[T], integration_id: str, *,
                                 ctx: 'Context | None' = None) -> T:
    """Select a row by its ``integration_id`` column."""
    return select_row(cn, table, record_type, {'integration_id': integration_id}, ctx=ctx)


def update_by_id(cn: 'ConnectionWrapper', table: str, id: Any, record: Any, *,
                 ctx: 'Context | None' = None) -> int:
    return update(cn, table, record, {'id': id}, ctx=ctx)


def delete_by_id(cn: 'ConnectionWrapper', table: str, id: Any, *,
                 ctx: 'Context | None' = None) -> None:
    delete(cn, table, {'id': id}, ctx=ctx)


def exists_by_id(cn: 'ConnectionWrapper', table: str, id: Any, *,
                 ctx: 'Context | None' = None) -> bool:
    return exists(cn, table, {'id': id}, ctx=ctx)


def just_err(value: Any, err: Exception | None) -> Exception | None:
    """Keep only the error of a ``(value, error)`` pair.

    >>> just_err(None, KeyError('id'))
    KeyError('id')
    """
    return err


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
