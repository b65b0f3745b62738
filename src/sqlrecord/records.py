"""
Record operations: insert, select, update, delete and exists for any
dataclass record type.

Each operation builds its statement from the record type's column tags
(see `sqlrecord.reflect`), runs it through a `ConnectionWrapper` cursor and
decodes the result. All of them accept a keyword ``ctx`` to bound or cancel
the call.

Each write runs in its own transaction: committed on success, rolled back
on failure (including a failure to read back the inserted id). Reads run
outside any transaction.
"""
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, TypeVar

from sqlrecord.exceptions import AffectedRowsError, RecordDecodeError
from sqlrecord.exceptions import RecordNotFound, TypeConversionError
from sqlrecord.rows import RowIterator, decode
from sqlrecord.statement import Predicate, Statement, build_delete
from sqlrecord.statement import build_exists, build_insert
from sqlrecord.statement import build_insert_returning, build_select
from sqlrecord.statement import build_update
from sqlrecord.types import from_db

if TYPE_CHECKING:
    from sqlrecord.connection import ConnectionWrapper
    from sqlrecord.context import Context

logger = logging.getLogger(__name__)

__all__ = [
    'insert',
    'insert_full',
    'insert_returning_id',
    'insert_returning_id_full',
    'select_row',
    'select',
    'update',
    'delete',
    'exists',
]

T = TypeVar('T')


@contextmanager
def _writing(cn: 'ConnectionWrapper') -> Iterator[None]:
    """Run the block in a transaction; commit on success, roll back and
    re-raise on failure."""
    cn.begin()
    try:
        yield
    except Exception:
        try:
            cn.rollback()
        except Exception as exc:
            logger.debug(f'Rollback failed: {exc}')
        raise
    cn.commit()


@contextmanager
def _executed(cn: 'ConnectionWrapper', stmt: Statement,
              ctx: 'Context | None') -> Iterator[Any]:
    """Run a statement and close its cursor when the block exits."""
    cursor = cn.cursor()
    try:
        cursor.execute(stmt.sql, stmt.args, ctx=ctx)
        yield cursor
    finally:
        cursor.close()


def insert(cn: 'ConnectionWrapper', table: str, record: Any, *,
           ctx: 'Context | None' = None) -> int:
    """Insert a record and return the driver's last inserted id.

    ``omitempty`` columns holding a zero value are left out. Conflicting
    rows are ignored (``ON CONFLICT DO NOTHING``).

    Raises
        BuildError: the record has no columns to insert
        LastInsertIdError: the driver does not report inserted ids
            (PostgreSQL, see `insert_returning_id`); the insert is rolled back
    """
    return insert_full(cn, table, record, omit_empty=True, ctx=ctx)


def insert_full(cn: 'ConnectionWrapper', table: str, record: Any,
                omit_empty: bool = True, *, ctx: 'Context | None' = None) -> int:
    """`insert` with control over ``omitempty``; `omit_empty=False` writes
    every declared column.
    """
    stmt = build_insert(table, record, omit_empty, tag=cn.tag, dialect=cn.dialect)
    with _writing(cn), _executed(cn, stmt, ctx) as cursor:
        return cn.strategy.last_insert_id(cursor)


def insert_returning_id(cn: 'ConnectionWrapper', table: str, id_column: str,
                        record: Any, *, ctx: 'Context | None' = None) -> int:
    """Insert a record and return the id generated for `id_column`.

    The id column itself is never written.

    Raises
        RecordNotFound: the insert hit a conflict and returned no row
        RecordDecodeError: the returned id is not an integer
    """
    return insert_returning_id_full(cn, table, id_column, record,
                                    omit_empty=True, ctx=ctx)


def insert_returning_id_full(cn: 'ConnectionWrapper', table: str, id_column: str,
                             record: Any, omit_empty: bool = True, *,
                             ctx: 'Context | None' = None) -> int:
    stmt = build_insert_returning(table, record, id_column, omit_empty,
                                  tag=cn.tag, dialect=cn.dialect)
    with _writing(cn), _executed(cn, stmt, ctx) as cursor:
        row = cursor.fetchrow(ctx)
    if row is None:
        raise RecordNotFound(f'insert into {table} returned no {id_column}')
    try:
        return from_db(next(iter(row.values())), int)
    except TypeConversionError as err:
        raise RecordDecodeError(f'returned {id_column}: {err}') from err


def select_row(cn: 'ConnectionWrapper', table: str, record_type: type[T],
               where: Predicate | None, *, ctx: 'Context | None' = None) -> T:
    """Select the first row matching `where` as a `record_type`.

    Raises
        RecordNotFound: no row matches
        RecordDecodeError: the row cannot be decoded
    """
    stmt = build_select(table, record_type, where, tag=cn.tag, dialect=cn.dialect)
    with _executed(cn, stmt, ctx) as cursor:
        row = cursor.fetchrow(ctx)
    if row is None:
        raise RecordNotFound(f'no rows in {table} for {record_type.__name__}')
    return decode(record_type, row, cn.tag)


def select(cn: 'ConnectionWrapper', table: str, record_type: type,
           where: Predicate | None = None, *,
           ctx: 'Context | None' = None) -> RowIterator:
    """Select the rows matching `where` lazily.

    The query runs before this returns, so statement and execution errors
    raise here; rows are fetched one at a time and decoded as the iterator
    is pulled (a server-side cursor on PostgreSQL).
    """
    stmt = build_select(table, record_type, where, tag=cn.tag, dialect=cn.dialect)
    cursor = cn.cursor(stream=True)
    try:
        cursor.execute(stmt.sql, stmt.args, ctx=ctx)
    except Exception:
        cursor.close()
        raise
    return RowIterator(cursor, record_type, cn.tag, ctx)


def update(cn: 'ConnectionWrapper', table: str, record: Any, where: Predicate, *,
           ctx: 'Context | None' = None) -> int:
    """Update the non-empty columns of `record` on the rows matching `where`
    and return the number of affected rows.

    Raises
        BuildError: no predicate or nothing to update
        AffectedRowsError: the driver does not report a row count
    """
    stmt = build_update(table, record, where, tag=cn.tag, dialect=cn.dialect)
    with _writing(cn), _executed(cn, stmt, ctx) as cursor:
        rowcount = cursor.rowcount
        if rowcount is None or rowcount < 0:
            raise AffectedRowsError(f'update of {table} reported no row count')
        return rowcount


def delete(cn: 'ConnectionWrapper', table: str, where: Predicate, *,
           ctx: 'Context | None' = None) -> None:
    """Delete the rows matching `where`.
    """
    stmt = build_delete(table, where, dialect=cn.dialect)
    with _writing(cn), _executed(cn, stmt, ctx):
        pass


def exists(cn: 'ConnectionWrapper', table: str, where: Predicate | None, *,
           ctx: 'Context | None' = None) -> bool:
    """Check whether any row matches `where`.

    No match is False, never an error; execution errors (e.g. a missing
    table) propagate.
    """
    stmt = build_exists(table, where, dialect=cn.dialect)
    with _executed(cn, stmt, ctx) as cursor:
        return cursor.fetchrow(ctx) is not None
