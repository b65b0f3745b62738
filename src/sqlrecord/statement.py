"""
Statement assembly for record operations.

Statements are built with SQLAlchemy Core constructs over lightweight
`sqlalchemy.table` / `sqlalchemy.column` clauses and compiled for the target
dialect with positional (``?``) placeholders, so table and column names are
quoted by that dialect's rules (``"user"`` on PostgreSQL). The cursor
rebinds the placeholders to the driver's paramstyle at execution time (see
`sqlrecord.sql.rebind`).

Shapes produced:

    INSERT INTO t (<cols>) VALUES (?, ...) ON CONFLICT DO NOTHING
    INSERT INTO t (<cols>) VALUES (?, ...) ON CONFLICT DO NOTHING RETURNING <id>
    SELECT <cols> FROM t WHERE <predicate>
    UPDATE t SET <col>=?, ... WHERE <predicate>
    DELETE FROM t WHERE <predicate>
    SELECT 1 AS flag FROM t WHERE <predicate>

Predicates are any SQLAlchemy boolean clause, or a mapping with equality
semantics (see `where`).
"""
import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any, NamedTuple

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.dialects.postgresql.base import PGDialect
from sqlalchemy.sql.elements import ClauseElement

from sqlrecord.exceptions import BuildError
from sqlrecord.reflect import DEFAULT_TAG, columns, to_map
from sqlrecord.sql import compact, rebind

logger = logging.getLogger(__name__)

__all__ = [
    'Statement',
    'where',
    'build_insert',
    'build_insert_returning',
    'build_select',
    'build_update',
    'build_delete',
    'build_exists',
]

Predicate = Mapping[str, Any] | ClauseElement

# dialect name -> (positional compiler, INSERT construct with ON CONFLICT)
_DIALECTS = {
    'sqlite': (sqlite.dialect(paramstyle='qmark'), sqlite.insert),
    'postgresql': (PGDialect(paramstyle='qmark'), postgresql.insert),
}


def _dialect(name: str) -> tuple:
    try:
        return _DIALECTS[name]
    except KeyError:
        raise BuildError(f'unsupported dialect: {name}') from None


class Statement(NamedTuple):
    """SQL text with `?` placeholders and its ordered arguments."""
    sql: str
    args: tuple

    def rebind(self, dialect: str) -> 'Statement':
        """Return the statement with placeholders in the dialect's style."""
        return Statement(rebind(self.sql, dialect), self.args)


@contextmanager
def _building(what: str) -> Iterator[None]:
    try:
        yield
    except sa.exc.SQLAlchemyError as err:
        raise BuildError(f'cannot build {what}: {err}') from err


def _equals(name: str, value: Any) -> ClauseElement:
    col = sa.column(name)
    if value is None:
        return col.is_(None)
    if isinstance(value, list | tuple | set | frozenset):
        return col.in_(list(value))
    return col == value


def where(predicate: Predicate) -> ClauseElement:
    """Coerce a predicate to a SQLAlchemy clause.

    A mapping is read as a conjunction of equalities; sequence values
    become ``IN`` and None becomes ``IS NULL``:

    >>> str(where({'id': 1, 'name': None}).compile(dialect=_dialect('sqlite')[0]))
    'id = ? AND name IS NULL'

    Raises
        BuildError: unsupported predicate type
    """
    if isinstance(predicate, Mapping):
        clauses = [_equals(name, value) for name, value in predicate.items()]
        if not clauses:
            return sa.text('1=1')
        return sa.and_(*clauses)
    if isinstance(predicate, ClauseElement):
        return predicate
    raise BuildError(f'unsupported predicate type: {type(predicate).__name__}')


def _table(name: str, *cols: str) -> sa.TableClause:
    schema, _, table = name.rpartition('.')
    return sa.table(table, *(sa.column(c) for c in cols), schema=schema or None)


def _compile(stmt: sa.ClauseElement, dialect: str) -> Statement:
    compiled = stmt.compile(dialect=_dialect(dialect)[0],
                            compile_kwargs={'render_postcompile': True})
    params = compiled.params
    args = tuple(params[name] for name in compiled.positiontup or ())
    return Statement(compact(compiled.string), args)


def _insert(table: str, values: dict[str, Any], dialect: str) -> Any:
    insert = _dialect(dialect)[1]
    return insert(_table(table, *values)).values(values).on_conflict_do_nothing()


def build_insert(table: str, record: Any, omit_empty: bool = True,
                 tag: str = DEFAULT_TAG, dialect: str = 'sqlite') -> Statement:
    """INSERT ... ON CONFLICT DO NOTHING for a record.

    Raises
        BuildError: the record has no columns to write
    """
    values = to_map(record, omit_empty=omit_empty, include_id=True, tag=tag)
    if not values:
        raise BuildError(f'{type(record).__name__} has no columns to insert')
    with _building('insert'):
        return _compile(_insert(table, values, dialect), dialect)


def build_insert_returning(table: str, record: Any, id_column: str = 'id',
                           omit_empty: bool = True, tag: str = DEFAULT_TAG,
                           dialect: str = 'sqlite') -> Statement:
    """INSERT ... ON CONFLICT DO NOTHING RETURNING `id_column`.

    The identifying column is left out of the column list; the database
    generates it.

    Raises
        BuildError: the record has no columns to write
    """
    values = to_map(record, omit_empty=omit_empty, include_id=False,
                    id_column=id_column, tag=tag)
    if not values:
        raise BuildError(f'{type(record).__name__} has no columns to insert')
    with _building('insert'):
        stmt = _insert(table, values, dialect).returning(sa.column(id_column))
        return _compile(stmt, dialect)


def build_select(table: str, record_type: type, predicate: Predicate | None = None,
                 tag: str = DEFAULT_TAG, dialect: str = 'sqlite') -> Statement:
    """SELECT every declared column of `record_type`.

    Raises
        BuildError: the record type declares no columns, or the predicate
            cannot be compiled
    """
    cols = columns(record_type, tag)
    if not cols:
        raise BuildError(f'{record_type.__name__} declares no columns')
    with _building('select'):
        stmt = sa.select(*(sa.column(c) for c in cols)).select_from(_table(table))
        if predicate is not None:
            stmt = stmt.where(where(predicate))
        return _compile(stmt, dialect)


def build_update(table: str, record: Any, predicate: Predicate,
                 tag: str = DEFAULT_TAG, dialect: str = 'sqlite') -> Statement:
    """UPDATE the non-empty columns of a record.

    Raises
        BuildError: no predicate, no columns to write, or the predicate
            cannot be compiled
    """
    if predicate is None:
        raise BuildError('update requires a predicate')
    values = to_map(record, omit_empty=True, include_id=True, tag=tag)
    if not values:
        raise BuildError(f'{type(record).__name__} has no columns to update')
    with _building('update'):
        stmt = sa.update(_table(table, *values)).values(values).where(where(predicate))
        return _compile(stmt, dialect)


def build_delete(table: str, predicate: Predicate, dialect: str = 'sqlite') -> Statement:
    """DELETE the rows matching a predicate.

    Raises
        BuildError: no predicate, or the predicate cannot be compiled
    """
    if predicate is None:
        raise BuildError('delete requires a predicate')
    with _building('delete'):
        return _compile(sa.delete(_table(table)).where(where(predicate)), dialect)


def build_exists(table: str, predicate: Predicate | None = None,
                 dialect: str = 'sqlite') -> Statement:
    """SELECT 1 AS flag for the rows matching a predicate.
    """
    with _building('exists'):
        stmt = sa.select(sa.literal_column('1').label('flag')).select_from(_table(table))
        if predicate is not None:
            stmt = stmt.where(where(predicate))
        return _compile(stmt, dialect)


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
