"""
Lazy row iteration with per-row errors.

`RowIterator` pulls one row from the cursor per step and yields a
`RowResult(record, error)`:

- a row that cannot be decoded yields ``RowResult(None, RecordDecodeError)``
  and iteration goes on,
- a cursor failure yields one final ``RowResult(None, error)`` and ends the
  iteration,
- the cursor is released exactly once: on exhaustion, on a terminal error,
  on `close()` / context manager exit, or when the iterator is collected.

Typical use::

    for user, err in select(cn, 'users', User, {'active': True}):
        if err is not None:
            ...
"""
import logging
from typing import TYPE_CHECKING, Any, NamedTuple

import pandas as pd
from sqlrecord.exceptions import RecordDecodeError
from sqlrecord.reflect import DEFAULT_TAG, columns, from_row, to_map

if TYPE_CHECKING:
    from sqlrecord.context import Context
    from sqlrecord.cursor import Cursor

logger = logging.getLogger(__name__)

__all__ = ['RowResult', 'RowIterator', 'decode', 'collect', 'to_dataframe']


class RowResult(NamedTuple):
    """One step of a `RowIterator`: a record or the error that replaced it."""
    record: Any
    error: Exception | None


def decode(record_type: type, row: dict[str, Any], tag: str = DEFAULT_TAG) -> Any:
    """Build a `record_type` instance from a ``{column: value}`` row.

    Raises
        RecordDecodeError: unknown column, NULL into a non-optional field, or
            a value that cannot be converted to its field's type
    """
    return from_row(record_type, row, tag)


class RowIterator:
    """Single-consumer iterator over the decoded rows of an executed query.
    """

    def __init__(self, cursor: 'Cursor', record_type: type,
                 tag: str = DEFAULT_TAG, ctx: 'Context | None' = None) -> None:
        self.record_type = record_type
        self.tag = tag
        self._cursor = cursor
        self._ctx = ctx
        self._closed = False

    def __repr__(self) -> str:
        state = 'closed' if self._closed else 'open'
        return f'<RowIterator {self.record_type.__name__} {state}>'

    def __iter__(self) -> 'RowIterator':
        return self

    def __next__(self) -> RowResult:
        if self._closed:
            raise StopIteration
        try:
            row = self._cursor.fetchrow(self._ctx)
        except Exception as err:
            self.close()
            return RowResult(None, err)
        if row is None:
            self.close()
            raise StopIteration
        try:
            return RowResult(decode(self.record_type, row, self.tag), None)
        except RecordDecodeError as err:
            logger.debug(f'Row skipped: {err}')
            return RowResult(None, err)

    def __enter__(self) -> 'RowIterator':
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __del__(self) -> None:
        if not getattr(self, '_closed', True):
            self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release the cursor. Further pulls end the iteration."""
        if self._closed:
            return
        self._closed = True
        self._cursor.close()


def collect(rows: RowIterator) -> list[Any]:
    """Drain an iterator into a list of records.

    The first error closes the iterator and is raised; records read before
    it are discarded.
    """
    records = []
    with rows:
        for record, err in rows:
            if err is not None:
                raise err
            records.append(record)
    return records


def to_dataframe(rows: RowIterator) -> pd.DataFrame:
    """Drain an iterator into a DataFrame with one column per declared column.

    Same error policy as `collect`.
    """
    names = columns(rows.record_type, rows.tag)
    records = collect(rows)
    if not records:
        return pd.DataFrame(columns=names)
    data = [to_map(r, omit_empty=False, tag=rows.tag) for r in records]
    return pd.DataFrame.from_records(data, columns=names)
