"""
Dict-row cursors for the record layer.

Statements are written with `?` placeholders; the cursor rebinds them to
the driver's paramstyle, converts parameters, and runs every driver call
under the strategy's context watch.
"""
import logging
import time
from collections.abc import Mapping
from functools import wraps
from typing import TYPE_CHECKING, Any

from sqlrecord.types import TypeConverter

if TYPE_CHECKING:
    from sqlrecord.context import Context

logger = logging.getLogger(__name__)


def dumpsql(func):
    """Log the statement, its arguments, outcome and elapsed time; count the
    call on the owning connection.
    """
    @wraps(func)
    def wrapper(self, operation: str, *args: Any, **kwargs: Any):
        dialect = self.strategy.dialect_name
        logger.debug(f'[{dialect}] {operation}\nargs: {args}')
        start = time.perf_counter()
        try:
            rowcount = func(self, operation, *args, **kwargs)
        except Exception as exc:
            logger.error(f'[{dialect}] statement failed ({type(exc).__name__}):\n{operation}\nargs: {args}')
            raise
        finally:
            elapsed = time.perf_counter() - start
            self.connwrapper.addcall(elapsed)
        status = getattr(self.dbapi_cursor, 'statusmessage', None) or f'rowcount={rowcount}'
        logger.debug(f'[{dialect}] {status} in {elapsed:.4f}s')
        return rowcount
    return wrapper


def _as_dict(row: Any, description: Any) -> dict[str, Any]:
    """Normalise a driver row (mapping, sqlite3.Row or tuple) to a dict."""
    if isinstance(row, Mapping):
        return dict(row)
    if hasattr(row, 'keys'):
        return dict(zip(row.keys(), tuple(row)))
    return dict(zip((d[0] for d in description or ()), row))


class Cursor:
    """Driver cursor bound to a `ConnectionWrapper` and its dialect strategy.

    Rows come back as ``{column: value}`` dicts. Unknown attributes are
    read from the driver cursor.
    """

    def __init__(self, cursor: Any, connection_wrapper: Any, strategy: Any) -> None:
        self.dbapi_cursor = cursor
        self.connwrapper = connection_wrapper
        self.strategy = strategy
        self._closed = False

    def __getattr__(self, name: str) -> Any:
        return getattr(self.dbapi_cursor, name)

    def __enter__(self) -> 'Cursor':
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def description(self) -> list[tuple] | None:
        return self.dbapi_cursor.description

    @property
    def rowcount(self) -> int:
        """Rows affected by the last statement, -1 when unknown."""
        return self.dbapi_cursor.rowcount

    @property
    def lastrowid(self) -> int | None:
        """Row id of the last inserted row, if the driver reports one."""
        return getattr(self.dbapi_cursor, 'lastrowid', None)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close cursor. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        self.dbapi_cursor.close()

    @dumpsql
    def execute(self, operation: str, args: tuple = (), *,
                ctx: 'Context | None' = None) -> int:
        """Execute a `?` placeholder statement and return the row count.
        """
        operation = self.strategy.standardize_sql(operation)
        params = TypeConverter.convert_params(tuple(args))
        # always pass params so format-style drivers unescape doubled percents
        with self.strategy.watch(self.connwrapper.driver_connection, ctx):
            self.dbapi_cursor.execute(operation, params)
        return self.dbapi_cursor.rowcount

    def fetchrow(self, ctx: 'Context | None' = None) -> dict[str, Any] | None:
        """Fetch the next row as a ``{column: value}`` dict, None when exhausted.
        """
        with self.strategy.watch(self.connwrapper.driver_connection, ctx, statement=False):
            row = self.dbapi_cursor.fetchone()
        if row is None:
            return None
        return _as_dict(row, self.dbapi_cursor.description)
