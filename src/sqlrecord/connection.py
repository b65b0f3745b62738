"""
Connections for the record layer.

`connect()` resolves options, borrows a connection from a cached SQLAlchemy
engine and prepares it for the dialect (autocommit, type adapters). The
returned `ConnectionWrapper` hands out `?` placeholder dict-row cursors,
keeps per-connection call statistics and exposes every record operation as
a method:

- insert_record(table, record) - insert, return the last inserted id
- insert_record_returning_id(table, id_column, record) - INSERT ... RETURNING
- select_record(table, record_type, where) - first matching record
- select_records(table, record_type, where) - lazy RowIterator
- update_records(table, record, where) - affected row count
- delete_records(table, where)
- record_exists(table, where)

Engines are shared per distinct options and disposed at interpreter exit.
"""
import atexit
import dataclasses
import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Self

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool
from sqlrecord import records
from sqlrecord.cursor import Cursor
from sqlrecord.exceptions import ConnectionFailure
from sqlrecord.options import DatabaseOptions
from sqlrecord.reflect import DEFAULT_TAG
from sqlrecord.rows import RowIterator
from sqlrecord.sql import rebind
from sqlrecord.strategy import DatabaseStrategy, get_db_strategy, get_strategy
from sqlrecord.utils import get_dialect_name, get_raw_connection

if TYPE_CHECKING:
    from sqlrecord.context import Context
    from sqlrecord.statement import Predicate

__all__ = [
    'ConnectionWrapper',
    'connect',
    'configure_connection',
    'create_url_from_options',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

_engines: dict[str, Engine] = {}
_engines_lock = threading.RLock()


def create_url_from_options(options: DatabaseOptions) -> str:
    """SQLAlchemy URL for `options`, built by the dialect's strategy."""
    return get_strategy(options.drivername).build_connection_url(options)


def _pool_kwargs(options: DatabaseOptions) -> dict[str, Any]:
    if not options.use_pool:
        return {'poolclass': NullPool}
    return {
        'pool_size': options.pool_max_connections,
        'pool_recycle': options.pool_max_idle_time,
        'pool_timeout': options.pool_wait_timeout,
        'max_overflow': 10,
        'pool_reset_on_return': 'rollback',
    }


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Shared engine for `options`, created on first use.

    Without ``use_pool`` every checkout opens a fresh driver connection
    (`NullPool`); with it, the ``pool_*`` options size a queue pool.
    Extra keyword arguments go to `engine_factory` when the engine is
    created.
    """
    key = repr(options)
    with _engines_lock:
        engine = _engines.get(key)
        if engine is not None:
            return engine

        strategy = get_strategy(options.drivername)
        engine_kwargs = {
            'echo': False,
            **strategy.get_engine_kwargs(options),
            **_pool_kwargs(options),
            **kwargs,
        }
        engine = engine_factory(create_url_from_options(options), **engine_kwargs)
        _engines[key] = engine
        logger.debug(f'Created {options.drivername} engine (pooled={options.use_pool})')
        return engine


def dispose_all_engines() -> None:
    """Dispose every shared engine and forget it."""
    with _engines_lock:
        while _engines:
            _, engine = _engines.popitem()
            engine.dispose()
    logger.debug('Disposed all engines')


atexit.register(dispose_all_engines)


class ConnectionWrapper:
    """A SQLAlchemy connection prepared for record operations.

    Counts statements and their elapsed time (`calls`, `time`), closes on
    context manager exit and carries the options it was opened with,
    including the field metadata `tag` used to map records.
    """

    def __init__(self, sa_connection: sa.engine.Connection,
                 options: DatabaseOptions | None = None) -> None:
        self.sa_connection = sa_connection
        self.engine = sa_connection.engine
        self.options = options
        self.dbapi_connection = sa_connection.connection
        self._dialect = get_dialect_name(sa_connection)
        self.calls = 0
        self.time = 0

    def __repr__(self) -> str:
        state = 'closed' if self.closed else 'open'
        return f'<ConnectionWrapper {self._dialect} {state}>'

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def dialect(self) -> str:
        """``postgresql`` or ``sqlite``."""
        return self._dialect

    @property
    def strategy(self) -> DatabaseStrategy:
        return get_strategy(self._dialect)

    @property
    def tag(self) -> str:
        """Field metadata key holding column tags."""
        return self.options.tag if self.options is not None else DEFAULT_TAG

    @property
    def driver_connection(self) -> Any:
        """The raw driver connection (sqlite3 / psycopg)."""
        return get_raw_connection(self.dbapi_connection)

    @property
    def closed(self) -> bool:
        return self.sa_connection.closed

    @property
    def is_pooled(self) -> bool:
        return not isinstance(self.engine.pool, NullPool)

    def rebind(self, sql: str) -> str:
        """Translate `?` placeholders to this connection's paramstyle."""
        return rebind(sql, self._dialect)

    def cursor(self, stream: bool = False) -> Cursor:
        """New dict-row cursor speaking `?` placeholders.

        With `stream`, rows stay on the server until fetched (see
        `DatabaseStrategy.create_stream_cursor`).

        Raises
            ConnectionFailure: the connection is closed
        """
        if self.closed:
            raise ConnectionFailure('connection is closed')
        strategy = self.strategy
        if stream:
            dbapi_cursor = strategy.create_stream_cursor(self.dbapi_connection)
        else:
            dbapi_cursor = strategy.create_dict_cursor(self.dbapi_connection)
        return Cursor(dbapi_cursor, self, strategy)

    def addcall(self, elapsed: float) -> None:
        self.calls += 1
        self.time += elapsed

    def begin(self) -> None:
        """Leave autocommit mode until the next `commit` or `rollback`.

        Outside `begin` ... `commit` every statement commits on its own.
        """
        self.strategy.disable_autocommit(self.driver_connection)
        logger.debug(f'Started transaction on {self!r}')

    def commit(self) -> None:
        """Commit the open transaction, if any, and return to autocommit."""
        driver = self.driver_connection
        try:
            driver.commit()
        finally:
            self.strategy.enable_autocommit(driver)

    def rollback(self) -> None:
        driver = self.driver_connection
        try:
            driver.rollback()
            logger.debug(f'Rolled back transaction on {self!r}')
        finally:
            self.strategy.enable_autocommit(driver)

    def close(self) -> None:
        """Release the connection. Closing twice is a no-op."""
        if self.closed:
            return
        self.sa_connection.close()
        avg = self.time / max(1, self.calls)
        logger.debug(f'Connection closed after {self.calls} statements in {self.time:.2f}s (avg {avg:.3f}s)')

    def insert_record(self, table: str, record: Any, omit_empty: bool = True, *,
                      ctx: 'Context | None' = None) -> int:
        """Insert a record and return the driver's last inserted id.
        """
        return records.insert_full(self, table, record, omit_empty, ctx=ctx)

    def insert_record_returning_id(self, table: str, id_column: str, record: Any,
                                   omit_empty: bool = True, *,
                                   ctx: 'Context | None' = None) -> int:
        """Insert a record and return the id generated for `id_column`.
        """
        return records.insert_returning_id_full(self, table, id_column, record,
                                                omit_empty, ctx=ctx)

    def select_record(self, table: str, record_type: type, where: 'Predicate | None', *,
                      ctx: 'Context | None' = None) -> Any:
        """Select the first record matching `where`; RecordNotFound if none.
        """
        return records.select_row(self, table, record_type, where, ctx=ctx)

    def select_records(self, table: str, record_type: type,
                       where: 'Predicate | None' = None, *,
                       ctx: 'Context | None' = None) -> RowIterator:
        """Select matching records lazily.
        """
        return records.select(self, table, record_type, where, ctx=ctx)

    def update_records(self, table: str, record: Any, where: 'Predicate', *,
                       ctx: 'Context | None' = None) -> int:
        return records.update(self, table, record, where, ctx=ctx)

    def delete_records(self, table: str, where: 'Predicate', *,
                       ctx: 'Context | None' = None) -> None:
        records.delete(self, table, where, ctx=ctx)

    def record_exists(self, table: str, where: 'Predicate | None', *,
                      ctx: 'Context | None' = None) -> bool:
        return records.exists(self, table, where, ctx=ctx)


def configure_connection(sa_connection: sa.engine.Connection) -> None:
    """Apply the dialect's session settings and type adapters."""
    strategy = get_db_strategy(sa_connection)
    strategy.configure_connection(sa_connection.connection)
    strategy.register_type_adapters(sa_connection.connection)


def _load_options(options: DatabaseOptions | dict[str, Any] | str,
                  **kw: Any) -> DatabaseOptions:
    if isinstance(options, DatabaseOptions):
        return dataclasses.replace(options, **kw) if kw else options
    if isinstance(options, dict):
        return DatabaseOptions(**{**options, **kw})
    if isinstance(options, str | sa.URL):
        return DatabaseOptions.from_url(options, **kw)
    raise TypeError(f'Unsupported options type: {type(options).__name__}')


def connect(options: DatabaseOptions | dict[str, Any] | str, **kw: Any) -> ConnectionWrapper:
    """Open a connection for record operations.

    `options` is a `DatabaseOptions`, a dict of its fields, or a URL such as
    ``sqlite:///app.db`` or ``postgresql://user:pw@host:5432/db``. Keyword
    arguments override individual fields, e.g.
    ``connect(opts, search_path=['app'], use_pool=True)``.
    """
    options = _load_options(options, **kw)
    sa_connection = get_engine_for_options(options).connect()
    configure_connection(sa_connection)
    return ConnectionWrapper(sa_connection, options)
