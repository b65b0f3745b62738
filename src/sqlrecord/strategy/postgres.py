"""
PostgreSQL over psycopg 3.

Rows come back through `psycopg.rows.dict_row`. The driver reports no last
inserted id, so sequence backed tables go through ``INSERT ... RETURNING``.
A running statement is bounded by a session ``statement_timeout`` and
cancelled server side with `Connection.cancel`. The schema search path is
passed as a libpq ``options`` connect argument.
"""
import itertools
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from psycopg.pq import TransactionStatus
from psycopg.rows import dict_row
from psycopg.types.json import JsonbDumper
from sqlrecord.exceptions import LastInsertIdError
from sqlrecord.strategy.base import DatabaseStrategy, register_strategy
from sqlrecord.utils import get_raw_connection

if TYPE_CHECKING:
    from sqlrecord.context import Context
    from sqlrecord.options import DatabaseOptions

logger = logging.getLogger(__name__)

_cursor_ids = itertools.count(1)


@contextmanager
def statement_timeout(connection: Any, seconds: float | None) -> Iterator[None]:
    """Bound the statements run inside the block to `seconds`.

    The session setting is reset on exit, unless the statement aborted an
    open transaction; its rollback restores the setting.
    """
    if seconds is None:
        yield
        return
    millis = max(1, int(seconds * 1000))
    connection.execute(f'SET statement_timeout = {millis}')
    try:
        yield
    finally:
        if (not connection.closed
                and connection.info.transaction_status != TransactionStatus.INERROR):
            connection.execute('RESET statement_timeout')


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):

    @property
    def dialect_name(self) -> str:
        return 'postgresql'

    def build_connection_url(self, options: 'DatabaseOptions') -> str:
        query = {'connect_timeout': str(options.timeout)} if options.timeout else {}
        url = sa.URL.create('postgresql+psycopg',
                            username=options.username,
                            password=options.password,
                            host=options.hostname,
                            port=options.port,
                            database=options.database,
                            query=query)
        return url.render_as_string(hide_password=False)

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """``application_name`` and ``search_path`` as connect arguments."""
        connect_args: dict[str, Any] = {}
        if options.appname:
            connect_args['application_name'] = options.appname
        if options.search_path:
            connect_args['options'] = f"-csearch_path={','.join(options.search_path)}"
        return {'connect_args': connect_args}

    def register_type_adapters(self, connection: Any) -> None:
        """Dump dicts as jsonb; everything else uses psycopg's defaults.
        """
        get_raw_connection(connection).adapters.register_dumper(dict, JsonbDumper)

    def create_dict_cursor(self, raw_conn: Any) -> Any:
        return get_raw_connection(raw_conn).cursor(row_factory=dict_row)

    def create_stream_cursor(self, raw_conn: Any) -> Any:
        """Named (server-side) cursor declared WITH HOLD.

        The driver runs in autocommit mode, and a held cursor outlives the
        implicit transaction that declares it. Each fetch pulls one row.
        """
        name = f'sqlrecord_{next(_cursor_ids)}'
        return get_raw_connection(raw_conn).cursor(name, row_factory=dict_row, withhold=True)

    def last_insert_id(self, cursor: Any) -> int:
        raise LastInsertIdError(
            'postgresql does not report a last inserted id; use insert_returning_id')

    @classmethod
    def get_required_options(cls) -> list[str]:
        return ['hostname', 'username', 'password', 'database', 'port']

    def configure_connection(self, conn: Any) -> None:
        self.enable_autocommit(get_raw_connection(conn))

    def enable_autocommit(self, raw_conn: Any) -> None:
        raw_conn.autocommit = True

    def disable_autocommit(self, raw_conn: Any) -> None:
        raw_conn.autocommit = False

    @contextmanager
    def _watching(self, raw_conn: Any, ctx: 'Context',
                  statement: bool) -> Iterator[None]:
        """Server-side cancel on cancellation; statement_timeout for the
        remaining deadline while a statement runs.

        A held cursor's result is materialized when it is declared, so
        fetches from it only get the cancel hook.
        """
        pg_conn = get_raw_connection(raw_conn)
        remaining = ctx.remaining() if statement else None
        with statement_timeout(pg_conn, remaining), ctx.on_cancel(pg_conn.cancel):
            yield
