"""
SQLite over the standard library sqlite3 module.

The driver reports inserted rowids, so plain INSERTs return ids. Rows come
back as `sqlite3.Row`. Dates, decimals and containers are bound through
module level adapters. A progress handler polls the context during long
statements and `Connection.interrupt` aborts them on cancellation.
"""
import datetime
import decimal
import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from sqlrecord.exceptions import LastInsertIdError
from sqlrecord.strategy.base import DatabaseStrategy, register_strategy
from sqlrecord.types import convert_date, convert_datetime
from sqlrecord.utils import get_raw_connection

if TYPE_CHECKING:
    from sqlrecord.context import Context
    from sqlrecord.options import DatabaseOptions

logger = logging.getLogger(__name__)

# VM instructions between two context checks
PROGRESS_INTERVAL = 1000


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):

    @property
    def dialect_name(self) -> str:
        return 'sqlite'

    def build_connection_url(self, options: 'DatabaseOptions') -> str:
        return f'sqlite:///{options.database}'

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Declared-type detection and the busy timeout."""
        connect_args: dict[str, Any] = {
            'detect_types': sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
        }
        if options.timeout:
            connect_args['timeout'] = options.timeout
        return {'connect_args': connect_args}

    def register_type_adapters(self, connection: Any) -> None:
        """Install the module level adapters and converters.

        Adapters (Python -> SQLite) store dates as ISO-8601 text, decimals
        as text and containers as JSON. Converters (SQLite -> Python) apply
        to columns declared as date, datetime or timestamp.
        """
        sqlite3.register_adapter(datetime.datetime, lambda v: v.isoformat(' '))
        sqlite3.register_adapter(datetime.date, lambda v: v.isoformat())
        sqlite3.register_adapter(datetime.time, lambda v: v.isoformat())
        sqlite3.register_adapter(decimal.Decimal, str)
        sqlite3.register_adapter(dict, json.dumps)
        sqlite3.register_adapter(list, json.dumps)

        sqlite3.register_converter('date', convert_date)
        sqlite3.register_converter('datetime', convert_datetime)
        sqlite3.register_converter('timestamp', convert_datetime)

    def create_dict_cursor(self, raw_conn: Any) -> Any:
        cursor = get_raw_connection(raw_conn).cursor()
        cursor.row_factory = sqlite3.Row
        return cursor

    def last_insert_id(self, cursor: Any) -> int:
        rowid = cursor.lastrowid
        if rowid is None:
            raise LastInsertIdError('sqlite did not report a last inserted rowid')
        return int(rowid)

    @classmethod
    def get_required_options(cls) -> list[str]:
        return ['database']

    def configure_connection(self, conn: Any) -> None:
        """Foreign keys on, autocommit on."""
        sqlite_conn = get_raw_connection(conn)
        sqlite_conn.execute('PRAGMA foreign_keys = ON')
        self.enable_autocommit(sqlite_conn)

    def enable_autocommit(self, raw_conn: Any) -> None:
        raw_conn.isolation_level = None

    def disable_autocommit(self, raw_conn: Any) -> None:
        """INSERT, UPDATE and DELETE implicitly open a deferred transaction."""
        raw_conn.isolation_level = 'DEFERRED'

    @contextmanager
    def _watching(self, raw_conn: Any, ctx: 'Context',
                  statement: bool) -> Iterator[None]:
        """Progress handler for deadlines, interrupt() for cancellation.
        """
        sqlite_conn = get_raw_connection(raw_conn)
        sqlite_conn.set_progress_handler(ctx.done, PROGRESS_INTERVAL)
        try:
            with ctx.on_cancel(sqlite_conn.interrupt):
                yield
        finally:
            sqlite_conn.set_progress_handler(None, 0)
