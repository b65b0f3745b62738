"""
Per-dialect behaviour of the record layer.

A strategy answers everything the record layer needs to know about a
dialect:

- how to reach the server: URL, engine arguments, connection setup,
- how values travel: type adapters and dict-row cursors,
- how inserted ids are reported,
- how an in-flight call is aborted when its `Context` is done (`watch`).

Concrete strategies register themselves with `register_strategy`.
"""
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from sqlrecord.sql import rebind

if TYPE_CHECKING:
    from sqlrecord.context import Context
    from sqlrecord.options import DatabaseOptions

logger = logging.getLogger(__name__)

# dialect name -> strategy class; filled by the strategy modules on import
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Class decorator registering a strategy under `dialect`.

        @register_strategy('sqlite')
        class SQLiteStrategy(DatabaseStrategy):
            ...
    """
    def register(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return register


class DatabaseStrategy(ABC):
    """What the record layer needs from a dialect.
    """

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Registered name, as reported by SQLAlchemy (``sqlite``, ...)."""

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> str:
        """SQLAlchemy URL for `options`."""

    @abstractmethod
    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Extra `create_engine` arguments, typically driver ``connect_args``."""

    @abstractmethod
    def configure_connection(self, conn: Any) -> None:
        """Prepare a freshly checked out connection (session settings,
        autocommit).
        """

    @abstractmethod
    def enable_autocommit(self, raw_conn: Any) -> None:
        ...

    @abstractmethod
    def disable_autocommit(self, raw_conn: Any) -> None:
        """Start buffering writes until the next commit or rollback."""

    @abstractmethod
    def register_type_adapters(self, connection: Any) -> None:
        """Teach the driver to bind and read the value types records use
        (dates, decimals, JSON containers).
        """

    @abstractmethod
    def create_dict_cursor(self, raw_conn: Any) -> Any:
        """Driver cursor whose rows can be read by column name."""

    def create_stream_cursor(self, raw_conn: Any) -> Any:
        """Dict cursor that pulls rows from the server as they are fetched.

        Drivers whose plain cursors already step through results lazily
        use `create_dict_cursor`.
        """
        return self.create_dict_cursor(raw_conn)

    @abstractmethod
    def last_insert_id(self, cursor: Any) -> int:
        """Return the id generated by the last INSERT on `cursor`.

        Raises
            LastInsertIdError: the driver cannot report the id
        """

    @abstractmethod
    def _watching(self, raw_conn: Any, ctx: 'Context',
                  statement: bool) -> Any:
        """Context manager arming the dialect's abort mechanism for `ctx`.
        """

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """`DatabaseOptions` fields that must be set for this dialect."""

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Check the required option fields.

        Raises
            ValueError: a required field is unset (None, empty or 0)
        """
        for name in cls.get_required_options():
            if not getattr(options, name):
                raise ValueError(f'field {name} cannot be None or 0')

    @contextmanager
    def watch(self, raw_conn: Any, ctx: 'Context | None',
              statement: bool = True) -> Iterator[None]:
        """Abort the driver call inside the block when `ctx` is done.

        The context is checked on entry. A driver error raised while the
        context is done is replaced by the context error, chained from the
        driver error.

        Args:
            raw_conn: Raw driver connection running the call
            ctx: Execution context, None for no watch
            statement: True while executing a statement, False while
                fetching rows of an already executed one

        Raises
            ContextCancelled: the context was cancelled
            DeadlineExceeded: the context deadline passed
        """
        if ctx is None:
            yield
            return
        ctx.check()
        with self._watching(raw_conn, ctx, statement):
            try:
                yield
            except Exception as err:
                reason = ctx.error()
                if reason is None:
                    raise
                logger.debug(f'{self.dialect_name} call aborted: {reason}')
                raise reason from err

    def standardize_sql(self, sql: str) -> str:
        """Convert `?` placeholders to this dialect's style.
        """
        return rebind(sql, self.dialect_name)
