"""
Dialect strategies for the record layer.

Importing this package registers the built-in strategies (``postgresql``
and ``sqlite``). Look one up by dialect name with `get_strategy`, or from any
connection object with `get_db_strategy`; instances are stateless and shared.
"""
from functools import lru_cache

from sqlrecord.strategy.base import _STRATEGY_REGISTRY
from sqlrecord.strategy.base import DatabaseStrategy as DatabaseStrategy
from sqlrecord.strategy.base import register_strategy as register_strategy
from sqlrecord.strategy.postgres import PostgresStrategy as PostgresStrategy
from sqlrecord.strategy.sqlite import SQLiteStrategy as SQLiteStrategy
from sqlrecord.utils import get_dialect_name

__all__ = [
    'DatabaseStrategy',
    'PostgresStrategy',
    'SQLiteStrategy',
    'register_strategy',
    'get_strategy',
    'get_db_strategy',
    'get_strategy_class',
    'get_available_dialects',
    'is_supported_dialect',
]


def get_strategy_class(dialect: str) -> type[DatabaseStrategy]:
    """Registered strategy class for `dialect`.

    Raises
        ValueError: no strategy is registered under that name
    """
    try:
        return _STRATEGY_REGISTRY[dialect]
    except KeyError:
        raise ValueError(f'Unsupported dialect: {dialect}. '
                         f'Available: {get_available_dialects()}') from None


@lru_cache(maxsize=8)
def get_strategy(dialect: str) -> DatabaseStrategy:
    """Shared strategy instance for `dialect`."""
    return get_strategy_class(dialect)()


def get_db_strategy(cn) -> DatabaseStrategy:
    """Strategy for a ConnectionWrapper, SQLAlchemy or driver connection."""
    return get_strategy(get_dialect_name(cn))


def get_available_dialects() -> list[str]:
    return sorted(_STRATEGY_REGISTRY)


def is_supported_dialect(dialect: str) -> bool:
    return dialect in _STRATEGY_REGISTRY
