"""
Dialect and driver lookups shared by the strategy and connection modules.

Nothing here imports from the rest of the package, so any module may use it.
"""
from typing import Any

_DRIVER_DIALECTS = (
    ('psycopg', 'postgresql'),
    ('sqlite3', 'sqlite'),
)


def get_dialect_name(obj: Any) -> str:
    """Lower-case dialect name of a wrapper, SQLAlchemy object or driver connection.

    Raises
        AttributeError: the object carries no recognisable dialect
    """
    dialect = getattr(obj, 'dialect', None)
    if dialect is not None:
        return (dialect if isinstance(dialect, str) else str(dialect.name)).lower()

    engine = getattr(obj, 'engine', None)
    if engine is not None and hasattr(engine, 'dialect'):
        return str(engine.dialect.name).lower()

    module = type(obj).__module__
    for prefix, name in _DRIVER_DIALECTS:
        if module.startswith(prefix):
            return name
    raise AttributeError(f'Cannot determine dialect for {type(obj)}')


def get_raw_connection(connection: Any) -> Any:
    """Driver connection behind a pool proxy; anything else is returned as is."""
    conn = getattr(connection, 'dbapi_connection', connection)
    return getattr(conn, 'driver_connection', conn)
