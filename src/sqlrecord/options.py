import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import sqlalchemy as sa
from sqlrecord.reflect import DEFAULT_TAG
from sqlrecord.strategy import get_available_dialects, get_strategy_class
from sqlrecord.strategy import is_supported_dialect

__all__ = [
    'DatabaseOptions',
    'add_search_path',
]

logger = logging.getLogger(__name__)


def _scriptname() -> str | None:
    name = Path(sys.argv[0]).stem if sys.argv and sys.argv[0] else ''
    return name or None


@dataclass
class DatabaseOptions:
    """Where and how to connect.

    `drivername` picks the strategy (``postgresql`` or ``sqlite``), which also
    decides the required fields. `tag` names the dataclass field metadata key
    that holds column tags. `search_path` applies to PostgreSQL only.

    Pooling is off by default, so each connection is opened fresh. With
    `use_pool`, up to `pool_max_connections` are kept, recycled after
    `pool_max_idle_time` seconds, and callers wait at most
    `pool_wait_timeout` seconds for one.
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None
    tag: str = DEFAULT_TAG
    search_path: list[str] = field(default_factory=list)
    # pooling
    use_pool: bool = False
    pool_max_connections: int = 5
    pool_max_idle_time: int = 300
    pool_wait_timeout: int = 30

    def __post_init__(self):
        if not is_supported_dialect(self.drivername):
            available = get_available_dialects()
            raise ValueError(f'drivername must be one of: {available}')
        self.appname = self.appname or _scriptname() or 'python_console'
        if isinstance(self.search_path, str):
            self.search_path = [s.strip() for s in self.search_path.split(',') if s.strip()]
        strategy_cls = get_strategy_class(self.drivername)
        strategy_cls.validate_options(self)

    @classmethod
    def from_url(cls, url: str | sa.URL, **kw: Any) -> 'DatabaseOptions':
        """Build options from a SQLAlchemy style URL.

        >>> DatabaseOptions.from_url('sqlite:///:memory:').database
        ':memory:'
        >>> opts = DatabaseOptions.from_url('postgresql://u:p@db:5432/app')
        >>> opts.hostname, opts.port, opts.database
        ('db', 5432, 'app')
        """
        url = sa.make_url(url)
        values: dict[str, Any] = {
            'drivername': url.get_backend_name(),
            'hostname': url.host,
            'username': url.username,
            'password': url.password,
            'database': url.database or (':memory:' if url.get_backend_name() == 'sqlite' else None),
            'port': url.port or 0,
        }
        if 'connect_timeout' in url.query:
            values['timeout'] = int(url.query['connect_timeout'])
        values.update(kw)
        return cls(**values)


def add_search_path(dsn: str, *schemas: str) -> str:
    """Add a search path to a PostgreSQL DSN.

    URL style DSNs get an ``options=--search_path=...`` query parameter;
    key/value style DSNs get a ``search_path=...`` pair appended.

    >>> add_search_path('host=db user=app', 'core', 'public')
    'host=db user=app search_path=core,public'
    """
    search_path = 'search_path=' + ','.join(schemas)
    if '://' not in dsn:
        return f'{dsn} {search_path}'
    try:
        url = sa.make_url(dsn)
    except sa.exc.ArgumentError:
        logger.debug(f'Unparseable DSN URL, appending {search_path} as key/value')
        return f'{dsn} {search_path}'
    url = url.update_query_dict({'options': f'--{search_path}'}, append=True)
    return url.render_as_string(hide_password=False)


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
