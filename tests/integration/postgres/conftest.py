"""
Fixtures for PostgreSQL-specific integration tests.
"""
import pytest
import sqlrecord as db


@pytest.fixture
def app_conn(pg_conn, pg_options):
    """Connection with ``app`` first on the search path."""
    cn = db.connect(pg_options, search_path=['app'])
    yield cn
    cn.close()
