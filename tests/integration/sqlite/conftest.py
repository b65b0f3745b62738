"""
Fixtures for SQLite-specific integration tests.
"""
import pytest
import sqlrecord as db

from tests.fixtures.sqlite import stage_test_data


@pytest.fixture
def sqlite_file_options(tmp_path):
    """Options for a file-based database, for tests spanning connections."""
    return db.DatabaseOptions(drivername='sqlite', database=str(tmp_path / 'records.db'))


@pytest.fixture
def sqlite_file_conn(sqlite_file_options):
    """File-based SQLite connection with the test schema."""
    cn = db.connect(sqlite_file_options)
    stage_test_data(cn)
    yield cn
    cn.close()


@pytest.fixture
def forever_view(sl_conn):
    """A view whose scan never ends, to exercise deadlines and cancellation."""
    sl_conn.driver_connection.execute("""
    CREATE VIEW forever AS
    WITH RECURSIVE r(n) AS (SELECT 1 UNION ALL SELECT n + 1 FROM r)
    SELECT n AS id, 'x' AS name FROM r
    """)
    return 'forever'
