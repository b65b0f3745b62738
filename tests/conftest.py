import logging

import pytest
from sqlrecord.connection import dispose_all_engines

logging.getLogger('sqlrecord').setLevel(logging.DEBUG)


@pytest.fixture(autouse=True)
def dispose_engines():
    """Dispose cached engines after each test to ensure test isolation."""
    yield
    dispose_all_engines()


pytest_plugins = [
    'tests.fixtures.records',
    'tests.fixtures.mocks',
    'tests.fixtures.sqlite',
    'tests.fixtures.postgres',
]
