"""
Typed record access for PostgreSQL and SQLite.

Records are dataclasses whose fields carry column tags; the module
functions build, run and decode the matching statements:

    @dataclass
    class User:
        id: int = column('id', omitempty=True, default=0)
        name: str = column('name', default='')

    cn = connect('sqlite:///app.db')
    uid = insert(cn, 'users', User(name='ada'))
    user = select_row(cn, 'users', User, {'id': uid})

All record operations can be called either as:
- Module functions: sqlrecord.select_row(cn, table, User, where)
- ConnectionWrapper methods: cn.select_record(table, User, where)
"""
__version__ = '0.1.0'

from sqlrecord.connection import ConnectionWrapper, connect
from sqlrecord.context import Context, background
from sqlrecord.exceptions import AffectedRowsError, BuildError
from sqlrecord.exceptions import ConnectionFailure, ContextCancelled
from sqlrecord.exceptions import ContextError, DatabaseError
from sqlrecord.exceptions import DbConnectionError, DeadlineExceeded
from sqlrecord.exceptions import IntegrityError, LastInsertIdError
from sqlrecord.exceptions import OperationalError, ProgrammingError
from sqlrecord.exceptions import QueryError, RecordDecodeError
from sqlrecord.exceptions import RecordNotFound, SchemaError
from sqlrecord.exceptions import TypeConversionError, UniqueViolation
from sqlrecord.helpers import delete_by_id, exists_by_id, just_err
from sqlrecord.helpers import select_row_by_id, select_row_by_integration_id
from sqlrecord.helpers import update_by_id
from sqlrecord.options import DatabaseOptions, add_search_path
from sqlrecord.records import delete, exists, insert, insert_full
from sqlrecord.records import insert_returning_id, insert_returning_id_full
from sqlrecord.records import select, select_row, update
from sqlrecord.reflect import Column, bindings, column, columns, describe
from sqlrecord.reflect import from_row, to_map
from sqlrecord.rows import RowIterator, RowResult, collect, decode
from sqlrecord.rows import to_dataframe
from sqlrecord.statement import Statement, where
