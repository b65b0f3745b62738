"""
Exceptions raised by sqlrecord.

Four kinds of failure reach callers:

- `BuildError` when a statement cannot be assembled; nothing was sent.
- Driver errors, raised as the driver reports them. The tuples at the end
  of this module group them across psycopg and sqlite3 for ``except``.
- `RecordDecodeError` when one row cannot become a record.
- `RecordNotFound` when a point lookup matches nothing.
"""
import sqlite3

import psycopg


class DatabaseError(Exception):
    """Root of the sqlrecord exception tree."""


class ConnectionFailure(DatabaseError):
    """The connection is closed or could not be opened."""


class QueryError(DatabaseError):
    pass


class BuildError(QueryError):
    """Statement could not be assembled from the record and predicate.
    """


class TypeConversionError(DatabaseError):
    """A value could not be converted to or from its column representation."""


class RecordDecodeError(TypeConversionError):
    """A result row could not be decoded into the record type.
    """


class SchemaError(DatabaseError, TypeError):
    """Invalid record declaration (e.g. duplicate column names).
    """


class RecordNotFound(DatabaseError, LookupError):
    """A single-row query matched no rows.
    """


class LastInsertIdError(DatabaseError):
    """The driver did not report a last inserted id.
    """


class AffectedRowsError(DatabaseError):
    """The driver did not report an affected row count.
    """


class ContextError(DatabaseError):
    """Execution aborted by its context.
    """


class ContextCancelled(ContextError):
    pass


class DeadlineExceeded(ContextError, TimeoutError):
    pass


# driver errors grouped for `except` clauses

DbConnectionError = (
    ConnectionFailure,
    psycopg.InterfaceError,
    psycopg.OperationalError,
    sqlite3.InterfaceError,
    sqlite3.OperationalError,
    )

IntegrityError = (psycopg.IntegrityError, sqlite3.IntegrityError)

UniqueViolation = (psycopg.errors.UniqueViolation, sqlite3.IntegrityError)

OperationalError = (psycopg.OperationalError, sqlite3.OperationalError)

ProgrammingError = (
    QueryError,
    psycopg.ProgrammingError,
    psycopg.DatabaseError,
    sqlite3.ProgrammingError,
    sqlite3.DatabaseError,
    )
