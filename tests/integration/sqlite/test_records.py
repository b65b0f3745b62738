import sqlite3

import pytest
import sqlalchemy as sa
import sqlrecord as db
from sqlrecord.strategy import SQLiteStrategy

from tests.fixtures.records import Item, NamedThing, Person, Thing


def test_crud_round_trip(sl_conn):
    """Insert, read, update, check and delete one row"""
    uid = db.insert(sl_conn, 't', Thing(name='alpha'))
    assert uid == 1

    assert db.select_row(sl_conn, 't', Thing, {'id': uid}) == Thing(id=1, name='alpha')

    assert db.update(sl_conn, 't', Thing(name='beta'), {'id': uid}) == 1
    assert db.select_row(sl_conn, 't', Thing, {'id': uid}).name == 'beta'

    assert db.exists(sl_conn, 't', {'id': uid}) is True

    db.delete(sl_conn, 't', {'id': uid})
    assert db.exists(sl_conn, 't', {'id': uid}) is False
    with pytest.raises(db.RecordNotFound):
        db.select_row(sl_conn, 't', Thing, {'id': uid})


def test_insert_omits_empty_id(sl_conn):
    """A zero id is left to the database; a set id is written"""
    assert db.insert(sl_conn, 't', Thing(name='a')) == 1
    assert db.insert(sl_conn, 't', Thing(id=10, name='b')) == 10
    assert db.insert(sl_conn, 't', Thing(name='c')) == 11


def test_insert_full(sl_conn):
    """omit_empty=False writes the zero id as-is"""
    db.insert_full(sl_conn, 't', Thing(name='zero'), omit_empty=False)
    assert db.select_row(sl_conn, 't', Thing, {'name': 'zero'}) == Thing(id=0, name='zero')


def test_insert_conflict_is_ignored(sl_conn):
    """A conflicting row leaves the table unchanged"""
    db.insert(sl_conn, 't', Thing(id=1, name='a'))
    db.insert(sl_conn, 't', Thing(id=1, name='b'))
    rows = db.collect(db.select(sl_conn, 't', Thing))
    assert rows == [Thing(id=1, name='a')]


def test_insert_returning_id(sl_conn):
    """RETURNING id reports the generated key, never writing the id column"""
    assert db.insert_returning_id(sl_conn, 't', 'id', Thing(id=99, name='a')) == 1
    assert db.insert_returning_id(sl_conn, 't', 'id', NamedThing(name='b')) == 2


def test_insert_returning_id_on_conflict(sl_conn):
    """A conflict returns no row"""
    db.insert(sl_conn, 'items', Item(integration_id='ext-1', qty=1))
    with pytest.raises(db.RecordNotFound):
        db.insert_returning_id(sl_conn, 'items', 'id', Item(integration_id='ext-1', qty=2))
    assert db.select_row(sl_conn, 'items', Item, {'integration_id': 'ext-1'}).qty == 1


def test_embedded_record(sl_conn, person):
    """Embedded record fields map to columns of the same row"""
    pid = db.insert(sl_conn, 'people', person)
    row = db.select_row(sl_conn, 'people', Person, {'id': pid})
    assert row.address.street == '1 Main St'
    assert row.address.city == 'Springfield'
    assert row.nickname is None
    assert row.note == ''


def test_update_reports_affected_rows(sl_conn):
    """Affected row count covers every matching row"""
    for name in ('a', 'b', 'c'):
        db.insert(sl_conn, 't', Thing(name=name))
    assert db.update(sl_conn, 't', Thing(name='z'), {'id': [1, 2]}) == 2
    assert db.update(sl_conn, 't', Thing(name='y'), {'id': 42}) == 0


def test_where_clause_predicate(sl_conn):
    """SQLAlchemy column expressions work as predicates"""
    for name in ('a', 'b', 'c'):
        db.insert(sl_conn, 't', Thing(name=name))
    rows = db.collect(db.select(sl_conn, 't', Thing, db.where({'name': ['a', 'c']})))
    assert [r.name for r in rows] == ['a', 'c']

    rows = db.collect(db.select(sl_conn, 't', Thing, sa.column('id') > 1))
    assert [r.id for r in rows] == [2, 3]


def test_exists_is_idempotent(sl_conn):
    """Repeated checks give the same answer and change nothing"""
    db.insert(sl_conn, 't', Thing(name='a'))
    assert [db.exists(sl_conn, 't', {'name': 'a'}) for _ in range(3)] == [True] * 3
    assert [db.exists(sl_conn, 't', {'name': 'b'}) for _ in range(3)] == [False] * 3
    assert len(db.collect(db.select(sl_conn, 't', Thing))) == 1


def test_exists_on_missing_table(sl_conn):
    """Execution errors propagate from exists"""
    with pytest.raises(sqlite3.OperationalError, match='no such table'):
        db.exists(sl_conn, 'missing', {'id': 1})


def test_failed_write_leaves_connection_usable(sl_conn):
    """An integrity error rolls back and the next write still works"""
    db.insert(sl_conn, 'items', Item(integration_id='ext-1', qty=1))
    uid = db.insert(sl_conn, 'items', Item(integration_id='ext-2', qty=2))
    with pytest.raises(sqlite3.IntegrityError):
        db.update(sl_conn, 'items', Item(integration_id='ext-1', qty=2), {'id': uid})
    assert db.select_row(sl_conn, 'items', Item, {'id': uid}).integration_id == 'ext-2'
    assert db.insert(sl_conn, 't', Thing(name='after')) == 1


def test_insert_without_id_is_rolled_back(sl_conn, mocker):
    """A write that fails after its statement ran leaves no row behind"""
    mocker.patch.object(SQLiteStrategy, 'last_insert_id',
                        side_effect=db.LastInsertIdError('no rowid'))
    with pytest.raises(db.LastInsertIdError):
        db.insert(sl_conn, 't', Thing(name='ghost'))
    assert not sl_conn.driver_connection.in_transaction
    assert sl_conn.driver_connection.isolation_level is None
    assert not db.exists(sl_conn, 't', {'name': 'ghost'})


class TestSelectIterator:

    @pytest.fixture(autouse=True)
    def five_rows(self, sl_conn):
        for i in range(1, 6):
            db.insert(sl_conn, 't', Thing(name=f'row{i}'))

    def test_lazy_iteration(self, sl_conn):
        """Rows come back in order, one RowResult per row"""
        results = list(db.select(sl_conn, 't', Thing))
        assert [r.record.id for r in results] == [1, 2, 3, 4, 5]
        assert all(r.error is None for r in results)

    def test_early_termination_releases_cursor(self, sl_conn):
        """Breaking out of a with block closes the iterator"""
        with db.select(sl_conn, 't', Thing) as rows:
            for record, err in rows:
                if record.id == 2:
                    break
        assert rows.closed
        assert db.exists(sl_conn, 't', {'id': 5})

    def test_decode_error_is_isolated(self, sl_conn):
        """A NULL name fails only its own row"""
        sl_conn.driver_connection.execute('UPDATE t SET name = NULL WHERE id = 3')
        results = list(db.select(sl_conn, 't', Thing))
        assert [r.record.id for r in results if r.error is None] == [1, 2, 4, 5]
        failed = [r for r in results if r.error is not None]
        assert len(failed) == 1
        assert isinstance(failed[0].error, db.RecordDecodeError)

    def test_collect_raises_first_error(self, sl_conn):
        sl_conn.driver_connection.execute('UPDATE t SET name = NULL WHERE id = 3')
        with pytest.raises(db.RecordDecodeError):
            db.collect(db.select(sl_conn, 't', Thing))

    def test_to_dataframe(self, sl_conn):
        df = db.to_dataframe(db.select(sl_conn, 't', Thing, {'id': [1, 2]}))
        assert df.to_dict('list') == {'id': [1, 2], 'name': ['row1', 'row2']}

    def test_empty_select(self, sl_conn):
        assert list(db.select(sl_conn, 't', Thing, {'id': 100})) == []


class TestHelpers:

    def test_by_id(self, sl_conn):
        uid = db.insert(sl_conn, 't', Thing(name='a'))
        assert db.select_row_by_id(sl_conn, 't', Thing, uid).name == 'a'
        assert db.update_by_id(sl_conn, 't', uid, Thing(name='b')) == 1
        assert db.exists_by_id(sl_conn, 't', uid)
        db.delete_by_id(sl_conn, 't', uid)
        assert not db.exists_by_id(sl_conn, 't', uid)

    def test_by_integration_id(self, sl_conn):
        db.insert(sl_conn, 'items', Item(integration_id='ext-7', qty=4))
        item = db.select_row_by_integration_id(sl_conn, 'items', Item, 'ext-7')
        assert item == Item(id=1, integration_id='ext-7', qty=4)
        with pytest.raises(db.RecordNotFound):
            db.select_row_by_integration_id(sl_conn, 'items', Item, 'ext-8')

    def test_just_err(self, sl_conn):
        sl_conn.driver_connection.execute("INSERT INTO t (name) VALUES ('a'), (NULL)")
        errors = [db.just_err(*r) for r in db.select(sl_conn, 't', Thing)]
        assert errors[0] is None
        assert isinstance(errors[1], db.RecordDecodeError)
