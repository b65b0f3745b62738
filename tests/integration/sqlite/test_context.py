"""
Deadlines and cancellation against a live SQLite connection.
"""
import threading
import time

import pytest
import sqlrecord as db

from tests.fixtures.records import Thing


def test_cancelled_context_runs_nothing(sl_conn):
    """A cancelled context fails before any statement runs"""
    ctx = db.Context()
    ctx.cancel()
    calls = sl_conn.calls
    with pytest.raises(db.ContextCancelled):
        db.insert(sl_conn, 't', Thing(name='never'), ctx=ctx)
    assert sl_conn.calls == calls + 1
    assert not db.exists(sl_conn, 't', {'name': 'never'})


def test_expired_deadline(sl_conn):
    with pytest.raises(db.DeadlineExceeded):
        db.select_row(sl_conn, 't', Thing, {'id': 1}, ctx=db.Context(timeout=0))


def test_deadline_interrupts_running_statement(sl_conn, forever_view):
    """A statement that never finishes is aborted at the deadline"""
    start = time.monotonic()
    with pytest.raises(db.DeadlineExceeded) as excinfo:
        db.exists(sl_conn, forever_view, {'id': -1}, ctx=db.Context(timeout=0.2))
    assert time.monotonic() - start < 5
    assert excinfo.value.__cause__ is not None

    assert db.insert(sl_conn, 't', Thing(name='after')) == 1


def test_cancel_from_another_thread(sl_conn, forever_view):
    """Cancelling from another thread interrupts the running statement"""
    ctx = db.Context()
    timer = threading.Timer(0.2, ctx.cancel)
    timer.start()
    try:
        with pytest.raises(db.ContextCancelled):
            db.exists(sl_conn, forever_view, {'id': -1}, ctx=ctx)
    finally:
        timer.cancel()

    assert db.exists(sl_conn, 't', {'id': 1}) is False


def test_live_context_changes_nothing(sl_conn):
    ctx = db.Context(timeout=30)
    uid = db.insert(sl_conn, 't', Thing(name='a'), ctx=ctx)
    assert db.select_row(sl_conn, 't', Thing, {'id': uid}, ctx=ctx) == Thing(uid, 'a')
    rows = db.collect(db.select(sl_conn, 't', Thing, ctx=ctx))
    assert rows == [Thing(uid, 'a')]


def test_deadline_while_iterating(sl_conn, forever_view):
    """A deadline passing between fetches ends the iterator with its error"""
    ctx = db.Context(timeout=0.3)
    rows = db.select(sl_conn, forever_view, Thing, ctx=ctx)
    results = []
    for result in rows:
        results.append(result)
        if result.error is not None:
            break
        time.sleep(0.05)
    assert isinstance(results[-1].error, db.DeadlineExceeded)
    assert all(r.error is None for r in results[:-1])
    assert rows.closed
