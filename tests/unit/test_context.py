import threading
import time

import pytest
from sqlrecord.context import Context, background
from sqlrecord.exceptions import ContextCancelled, ContextError
from sqlrecord.exceptions import DeadlineExceeded


def test_background_is_never_done():
    ctx = background()
    assert not ctx.done()
    assert ctx.error() is None
    assert ctx.remaining() is None
    ctx.check()


def test_cancel():
    ctx = Context()
    ctx.cancel()
    assert ctx.done()
    assert isinstance(ctx.error(), ContextCancelled)
    with pytest.raises(ContextCancelled):
        ctx.check()


def test_cancel_twice_runs_callbacks_once():
    ctx = Context()
    calls = []
    with ctx.on_cancel(lambda: calls.append(1)):
        ctx.cancel()
        ctx.cancel()
    assert calls == [1]


def test_deadline():
    ctx = Context(timeout=0)
    assert ctx.remaining() == 0
    assert isinstance(ctx.error(), DeadlineExceeded)
    with pytest.raises(TimeoutError):
        ctx.check()


def test_remaining_counts_down():
    ctx = Context(timeout=60)
    assert 0 < ctx.remaining() <= 60
    assert not ctx.done()


def test_child_inherits_parent_cancellation():
    parent = Context()
    child = parent.with_timeout(60)
    parent.cancel()
    assert isinstance(child.error(), ContextCancelled)


def test_child_deadline_never_exceeds_parent():
    parent = Context(timeout=1)
    child = parent.with_timeout(60)
    assert child.deadline == parent.deadline


def test_child_cancel_leaves_parent_alone():
    parent = Context()
    child = parent.with_timeout(60)
    child.cancel()
    assert child.done()
    assert not parent.done()


def test_on_cancel_reaches_parent_cancellation():
    parent = Context()
    child = parent.with_timeout(60)
    calls = []
    with child.on_cancel(lambda: calls.append('child')):
        parent.cancel()
    assert calls == ['child']


def test_on_cancel_runs_immediately_when_already_cancelled():
    ctx = Context()
    ctx.cancel()
    calls = []
    with ctx.on_cancel(lambda: calls.append(1)):
        pass
    assert calls == [1]


def test_on_cancel_unregisters_on_exit():
    ctx = Context()
    calls = []
    with ctx.on_cancel(lambda: calls.append(1)):
        pass
    ctx.cancel()
    assert calls == []


def test_cancel_from_another_thread():
    ctx = Context()
    timer = threading.Timer(0.05, ctx.cancel)
    timer.start()
    try:
        deadline = time.monotonic() + 5
        while not ctx.done() and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        timer.cancel()
    assert isinstance(ctx.error(), ContextError)


def test_leaving_on_cancel_waits_for_running_callback():
    ctx = Context()
    started = threading.Event()
    finished = []

    def slow_abort():
        started.set()
        time.sleep(0.2)
        finished.append(1)

    with ctx.on_cancel(slow_abort):
        worker = threading.Thread(target=ctx.cancel)
        worker.start()
        assert started.wait(5)
    assert finished == [1]
    worker.join()
