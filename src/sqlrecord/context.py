"""
Cancellable execution context.

A `Context` carries an optional deadline and a cancellation flag. Every
record operation accepts one (``ctx=``) and checks it before touching the
connection; while a statement or a row fetch is in flight the dialect
strategy installs a watch (see `DatabaseStrategy.watch`) that aborts the
driver call when the context is cancelled or its deadline passes.

Cancellation may come from another thread:

>>> ctx = Context(timeout=5)
>>> ctx.done()
False
>>> ctx.cancel()
>>> ctx.done()
True
>>> type(ctx.error()).__name__
'ContextCancelled'
"""
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import ExitStack, contextmanager

from sqlrecord.exceptions import ContextCancelled, ContextError
from sqlrecord.exceptions import DeadlineExceeded

__all__ = ['Context', 'background']


class Context:
    """Deadline plus cancellation flag, optionally derived from a parent.
    """

    def __init__(self, timeout: float | None = None,
                 parent: 'Context | None' = None) -> None:
        self._parent = parent
        self._deadline = None if timeout is None else time.monotonic() + timeout
        if parent is not None and parent.deadline is not None:
            if self._deadline is None or parent.deadline < self._deadline:
                self._deadline = parent.deadline
        self._cancelled = threading.Event()
        self._callbacks: list[Callable[[], None]] = []
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return f'Context(remaining={self.remaining()!r}, cancelled={self._cancelled.is_set()})'

    @classmethod
    def background(cls) -> 'Context':
        """Context that is never cancelled and has no deadline.
        """
        return cls()

    def with_timeout(self, timeout: float) -> 'Context':
        """Derive a child context that also expires after `timeout` seconds.
        """
        return Context(timeout, parent=self)

    @property
    def deadline(self) -> float | None:
        """Deadline on the `time.monotonic` clock, None if unbounded."""
        return self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, None if unbounded.
        """
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancel(self) -> None:
        """Cancel the context and abort any watched in-flight call.

        Callbacks run under the lock, so a watch leaving its block waits
        for a running callback instead of letting it hit the next call.
        """
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            for callback in list(self._callbacks):
                callback()

    def error(self) -> ContextError | None:
        """Return the reason the context is done, or None.
        """
        if self._cancelled.is_set():
            return ContextCancelled('context cancelled')
        if self._parent is not None:
            err = self._parent.error()
            if err is not None:
                return err
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return DeadlineExceeded('context deadline exceeded')
        return None

    def done(self) -> bool:
        return self.error() is not None

    def check(self) -> None:
        """Raise the context error if the context is done.
        """
        err = self.error()
        if err is not None:
            raise err

    @contextmanager
    def on_cancel(self, callback: Callable[[], None]) -> Iterator[None]:
        """Run `callback` if this context or a parent is cancelled while
        the block is active.
        """
        with ExitStack() as stack:
            if self._parent is not None:
                stack.enter_context(self._parent.on_cancel(callback))
            with self._lock:
                self._callbacks.append(callback)
                already = self._cancelled.is_set()
            try:
                if already:
                    callback()
                yield
            finally:
                with self._lock:
                    self._callbacks.remove(callback)


def background() -> Context:
    """Shortcut for `Context.background()`."""
    return Context.background()
