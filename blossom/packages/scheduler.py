# blossom/packages/scheduler.py
from __future__ import annotations
import logging
from collections.abc import Callable, Hashable, Iterator
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger(__name__)

__all__ = ["RunLoop"]



class RunLoop:
    """
    Work batch in which package callbacks are dispatched.

    A batch is opened with `batch()` (re-entrant; only the outermost one
    flushes). Work registered with `scheduleOnce()` while a batch is open is
    coalesced by key and runs once when the outermost batch closes. Outside a
    batch, scheduled work runs immediately.

    The package manager opens a batch around every entry point and schedules
    follow-up loads instead of calling them, so long dependency chains are
    walked iteratively rather than by recursion.
    """

    def __init__(self) -> None:
        self._depth = 0
        self._pending: dict[Hashable, Callable[[], Any]] = {}

    @property
    def isBatchOpen(self) -> bool:
        return self._depth > 0

    @contextmanager
    def batch(self) -> Iterator[RunLoop]:
        self._depth += 1
        try:
            yield self
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._flush()

    def scheduleOnce(self, key: Hashable, fn: Callable[[], Any]) -> None:
        if not self.isBatchOpen:
            fn()
            return
        # Latest registration for a key wins but keeps its original slot
        self._pending[key] = fn

    def dispatch(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Runs `fn` inside the current batch when one is open, else directly."""
        if self.isBatchOpen:
            with self.batch():
                return fn(*args)
        return fn(*args)

    def _flush(self) -> None:
        # Work scheduled while flushing opens a fresh batch and is flushed with it.
        # A failing task does not stop the rest; the first failure is re-raised
        # once the queue is empty.
        firstError: Exception | None = None
        while self._pending:
            pending = list(self._pending.values())
            self._pending.clear()
            self._depth += 1
            try:
                for fn in pending:
                    try:
                        fn()
                    except Exception as err:
                        logger.exception("Coalesced run loop task failed")
                        if firstError is None:
                            firstError = err
            finally:
                self._depth -= 1
        if firstError is not None:
            raise firstError
