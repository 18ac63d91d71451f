# blossom/packages/background.py
from __future__ import annotations
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from blossom.packages.manager import PackageManager

logger = logging.getLogger(__name__)

__all__ = ["BackgroundTask", "LazyPackageTask", "BackgroundTaskQueue"]



class BackgroundTask(Protocol):
    def run(self) -> Any: ...



@dataclass(frozen=True, slots=True)
class LazyPackageTask:
    """Loads one lazy package when the background queue gets to it."""
    lazyPackageName: str
    manager: PackageManager

    def run(self) -> bool:
        return self.manager.loadPackage(self.lazyPackageName)



class BackgroundTaskQueue:
    """
    Runs queued tasks one at a time while the event loop is otherwise idle.

    - `push()` never runs a task inline
    - once `start()`ed, a worker task drains the queue, yielding to the loop
      between tasks (`idleDelayMs` apart)
    - a failing task is logged and does not stop the queue
    """

    def __init__(self, *, idleDelayMs: int = 0) -> None:
        self._tasks: deque[BackgroundTask] = deque()
        self._idleDelayMs = max(0, int(idleDelayMs))
        self._running = False
        self._worker: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def __len__(self) -> int:
        return len(self._tasks)

    @property
    def isRunning(self) -> bool:
        return self._running

    def push(self, task: BackgroundTask) -> None:
        self._tasks.append(task)
        if self._running and self._worker is None and self._loop is not None:
            self._loop.call_soon(self._ensureWorker)

    def runNext(self) -> bool:
        """Runs the oldest task. Returns False when the queue was empty."""
        if not self._tasks:
            return False
        task = self._tasks.popleft()
        try:
            task.run()
        except Exception:
            logger.exception("Background task %r failed", task)
        return True

    async def drain(self) -> int:
        """Runs every queued task (including ones pushed meanwhile) and returns how many ran."""
        ran = 0
        while self.runNext():
            ran += 1
            await asyncio.sleep(self._idleDelayMs / 1000.0)
        return ran

    def start(self) -> None:
        """Starts the worker on the running loop."""
        self._loop = asyncio.get_running_loop()
        self._running = True
        self._ensureWorker()

    def stop(self) -> None:
        self._running = False
        if self._worker is not None:
            self._worker.cancel()
            self._worker = None

    def _ensureWorker(self) -> None:
        if self._worker is None and self._running and self._loop is not None and self._tasks:
            self._worker = self._loop.create_task(self._workLoop(), name="blossom.backgroundTasks")

    async def _workLoop(self) -> None:
        try:
            while self._running and self._tasks:
                self.runNext()
                await asyncio.sleep(self._idleDelayMs / 1000.0)
        finally:
            self._worker = None
