# blossom/packages/callbacks.py
from __future__ import annotations
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from blossom.core.logging import PackageLogger, getPackageLogger
from blossom.packages.record import PackageRecord
from blossom.packages.scheduler import RunLoop

__all__ = ["PackageCallback", "CallbackRegistry"]



@dataclass(frozen=True, slots=True)
class PackageCallback:
    """
    Continuation queued on a package. Always called as
    `method(packageName, *args)`, or `method(target, packageName, *args)`
    when registered with an explicit target.
    """
    packageName: str
    method: Callable[..., Any]
    target: Any = None
    args: tuple[Any, ...] = ()

    def __call__(self) -> Any:
        if self.target is not None:
            return self.method(self.target, self.packageName, *self.args)
        return self.method(self.packageName, *self.args)



class CallbackRegistry:
    """Queues continuations per package and fires them once the package settles."""

    def __init__(self, runLoop: RunLoop | None = None, *, logger: PackageLogger | None = None) -> None:
        self.runLoop = runLoop or RunLoop()
        self._log = logger or getPackageLogger("callbacks")

    def register(
        self,
        record: PackageRecord,
        target: Any = None,
        method: Any = None,
        *args: Any,
    ) -> PackageCallback | None:
        """
        Queues a callback on `record`.

        Shapes accepted:
          - register(record, fn, *args)             -> fn(name, *args)
          - register(record, obj, "methodName", ...) -> obj.methodName(name, ...)
          - register(record, obj, fn, ...)           -> fn(obj, name, ...)
        """
        if target is None and method is None:
            return None

        if callable(target) and not isinstance(target, type):
            if method is not None:
                args = (method, *args)
            method = target
            target = None
        elif isinstance(method, str):
            if target is None:
                self._log.warning("Callback for '%s' names method %r without a target", record.name, method)
                return None
            bound = getattr(target, method, None)
            if not callable(bound):
                self._log.warning("Target %r has no callable '%s' for package '%s'", target, method, record.name)
                return None
            method = bound
            target = None

        if not callable(method):
            self._log.warning("Ignoring non-callable callback %r for package '%s'", method, record.name)
            return None

        callback = PackageCallback(packageName=record.name, method=method, target=target, args=tuple(args))
        record.callbacks.append(callback)
        return callback

    def invoke(self, record: PackageRecord) -> int:
        """
        Runs every queued callback for `record` in FIFO order and releases them.
        A failing callback is logged and does not stop the rest.
        Callbacks registered while this runs are kept for the next invoke().
        """
        callbacks = record.callbacks
        if not callbacks:
            return 0
        record.callbacks = []

        for callback in callbacks:
            try:
                self.runLoop.dispatch(callback)
            except Exception:
                self._log.exception("Error when executing package callback for package '%s'", record.name)
        return len(callbacks)
