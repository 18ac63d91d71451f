# blossom/packages/manager.py
from __future__ import annotations
from typing import TYPE_CHECKING, Any

from blossom.app.settings import settings
from blossom.core.logging import PackageLogger, getPackageLogger, logContext
from blossom.packages.callbacks import CallbackRegistry, PackageCallback
from blossom.packages.errors import MissingDependencyError, UnknownDependentError
from blossom.packages.evaluator import EvaluationResult, PackageEvaluator
from blossom.packages.fetchers import FetchRequest, InlineSourceFetcher, PackageFetcher, urlForRecord
from blossom.packages.modes import PackageMode, parsePackageMode
from blossom.packages.record import PackageRecord, PackageState
from blossom.packages.resolver import DependencyResolver
from blossom.packages.scheduler import RunLoop
from blossom.packages.sinks import ExecutionSink
from blossom.packages.store import ManifestStore

if TYPE_CHECKING:
    from blossom.packages.background import BackgroundTaskQueue

__all__ = ["PackageManager"]



class PackageManager:
    """
    Loads packages on demand, evaluates them once their dependencies have
    executed and notifies whoever asked for them.

    All work happens on one thread. Fetch completions arrive through
    `onFetched()` / `onFetchFailed()`. Callbacks may call back into
    `loadPackage()` while a notification is in progress, so every loop over
    a record's `dependencies`, `dependents` or `callbacks` iterates over a
    snapshot taken before the loop starts.

    Every entry point runs inside a run loop batch. Loading a dependency and
    re-requesting a dependent that became ready are scheduled on the batch
    rather than called directly, so the outermost entry point drains them one
    after another and the stack stays flat however deep the chain is.
    """

    def __init__(
        self,
        store: ManifestStore,
        *,
        fetcher: PackageFetcher | None = None,
        sink: ExecutionSink | None = None,
        mode: PackageMode | int | str | None = None,
        runLoop: RunLoop | None = None,
        logger: PackageLogger | None = None,
    ) -> None:
        self.store = store
        self._log = logger or getPackageLogger("manager")
        if mode is None:
            mode = settings("packages.mode", "normal")
        self.fetcher: PackageFetcher = fetcher or InlineSourceFetcher()
        self.resolver = DependencyResolver(store, logger=self._log)
        self.evaluator = PackageEvaluator(sink, mode=parsePackageMode(mode), logger=self._log)
        self.callbacks = CallbackRegistry(runLoop, logger=self._log)

    @property
    def mode(self) -> PackageMode:
        return self.evaluator.mode

    @mode.setter
    def mode(self, value: PackageMode | int | str) -> None:
        self.evaluator.mode = parsePackageMode(value)

    @property
    def runLoop(self) -> RunLoop:
        return self.callbacks.runLoop

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def loadPackage(self, packageName: str, target: Any = None, method: Any = None, *args: Any) -> bool:
        """
        Attempts to load a package. A loaded and ready package is evaluated;
        an executed one runs the supplied callback (and any queued ones) now.

        Returns True when the package is loaded and ready (executed, about to
        be, or permanently failed), False while it is still pending.
        """
        with self.runLoop.batch(), logContext(packageName=packageName):
            self._log.trace("loadPackage() for package '%s'", packageName)
            record = self.store.lookup(packageName)
            if record is None:
                return False

            if not record.isLoaded:
                self.callbacks.register(record, target, method, *args)
                self.fetchSource(packageName)
                return False

            if record.isFailed:
                self._log.warning(
                    "Package '%s' flagged not to be executed (%s)",
                    packageName,
                    "failed to evaluate" if record.didFailToEvaluate else "failed dependencies",
                )
                if target is not None or method is not None:
                    self._log.warning("Dropping callback for failed package '%s'", packageName)
                self._poisonWaitingDependents(record)
                return True

            if not record.isReady:
                self._log.trace("Package '%s' loaded but not ready yet", packageName)
                self.callbacks.register(record, target, method, *args)
                self._retryFailedFetches(record)
                return False

            if record.isExecuted:
                self.callbacks.register(record, target, method, *args)
                self.callbacks.invoke(record)
                return True

            self.evaluatePackage(packageName)
            return True

    def loadAll(self) -> None:
        """Requests every package in the manifest once. No ordering across independent packages."""
        for packageName in self.store:
            self.loadPackage(packageName)

    def registerCallback(self, packageName: str, target: Any = None, method: Any = None, *args: Any) -> PackageCallback | None:
        record = self.store.lookup(packageName)
        if record is None:
            return None
        return self.callbacks.register(record, target, method, *args)

    def isLoaded(self, packageName: str) -> bool:
        """Raises PackageNotFoundError for unknown packages."""
        return self.store.require(packageName).isLoaded

    def packageState(self, packageName: str) -> PackageState | None:
        record = self.store.get(packageName)
        return record.state if record is not None else None

    def loadedPackages(self) -> list[str]:
        return [record.name for record in self.store.records() if record.isLoaded]

    def executedPackages(self) -> list[str]:
        return [record.name for record in self.store.records() if record.isExecuted]

    def failedPackages(self) -> list[str]:
        return [record.name for record in self.store.records() if record.isFailed]

    def urlForPackage(self, packageName: str) -> str | None:
        record = self.store.lookup(packageName)
        if record is None:
            return None
        return urlForRecord(record)

    def statusSnapshot(self) -> dict[str, dict[str, Any]]:
        return {record.name: record.snapshot() for record in self.store.records()}

    def onAppReady(self, queue: BackgroundTaskQueue) -> int:
        """Queues background loading for every lazy package. Returns how many were queued."""
        from blossom.packages.background import LazyPackageTask

        count = 0
        for record in self.store.records():
            if record.type == "lazy":
                queue.push(LazyPackageTask(lazyPackageName=record.name, manager=self))
                count += 1
        if count:
            self._log.info("Queued %d lazy package(s) for background loading", count)
        return count

    # ------------------------------------------------------------------ #
    # Fetching
    # ------------------------------------------------------------------ #

    def fetchSource(self, packageName: str) -> None:
        record = self.store.lookup(packageName)
        if record is None:
            return
        if record.isLoaded:
            self._log.warning("Package '%s' already loaded", packageName)
            return
        if record.isLoading:
            self._log.trace("Package '%s' already being fetched", packageName)
            return

        record.isLoading = True
        record.didFailToLoad = False
        record.loadError = None
        self._log.trace("Fetching '%s' from '%s'", packageName, urlForRecord(record))
        self.fetcher.fetch(FetchRequest.forRecord(record), self.onFetched, self.onFetchFailed)

    def onFetched(self, packageName: str, source: dict[str, str] | None = None) -> None:
        """Fetch completion: records the source, then evaluates or loads dependencies."""
        with self.runLoop.batch(), logContext(packageName=packageName, phase="fetched"):
            record = self.store.get(packageName)
            if record is None:
                self._log.warning("Unknown package loaded '%s'", packageName)
                return

            if source:
                record.source.update(source)
            record.isLoaded = True
            record.isLoading = False
            record.didFailToLoad = False

            if self.resolver.dependenciesMet(packageName):
                self._log.trace("Package '%s' loaded and dependencies met", packageName)
                if record.isExecuted or record.isFailed:
                    return
                self.evaluatePackage(packageName)
            else:
                self._log.trace("Package '%s' loaded but its dependencies were not met", packageName)
                self._loadDependencies(record)

    def onFetchFailed(self, packageName: str, err: BaseException) -> None:
        """Fetch failure: the package goes back to unloaded and may be retried with loadPackage()."""
        record = self.store.get(packageName)
        if record is None:
            self._log.warning("Unknown package failed to load '%s'", packageName)
            return
        record.isLoading = False
        record.didFailToLoad = True
        record.loadError = str(err)
        self._log.error(
            "Failed to fetch package '%s': %s (%d callback(s) still waiting)",
            packageName,
            err,
            len(record.callbacks),
        )

    def _loadDependencies(self, record: PackageRecord) -> None:
        # Nested loadPackage() calls may shrink record.dependencies while we walk it
        dependencies = list(record.dependencies)
        for depName in dependencies:
            dependency = self.store.get(depName)
            if dependency is None:
                raise MissingDependencyError(record.name, depName)
            if record.name not in dependency.dependents:
                dependency.dependents.append(record.name)
            self._log.trace("Loading dependency '%s' for '%s'", depName, record.name)
            self._scheduleLoad(depName)

    def _scheduleLoad(self, packageName: str) -> None:
        self.runLoop.scheduleOnce(("loadPackage", packageName), lambda: self.loadPackage(packageName))

    def _retryFailedFetches(self, record: PackageRecord) -> None:
        """Re-requests every fetch-failed package that `record` is still waiting on, at any depth."""
        seen = {record.name}
        stack = list(record.dependencies)
        while stack:
            depName = stack.pop()
            if depName in seen:
                continue
            seen.add(depName)
            dependency = self.store.get(depName)
            if dependency is None:
                continue
            if dependency.didFailToLoad and not dependency.isLoaded:
                self._log.info("Retrying fetch of '%s' needed by '%s'", depName, record.name)
                self.fetchSource(depName)
            elif dependency.isLoaded and not dependency.isReady:
                stack.extend(dependency.dependencies)

    # ------------------------------------------------------------------ #
    # Evaluation and notification
    # ------------------------------------------------------------------ #

    def evaluatePackage(self, packageName: str) -> EvaluationResult | None:
        record = self.store.lookup(packageName)
        if record is None:
            return None
        with self.runLoop.batch():
            with logContext(packageName=packageName, phase="evaluate"):
                result = self.evaluator.evaluate(record)
            if result in (EvaluationResult.EXECUTED, EvaluationResult.FAILED):
                self.onExecuted(packageName)
        return result

    def onExecuted(self, packageName: str) -> None:
        """
        Marks the package executed (unless its evaluation failed), fires its
        callbacks, then releases or poisons the dependents waiting on it.
        """
        with self.runLoop.batch(), logContext(packageName=packageName, phase="executed"):
            record = self.store.lookup(packageName)
            if record is None:
                return

            didFail = record.didFailToEvaluate
            if not didFail:
                record.isExecuted = True

            # Callbacks first, otherwise they would run after every dependent
            self.callbacks.invoke(record)

            for depName in list(record.dependents):
                dependent = self.store.get(depName)
                if dependent is None:
                    raise UnknownDependentError(packageName, depName)

                if not dependent.dependencies or dependent.isReady:
                    self._log.warning(
                        "Dependent '%s' of '%s' is already %s",
                        depName,
                        packageName,
                        "ready" if dependent.isReady else "without pending dependencies",
                    )
                    continue

                if packageName not in dependent.dependencies:
                    self._log.warning("Dependent '%s' does not depend on '%s' apparently", depName, packageName)
                    continue

                dependent.dependencies.remove(packageName)

                if didFail:
                    self._poison(dependent, packageName)
                    continue

                if self.resolver.dependenciesMet(depName):
                    self._scheduleLoad(depName)

    def _poison(self, dependent: PackageRecord, failedName: str) -> None:
        if failedName not in dependent.failedDependencies:
            dependent.failedDependencies.append(failedName)
        dependent.doNotExecute = True
        self._log.warning("Package '%s' will never execute: dependency '%s' failed", dependent.name, failedName)
        # Waiters are told once; they can check packageState() to see it never executed
        self.callbacks.invoke(dependent)

    def _poisonWaitingDependents(self, record: PackageRecord) -> None:
        """Pushes a failure one layer down to dependents still waiting on `record`."""
        for depName in list(record.dependents):
            dependent = self.store.get(depName)
            if dependent is None:
                raise UnknownDependentError(record.name, depName)
            if record.name not in dependent.dependencies:
                continue
            dependent.dependencies.remove(record.name)
            self._poison(dependent, record.name)
