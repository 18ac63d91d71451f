# blossom/packages/record.py
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from blossom.packages.manifest import PackageManifestEntry

if TYPE_CHECKING:
    from blossom.packages.callbacks import PackageCallback

__all__ = ["PackageState", "PackageRecord"]



class PackageState(str, Enum):
    """
    Lifecycle of a package record, derived from its flags.

        UNLOADED -> LOADING -> LOADED -> READY -> EXECUTED
                                              \\-> FAILED
        (ancestor failed)                      -> POISONED
        LOADING -> FETCH_FAILED -> (retry) -> LOADING
    """
    UNLOADED = "unloaded"
    LOADING = "loading"
    FETCH_FAILED = "fetchFailed"
    LOADED = "loaded"
    READY = "ready"
    EXECUTED = "executed"
    FAILED = "failed"
    POISONED = "poisoned"



@dataclass(eq=False)
class PackageRecord:
    """
    Mutable runtime state of one package. The store owns exactly one record
    per name; nothing else copies it.
    """
    name: str
    rootNode: str = ""
    basename: str = ""
    type: str = "demand"
    declaredDependencies: tuple[str, ...] = ()
    # Working set, consumed as dependencies execute. Cleared once ready.
    dependencies: list[str] = field(default_factory=list)
    dependents: list[str] = field(default_factory=list)
    source: dict[str, str] = field(default_factory=dict)
    callbacks: list[PackageCallback] = field(default_factory=list)

    isLoading: bool = False
    isLoaded: bool = False
    isReady: bool = False
    isExecuted: bool = False
    didFailToEvaluate: bool = False
    doNotExecute: bool = False
    failedDependencies: list[str] = field(default_factory=list)
    didFailToLoad: bool = False
    loadError: str | None = None

    @classmethod
    def fromManifest(cls, name: str, entry: PackageManifestEntry) -> PackageRecord:
        return cls(
            name=name,
            rootNode=entry.rootNode,
            basename=entry.basename or name,
            type=entry.type,
            declaredDependencies=tuple(entry.dependencies),
            dependencies=list(entry.dependencies),
            source=dict(entry.source),
        )

    @property
    def isPoisoned(self) -> bool:
        return self.doNotExecute or bool(self.failedDependencies)

    @property
    def isFailed(self) -> bool:
        """True for any package that will never execute: poisoned or failed evaluation."""
        return self.isPoisoned or self.didFailToEvaluate

    @property
    def state(self) -> PackageState:
        if self.isPoisoned:
            return PackageState.POISONED
        if self.didFailToEvaluate:
            return PackageState.FAILED
        if self.isExecuted:
            return PackageState.EXECUTED
        if self.isLoading:
            return PackageState.LOADING
        if not self.isLoaded:
            return PackageState.FETCH_FAILED if self.didFailToLoad else PackageState.UNLOADED
        if self.isReady:
            return PackageState.READY
        return PackageState.LOADED

    def snapshot(self) -> dict[str, Any]:
        """Plain diagnostic view of the record."""
        return {
            "name": self.name,
            "state": self.state.value,
            "type": self.type,
            "rootNode": self.rootNode,
            "basename": self.basename,
            "declaredDependencies": list(self.declaredDependencies),
            "pendingDependencies": list(self.dependencies),
            "dependents": list(self.dependents),
            "failedDependencies": list(self.failedDependencies),
            "pendingCallbacks": len(self.callbacks),
            "remainingSource": sorted(self.source),
            "loadError": self.loadError,
        }
