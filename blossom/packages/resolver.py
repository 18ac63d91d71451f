# blossom/packages/resolver.py
from __future__ import annotations
from dataclasses import dataclass, field

from blossom.core.logging import PackageLogger, getPackageLogger
from blossom.packages.errors import MissingDependencyError
from blossom.packages.store import ManifestStore

__all__ = ["DependencyResolver", "ManifestProblems"]



@dataclass(slots=True)
class ManifestProblems:
    """Result of DependencyResolver.validate()."""
    # (package, missing dependency)
    missing: list[tuple[str, str]] = field(default_factory=list)
    # each cycle as a closed path, e.g. ["a", "b", "a"]
    cycles: list[list[str]] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.missing or self.cycles)



class DependencyResolver:
    """Decides whether a package's dependencies have all executed."""

    def __init__(self, store: ManifestStore, *, logger: PackageLogger | None = None) -> None:
        self.store = store
        self._log = logger or getPackageLogger("resolver")

    def dependenciesMet(self, packageName: str) -> bool:
        """
        True when every remaining dependency of `packageName` has executed.

        On success the working dependency list is cleared and the record is
        flagged ready. Raises MissingDependencyError when a dependency is not
        in the store.
        """
        record = self.store.lookup(packageName)
        if record is None:
            return False

        dependencies = record.dependencies
        if not dependencies:
            self._log.trace("No dependencies found for package '%s'", packageName)
            record.isReady = True
            return True

        isReady = True
        for depName in dependencies:
            dependency = self.store.get(depName)
            if dependency is None:
                raise MissingDependencyError(packageName, depName)
            if not dependency.isExecuted:
                isReady = False

        if not isReady:
            record.isReady = False
            self._log.trace("Some dependencies of '%s' were not loaded or executed", packageName)
            return False

        self._log.trace("All dependencies of '%s' loaded and executed, package is ready", packageName)
        record.dependencies.clear()
        record.isReady = True
        return True

    def validate(self) -> ManifestProblems:
        """Reports unknown dependency references and dependency cycles."""
        problems = ManifestProblems()
        for record in self.store.records():
            for depName in record.declaredDependencies:
                if depName not in self.store:
                    problems.missing.append((record.name, depName))

        # Iterative DFS over declared dependencies; 0 = new, 1 = on stack, 2 = done
        marks: dict[str, int] = {}
        seenCycles: set[frozenset[str]] = set()
        for start in self.store.names():
            if marks.get(start):
                continue
            stack: list[tuple[str, int]] = [(start, 0)]
            path: list[str] = [start]
            marks[start] = 1
            while stack:
                name, idx = stack[-1]
                record = self.store.get(name)
                deps = record.declaredDependencies if record is not None else ()
                if idx >= len(deps):
                    stack.pop()
                    path.pop()
                    marks[name] = 2
                    continue
                stack[-1] = (name, idx + 1)
                dep = deps[idx]
                if dep not in self.store:
                    continue
                mark = marks.get(dep, 0)
                if mark == 1:
                    cycle = path[path.index(dep):] + [dep]
                    key = frozenset(cycle)
                    if key not in seenCycles:
                        seenCycles.add(key)
                        problems.cycles.append(cycle)
                elif mark == 0:
                    marks[dep] = 1
                    stack.append((dep, 0))
                    path.append(dep)
        return problems
