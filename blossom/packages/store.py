# blossom/packages/store.py
from __future__ import annotations
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from blossom.core.logging import PackageLogger, getPackageLogger
from blossom.packages.errors import PackageNotFoundError
from blossom.packages.manifest import PackageManifest, PackageManifestEntry, loadManifest, parseManifest
from blossom.packages.record import PackageRecord

__all__ = ["ManifestStore"]



class ManifestStore:
    """
    Holds every known PackageRecord. Populated once from the static manifest
    and mutated by the loader for the rest of the process lifetime.
    """

    def __init__(
        self,
        manifest: PackageManifest | dict[str, Any] | None = None,
        *,
        logger: PackageLogger | None = None,
    ) -> None:
        self._log = logger or getPackageLogger("store")
        self._records: dict[str, PackageRecord] = {}
        if manifest is not None:
            parsed = parseManifest(manifest)
            for name, entry in parsed.packages.items():
                self.add(name, entry)

    @classmethod
    def fromFile(cls, path: Path | str, *, logger: PackageLogger | None = None) -> ManifestStore:
        return cls(loadManifest(path), logger=logger)

    # ----- Registration -----

    def add(self, name: str, entry: PackageManifestEntry | dict[str, Any]) -> PackageRecord:
        if name in self._records:
            raise ValueError(f"Package '{name}' already registered")
        if not isinstance(entry, PackageManifestEntry):
            entry = PackageManifestEntry.model_validate(entry)
        record = PackageRecord.fromManifest(name, entry)
        self._records[name] = record
        self._log.trace("Registered package '%s' (deps: %s)", name, ", ".join(record.declaredDependencies) or "-")
        return record

    # ----- Lookup -----

    def lookup(self, name: str) -> PackageRecord | None:
        record = self._records.get(name)
        if record is None:
            self._log.warning("Could not find package '%s'", name)
        return record

    def require(self, name: str) -> PackageRecord:
        record = self._records.get(name)
        if record is None:
            raise PackageNotFoundError(f"Could not find package '{name}'", packageName=name)
        return record

    def get(self, name: str) -> PackageRecord | None:
        """Quiet lookup; no warning on a miss."""
        return self._records.get(name)

    def names(self) -> list[str]:
        return list(self._records)

    def records(self) -> list[PackageRecord]:
        return list(self._records.values())

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._records))
