# blossom/packages/manifest.py
from __future__ import annotations
from pathlib import Path
from typing import Any, Literal

import json5
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from blossom.packages.errors import ManifestError
from blossom.packages.modes import CATEGORIES

__all__ = ["PackageManifestEntry", "PackageManifest", "loadManifest", "parseManifest"]



PackageType = Literal["core", "lazy", "demand"]



class PackageManifestEntry(BaseModel):
    """One package as declared in the static manifest."""
    model_config = ConfigDict(extra="forbid")

    rootNode: str = ""
    basename: str | None = None
    type: PackageType = "demand"
    dependencies: list[str] = Field(default_factory=list)
    source: dict[str, str] = Field(default_factory=dict)

    @field_validator("dependencies")
    @classmethod
    def _uniqueDependencies(cls, value: list[str]) -> list[str]:
        seen: list[str] = []
        for dep in value:
            dep = dep.strip()
            if not dep:
                raise ValueError("Dependency names must be non-empty")
            if dep not in seen:
                seen.append(dep)
        return seen

    @field_validator("source")
    @classmethod
    def _knownCategories(cls, value: dict[str, str]) -> dict[str, str]:
        unknown = sorted(set(value) - set(CATEGORIES))
        if unknown:
            raise ValueError(f"Unknown source categories: {', '.join(unknown)}")
        return value



class PackageManifest(BaseModel):
    """Validated manifest: package name -> entry."""
    model_config = ConfigDict(extra="forbid")

    packages: dict[str, PackageManifestEntry] = Field(default_factory=dict)

    @field_validator("packages")
    @classmethod
    def _nonEmptyNames(cls, value: dict[str, PackageManifestEntry]) -> dict[str, PackageManifestEntry]:
        for name in value:
            if not name or not name.strip():
                raise ValueError("Package names must be non-empty")
        return value



def parseManifest(raw: Any, *, origin: str = "<manifest>") -> PackageManifest:
    """
    Validates raw manifest data. Accepts {"packages": {...}} or a bare
    name -> entry mapping.
    """
    if isinstance(raw, PackageManifest):
        return raw
    if not isinstance(raw, dict):
        raise ManifestError(f"Manifest {origin} must be an object, got {type(raw).__name__}")
    payload = raw if "packages" in raw and isinstance(raw.get("packages"), dict) and len(raw) == 1 else {"packages": raw}
    try:
        return PackageManifest.model_validate(payload)
    except ValidationError as err:
        raise ManifestError(f"Invalid manifest {origin}: {err}") from err



def loadManifest(path: Path | str) -> PackageManifest:
    filePath = Path(path)
    try:
        raw = json5.loads(filePath.read_text(encoding="utf-8"))
    except FileNotFoundError as err:
        raise ManifestError(f"Manifest not found: '{filePath}'") from err
    except ValueError as err:
        raise ManifestError(f"Failed to parse manifest '{filePath}': {err}") from err
    return parseManifest(raw, origin=f"'{filePath}'")
