# blossom/packages/modes.py
from __future__ import annotations

from collections.abc import Iterable
from enum import IntFlag

__all__ = [
    "PackageMode",
    "CATEGORIES",
    "categoriesForMode",
    "parsePackageMode",
]



class PackageMode(IntFlag):
    """
    Selects which categories of a package's source get evaluated.

    OTHER is mixins/runtime code not otherwise categorized. NORMAL is shorthand
    for every category. Combine the rest with `|`, e.g. MODELS | OTHER to run
    only the model layer during development.
    """
    MODELS      = 0x01
    VIEWS       = 0x02
    CONTROLLERS = 0x04
    OTHER       = 0x08
    NORMAL      = 0x10



# Fixed evaluation order. OTHER always runs first.
CATEGORIES: tuple[str, ...] = ("other", "models", "controllers", "views")

_CATEGORY_FLAGS: tuple[tuple[str, PackageMode], ...] = (
    ("other", PackageMode.OTHER),
    ("models", PackageMode.MODELS),
    ("controllers", PackageMode.CONTROLLERS),
    ("views", PackageMode.VIEWS),
)



def categoriesForMode(mode: PackageMode | int) -> tuple[str, ...]:
    """Returns the source categories selected by `mode`, in evaluation order."""
    flags = PackageMode(mode)
    if flags & PackageMode.NORMAL:
        return CATEGORIES
    return tuple(category for category, flag in _CATEGORY_FLAGS if flags & flag)



def parsePackageMode(value: PackageMode | int | str | Iterable[str] | None) -> PackageMode:
    """
    Accepts a PackageMode, an int bitmask, a name ("normal", "models"),
    a "|" or "," separated list of names, or an iterable of names.
    None means NORMAL.
    """
    if value is None:
        return PackageMode.NORMAL
    if isinstance(value, PackageMode):
        return value
    if isinstance(value, bool):
        raise TypeError("Package mode cannot be a bool")
    if isinstance(value, int):
        if value <= 0 or value & ~0x1F:
            raise ValueError(f"Invalid package mode bitmask: {value:#x}")
        return PackageMode(value)
    if isinstance(value, str):
        names = [part for part in value.replace(",", "|").split("|")]
    else:
        names = list(value)

    mode = PackageMode(0)
    for raw in names:
        name = str(raw).strip().upper()
        if not name:
            continue
        try:
            mode |= PackageMode[name]
        except KeyError:
            raise ValueError(f"Unknown package mode {raw!r}") from None
    if not mode:
        raise ValueError(f"Package mode {value!r} selects nothing")
    return mode
