# blossom/core/dictpath.py
from __future__ import annotations
from typing import Any
from collections.abc import Mapping

__all__ = ["getByPath"]



def _splitPath(path: str) -> list[str]:
    """
    Splits a dotted path. Backslash escapes the next character, so
    "packages.fetch\\.baseUrl" yields ["packages", "fetch.baseUrl"].
    """
    if not isinstance(path, str) or not path:
        raise ValueError("Path must be a non-empty string")
    parts: list[str] = []
    curr: list[str] = []
    esc = False
    for ch in path:
        if esc:
            curr.append(ch)
            esc = False
            continue
        if ch == "\\":
            esc = True
            continue
        if ch == ".":
            parts.append("".join(curr))
            curr = []
            continue
        curr.append(ch)
    if esc:
        raise ValueError("Path ends with a dangling escape (trailing backslash)")
    parts.append("".join(curr))
    if any(part == "" for part in parts):
        raise ValueError(f"Path '{path}' contains empty segment(s)")
    return parts



def getByPath(obj: Any, path: str, default: Any | None = None) -> Any:
    """
    Returns the value at `path` from nested mappings (or attributes), or
    `default` when the chain cannot be resolved. Invalid paths count as "not found".
    """
    try:
        parts = _splitPath(path)
    except ValueError:
        return default

    current: Any = obj
    for part in parts:
        if isinstance(current, Mapping):
            if part not in current:
                return default
            current = current[part]
            continue
        if hasattr(current, part):
            current = getattr(current, part)
            continue
        return default
    return current
