# blossom/app/settings.py
from __future__ import annotations
import json5, os
from pydantic import JsonValue
from pathlib import Path
from typing import Any, cast
from functools import lru_cache

from blossom.core.dictpath import getByPath

import logging
logger = logging.getLogger(__name__)

__all__ = [
    "SETTINGS_DEFAULTS", "SETTINGS_ENV_VAR", "loadUserSettings",
    "loadSettings", "deepMerge", "settings", "settingsBool",
]



SETTINGS_ENV_VAR = "BLOSSOM_SETTINGS"

SETTINGS_DEFAULTS: JsonValue = {
    "__source": "BLOSSOM_DEFAULTS",
    "packages": {
        # "normal" or any combination of "other", "models", "controllers", "views"
        "mode": "normal",
        # Verbose per-step loader tracing
        "debug": False,
        "manifest": None,
        "sourceRoot": None,
        "fetch": {
            "baseUrl": "",
            "timeoutMs": 30_000,
            "retries": 2,
            "backoffBaseMs": 250,
            "backoffMaxMs": 1_000,
        },
    },
    "logging": {
        "devMode": True,
        "file": None,
    },
}



def _userSettingsPath() -> Path:
    override = os.environ.get(SETTINGS_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path(os.path.expanduser("~/.blossom/blossom.json5"))



def loadUserSettings() -> JsonValue:
    filePath = _userSettingsPath()
    if filePath.exists():
        try:
            return json5.loads(filePath.read_text(encoding="utf-8"))
        except Exception as err:
            logger.error("Failed to parse '%s': %s", filePath, err)
    return {}



@lru_cache(maxsize=1)
def loadSettings() -> JsonValue:
    return deepMerge(SETTINGS_DEFAULTS, loadUserSettings())



def deepMerge(first: JsonValue, second: JsonValue) -> JsonValue:
    """
    Returns a new JsonValue where keys from `second` override/extend `first`.
    Only merges recursively when BOTH sides are JSON objects (dicts).
    For all other JSON types (lists, strings, numbers, booleans, null),
    the right-hand value `second` replaces `first`.
    """
    if isinstance(first, dict) and isinstance(second, dict):
        out: dict[str, JsonValue] = dict(first)
        for key, value in second.items():
            if key in out:
                out[key] = deepMerge(out[key], cast(JsonValue, value))
            else:
                out[key] = cast(JsonValue, value)
        return cast(JsonValue, out)
    return cast(JsonValue, second)

# ---------- Ergonomic accessors over merged settings ----------

def settings(path: str, default: Any = None) -> Any:
    """Returns value at `path` from merged settings, or `default` if missing."""
    val = getByPath(loadSettings(), path)
    return default if val is None else val



def settingsBool(path: str, default: bool = False) -> bool:
    """Returns bool value at `path` or `default` if missing."""
    val = getByPath(loadSettings(), path)
    if isinstance(val, bool):
        return val
    if val is None:
        return default
    return bool(val)
