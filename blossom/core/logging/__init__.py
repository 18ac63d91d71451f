# blossom/core/logging/__init__.py
from __future__ import annotations

from .context import setLogContext, clearLogContext, getLogContext, logContext
from .setup import configureLogging
from .util import PackageLogger, getLogger, getPackageLogger

__all__ = [
    "configureLogging",
    "getLogger",
    "getPackageLogger",
    "PackageLogger",
    "setLogContext",
    "clearLogContext",
    "getLogContext",
    "logContext",
]
