# blossom/app/globals.py
from __future__ import annotations
from typing import cast, TYPE_CHECKING

from blossom.app.context import PROCESS_REGISTRY
from blossom.core.errors import ReactorScramError

if TYPE_CHECKING:
    from blossom.packages.background import BackgroundTaskQueue
    from blossom.packages.manager import PackageManager



def getPackageManager() -> PackageManager:
    manager = PROCESS_REGISTRY.get("packages.manager")
    if manager is None:
        raise ReactorScramError(
            "PackageManager is None.\n"
            "⚠️ PACKAGE MANAGER MISSING ⚠️\n"
            "Every package is waiting for a loader that was never born.\n"
            "Call bootstrapPackages() before asking for packages."
        )
    return cast("PackageManager", manager)



def getBackgroundQueue() -> BackgroundTaskQueue:
    queue = PROCESS_REGISTRY.get("packages.backgroundQueue")
    if queue is None:
        raise ReactorScramError(
            "BackgroundTaskQueue is None.\n"
            "⚠️ BACKGROUND QUEUE MISSING ⚠️\n"
            "Lazy packages will stay lazy forever."
        )
    return cast("BackgroundTaskQueue", queue)
