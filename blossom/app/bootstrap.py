# blossom/app/bootstrap.py
from __future__ import annotations
import logging
from pathlib import Path
from typing import Any

from blossom.app.context import PROCESS_REGISTRY
from blossom.app.globals import getBackgroundQueue, getPackageManager
from blossom.app.settings import settings
from blossom.packages.background import BackgroundTaskQueue
from blossom.packages.fetchers import (
    FilesystemPackageFetcher,
    HttpPackageFetcher,
    InlineSourceFetcher,
    PackageFetcher,
)
from blossom.packages.manager import PackageManager
from blossom.packages.manifest import PackageManifest
from blossom.packages.modes import PackageMode
from blossom.packages.sinks import ExecutionSink
from blossom.packages.store import ManifestStore

logger = logging.getLogger(__name__)

__all__ = ["bootstrapPackages", "makeFetcher", "signalAppReady"]



def makeFetcher(*, sourceRoot: Path | str | None = None, baseUrl: str | None = None) -> PackageFetcher:
    """
    Picks the fetch collaborator: a filesystem root wins over an HTTP base URL;
    with neither, sources are expected inline in the manifest.
    """
    if sourceRoot is None:
        sourceRoot = settings("packages.sourceRoot", None)
    if baseUrl is None:
        baseUrl = settings("packages.fetch.baseUrl", "")

    if sourceRoot:
        return FilesystemPackageFetcher(sourceRoot)
    if baseUrl:
        return HttpPackageFetcher(
            baseUrl,
            timeoutMs=int(settings("packages.fetch.timeoutMs", 30_000)),
            retries=int(settings("packages.fetch.retries", 2)),
            backoffBaseMs=int(settings("packages.fetch.backoffBaseMs", 250)),
            backoffMaxMs=int(settings("packages.fetch.backoffMaxMs", 1_000)),
        )
    return InlineSourceFetcher()



def bootstrapPackages(
    manifest: PackageManifest | dict[str, Any] | Path | str | None = None,
    *,
    sourceRoot: Path | str | None = None,
    baseUrl: str | None = None,
    fetcher: PackageFetcher | None = None,
    sink: ExecutionSink | None = None,
    mode: PackageMode | int | str | None = None,
    register: bool = True,
) -> PackageManager:
    """
    Builds store + manager from a manifest (object, mapping or json5 path;
    defaults to the `packages.manifest` setting) and registers them process-wide.
    """
    if manifest is None:
        manifest = settings("packages.manifest", None)
        if manifest is None:
            raise ValueError("No package manifest given and 'packages.manifest' is not set")

    if isinstance(manifest, (str, Path)):
        store = ManifestStore.fromFile(manifest)
    else:
        store = ManifestStore(manifest)

    if fetcher is None:
        fetcher = makeFetcher(sourceRoot=sourceRoot, baseUrl=baseUrl)

    manager = PackageManager(store, fetcher=fetcher, sink=sink, mode=mode)

    problems = manager.resolver.validate()
    for packageName, depName in problems.missing:
        logger.warning("Manifest: package '%s' depends on unknown package '%s'", packageName, depName)
    for cycle in problems.cycles:
        logger.warning("Manifest: dependency cycle %s", " -> ".join(cycle))

    if register:
        PROCESS_REGISTRY.register("packages.manager", manager, overwrite=True)
        PROCESS_REGISTRY.register("packages.backgroundQueue", BackgroundTaskQueue(), overwrite=True)

    logger.info(
        "Package manager ready: %d package(s), mode %s, fetcher %s",
        len(store),
        manager.mode,
        type(fetcher).__name__,
    )
    return manager



def signalAppReady() -> int:
    """
    Host-ready hook: queues every lazy package and starts the background
    worker. Must be called from inside the running event loop.
    """
    manager = getPackageManager()
    queue = getBackgroundQueue()
    count = manager.onAppReady(queue)
    queue.start()
    return count
