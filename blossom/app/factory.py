# blossom/app/factory.py
from __future__ import annotations
from pathlib import Path

from fastapi import FastAPI

from blossom.app.context import PROCESS_REGISTRY
from blossom.app.settings import settings



def createApp(*, sourceRoot: Path | str | None = None, configureLogs: bool = True) -> FastAPI:
    """
    HTTP app serving package sources from `sourceRoot` (the server side of
    HttpPackageFetcher) plus loader status.
    """
    if configureLogs:
        from blossom.core.logging import configureLogging
        configureLogging()

    if sourceRoot is None:
        sourceRoot = settings("packages.sourceRoot", None)
    if sourceRoot is not None:
        PROCESS_REGISTRY.register("packages.sourceRoot", Path(sourceRoot), overwrite=True)

    app = FastAPI(title="Blossom packages")

    from blossom.app.web import router as webRouter
    app.include_router(webRouter)
    return app
