# blossom/app/web.py
from __future__ import annotations

import asyncio
import time
from pathlib import Path

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from blossom.app.context import PROCESS_REGISTRY
from blossom.app.globals import getPackageManager
from blossom.packages.errors import PackageFetchError
from blossom.packages.fetchers import FetchRequest, FilesystemPackageFetcher

router = APIRouter()



@router.get("/health")
async def health():
    return {"ok": True, "ts": int(time.time() * 1000)}



@router.get("/packages")
async def packageStatus():
    manager = getPackageManager()
    return JSONResponse(
        {
            "mode": int(manager.mode),
            "loaded": manager.loadedPackages(),
            "executed": manager.executedPackages(),
            "failed": manager.failedPackages(),
            "packages": manager.statusSnapshot(),
        },
        status_code=200,
    )



def _sourceRoot() -> Path:
    root = PROCESS_REGISTRY.get("packages.sourceRoot")
    if root is None:
        raise HTTPException(503, "No package source root configured")
    return Path(root)



async def _serveSource(rootNode: str, basename: str):
    for part in ((rootNode, basename) if rootNode else (basename,)):
        if part in ("", ".", "..") or "/" in part or "\\" in part:
            raise HTTPException(400, f"Invalid package path segment {part!r}")
    reader = FilesystemPackageFetcher(_sourceRoot())
    request = FetchRequest(
        packageName=basename,
        locator=f"/{rootNode}/packages/{basename}" if rootNode else f"/packages/{basename}",
        rootNode=rootNode,
        basename=basename,
    )
    try:
        source = await asyncio.to_thread(reader.readSource, request)
    except PackageFetchError as err:
        raise HTTPException(404, str(err)) from err
    return JSONResponse(source, status_code=200)



@router.get("/packages/{basename}")
async def packageSourceAtRoot(basename: str):
    return await _serveSource("", basename)



@router.get("/{rootNode}/packages/{basename}")
async def packageSource(rootNode: str, basename: str):
    return await _serveSource(rootNode, basename)
