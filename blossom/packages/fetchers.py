# blossom/packages/fetchers.py
from __future__ import annotations
import asyncio
import logging
import random
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any, Protocol

import httpx
import json5

from blossom.packages.errors import PackageFetchError
from blossom.packages.modes import CATEGORIES
from blossom.packages.record import PackageRecord

logger = logging.getLogger(__name__)

__all__ = [
    "FetchRequest",
    "PackageFetcher",
    "AsyncPackageFetcher",
    "InlineSourceFetcher",
    "FilesystemPackageFetcher",
    "HttpPackageFetcher",
    "urlForRecord",
    "parseSourcePayload",
]



FetchDone = Callable[[str, dict[str, str] | None], None]
FetchFailed = Callable[[str, BaseException], None]



@dataclass(frozen=True, slots=True)
class FetchRequest:
    packageName: str
    locator: str        # "/<rootNode>/packages/<basename>"
    rootNode: str
    basename: str

    @classmethod
    def forRecord(cls, record: PackageRecord) -> FetchRequest:
        return cls(
            packageName=record.name,
            locator=urlForRecord(record),
            rootNode=record.rootNode,
            basename=record.basename or record.name,
        )



def urlForRecord(record: PackageRecord) -> str:
    """
    Builds the locator of a package's source. The whole source is always
    fetched; the package mode only decides what gets evaluated.
    """
    parts = [part.strip("/") for part in (record.rootNode, "packages", record.basename or record.name)]
    return "/" + "/".join(part for part in parts if part)



def parseSourcePayload(payload: Any, *, packageName: str) -> dict[str, str]:
    """
    Normalizes a fetched payload into a category -> code mapping.
    A plain string is treated as the "other" category.
    """
    if isinstance(payload, str):
        return {"other": payload} if payload else {}
    if not isinstance(payload, dict):
        raise PackageFetchError(
            f"Source for '{packageName}' must be an object or text, got {type(payload).__name__}",
            packageName=packageName,
        )
    out: dict[str, str] = {}
    for category, code in payload.items():
        if category not in CATEGORIES:
            raise PackageFetchError(f"Unknown source category '{category}' in '{packageName}'", packageName=packageName)
        if not isinstance(code, str):
            raise PackageFetchError(f"Source category '{category}' of '{packageName}' must be text", packageName=packageName)
        if code:
            out[category] = code
    return out



class PackageFetcher(Protocol):
    """
    Retrieves a package's source. Must call exactly one of `onDone` or
    `onError`, at most once per request.
    """

    def fetch(self, request: FetchRequest, onDone: FetchDone, onError: FetchFailed) -> None: ...



class InlineSourceFetcher:
    """
    For manifests that already carry every package's source. Completes
    synchronously, or on the next loop iteration when `deferred` is set and an
    event loop is running.
    """

    def __init__(self, *, deferred: bool = False) -> None:
        self.deferred = deferred

    def fetch(self, request: FetchRequest, onDone: FetchDone, onError: FetchFailed) -> None:
        if self.deferred:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is not None:
                loop.call_soon(onDone, request.packageName, None)
                return
        onDone(request.packageName, None)



class AsyncPackageFetcher(ABC):
    """Base for fetchers that retrieve source with a coroutine on the running loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @abstractmethod
    async def retrieve(self, request: FetchRequest) -> dict[str, str]:
        ...

    def fetch(self, request: FetchRequest, onDone: FetchDone, onError: FetchFailed) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            onError(request.packageName, PackageFetchError(
                f"Cannot fetch '{request.packageName}' without a running event loop",
                packageName=request.packageName,
            ))
            return
        task = loop.create_task(self._run(request, onDone, onError), name=f"blossom.fetch:{request.packageName}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, request: FetchRequest, onDone: FetchDone, onError: FetchFailed) -> None:
        try:
            source = await self.retrieve(request)
        except asyncio.CancelledError:
            raise
        except Exception as err:
            logger.warning("Failed to fetch package '%s' from '%s': %s", request.packageName, request.locator, err)
            onError(request.packageName, err)
            return
        try:
            onDone(request.packageName, source)
        except Exception:
            # e.g. a manifest naming an unknown dependency; surfaces again from drain()
            logger.exception("Handling fetched package '%s' failed", request.packageName)
            raise

    @property
    def inFlight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """
        Waits until every in-flight fetch (and fetches they trigger) completed,
        then re-raises the first error a completion handler raised.
        """
        firstError: BaseException | None = None
        while self._tasks:
            results = await asyncio.gather(*list(self._tasks), return_exceptions=True)
            for result in results:
                if isinstance(result, asyncio.CancelledError):
                    continue
                if isinstance(result, BaseException) and firstError is None:
                    firstError = result
        if firstError is not None:
            raise firstError



class FilesystemPackageFetcher(AsyncPackageFetcher):
    """
    Reads package source below `root`:

        <root>/<rootNode>/packages/<basename>/{other,models,controllers,views}.py
        <root>/<rootNode>/packages/<basename>.json5   # {"models": "...", ...}
        <root>/<rootNode>/packages/<basename>.py      # everything is "other"
    """

    def __init__(self, root: Path | str) -> None:
        super().__init__()
        self.root = Path(root)

    def pathFor(self, request: FetchRequest) -> Path:
        return self.root / request.locator.lstrip("/")

    async def retrieve(self, request: FetchRequest) -> dict[str, str]:
        return await asyncio.to_thread(self.readSource, request)

    def readSource(self, request: FetchRequest) -> dict[str, str]:
        base = self.pathFor(request)
        if base.is_dir():
            source: dict[str, str] = {}
            for category in CATEGORIES:
                filePath = base / f"{category}.py"
                if filePath.is_file():
                    source[category] = filePath.read_text(encoding="utf-8")
            return source

        bundle = base.with_name(base.name + ".json5")
        if bundle.is_file():
            try:
                payload = json5.loads(bundle.read_text(encoding="utf-8"))
            except ValueError as err:
                raise PackageFetchError(
                    f"Failed to parse bundle '{bundle}': {err}",
                    packageName=request.packageName,
                ) from err
            return parseSourcePayload(payload, packageName=request.packageName)

        single = base.with_name(base.name + ".py")
        if single.is_file():
            return parseSourcePayload(single.read_text(encoding="utf-8"), packageName=request.packageName)

        raise PackageFetchError(f"No source found for '{request.packageName}' at '{base}'", packageName=request.packageName)



def _parseRetryAfter(value: str | None) -> float | None:
    """Return seconds suggested by Retry-After header, if parsable."""
    if not value:
        return None
    try:
        secondsF = float(value)
        if secondsF >= 0:
            return secondsF
        return None
    except ValueError:
        pass
    try:
        dt = parsedate_to_datetime(value)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        now = datetime.now(timezone.utc).timestamp()
        return max(0.0, dt.timestamp() - now)
    except Exception:
        return None



def _shouldRetry(status: int) -> bool:
    # Typical transient HTTP errors upon which retry makes sense
    return status in (408, 429, 500, 502, 503, 504)



class HttpPackageFetcher(AsyncPackageFetcher):
    """
    GETs `<baseUrl><locator>`. A JSON object body is the category -> code
    mapping, anything else is "other" code. Retries 408/429/5xx and transport
    errors with exponential backoff, honoring Retry-After.
    """

    def __init__(
        self,
        baseUrl: str = "",
        *,
        timeoutMs: int = 30_000,
        retries: int = 2,
        backoffBaseMs: int = 250,
        backoffMaxMs: int = 1_000,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__()
        self.baseUrl = baseUrl.rstrip("/")
        self.timeoutMs = max(1, int(timeoutMs))
        self.retries = max(0, int(retries))
        self.backoffBaseMs = backoffBaseMs
        self.backoffMaxMs = backoffMaxMs
        self.headers = dict(headers or {})
        self._transport = transport

    def urlFor(self, request: FetchRequest) -> str:
        return f"{self.baseUrl}{request.locator}"

    def _backoffSeconds(self, attempt: int) -> float:
        base = min(self.backoffMaxMs, self.backoffBaseMs * (2 ** attempt))
        jitter = base * 0.25
        return max(0.0, base + random.uniform(-jitter, jitter)) / 1000.0

    async def retrieve(self, request: FetchRequest) -> dict[str, str]:
        url = self.urlFor(request)
        timeout = httpx.Timeout(self.timeoutMs / 1_000)
        attempt = 0
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport, headers=self.headers) as cli:
            while True:
                try:
                    resp = await cli.get(url, follow_redirects=True)
                except httpx.HTTPError as err:
                    if attempt >= self.retries:
                        raise PackageFetchError(
                            f"Transport error fetching '{request.packageName}' from {url}: {err}",
                            packageName=request.packageName,
                        ) from err
                    delay = self._backoffSeconds(attempt)
                    attempt += 1
                    logger.debug("Retrying '%s' after transport error (attempt %d): %s", url, attempt, err)
                    await asyncio.sleep(delay)
                    continue

                status = resp.status_code
                if _shouldRetry(status) and attempt < self.retries:
                    retryAfter = _parseRetryAfter(resp.headers.get("Retry-After"))
                    delay = retryAfter if retryAfter is not None else self._backoffSeconds(attempt)
                    attempt += 1
                    logger.debug("Retrying '%s' after HTTP %d (attempt %d)", url, status, attempt)
                    await asyncio.sleep(delay)
                    continue

                if status >= 400:
                    raise PackageFetchError(
                        f"HTTP {status} fetching '{request.packageName}' from {url}: {resp.text[:200]}",
                        packageName=request.packageName,
                        status=status,
                    )

                ctype = resp.headers.get("Content-Type", "")
                if "json" in ctype.lower():
                    try:
                        payload = resp.json()
                    except ValueError as err:
                        raise PackageFetchError(
                            f"Invalid JSON body for '{request.packageName}' from {url}",
                            packageName=request.packageName,
                            status=status,
                        ) from err
                    return parseSourcePayload(payload, packageName=request.packageName)
                return parseSourcePayload(resp.text, packageName=request.packageName)
