import asyncio
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import json5
import pytest

from blossom.packages import fetchers
from blossom.packages.errors import MissingDependencyError, PackageFetchError
from blossom.packages.fetchers import (
    FetchRequest,
    FilesystemPackageFetcher,
    HttpPackageFetcher,
    InlineSourceFetcher,
    parseSourcePayload,
    urlForRecord,
)
from blossom.packages.manager import PackageManager
from blossom.packages.record import PackageRecord
from blossom.packages.sinks import PythonExecutionSink
from blossom.packages.store import ManifestStore


def _request(name: str, rootNode: str = "app") -> FetchRequest:
    return FetchRequest.forRecord(PackageRecord(name=name, rootNode=rootNode, basename=name))


class Collector:
    def __init__(self):
        self.done: list[tuple] = []
        self.failed: list[tuple] = []

    def onDone(self, name, source):
        self.done.append((name, source))

    def onError(self, name, err):
        self.failed.append((name, err))


# ----- Locators and payloads -----

def test_url_for_record():
    assert urlForRecord(PackageRecord(name="a", rootNode="app", basename="a_pkg")) == "/app/packages/a_pkg"
    assert urlForRecord(PackageRecord(name="a", rootNode="/static/app/", basename="a")) == "/static/app/packages/a"
    assert urlForRecord(PackageRecord(name="a")) == "/packages/a"


def test_parse_source_payload():
    assert parseSourcePayload("x = 1", packageName="p") == {"other": "x = 1"}
    assert parseSourcePayload({"models": "m", "views": ""}, packageName="p") == {"models": "m"}
    with pytest.raises(PackageFetchError):
        parseSourcePayload({"templates": "t"}, packageName="p")
    with pytest.raises(PackageFetchError):
        parseSourcePayload({"models": 3}, packageName="p")
    with pytest.raises(PackageFetchError):
        parseSourcePayload(["x"], packageName="p")


# ----- Inline -----

def test_inline_fetcher_completes_synchronously():
    collector = Collector()
    InlineSourceFetcher().fetch(_request("a"), collector.onDone, collector.onError)
    assert collector.done == [("a", None)]


async def test_inline_fetcher_deferred_waits_for_loop():
    collector = Collector()
    InlineSourceFetcher(deferred=True).fetch(_request("a"), collector.onDone, collector.onError)
    assert collector.done == []
    await asyncio.sleep(0)
    assert collector.done == [("a", None)]


# ----- Filesystem -----

def test_filesystem_reads_category_directory(tmp_path):
    pkgDir = tmp_path / "app" / "packages" / "a"
    pkgDir.mkdir(parents=True)
    (pkgDir / "other.py").write_text("x = 1", encoding="utf-8")
    (pkgDir / "views.py").write_text("v = 2", encoding="utf-8")
    (pkgDir / "README.md").write_text("ignored", encoding="utf-8")

    source = FilesystemPackageFetcher(tmp_path).readSource(_request("a"))

    assert source == {"other": "x = 1", "views": "v = 2"}


def test_filesystem_reads_bundle_and_single_file(tmp_path):
    packagesDir = tmp_path / "app" / "packages"
    packagesDir.mkdir(parents=True)
    (packagesDir / "bundle.json5").write_text(json5.dumps({"models": "m = 1"}), encoding="utf-8")
    (packagesDir / "single.py").write_text("s = 1", encoding="utf-8")
    fetcher = FilesystemPackageFetcher(tmp_path)

    assert fetcher.readSource(_request("bundle")) == {"models": "m = 1"}
    assert fetcher.readSource(_request("single")) == {"other": "s = 1"}
    with pytest.raises(PackageFetchError):
        fetcher.readSource(_request("missing"))


def test_async_fetcher_without_loop_reports_error(tmp_path):
    collector = Collector()
    FilesystemPackageFetcher(tmp_path).fetch(_request("a"), collector.onDone, collector.onError)

    assert collector.done == []
    assert collector.failed[0][0] == "a"
    assert isinstance(collector.failed[0][1], PackageFetchError)


async def test_filesystem_fetcher_drives_manager(tmp_path):
    for name, code in (("base", "log.append('base')"), ("app", "log.append('app')")):
        pkgDir = tmp_path / "demo" / "packages" / name
        pkgDir.mkdir(parents=True)
        (pkgDir / "other.py").write_text(code, encoding="utf-8")

    log: list[str] = []
    fetcher = FilesystemPackageFetcher(tmp_path)
    manager = PackageManager(
        ManifestStore({
            "base": {"rootNode": "demo"},
            "app": {"rootNode": "demo", "dependencies": ["base"]},
            "broken": {"rootNode": "demo"},
        }),
        fetcher=fetcher,
        sink=PythonExecutionSink({"log": log}),
        mode="normal",
    )
    seen: list[str] = []

    manager.loadPackage("app", seen.append)
    manager.loadPackage("broken")
    await fetcher.drain()

    assert log == ["base", "app"]
    assert seen == ["app"]
    assert manager.packageState("broken").value == "fetchFailed"
    assert fetcher.inFlight == 0


async def test_unknown_dependency_surfaces_from_drain(tmp_path, caplog):
    pkgDir = tmp_path / "app" / "packages"
    pkgDir.mkdir(parents=True)
    (pkgDir / "b.py").write_text("pass", encoding="utf-8")

    fetcher = FilesystemPackageFetcher(tmp_path)
    manager = PackageManager(
        ManifestStore({"b": {"rootNode": "app", "dependencies": ["ghost"]}}),
        fetcher=fetcher,
        sink=PythonExecutionSink(),
        mode="normal",
    )
    seen: list[str] = []

    manager.loadPackage("b", seen.append)
    with pytest.raises(MissingDependencyError) as excinfo:
        await fetcher.drain()

    assert excinfo.value.dependency == "ghost"
    assert "Handling fetched package 'b' failed" in caplog.text
    assert fetcher.inFlight == 0
    assert seen == []


async def test_drain_keeps_waiting_for_other_fetches_after_an_error(tmp_path):
    pkgDir = tmp_path / "app" / "packages"
    pkgDir.mkdir(parents=True)
    for name in ("bad", "good"):
        (pkgDir / f"{name}.py").write_text(f"log.append({name!r})", encoding="utf-8")

    log: list[str] = []
    fetcher = FilesystemPackageFetcher(tmp_path)
    manager = PackageManager(
        ManifestStore({
            "bad": {"rootNode": "app", "dependencies": ["ghost"]},
            "good": {"rootNode": "app"},
        }),
        fetcher=fetcher,
        sink=PythonExecutionSink({"log": log}),
        mode="normal",
    )

    manager.loadPackage("bad")
    manager.loadPackage("good")
    with pytest.raises(MissingDependencyError):
        await fetcher.drain()

    assert log == ["good"]
    assert manager.packageState("good").value == "executed"


# ----- HTTP -----

def test_parse_retry_after():
    assert fetchers._parseRetryAfter("120") == pytest.approx(120.0)
    future = datetime.now(timezone.utc) + timedelta(seconds=5)
    assert fetchers._parseRetryAfter(format_datetime(future)) == pytest.approx(5.0, abs=1.5)
    assert fetchers._parseRetryAfter("not-a-date") is None
    assert fetchers._parseRetryAfter("-1") is None
    assert fetchers._parseRetryAfter(None) is None


async def test_http_fetcher_parses_json_and_text():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/app/packages/json":
            return httpx.Response(200, json={"other": "o", "models": "m"})
        return httpx.Response(200, text="plain = True")

    fetcher = HttpPackageFetcher("http://cdn.test/", transport=httpx.MockTransport(handler))

    assert await fetcher.retrieve(_request("json")) == {"other": "o", "models": "m"}
    assert await fetcher.retrieve(_request("text")) == {"other": "plain = True"}


async def test_http_fetcher_retries_transient_statuses(monkeypatch):
    sleeps: list[float] = []

    async def fakeSleep(delay):
        sleeps.append(delay)

    monkeypatch.setattr(fetchers.asyncio, "sleep", fakeSleep)
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) == 1:
            return httpx.Response(503, headers={"Retry-After": "2"})
        if len(attempts) == 2:
            return httpx.Response(502)
        return httpx.Response(200, json={"other": "ok = 1"})

    fetcher = HttpPackageFetcher(
        "http://cdn.test",
        retries=2,
        backoffBaseMs=100,
        backoffMaxMs=1_000,
        transport=httpx.MockTransport(handler),
    )

    assert await fetcher.retrieve(_request("a")) == {"other": "ok = 1"}
    assert len(attempts) == 3
    assert sleeps[0] == pytest.approx(2.0)
    assert 0.1 <= sleeps[1] <= 0.3


async def test_http_fetcher_gives_up_with_status(monkeypatch):
    async def fakeSleep(delay):
        return None

    monkeypatch.setattr(fetchers.asyncio, "sleep", fakeSleep)
    fetcher = HttpPackageFetcher(
        "http://cdn.test",
        retries=1,
        transport=httpx.MockTransport(lambda request: httpx.Response(500, text="down")),
    )

    with pytest.raises(PackageFetchError) as excinfo:
        await fetcher.retrieve(_request("a"))
    assert excinfo.value.status == 500


async def test_http_fetcher_does_not_retry_not_found():
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(404, text="no such package")

    fetcher = HttpPackageFetcher("http://cdn.test", transport=httpx.MockTransport(handler))
    collector = Collector()

    fetcher.fetch(_request("a"), collector.onDone, collector.onError)
    await fetcher.drain()

    assert calls == ["http://cdn.test/app/packages/a"]
    assert collector.done == []
    assert collector.failed[0][1].status == 404
