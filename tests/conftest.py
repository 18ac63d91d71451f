import asyncio
import inspect
import sys
from typing import Any

import pytest

from blossom.app.context import PROCESS_REGISTRY
from blossom.packages.fetchers import FetchRequest
from blossom.packages.manager import PackageManager
from blossom.packages.sinks import PythonExecutionSink
from blossom.packages.store import ManifestStore



def pytest_configure(config: pytest.Config) -> None:
    if sys.flags.optimize:
        raise RuntimeError("Assertions are disabled (optimize > 0)")
    config.addinivalue_line("markers", "asyncio: mark a test to run inside an event loop")



@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function):
    """Runs `async def` tests in a fresh event loop."""
    testFn = pyfuncitem.obj
    if not inspect.iscoroutinefunction(testFn):
        return None
    funcargs = pyfuncitem.funcargs
    kwargs = {name: funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
    asyncio.run(testFn(**kwargs))
    return True



@pytest.fixture(autouse=True)
def clean_process_registry():
    yield
    for name in ("packages.manager", "packages.backgroundQueue", "packages.sourceRoot"):
        PROCESS_REGISTRY.unregister(name)



class ManualFetcher:
    """Holds fetch requests until the test completes them, in any order."""

    def __init__(self) -> None:
        self.requests: list[FetchRequest] = []
        self._pending: dict[str, tuple[Any, Any]] = {}

    def fetch(self, request, onDone, onError) -> None:
        self.requests.append(request)
        self._pending[request.packageName] = (onDone, onError)

    @property
    def pending(self) -> list[str]:
        return list(self._pending)

    def complete(self, name: str, source: dict[str, str] | None = None) -> None:
        onDone, _onError = self._pending.pop(name)
        onDone(name, source)

    def fail(self, name: str, err: BaseException) -> None:
        _onDone, onError = self._pending.pop(name)
        onError(name, err)



@pytest.fixture()
def manual_fetcher() -> ManualFetcher:
    return ManualFetcher()


@pytest.fixture()
def events() -> list[str]:
    return []


@pytest.fixture()
def sink(events) -> PythonExecutionSink:
    return PythonExecutionSink({"events": events})


@pytest.fixture()
def make_manager(sink):
    """Builds a manager over an inline manifest. Extra kwargs go to PackageManager."""
    def _make(packages: dict[str, Any], **kwargs) -> PackageManager:
        kwargs.setdefault("sink", sink)
        kwargs.setdefault("mode", "normal")
        return PackageManager(ManifestStore(packages), **kwargs)
    return _make


@pytest.fixture()
def emit_source():
    """Source whose 'other' category records its package name when run."""
    def _emit(name: str) -> dict[str, str]:
        return {"other": f"events.append({name!r})"}
    return _emit
