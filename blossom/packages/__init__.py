from .background import BackgroundTaskQueue, LazyPackageTask
from .callbacks import CallbackRegistry, PackageCallback
from .errors import (
    ManifestError,
    MissingDependencyError,
    PackageError,
    PackageFetchError,
    PackageNotFoundError,
    UnknownDependentError,
)
from .evaluator import EvaluationResult, PackageEvaluator
from .fetchers import (
    FetchRequest,
    FilesystemPackageFetcher,
    HttpPackageFetcher,
    InlineSourceFetcher,
    PackageFetcher,
)
from .manager import PackageManager
from .manifest import PackageManifest, PackageManifestEntry, loadManifest
from .modes import PackageMode, categoriesForMode, parsePackageMode
from .record import PackageRecord, PackageState
from .resolver import DependencyResolver
from .scheduler import RunLoop
from .sinks import ExecutionSink, PythonExecutionSink
from .store import ManifestStore

__all__ = [
    "BackgroundTaskQueue",
    "LazyPackageTask",
    "CallbackRegistry",
    "PackageCallback",
    "ManifestError",
    "MissingDependencyError",
    "PackageError",
    "PackageFetchError",
    "PackageNotFoundError",
    "UnknownDependentError",
    "EvaluationResult",
    "PackageEvaluator",
    "FetchRequest",
    "FilesystemPackageFetcher",
    "HttpPackageFetcher",
    "InlineSourceFetcher",
    "PackageFetcher",
    "PackageManager",
    "PackageManifest",
    "PackageManifestEntry",
    "loadManifest",
    "PackageMode",
    "categoriesForMode",
    "parsePackageMode",
    "PackageRecord",
    "PackageState",
    "DependencyResolver",
    "RunLoop",
    "ExecutionSink",
    "PythonExecutionSink",
    "ManifestStore",
]
