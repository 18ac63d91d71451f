# blossom/packages/evaluator.py
from __future__ import annotations
from enum import Enum

from blossom.core.logging import PackageLogger, getPackageLogger
from blossom.packages.modes import PackageMode, categoriesForMode
from blossom.packages.record import PackageRecord
from blossom.packages.sinks import ExecutionSink, PythonExecutionSink

__all__ = ["EvaluationResult", "PackageEvaluator", "STATEMENT_SEPARATOR"]



# Joins the selected categories into one unit of code
STATEMENT_SEPARATOR = "\n"



class EvaluationResult(str, Enum):
    SKIPPED = "skipped"                 # already executed or no source at all
    NOTHING_TO_RUN = "nothingToRun"     # source present but none for the current mode
    EXECUTED = "executed"
    FAILED = "failed"



class PackageEvaluator:
    """Runs the mode-selected parts of a loaded package's source."""

    def __init__(
        self,
        sink: ExecutionSink | None = None,
        *,
        mode: PackageMode = PackageMode.NORMAL,
        logger: PackageLogger | None = None,
    ) -> None:
        self.sink: ExecutionSink = sink or PythonExecutionSink()
        self.mode = mode
        self._log = logger or getPackageLogger("evaluator")

    def collectCode(self, record: PackageRecord) -> str:
        """
        Pops the categories selected by the current mode off `record.source`
        and returns them joined. Popped categories can never run again.
        """
        parts: list[str] = []
        for category in categoriesForMode(self.mode):
            code = record.source.get(category)
            if not code:
                continue
            parts.append(code)
            del record.source[category]
        return STATEMENT_SEPARATOR.join(parts)

    def evaluate(self, record: PackageRecord) -> EvaluationResult:
        self._log.trace("Attempting to execute source for package '%s'", record.name)

        if record.isExecuted:
            self._log.warning("Package '%s' already executed!", record.name)
            return EvaluationResult.SKIPPED

        if not record.source:
            self._log.warning("No source on requested package '%s'", record.name)
            return EvaluationResult.SKIPPED

        code = self.collectCode(record)
        if not code:
            # Nothing ran, so the package must not pretend it did
            record.isExecuted = False
            self._log.warning("No package source found for mode %s in package '%s'", self.mode, record.name)
            return EvaluationResult.NOTHING_TO_RUN

        try:
            self.sink.execute(code, record.name)
        except (Exception, SystemExit) as err:
            # sys.exit() in package code fails that package only
            self._log.warning("Caught error when processing package source '%s': %s", record.name, err, exc_info=True)
            self._log.trace("Failed source for '%s':\n%s", record.name, code)
            record.isExecuted = False
            record.didFailToEvaluate = True
            return EvaluationResult.FAILED

        return EvaluationResult.EXECUTED
