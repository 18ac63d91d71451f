# blossom/packages/sinks.py
from __future__ import annotations
from typing import Any, Protocol

__all__ = ["ExecutionSink", "PythonExecutionSink"]



class ExecutionSink(Protocol):
    """The one place package code is run. Raises whatever the code raises."""

    def execute(self, code: str, packageName: str) -> None: ...



class PythonExecutionSink:
    """
    Executes package code in a single namespace shared by every package, so a
    name defined by one package is visible to the packages that depend on it.
    """

    def __init__(self, namespace: dict[str, Any] | None = None) -> None:
        self.namespace: dict[str, Any] = namespace if namespace is not None else {}
        self.namespace.setdefault("__name__", "blossom.packages.global")
        self.namespace.setdefault("__builtins__", __builtins__)

    def execute(self, code: str, packageName: str) -> None:
        compiled = compile(code, f"<package {packageName}>", "exec")
        exec(compiled, self.namespace)
