# blossom/core/logging/util.py
from __future__ import annotations

import logging

from blossom.app.settings import settingsBool



class PackageLogger:
    """Tiny sugar for package loader loggers with trace()."""
    def __init__(self, logger: logging.Logger, traceEnabled: bool) -> None:
        self._log = logger
        self.traceEnabled = traceEnabled
    
    @property
    def name(self) -> str:
        return self._log.name

    def debug(self, msg: str, *args, **kwargs): self._log.debug(msg, *args, **kwargs)
    def info(self, msg: str, *args, **kwargs): self._log.info(msg, *args, **kwargs)
    def warning(self, msg: str, *args, **kwargs): self._log.warning(msg, *args, **kwargs)
    def error(self, msg: str, *args, **kwargs): self._log.error(msg, *args, **kwargs)
    def exception(self, msg: str, *args, **kwargs): self._log.exception(msg, *args, **kwargs)
    def trace(self, msg: str, *args, **kwargs):
        if self.traceEnabled:
            self._log.debug("[TRACE] " + msg, *args, **kwargs)

def getLogger(name: str, side: str = "") -> logging.Logger:
    return logging.getLogger(f"{side}.{name}" if side else name)

def getPackageLogger(name: str, *, traceEnabled: bool | None = None) -> PackageLogger:
    if traceEnabled is None:
        traceEnabled = settingsBool("packages.debug", False)
    return PackageLogger(logging.getLogger(f"blossom.packages.{name}"), traceEnabled)
