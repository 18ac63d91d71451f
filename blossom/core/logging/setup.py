# blossom/core/logging/setup.py
from __future__ import annotations
import logging
import logging.handlers

from blossom.app.settings import settings, settingsBool
from .formatters import DevFormatter, JsonFormatter

__all__ = [
    "NO_PROPAGATE",
    "configureLogging",
]



# Disable propagation from common libraries
NO_PROPAGATE = [
    "uvicorn", "uvicorn.access", "uvicorn.error",
    "fastapi", "asyncio",
    "httpcore.connection", "httpcore.http11",
    "httpx"
]



def configureLogging(*, devMode: bool | None = None, logFile: str | None = None) -> None:
    """
    Initiate the global logging configuration.

    Dev:
      - Console pretty logs (DEBUG)
      - JSON file log (DEBUG), when a file is configured
    
    Prod:
      - Console INFO
      - JSON file logs INFO with rotation
    """
    if devMode is None:
        devMode = settingsBool("logging.devMode", True)
    if logFile is None:
        logFile = settings("logging.file", None)
    rootLevel = logging.DEBUG if devMode else logging.INFO

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(rootLevel)
    
    for name in NO_PROPAGATE:
        logging.getLogger(name).propagate = False

    consoleHandler = logging.StreamHandler()
    consoleHandler.setLevel(rootLevel)
    consoleHandler.setFormatter(DevFormatter())
    root.addHandler(consoleHandler)

    if logFile:
        fileHandler = logging.handlers.RotatingFileHandler(
            logFile,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8"
        )
        fileHandler.setLevel(rootLevel)
        fileHandler.setFormatter(JsonFormatter())
        root.addHandler(fileHandler)

    # Per-logger tweaks (reduce noise)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("fastapi").setLevel(logging.INFO)
