import json
import logging

from blossom.core.logging import getLogContext, getPackageLogger, logContext, setLogContext, clearLogContext
from blossom.core.logging.formatters import DevFormatter, JsonFormatter


def _record(msg: str = "hello %s", args=("world",)) -> logging.LogRecord:
    return logging.LogRecord("blossom.test", logging.INFO, __file__, 1, msg, args, None)


def test_log_context_is_scoped():
    clearLogContext()
    setLogContext(phase="boot", ignored=None)
    with logContext(packageName="core"):
        assert getLogContext() == {"phase": "boot", "packageName": "core"}
    assert getLogContext() == {"phase": "boot"}
    clearLogContext()
    assert getLogContext() is None


def test_dev_formatter_appends_package_context():
    with logContext(packageName="core", phase="evaluate"):
        line = DevFormatter().format(_record())
    assert line == "INFO: [blossom.test] hello world [core/evaluate]"


def test_json_formatter_emits_one_line():
    with logContext(packageName="core"):
        line = JsonFormatter().format(_record())
    payload = json.loads(line)
    assert payload["msg"] == "hello world"
    assert payload["level"] == "info"
    assert payload["ctx"] == {"packageName": "core"}


def test_trace_only_when_enabled(caplog):
    caplog.set_level(logging.DEBUG, logger="blossom.packages.loud")
    getPackageLogger("quiet", traceEnabled=False).trace("hidden %s", 1)
    getPackageLogger("loud", traceEnabled=True).trace("shown %s", 2)

    messages = [record.getMessage() for record in caplog.records]
    assert messages == ["[TRACE] shown 2"]


def test_configure_logging_writes_json_file(tmp_path):
    from blossom.core.logging import configureLogging

    root = logging.getLogger()
    savedHandlers, savedLevel = list(root.handlers), root.level
    logFile = tmp_path / "blossom.log"
    try:
        configureLogging(devMode=False, logFile=str(logFile))
        assert root.level == logging.INFO
        logging.getLogger("blossom.test").info("package %s ready", "core")
        for handler in root.handlers:
            handler.flush()
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in savedHandlers:
            root.addHandler(handler)
        root.setLevel(savedLevel)

    lines = logFile.read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[-1])["msg"] == "package core ready"
