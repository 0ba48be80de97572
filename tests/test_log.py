"""Tests for structured logging helpers."""

import logging

from aishortcuts.utils.log import StructuredFormatter, enable_file_logging, get_logger


def _record(**extra):
    record = logging.LogRecord("aishortcuts", logging.INFO, __file__, 1, "[test] hello", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_structured_formatter_appends_sorted_context():
    formatter = StructuredFormatter("%(asctime)s [%(levelname)s] %(message)s")
    line = formatter.format(_record(zeta=1, alpha="a"))
    assert "[INFO] [test] hello | " in line
    assert line.endswith('{"alpha": "a", "zeta": 1}')
    assert "Z [INFO]" in line


def test_structured_formatter_without_context():
    formatter = StructuredFormatter("%(message)s")
    assert formatter.format(_record()) == "[test] hello"


def test_file_logging_writes_context(tmp_path):
    log_file = enable_file_logging(tmp_path)
    get_logger().warning("[test] written to disk", extra={"component": "log"})
    for handler in get_logger().logger.handlers:
        handler.flush()
    content = log_file.read_text(encoding="utf-8")
    assert "[test] written to disk" in content
    assert '"component": "log"' in content
    assert log_file.parent == tmp_path / "logs"


def test_console_level_ignores_unknown_names():
    logger = get_logger()
    logger.set_console_level("ERROR")
    logger.set_console_level("not-a-level")
    console = [h for h in logger.logger.handlers if not isinstance(h, logging.FileHandler)]
    assert console and all(handler.level == logging.ERROR for handler in console)
    logger.set_console_level("WARNING")
