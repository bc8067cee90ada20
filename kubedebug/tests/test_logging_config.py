"""
Logging setup tests.
"""

import json
import logging

from kubedebug.controller.logging_config import get_logger, parse_level, setup_logging


def _log_with(level, log_format, emit):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging(level=level, log_format=log_format)
        emit()
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def test_json_lines_carry_trace_id_and_extra(capsys):
    _log_with(
        "DEBUG",
        "json",
        lambda: get_logger("kubedebug.test", trace_id="default/api").info("patched", extra={"replicas": 2}),
    )

    record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert record["message"] == "patched"
    assert record["level"] == "INFO"
    assert record["logger"] == "kubedebug.test"
    assert record["trace_id"] == "default/api"
    assert record["replicas"] == 2


def test_plain_loggers_get_a_placeholder_trace_id(capsys):
    _log_with("INFO", "text", lambda: logging.getLogger("kopf.test").warning("handler retried"))

    assert "WARNING [-] - kopf.test: handler retried" in capsys.readouterr().out


def test_level_filters_records(capsys):
    _log_with("WARNING", "text", lambda: get_logger("kubedebug.test").info("hidden"))

    assert "hidden" not in capsys.readouterr().out


def test_client_libraries_stay_quiet_at_debug():
    _log_with("DEBUG", "json", lambda: None)

    assert logging.getLogger("urllib3").level == logging.WARNING
    assert logging.getLogger("kubernetes").level == logging.WARNING


def test_unknown_level_falls_back_to_info():
    assert parse_level("loud") == logging.INFO
    assert parse_level(" debug ") == logging.DEBUG
