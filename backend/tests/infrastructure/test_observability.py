"""Observability — JSON formatter and logging setup."""

import json
import logging

from invoicing_core.infrastructure.observability import JSONFormatter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "invoicing_core.test", logging.WARNING, __file__, 1, "hello %s", ("world",), None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_base_fields():
    payload = json.loads(JSONFormatter().format(_record()))
    assert payload["level"] == "WARNING"
    assert payload["logger"] == "invoicing_core.test"
    assert payload["message"] == "hello world"
    assert "timestamp" in payload


def test_json_formatter_surfaces_extra_fields():
    payload = json.loads(JSONFormatter().format(
        _record(user_id="u1", signal="login", invoice_number="ACME-20240101-0001"),
    ))
    assert payload["user_id"] == "u1"
    assert payload["signal"] == "login"
    assert payload["invoice_number"] == "ACME-20240101-0001"
    assert "error_code" not in payload


def test_setup_logging_installs_handler():
    handler = setup_logging("debug", "text")
    try:
        assert handler in logging.root.handlers
        assert logging.root.level == logging.DEBUG
        assert not isinstance(handler.formatter, JSONFormatter)
    finally:
        logging.root.removeHandler(handler)
