"""
Tests for logger construction and structured event helpers.
"""

import json
import logging
import sys

from vault_keeper.check_context import CheckContext
from vault_keeper.infra.logging_cfg import JsonFormatter, build_logger, log_event, vault_logger


def _close(logger):
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_build_logger_writes_json_files(tmp_path):
    logger = build_logger("test_keeper_files", level="INFO", log_dir=str(tmp_path), async_file=False)
    try:
        logger.info("hello")
        logger.error("broken")
    finally:
        _close(logger)

    combined = [json.loads(line) for line in (tmp_path / "combined.log").read_text().splitlines()]
    errors = [json.loads(line) for line in (tmp_path / "error.log").read_text().splitlines()]
    assert [r["msg"] for r in combined] == ["hello", "broken"]
    assert [r["msg"] for r in errors] == ["broken"]
    assert errors[0]["level"] == "ERROR"


def test_build_logger_idempotent(tmp_path):
    logger = build_logger("test_keeper_idem", log_dir=str(tmp_path), async_file=False)
    try:
        count = len(logger.handlers)
        again = build_logger("test_keeper_idem", level=logging.DEBUG, log_dir=str(tmp_path), async_file=False)
        assert again is logger
        assert len(logger.handlers) == count
        assert logger.level == logging.DEBUG
        error_only = [h for h in logger.handlers if getattr(h, "_error_only", False)]
        assert error_only[0].level == logging.ERROR
    finally:
        _close(logger)


def test_console_only_without_log_dir():
    logger = build_logger("test_keeper_console", log_dir=None)
    try:
        assert len(logger.handlers) == 1
        assert logger.propagate is False
    finally:
        _close(logger)


def test_vault_logger_name():
    assert vault_logger("0x1A2b3c4d5e").name == "vault_keeper.vault.0x1a2b3c4d5e"


def test_vault_loggers_distinct_for_shared_prefix():
    first = vault_logger("0x0000000000000000000000000000000000000000000000000000000000001")
    second = vault_logger("0x0000000000000000000000000000000000000000000000000000000000002")
    assert first is not second


def test_json_formatter_includes_exception():
    try:
        raise ValueError("bad felt")
    except ValueError:
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "oops", None, None)
        record.exc_info = sys.exc_info()
    payload = json.loads(JsonFormatter().format(record))
    assert payload["msg"] == "oops"
    assert "ValueError: bad felt" in payload["exc_info"]


def test_log_event(caplog):
    logger = logging.getLogger("test.events")
    with caplog.at_level(logging.DEBUG, logger="test.events"):
        log_event(logger, "tick_complete", level=logging.WARNING, failures=2)
    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert json.loads(record.getMessage())["failures"] == 2


def test_check_context_tags(caplog):
    logger = logging.getLogger("test.context")
    ctx = CheckContext("0x5a11", logger)
    ctx.set_tag("round_id", 9)
    with caplog.at_level(logging.INFO, logger="test.context"):
        ctx.info("round_checked", state="OPEN")
    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["event"] == "round_checked"
    assert payload["vault"] == "0x5a11"
    assert payload["round_id"] == 9
    assert payload["state"] == "OPEN"
    assert payload["trace_id"] == ctx.trace_id
