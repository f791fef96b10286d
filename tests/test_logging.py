"""Tests for the structured logging system (carbon_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from carbon_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's configuration."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "carbon_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("credits_purchased", extra={"seq": 42, "credits": "6"})

        record = _parse_log(stream)
        assert record["seq"] == 42
        assert record["credits"] == "6"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(project_id="prj-1", actor_id="usr-2")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["project_id"] == "prj-1"
        assert record["actor_id"] == "usr-2"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        """Kernel exceptions carry a .code attribute and structured fields."""
        from carbon_kernel.exceptions import InsufficientFundsError

        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InsufficientFundsError("200.00", "150.00", "INR")
        except InsufficientFundsError:
            get_logger("test").error("purchase_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INSUFFICIENT_FUNDS"
        assert record["exc_type"] == "InsufficientFundsError"
        assert record["exc_required"] == "200.00"
        assert record["exc_available"] == "150.00"
        assert record["exc_currency"] == "INR"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "project_id" not in record
        assert "actor_id" not in record

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_uuid", extra={"wallet_id": uid})

        assert _parse_log(stream)["wallet_id"] == str(uid)

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(project_id="x", actor_id="y")
        assert LogContext.get_all() == {"project_id": "x", "actor_id": "y"}

    def test_clear(self):
        LogContext.set(project_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(project_id="outer")
        with LogContext.bind(project_id="inner"):
            assert LogContext.get_all()["project_id"] == "inner"
        assert LogContext.get_all()["project_id"] == "outer"

    def test_bind_restores_none(self):
        assert "serial_number" not in LogContext.get_all()
        with LogContext.bind(serial_number="CCR-2024"):
            assert LogContext.get_all()["serial_number"] == "CCR-2024"
        assert "serial_number" not in LogContext.get_all()

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="region"):
            LogContext.set(region="eu")
        with pytest.raises(TypeError):
            with LogContext.bind(region="eu"):
                pass


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        handlers = logging.getLogger("carbon_kernel").handlers
        assert h1 in handlers
        assert h2 not in handlers

    def test_reset_removes_only_the_installed_handler(self):
        installed, _ = _make_handler()
        foreign, _ = _make_handler()
        configure_logging(handler=installed)
        namespace_logger = logging.getLogger("carbon_kernel")
        namespace_logger.addHandler(foreign)
        try:
            reset_logging()
            assert installed not in namespace_logger.handlers
            assert foreign in namespace_logger.handlers
            assert namespace_logger.level == logging.WARNING
        finally:
            namespace_logger.removeHandler(foreign)

    def test_level_name_accepted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level="debug")
        get_logger("test").debug("verbose")
        assert _parse_log(stream)["message"] == "verbose"

    def test_get_logger_returns_child(self):
        assert get_logger("services.ledger").name == "carbon_kernel.services.ledger"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "carbon_kernel.deep.nested.module"
