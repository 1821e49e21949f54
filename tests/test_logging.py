"""Tests for the structured logging system (caja_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from caja_kernel.exceptions import DrawerClosedError
from caja_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["message"] == "hello"
        assert record["level"] == "INFO"
        assert record["logger"] == "caja_kernel.test"
        assert "ts" in record

    def test_extra_fields_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        receipt_id = uuid4()
        get_logger("test").info(
            "receipt_created",
            extra={
                "receipt_id": receipt_id,
                "total": Decimal("1500.00"),
                "drawer_date": date(2025, 1, 10),
            },
        )

        record = _parse_log(stream)
        assert record["receipt_id"] == str(receipt_id)
        assert record["total"] == "1500.00"
        assert record["drawer_date"] == "2025-01-10"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="req-1", actor_id="7")
        get_logger("test").info("with_context")

        record = _parse_log(stream)
        assert record["correlation_id"] == "req-1"
        assert record["actor_id"] == "7"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "drawer_date" not in record

    def test_kernel_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise DrawerClosedError(date(2025, 1, 10))
        except DrawerClosedError:
            get_logger("test").error("posting_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "DrawerClosedError"
        assert record["exc_code"] == "DRAWER_CLOSED"
        assert record["exc_drawer_date"] == "2025-01-10"
        assert "traceback" in record


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_and_get(self):
        LogContext.set(operation="close")
        assert LogContext.get_all() == {"operation": "close"}

    def test_clear(self):
        LogContext.set(operation="close", actor_id="1")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores(self):
        LogContext.set(operation="outer")
        with LogContext.bind(operation="auto_close", drawer_date=date(2025, 1, 9)):
            assert LogContext.get_all() == {
                "operation": "auto_close",
                "drawer_date": "2025-01-09",
            }
        assert LogContext.get_all() == {"operation": "outer"}

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(not_a_field="x"):
            assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        assert len(logging.getLogger("caja_kernel").handlers) == 1

    def test_level_applied(self):
        handler, stream = _make_handler()
        configure_logging(level="WARNING", handler=handler)
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")
        assert _parse_log(stream)["message"] == "kept"

    def test_logger_hierarchy(self):
        assert get_logger("services.drawer").name == "caja_kernel.services.drawer"
