"""Tests for the structured logging system (dairy_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from dairy_kernel.exceptions import DeductionExceedsOutstandingError
from dairy_kernel.logging_config import (
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


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


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
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "dairy_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("voucher_posted", extra={"voucher_seq": 42, "line_count": 2})

        record = _parse_log(stream)
        assert record["voucher_seq"] == 42
        assert record["line_count"] == 2

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(actor_id="clerk-7", farmer_id="F-101"):
            get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["actor_id"] == "clerk-7"
        assert record["farmer_id"] == "F-101"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "actor_id" not in record
        assert "farmer_id" not in record

    def test_money_dates_and_ids_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "typed",
            extra={
                "voucher_id": uid,
                "amount": Decimal("1250.50"),
                "period_end": date(2024, 4, 30),
            },
        )

        record = _parse_log(stream)
        assert record["voucher_id"] == str(uid)
        assert record["amount"] == "1250.50"
        assert record["period_end"] == "2024-04-30"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_ledger_exception_code_extracted(self):
        """Kernel exceptions carry a .code and structured attributes."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise DeductionExceedsOutstandingError("F-101", "Cash Advance", "50", "0")
        except DeductionExceedsOutstandingError:
            logger.error("deduction_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "DEDUCTION_EXCEEDS_OUTSTANDING"
        assert record["exc_type"] == "DeductionExceedsOutstandingError"
        assert record["exc_farmer_id"] == "F-101"
        assert record["exc_category"] == "Cash Advance"
        assert record["exc_available"] == "0"

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
            assert {"ts", "level", "logger", "message"} <= record.keys()


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_bind_sets_fields(self):
        with LogContext.bind(actor_id="x", voucher_id="y"):
            assert LogContext.get_all() == {"actor_id": "x", "voucher_id": "y"}
        assert LogContext.get_all() == {}

    def test_nested_bind_restores_outer(self):
        with LogContext.bind(farmer_id="F-1"):
            with LogContext.bind(farmer_id="F-2", voucher_id="v"):
                assert LogContext.get_all() == {"farmer_id": "F-2", "voucher_id": "v"}
            assert LogContext.get_all() == {"farmer_id": "F-1"}

    def test_bind_skips_none(self):
        with LogContext.bind(farmer_id="F-9", actor_id=None):
            assert LogContext.get_all() == {"farmer_id": "F-9"}

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(farmer_id="F-9", society="S-1"):
            assert LogContext.get_all() == {"farmer_id": "F-9"}

    def test_restored_after_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(voucher_id="v-1"):
                raise RuntimeError("posting failed")
        assert LogContext.get_all() == {}

    def test_clear(self):
        with LogContext.bind(actor_id="a"):
            LogContext.clear()
            assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        assert len(logging.getLogger("dairy_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        logger = get_logger("services.voucher")
        assert logger.name == "dairy_kernel.services.voucher"

    def test_logger_hierarchy(self):
        """Child loggers inherit the dairy_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "dairy_kernel.deep.nested.module"
