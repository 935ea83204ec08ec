"""
JSON log output and request context.

Validates:
- One JSON object per line with ts / level / logger / message
- Context fields and ``extra`` values are merged into the record
- Ledger errors carry their ``to_dict()`` body under ``error``
- bind() scopes context to a block and restores the outer values
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import PeriodLockedError
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _isolated_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def log_stream():
    """Configure the ledger logger tree to write into a buffer; returns a reader."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    configure_logging(handler=handler, level=logging.DEBUG)

    def read() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return read


class TestRecordShape:

    def test_base_keys(self, log_stream):
        get_logger("posting").info("bill_posted")

        (record,) = log_stream()
        assert record["level"] == "INFO"
        assert record["message"] == "bill_posted"
        assert record["logger"] == "ledger_kernel.posting"
        assert record["ts"].endswith("+00:00")

    def test_extra_values_serialized(self, log_stream):
        bill_id = uuid4()
        get_logger("posting").info(
            "bill_posted",
            extra={"bill_id": bill_id, "total": Decimal("110.00"), "bill_date": date(2025, 1, 10), "lines": 2},
        )

        (record,) = log_stream()
        assert record["bill_id"] == str(bill_id)
        assert record["total"] == "110.00"
        assert record["bill_date"] == "2025-01-10"
        assert record["lines"] == 2

    def test_context_merged(self, log_stream):
        LogContext.set(correlation_id="req-7", company_id="company-1")
        get_logger("posting").info("posting_started")

        (record,) = log_stream()
        assert record["correlation_id"] == "req-7"
        assert record["company_id"] == "company-1"
        assert "tenant_id" not in record

    def test_plain_exception(self, log_stream):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("jobs").exception("job_failed")

        (record,) = log_stream()
        assert record["level"] == "ERROR"
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "Traceback" in record["traceback"]
        assert "error" not in record

    def test_ledger_error_body(self, log_stream):
        try:
            raise PeriodLockedError("2025-01", "locked")
        except PeriodLockedError:
            get_logger("periods").error("period_rejected", exc_info=True)

        (record,) = log_stream()
        assert record["exc_type"] == "PeriodLockedError"
        assert record["error"]["kind"] == "period_locked"
        assert record["error"]["code"] == "PERIOD_LOCKED"
        assert record["error"]["context"] == {"period_key": "2025-01", "status": "locked", "action": "post"}

    def test_level_filtering(self):
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter())
        configure_logging(handler=handler)

        logger = get_logger("posting")
        logger.debug("dropped")
        logger.warning("kept")

        lines = stream.getvalue().splitlines()
        assert [json.loads(line)["message"] for line in lines] == ["kept"]


class TestLogContext:

    def test_set_skips_none(self):
        LogContext.set(correlation_id="x", document_id=None)
        assert LogContext.get_all() == {"correlation_id": "x"}

    def test_unknown_field(self):
        with pytest.raises(KeyError):
            LogContext.set(event_id="nope")
        with pytest.raises(KeyError):
            with LogContext.bind(event_id="nope"):
                pass

    def test_values_stored_as_strings(self):
        tenant = uuid4()
        LogContext.set(tenant_id=tenant)
        assert LogContext.get_all() == {"tenant_id": str(tenant)}

    def test_clear(self):
        LogContext.set(correlation_id="x", actor_id="a")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_nests_and_restores(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", entry_id="je-1"):
            with LogContext.bind(document_id="bill-1"):
                assert LogContext.get_all() == {
                    "correlation_id": "inner",
                    "entry_id": "je-1",
                    "document_id": "bill-1",
                }
            assert "document_id" not in LogContext.get_all()
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_restores_after_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(company_id="company-1"):
                raise RuntimeError("abort")
        assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_second_call_is_noop(self):
        configure_logging(handler=logging.NullHandler())
        configure_logging(handler=logging.NullHandler())

        assert len(logging.getLogger("ledger_kernel").handlers) == 1

    def test_reset_detaches_handler(self):
        configure_logging(handler=logging.NullHandler())
        reset_logging()

        root = logging.getLogger("ledger_kernel")
        assert root.handlers == []
        assert root.level == logging.WARNING

    def test_children_share_handler(self, log_stream):
        get_logger("deep.nested.module").debug("hierarchy_test")

        (record,) = log_stream()
        assert record["logger"] == "ledger_kernel.deep.nested.module"
