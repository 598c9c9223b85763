"""Tests for structured logging (commission_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from commission_kernel.domain.values import LedgerEntryStatus
from commission_kernel.exceptions import MissingCoachError
from commission_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def json_log():
    """Configure logging into a buffer; calling the fixture returns parsed lines."""
    stream = StringIO()
    configure_logging(stream=stream, level=logging.DEBUG)

    def _records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _records


class TestStructuredFormatter:
    def test_envelope(self, json_log):
        get_logger("services.ledger_writer").info("ledger_persisted")

        (record,) = json_log()
        assert record["level"] == "INFO"
        assert record["message"] == "ledger_persisted"
        assert record["logger"] == "commission_kernel.services.ledger_writer"
        assert record["ts"].endswith("+00:00")

    def test_money_and_ids_serialized(self, json_log):
        entry_id = uuid4()
        get_logger("test").info(
            "ledger_entry_inserted",
            extra={
                "entry_id": entry_id,
                "commission_amount": Decimal("1141.35"),
                "payout_period_start": date(2024, 12, 30),
                "status": LedgerEntryStatus.PENDING,
            },
        )

        (record,) = json_log()
        assert record["entry_id"] == str(entry_id)
        assert record["commission_amount"] == "1141.35"
        assert record["payout_period_start"] == "2024-12-30"
        assert record["status"] == "pending"

    def test_bound_context_on_every_record(self, json_log):
        payment_id = uuid4()
        logger = get_logger("test")
        with LogContext.bind(payment_id=payment_id, producer="payment_intake"):
            logger.info("payment_recorded")
            logger.info("ledger_persisted")
        logger.info("outside")

        records = json_log()
        assert [r.get("payment_id") for r in records] == [str(payment_id), str(payment_id), None]
        assert records[0]["producer"] == "payment_intake"

    def test_context_wins_over_extra(self, json_log):
        with LogContext.bind(client_id="from-context"):
            get_logger("test").info("client_recalculated", extra={"client_id": "from-extra"})

        (record,) = json_log()
        assert record["client_id"] == "from-context"

    def test_plain_exception(self, json_log):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        (record,) = json_log()
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_kernel_error_fields(self, json_log):
        try:
            raise MissingCoachError("client-1", "payment-9")
        except MissingCoachError:
            get_logger("services.commission").warning("commission_calculation_flagged", exc_info=True)

        (record,) = json_log()
        assert record["exc_code"] == "MISSING_COACH"
        assert record["exc_type"] == "MissingCoachError"
        assert record["exc_client_id"] == "client-1"
        assert record["exc_payment_id"] == "payment-9"

    def test_formatter_usable_standalone(self):
        record = logging.LogRecord("commission_kernel.x", logging.WARNING, __file__, 1, "odd %s", ("value",), None)
        payload = json.loads(StructuredFormatter().format(record))
        assert payload["message"] == "odd value"
        assert "lineno" not in payload


class TestLogContext:
    def test_set_get_clear(self):
        LogContext.set(correlation_id="x", batch_id="y", payment_id=None)
        assert LogContext.get_all() == {"correlation_id": "x", "batch_id": "y"}

        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_field_order_stable(self):
        LogContext.set(batch_id="b", client_id="cl", payment_id="pay", producer="p", actor_id="a", correlation_id="c")
        assert list(LogContext.get_all()) == [
            "correlation_id",
            "actor_id",
            "producer",
            "payment_id",
            "client_id",
            "batch_id",
        ]

    def test_nested_bind_restores(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", payment_id="p1"):
            with LogContext.bind(payment_id="p2"):
                assert LogContext.get_all()["payment_id"] == "p2"
            assert LogContext.get_all() == {"correlation_id": "inner", "payment_id": "p1"}
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_skips_none(self):
        with LogContext.bind(batch_id=None, producer="ingestion", actor_id=uuid4()):
            ctx = LogContext.get_all()
        assert set(ctx) == {"producer", "actor_id"}

    def test_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(payment_id="temp"):
                raise RuntimeError("stop")
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(tenant_id="t")
        with pytest.raises(TypeError):
            LogContext.bind(tenant_id="t")


class TestConfigureLogging:
    def test_only_first_call_counts(self):
        first = logging.StreamHandler(StringIO())
        second = logging.StreamHandler(StringIO())
        configure_logging(handler=first)
        configure_logging(handler=second)

        # pytest may attach its own capture handlers here too
        handlers = logging.getLogger("commission_kernel").handlers
        assert first in handlers
        assert second not in handlers
        assert isinstance(first.formatter, StructuredFormatter)

    def test_default_level_drops_debug(self):
        stream = StringIO()
        configure_logging(stream=stream)
        logger = get_logger("deep.nested.module")
        logger.debug("hidden")
        logger.info("shown")

        messages = [json.loads(line)["message"] for line in stream.getvalue().splitlines()]
        assert messages == ["shown"]

    def test_does_not_propagate(self):
        configure_logging(stream=StringIO())
        assert logging.getLogger("commission_kernel").propagate is False
