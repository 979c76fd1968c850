"""Tests for the structured logging system (pawn_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from pawn_kernel.exceptions import DayEndClosedError, SlotOccupiedError
from pawn_kernel.logging_config import (
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
    handler = logging.StreamHandler(stream)
    configure_logging(handler=handler, level=logging.DEBUG)

    def _records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _records


class TestStructuredFormatter:

    def test_core_fields(self, json_log):
        get_logger("services.pledge").info("pledge_created")

        (record,) = json_log()
        assert record["level"] == "INFO"
        assert record["message"] == "pledge_created"
        assert record["logger"] == "pawn_kernel.services.pledge"
        assert record["ts"].endswith("+00:00")

    def test_extra_fields_at_top_level(self, json_log):
        get_logger("test").info("slot_assigned", extra={"slot_label": "V1-B01-S01", "box_occupied": 1})

        (record,) = json_log()
        assert record["slot_label"] == "V1-B01-S01"
        assert record["box_occupied"] == 1

    def test_money_dates_and_ids_are_strings(self, json_log):
        pledge_id = uuid4()
        get_logger("test").info(
            "pledge_redeemed",
            extra={
                "pledge_id": pledge_id,
                "total_payable": Decimal("1040.50"),
                "due_date": date(2024, 7, 15),
            },
        )

        (record,) = json_log()
        assert record["pledge_id"] == str(pledge_id)
        assert record["total_payable"] == "1040.50"
        assert record["due_date"] == "2024-07-15"

    def test_context_fields_stamped(self, json_log):
        LogContext.set(correlation_id="req-7", pledge_no="PLG-KL01-2024-0001")
        get_logger("test").info("pledge_renewed")

        (record,) = json_log()
        assert record["correlation_id"] == "req-7"
        assert record["pledge_no"] == "PLG-KL01-2024-0001"
        assert "actor_id" not in record

    def test_plain_exception(self, json_log):
        try:
            raise ValueError("bad weight")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        (record,) = json_log()
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "bad weight"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_kernel_exception_fields(self, json_log):
        try:
            raise SlotOccupiedError("slot-1", "item-9")
        except SlotOccupiedError:
            get_logger("test").warning("slot_occupied", exc_info=True)

        (record,) = json_log()
        assert record["exc_code"] == "SLOT_OCCUPIED"
        assert record["exc_slot_id"] == "slot-1"
        assert record["exc_occupant_item_id"] == "item-9"

    def test_kernel_exception_with_date_attribute(self, json_log):
        try:
            raise DayEndClosedError("branch-1", date(2024, 1, 15))
        except DayEndClosedError:
            get_logger("test").warning("day_closed", exc_info=True)

        (record,) = json_log()
        assert record["exc_code"] == "DAY_END_CLOSED"
        assert "2024-01-15" in json.dumps(record)

    def test_level_filtering(self):
        stream = StringIO()
        configure_logging(stream=stream)
        logger = get_logger("test")
        logger.debug("hidden")
        logger.info("shown")

        lines = stream.getvalue().splitlines()
        assert [json.loads(line)["message"] for line in lines] == ["shown"]

    def test_formatter_usable_standalone(self):
        record = logging.LogRecord("other", logging.INFO, __file__, 1, "hello %s", ("world",), None)

        payload = json.loads(StructuredFormatter().format(record))

        assert payload["message"] == "hello world"
        assert payload["logger"] == "other"


class TestLogContext:

    def test_set_is_additive(self):
        LogContext.set(correlation_id="a")
        LogContext.set(actor_id="b")

        assert LogContext.get_all() == {"correlation_id": "a", "actor_id": "b"}

    def test_all_four_fields(self):
        LogContext.set(correlation_id="c", actor_id="a", branch_id="b", pledge_no="p")

        assert set(LogContext.get_all()) == {"correlation_id", "actor_id", "branch_id", "pledge_no"}

    def test_clear(self):
        LogContext.set(branch_id="KL01")
        LogContext.clear()

        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(pledge_no="outer")
        with LogContext.bind(pledge_no="inner"):
            assert LogContext.get_all()["pledge_no"] == "inner"

        assert LogContext.get_all()["pledge_no"] == "outer"

    def test_bind_restores_unset(self):
        with LogContext.bind(actor_id=uuid4()):
            assert "actor_id" in LogContext.get_all()

        assert "actor_id" not in LogContext.get_all()

    def test_bind_restores_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(branch_id="KL01"):
                raise RuntimeError("boom")

        assert LogContext.get_all() == {}

    def test_bind_skips_none_and_unknown(self):
        with LogContext.bind(pledge_no=None, customer_ic="800101-14-5555"):
            assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_idempotent(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        configure_logging(handler=logging.StreamHandler(StringIO()))

        assert len(logging.getLogger("pawn_kernel").handlers) == 1

    def test_does_not_propagate_to_root(self):
        configure_logging(stream=StringIO())

        assert logging.getLogger("pawn_kernel").propagate is False

    def test_reset_allows_reconfigure(self):
        configure_logging(stream=StringIO())
        reset_logging()

        root = logging.getLogger("pawn_kernel")
        assert root.handlers == []
        assert root.level == logging.WARNING

        configure_logging(stream=StringIO(), level="DEBUG")
        assert root.level == logging.DEBUG

    def test_nested_loggers_share_handler(self, json_log):
        get_logger("deep.nested.module").debug("hierarchy_test")

        (record,) = json_log()
        assert record["logger"] == "pawn_kernel.deep.nested.module"
