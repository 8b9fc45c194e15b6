"""
Structured logging tests (repair_kernel/logging_config.py).

Verifies:
- One JSON object per record with envelope, context and extras
- Bearer secrets are masked wherever they appear
- Typed kernel errors contribute their fields
- LogContext blocks restore the previous context exactly
"""

import json
import logging
import threading
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from repair_kernel.exceptions import InvalidTransitionError, TokenInvalidError
from repair_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture
def log_stream():
    """Fresh logging configuration writing into a StringIO."""
    reset_logging()
    LogContext.clear()
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    configure_logging(level=logging.DEBUG, handler=handler)

    def records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield records
    reset_logging()
    configure_logging(level=logging.DEBUG)


class TestRecordShape:
    def test_envelope(self, log_stream):
        get_logger("services.quote_workflow").info("create_quote_started")

        (record,) = log_stream()
        assert record["level"] == "INFO"
        assert record["message"] == "create_quote_started"
        assert record["logger"] == "repair_kernel.services.quote_workflow"
        assert record["ts"].endswith("+00:00")

    def test_extras_are_serialized(self, log_stream):
        quote_id = uuid4()
        get_logger("test").info(
            "quote_transition_applied",
            extra={"rejected_quote_id": quote_id, "customer_total": Decimal("150.00"), "version": 3},
        )

        (record,) = log_stream()
        assert record["rejected_quote_id"] == str(quote_id)
        assert record["customer_total"] == "150.00"
        assert record["version"] == 3

    def test_secrets_are_masked(self, log_stream):
        get_logger("test").warning(
            "link_debug", extra={"token": "abcDEF123-secret", "raw_token": "zzz", "phase": "tech"}
        )

        (record,) = log_stream()
        assert record["token"] == "[REDACTED]"
        assert record["raw_token"] == "[REDACTED]"
        assert record["phase"] == "tech"

    def test_typed_error_fields(self, log_stream):
        try:
            raise InvalidTransitionError("q-1", "draft", "client_accept", "illegal_state")
        except InvalidTransitionError:
            get_logger("test").error("client_accept_failed", exc_info=True)

        (record,) = log_stream()
        assert record["exc_type"] == "InvalidTransitionError"
        assert record["exc_code"] == "INVALID_TRANSITION"
        assert record["exc_guard_code"] == "illegal_state"
        assert record["exc_from_status"] == "draft"
        assert "Traceback" in record["traceback"]

    def test_token_error_reason_kept(self, log_stream):
        try:
            raise TokenInvalidError("expired", quote_id="q-2", phase="client")
        except TokenInvalidError:
            get_logger("test").warning("client_accept_rejected", exc_info=True)

        (record,) = log_stream()
        assert record["exc_reason"] == "expired"
        assert record["exc_message"] == TokenInvalidError.public_message


class TestLogContext:
    def test_fields_appear_on_records(self, log_stream):
        LogContext.set(correlation_id="corr-1", quote_id="q-1")
        get_logger("test").info("with_context")

        (record,) = log_stream()
        assert record["correlation_id"] == "corr-1"
        assert record["quote_id"] == "q-1"

    def test_bind_restores_outer_values(self, log_stream):
        LogContext.set(actor_id="outer")
        logger = get_logger("test")

        with LogContext.bind(actor_id="inner", token_phase="tech"):
            LogContext.set(quote_id="resolved-inside")
            logger.info("inside")
        logger.info("outside")

        inside, outside = log_stream()
        assert inside["actor_id"] == "inner"
        assert inside["quote_id"] == "resolved-inside"
        assert outside["actor_id"] == "outer"
        assert "token_phase" not in outside
        assert "quote_id" not in outside

    def test_none_values_ignored(self):
        LogContext.clear()
        with LogContext.bind(correlation_id="c", token_phase=None):
            assert LogContext.get_all() == {"correlation_id": "c"}

    def test_unknown_field_refused(self):
        with pytest.raises(ValueError):
            LogContext.set(password="x")

    def test_threads_do_not_share_context(self):
        LogContext.clear()
        LogContext.set(correlation_id="main")

        def worker():
            LogContext.set(correlation_id="worker", quote_id="q-9")

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        assert LogContext.get_all() == {"correlation_id": "main"}


class TestConfigureLogging:
    def test_second_call_is_a_no_op(self, log_stream):
        second = logging.StreamHandler(StringIO())
        configure_logging(handler=second)

        handlers = logging.getLogger("repair_kernel").handlers
        assert second not in handlers
        structured = [h for h in handlers if isinstance(h.formatter, StructuredFormatter)]
        assert len(structured) == 1

    def test_reset_keeps_handlers_it_did_not_add(self, log_stream):
        namespace = logging.getLogger("repair_kernel")
        foreign = logging.StreamHandler(StringIO())
        namespace.addHandler(foreign)
        try:
            reset_logging()
            assert foreign in namespace.handlers
            assert not any(isinstance(h.formatter, StructuredFormatter) for h in namespace.handlers)
        finally:
            namespace.removeHandler(foreign)

    def test_level_by_name(self):
        reset_logging()
        stream = StringIO()
        configure_logging(level="warning", handler=logging.StreamHandler(stream))
        try:
            logger = get_logger("test")
            logger.info("dropped")
            logger.warning("kept")
            messages = [json.loads(line)["message"] for line in stream.getvalue().splitlines()]
            assert messages == ["kept"]
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG)

    def test_unknown_level_name(self):
        reset_logging()
        try:
            with pytest.raises(ValueError):
                configure_logging(level="LOUD")
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG)

    def test_formatter_is_usable_standalone(self):
        record = logging.makeLogRecord({"name": "other", "levelname": "INFO", "msg": "hi"})
        assert json.loads(StructuredFormatter().format(record))["message"] == "hi"
