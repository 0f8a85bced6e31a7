"""Tests for request-scoped log context."""

import logging
from datetime import date

from booking_lifecycle.logging_context import (
    LOG_FORMAT,
    NO_CONTEXT,
    RequestIdFilter,
    get_lifecycle_logger,
    get_operation,
    get_request_id,
    install_request_filter,
    request_scope,
)
from tests.conftest import propose

STATE_MACHINE_LOGGER = "booking_lifecycle.lifecycle.state_machine"


def _record():
    return logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)


class TestRequestScope:
    def test_outside_scope(self):
        assert get_request_id() == NO_CONTEXT
        assert get_operation() == NO_CONTEXT

    def test_scope_binds_and_resets(self):
        with request_scope("BR-abc1234567", "decline"):
            assert get_request_id() == "BR-abc1234567"
            assert get_operation() == "decline"
        assert get_request_id() == NO_CONTEXT
        assert get_operation() == NO_CONTEXT

    def test_reset_after_exception(self):
        try:
            with request_scope("BR-abc1234567", "accept"):
                raise ValueError("boom")
        except ValueError:
            pass
        assert get_request_id() == NO_CONTEXT

    def test_nested_scope_restores_outer(self):
        with request_scope("BR-outer00000", "rebook"):
            with request_scope("BR-inner00000"):
                assert get_request_id() == "BR-inner00000"
                assert get_operation() == "rebook"
            with request_scope("BR-inner00000", "expire"):
                assert get_operation() == "expire"
            assert get_request_id() == "BR-outer00000"
            assert get_operation() == "rebook"


class TestRequestIdFilter:
    def test_filter_stamps_record(self):
        with request_scope("BR-abc1234567", "sweep"):
            record = _record()
            assert RequestIdFilter().filter(record)
        assert record.request_id == "BR-abc1234567"
        assert record.operation == "sweep"

    def test_filter_keeps_existing_fields(self):
        record = _record()
        record.request_id = "BR-explicit000"
        with request_scope("BR-abc1234567"):
            RequestIdFilter().filter(record)
        assert record.request_id == "BR-explicit000"

    def test_filter_attached_once(self):
        logger = get_lifecycle_logger("booking_lifecycle.test_once")
        get_lifecycle_logger("booking_lifecycle.test_once")
        assert sum(isinstance(f, RequestIdFilter) for f in logger.filters) == 1

    def test_install_on_handlers_once(self):
        handler = logging.NullHandler()
        install_request_filter([handler])
        install_request_filter([handler])
        assert sum(isinstance(f, RequestIdFilter) for f in handler.filters) == 1

    def test_log_format_includes_request_fields(self):
        assert "%(request_id)s" in LOG_FORMAT
        assert "%(operation)s" in LOG_FORMAT

    def test_format_renders_without_scope(self):
        record = _record()
        RequestIdFilter().filter(record)
        line = logging.Formatter(LOG_FORMAT).format(record)
        assert "[- -]: msg" in line


class TestLifecycleLogs:
    def test_transition_logs_carry_request_id(self, lifecycle, caplog):
        with caplog.at_level(logging.INFO, logger=STATE_MACHINE_LOGGER):
            request = propose(lifecycle)
            lifecycle.decline(request.id, reason="busy")

        records = [
            r for r in caplog.records
            if r.name == STATE_MACHINE_LOGGER and "transition" in r.getMessage()
        ]
        assert records
        assert all(r.request_id == request.id for r in records)
        assert all(r.operation == "decline" for r in records)

    def test_context_cleared_after_operation(self, lifecycle):
        request = propose(lifecycle)
        lifecycle.accept(request.id)
        assert get_request_id() == NO_CONTEXT

    def test_sweep_summary_has_no_request_id(self, lifecycle, sweeper, clock, caplog):
        propose(lifecycle)
        clock.advance(hours=49)
        with caplog.at_level(logging.INFO, logger="booking_lifecycle.lifecycle.sweeper"):
            sweeper.run_once()

        [summary] = [r for r in caplog.records if "sweep completed" in r.getMessage()]
        assert summary.request_id == NO_CONTEXT

    def test_rebook_logs_new_request_id(self, lifecycle, coordinator, caplog):
        original = propose(lifecycle)
        lifecycle.decline(original.id)
        with caplog.at_level(logging.INFO, logger="booking_lifecycle.lifecycle.rebooking"):
            rebooked = coordinator.rebook(original.id, date(2025, 3, 20))

        [record] = [r for r in caplog.records if r.getMessage().startswith("Rebooked")]
        assert record.request_id == rebooked.id
        assert record.operation == "rebook"
        assert get_request_id() == NO_CONTEXT
