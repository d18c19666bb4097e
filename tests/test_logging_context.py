"""Tests for session-id correlation on log records."""

import logging

import pytest

from booking_orchestrator.logging_context import (
    NO_SESSION,
    SessionIdFilter,
    current_session_id,
    get_session_logger,
    session_scope,
)
from tests.conftest import fixed_today


class TestSessionScope:
    def test_scope_binds_and_restores(self):
        assert current_session_id() == NO_SESSION
        with session_scope("web-42"):
            assert current_session_id() == "web-42"
            with session_scope("web-7"):
                assert current_session_id() == "web-7"
            assert current_session_id() == "web-42"
        assert current_session_id() == NO_SESSION

    def test_scope_restores_after_error(self):
        with pytest.raises(RuntimeError):
            with session_scope("web-42"):
                raise RuntimeError("boom")
        assert current_session_id() == NO_SESSION


class TestSessionIdFilter:
    def test_filter_stamps_record(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        with session_scope("web-42"):
            assert SessionIdFilter().filter(record)
        assert record.session_id == "web-42"

    def test_logger_gets_a_single_filter(self):
        logger = get_session_logger("booking_orchestrator.tests.single")
        get_session_logger("booking_orchestrator.tests.single")
        assert sum(isinstance(f, SessionIdFilter) for f in logger.filters) == 1


class TestTurnLogging:
    @pytest.mark.asyncio
    async def test_turn_records_carry_session_id(self, caplog, model, gateway):
        from booking_orchestrator.orchestrator import SessionOrchestrator

        orchestrator = SessionOrchestrator(model, gateway=gateway, flow_strategy="steps", today=fixed_today)
        with caplog.at_level(logging.INFO, logger="booking_orchestrator.orchestrator"):
            await orchestrator.take_turn("web-42", "hi")
        turns = [r for r in caplog.records if r.getMessage().startswith("Turn at step")]
        assert turns and turns[0].session_id == "web-42"
        assert current_session_id() == NO_SESSION
