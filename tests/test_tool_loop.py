"""Tests for the bounded tool-call loop and argument reconciliation."""

import json
from datetime import date

import pytest

from booking_orchestrator.runs.tool_loop import ToolCallLoop, prepare_arguments
from booking_orchestrator.schemas.job_schema import JobStatus, PendingJob
from booking_orchestrator.schemas.reply_schema import FrontendActionType, TurnResponse
from booking_orchestrator.schemas.session_schema import BookingState
from booking_orchestrator.tools import catalog
from tests.conftest import TODAY, fixed_today, make_job, open_cart, tool_call


@pytest.fixture
def loop(model, gateway, extractor, poller):
    return ToolCallLoop(
        model, gateway, extractor, poller,
        max_iterations=3, payment_ready_tool=catalog.CART_SUMMARY, today=fixed_today,
    )


class TestPrepareArguments:
    def test_divergent_cart_id_rewritten(self):
        booking = BookingState(cart_id="urn:blvd:Cart:1")
        args = prepare_arguments(catalog.CHECKOUT, {"cartId": "urn:blvd:Cart:999"}, booking, today=TODAY)
        assert args["cartId"] == "urn:blvd:Cart:1"

    def test_cart_urn_under_any_key_rewritten(self):
        booking = BookingState(cart_id="urn:blvd:Cart:1")
        args = prepare_arguments("customTool", {"target": "urn:blvd:Cart:5", "note": "hi"}, booking, today=TODAY)
        assert args == {"target": "urn:blvd:Cart:1", "note": "hi"}

    def test_tool_specific_cart_key_rewritten(self):
        booking = BookingState(cart_id="urn:blvd:Cart:1")
        args = prepare_arguments(catalog.STAFF_VARIANTS, {"id": "wrong"}, booking, today=TODAY)
        assert args["id"] == "urn:blvd:Cart:1"

    def test_no_rewrite_without_session_cart(self):
        args = prepare_arguments(catalog.CHECKOUT, {"cartId": "urn:blvd:Cart:999"}, BookingState(), today=TODAY)
        assert args["cartId"] == "urn:blvd:Cart:999"

    def test_missing_declared_ids_filled(self):
        booking = BookingState(cart_id="C", location_id="L", service_id="S")
        args = prepare_arguments(catalog.BOOKABLE_TIMES, {"searchDate": "2025-11-05"}, booking, today=TODAY)
        assert args == {"searchDate": "2025-11-05", "cartId": "C", "locationId": "L", "serviceId": "S"}

    def test_undeclared_ids_not_added(self):
        booking = BookingState(cart_id="C", location_id="L", service_id="S")
        args = prepare_arguments(catalog.CHECKOUT, {}, booking, today=TODAY)
        assert args == {"cartId": "C"}

    def test_bookable_time_id_normalized(self):
        args = prepare_arguments(
            catalog.RESERVE_SLOT, {"bookableTimeId": "2025-11-05T14:00:00-08:00"}, BookingState(), today=TODAY,
        )
        assert args["bookableTimeId"] == "t_2025-11-05T14:00:00"

    def test_date_window_defaulted(self):
        args = prepare_arguments(catalog.BOOKABLE_DATES, {}, BookingState(), today=date(2025, 11, 3), date_search_days=7)
        assert args["searchRangeLower"] == "2025-11-03"
        assert args["searchRangeUpper"] == "2025-11-10"

    def test_explicit_date_window_kept(self):
        args = prepare_arguments(
            catalog.BOOKABLE_DATES, {"searchRangeLower": "2025-12-01"}, BookingState(), today=TODAY,
        )
        assert args["searchRangeLower"] == "2025-12-01"


class TestDrive:
    @pytest.mark.asyncio
    async def test_terminal_job_returned_untouched(self, loop, session, model):
        job = make_job(JobStatus.COMPLETED)
        assert await loop.drive(session, job) is job
        assert model.submitted == []

    @pytest.mark.asyncio
    async def test_executes_calls_and_submits_outputs(self, loop, session, model, sandbox):
        cart_id = await open_cart(sandbox, session)
        job = make_job(JobStatus.REQUIRES_ACTION, [
            tool_call(catalog.SET_CLIENT, {
                "cartId": "urn:blvd:Cart:999", "firstName": "Ana", "lastName": "Ruiz",
                "email": "ana@example.com", "phoneNumber": "555",
            }),
        ])
        model.polls = [make_job(JobStatus.COMPLETED)]

        result = await loop.drive(session, job)

        assert isinstance(result, PendingJob)
        assert result.status == JobStatus.COMPLETED
        assert sandbox.calls_to(catalog.SET_CLIENT)[0]["cartId"] == cart_id
        assert session.booking.client_email == "ana@example.com"
        outputs = model.submitted[0]
        assert outputs[0].tool_call_id == "call_1"
        assert json.loads(outputs[0].output) == {"cartId": cart_id, "email": "ana@example.com"}

    @pytest.mark.asyncio
    async def test_all_outputs_submitted_together(self, loop, session, model, sandbox):
        await open_cart(sandbox, session)
        job = make_job(JobStatus.REQUIRES_ACTION, [
            tool_call(catalog.GET_LOCATIONS, call_id="a"),
            tool_call(catalog.BOOKABLE_DATES, call_id="b"),
        ])
        model.polls = [make_job(JobStatus.COMPLETED)]
        await loop.drive(session, job)
        assert len(model.submitted) == 1
        assert [o.tool_call_id for o in model.submitted[0]] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_tool_failure_submitted_as_error_output(self, loop, session, model, sandbox):
        await open_cart(sandbox, session)
        job = make_job(JobStatus.REQUIRES_ACTION, [tool_call(catalog.APPLY_PROMOTION, {"offerCode": "BOGUS"})])
        model.polls = [make_job(JobStatus.COMPLETED)]
        result = await loop.drive(session, job)
        assert result.status == JobStatus.COMPLETED
        output = json.loads(model.submitted[0][0].output)
        assert output["error"] is True
        assert session.booking.promotion_offer_id is None

    @pytest.mark.asyncio
    async def test_payment_ready_tool_short_circuits(self, loop, session, model, sandbox):
        cart_id = await open_cart(sandbox, session)
        job = make_job(JobStatus.REQUIRES_ACTION, [tool_call(catalog.CART_SUMMARY, {"cartId": "urn:blvd:Cart:42"})])

        result = await loop.drive(session, job)

        assert isinstance(result, TurnResponse)
        action = result.reply.frontend_action
        assert action.type == FrontendActionType.SHOW_PAY_BUTTON
        assert action.params["cartId"] == cart_id
        assert action.params["amount"] == 132.0
        assert action.params["formattedAmount"].endswith("132.00")
        assert model.submitted == []

    @pytest.mark.asyncio
    async def test_iteration_budget_exhausted(self, loop, session, model, sandbox):
        await open_cart(sandbox, session)
        pending = make_job(JobStatus.REQUIRES_ACTION, [tool_call(catalog.GET_LOCATIONS)])
        model.polls = [pending, pending, pending, pending]
        result = await loop.drive(session, pending)
        assert result.requires_action
        assert len(model.submitted) == 3

    @pytest.mark.asyncio
    async def test_submit_failure_marks_job_failed(self, loop, session, model, sandbox):
        await open_cart(sandbox, session)
        model.fail_submit = True
        job = make_job(JobStatus.REQUIRES_ACTION, [tool_call(catalog.GET_LOCATIONS)])
        result = await loop.drive(session, job)
        assert result.status == JobStatus.FAILED
        assert result.last_error == "submit rejected"
