"""End-to-end turn tests for the session orchestrator against the sandbox backend."""

import pytest

from booking_orchestrator.orchestrator import SessionOrchestrator
from booking_orchestrator.prompts.prompt_templates import (
    APOLOGY,
    NO_ACTIVE_BOOKING,
    PAYMENT_FAILED,
    RESTART_HINT,
    TRY_AGAIN_LATER,
)
from booking_orchestrator.schemas.job_schema import JobStatus
from booking_orchestrator.schemas.reply_schema import FrontendActionType
from booking_orchestrator.schemas.session_schema import BookingStep
from booking_orchestrator.tools import catalog
from tests.conftest import make_job, tool_call

SESSION = "web-42"


class ExplodingFlow:
    name = "exploding"

    async def start(self, session):
        raise RuntimeError("flow crashed")

    async def handle(self, session, message):
        raise RuntimeError("flow crashed")


async def say(orchestrator, *messages):
    response = None
    for message in messages:
        response = await orchestrator.take_turn(SESSION, message)
    return response


async def reach_summary(orchestrator):
    orchestrator.flow.staff_selection = True
    orchestrator.flow.currency_symbol = "$"
    orchestrator.currency_symbol = "$"
    return await say(orchestrator, "hi", "Sandbox", "Hydra Facial", "2025-11-05", "2pm", "any")


def session_of(orchestrator):
    return orchestrator.store.get(SESSION)


class TestBookingScenarios:
    @pytest.mark.asyncio
    async def test_first_message_lists_locations(self, orchestrator):
        response = await say(orchestrator, "book a facial")
        content = response.reply.content
        assert "Sandbox Location" in content
        assert "Downtown Studio" in content
        assert session_of(orchestrator).step == BookingStep.LOCATION_PENDING

    @pytest.mark.asyncio
    async def test_location_choice_creates_cart(self, orchestrator):
        response = await say(orchestrator, "hi", "Sandbox")
        assert session_of(orchestrator).booking.cart_id == "urn:blvd:Cart:1"
        assert "Which service would you like?" in response.reply.content

    @pytest.mark.asyncio
    async def test_summary_reached(self, orchestrator):
        response = await reach_summary(orchestrator)
        assert session_of(orchestrator).step == BookingStep.SUMMARY_READY
        assert "Service: Hydra Facial" in response.reply.content

    @pytest.mark.asyncio
    async def test_confirm_shows_pay_button_then_checkout(self, orchestrator, model, sandbox):
        await reach_summary(orchestrator)
        model.polls = [make_job(JobStatus.REQUIRES_ACTION, [tool_call(catalog.CART_SUMMARY, {})])]

        response = await say(orchestrator, "yes")

        action = response.reply.frontend_action
        assert action.type == FrontendActionType.SHOW_PAY_BUTTON
        assert action.params["cartId"] == "urn:blvd:Cart:1"
        assert action.params["amount"] == 132.0
        assert response.to_payload()["reply"]["frontendAction"]["type"] == "SHOW_PAY_BUTTON"
        assert session_of(orchestrator).step == BookingStep.CONFIRMED

        receipt = (await orchestrator.complete_payment(SESSION, "tok_visa")).reply.content
        assert "Subtotal: $120.00" in receipt
        assert "Tax: $12.00" in receipt
        assert "Total: $132.00" in receipt
        assert sandbox.calls_to(catalog.ADD_PAYMENT_METHOD) == [
            {"cartId": "urn:blvd:Cart:1", "token": "tok_visa", "select": True},
        ]
        assert SESSION not in orchestrator.store

    @pytest.mark.asyncio
    async def test_unsettled_job_asks_to_try_later(self, orchestrator, model):
        await reach_summary(orchestrator)
        response = await say(orchestrator, "yes")
        assert response.reply.content == TRY_AGAIN_LATER
        assert model.get_job_calls == 3

    @pytest.mark.asyncio
    async def test_greeting_resets_existing_session(self, orchestrator):
        await say(orchestrator, "hi", "Sandbox")
        await say(orchestrator, "hi")
        session = session_of(orchestrator)
        assert session.booking.cart_id is None
        assert session.step == BookingStep.LOCATION_PENDING
        assert len(session.history) == 2


class TestSummaryGate:
    @pytest.mark.asyncio
    async def test_decline_cancels_and_next_message_starts_over(self, orchestrator):
        await reach_summary(orchestrator)
        response = await say(orchestrator, "no thanks")
        assert response.reply.content == RESTART_HINT
        assert session_of(orchestrator).step == BookingStep.CANCELLED

        response = await say(orchestrator, "Downtown")
        session = session_of(orchestrator)
        assert session.step == BookingStep.SERVICE_PENDING
        assert session.booking.location_name == "Downtown Studio"
        assert len(session.history) == 2

    @pytest.mark.asyncio
    async def test_unclear_answer_repeats_summary(self, orchestrator):
        await reach_summary(orchestrator)
        response = await say(orchestrator, "what was the date again")
        assert "Shall I confirm" in response.reply.content
        assert session_of(orchestrator).step == BookingStep.SUMMARY_READY


class TestAssistantPath:
    @pytest.mark.asyncio
    async def test_completed_job_returns_assistant_reply(self, orchestrator, model):
        await reach_summary(orchestrator)
        model.polls = [make_job(JobStatus.COMPLETED)]
        response = await say(orchestrator, "yes")
        assert response.reply.content == model.reply
        assert model.messages[-1][2] == "yes"

    @pytest.mark.asyncio
    async def test_failed_job_apologizes(self, orchestrator, model):
        await reach_summary(orchestrator)
        model.polls = [make_job(JobStatus.FAILED)]
        assert (await say(orchestrator, "yes")).reply.content == APOLOGY

    @pytest.mark.asyncio
    async def test_job_creation_failure_apologizes(self, orchestrator, model):
        await reach_summary(orchestrator)

        async def refuse(thread_id, instructions):
            raise RuntimeError("no assistant")

        model.create_job = refuse
        assert (await say(orchestrator, "yes")).reply.content == APOLOGY

    @pytest.mark.asyncio
    async def test_confirmed_session_keeps_using_assistant(self, orchestrator, model):
        await reach_summary(orchestrator)
        model.polls = [make_job(JobStatus.COMPLETED), make_job(JobStatus.COMPLETED)]
        await say(orchestrator, "yes")
        await say(orchestrator, "my email is ana@example.com")
        assert len(model.jobs_created) == 2
        assert model.threads_created == 1


class TestPayment:
    @pytest.mark.asyncio
    async def test_no_session(self, orchestrator):
        response = await orchestrator.complete_payment("unknown", "tok")
        assert response.reply.content == NO_ACTIVE_BOOKING

    @pytest.mark.asyncio
    async def test_payment_method_failure_keeps_session(self, orchestrator, sandbox):
        await reach_summary(orchestrator)
        sandbox.fail_tools.add(catalog.ADD_PAYMENT_METHOD)
        response = await orchestrator.complete_payment(SESSION, "tok")
        assert response.reply.content == PAYMENT_FAILED
        assert SESSION in orchestrator.store
        assert sandbox.calls_to(catalog.CHECKOUT) == []


class TestTurnHandling:
    @pytest.mark.asyncio
    async def test_history_records_both_sides(self, orchestrator):
        response = await say(orchestrator, "book a facial")
        history = session_of(orchestrator).history
        assert [m.role for m in history] == ["user", "assistant"]
        assert history[1].content == response.reply.content

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_apology(self, model, sandbox, poller):
        orchestrator = SessionOrchestrator(model, sandbox, poller=poller, flow=ExplodingFlow())
        response = await orchestrator.take_turn(SESSION, "book a facial")
        assert response.reply.content == APOLOGY
        assert len(orchestrator.store.get(SESSION).history) == 2

    def test_clear_session(self, orchestrator):
        orchestrator.store.get_or_create(SESSION)
        assert orchestrator.clear_session(SESSION) is True
        assert orchestrator.clear_session(SESSION) is False

    def test_requires_executor_or_gateway(self, model):
        with pytest.raises(ValueError, match="executor or a gateway"):
            SessionOrchestrator(model)
