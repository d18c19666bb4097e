"""
Session orchestrator: the single entry point for a conversation turn.

Routes each message by the session's step:
  * greeting/restart keywords reset the session and prompt for a location
  * steps before the summary go to the configured flow driver
  * at the summary, confirm/decline decide between the assistant job path
    and cancellation
  * after confirmation, an assistant job handles client details,
    promotions, and payment through the bounded tool-call loop

Every failure inside a turn resolves to a reply; nothing escapes
``take_turn``.
"""

from datetime import date
from typing import Callable, Optional

from booking_orchestrator.adapters.base import LanguageModel, ToolExecutor
from booking_orchestrator.config import settings
from booking_orchestrator.conversation.flows import FlowDriver, create_flow
from booking_orchestrator.conversation.intents import Intent, detect_intent, is_reset
from booking_orchestrator.conversation.session_store import SessionStore, ThreadRegistry
from booking_orchestrator.conversation.state_extractor import StateExtractor
from booking_orchestrator.conversation.state_machine import BookingStateMachine
from booking_orchestrator.logging_context import get_session_logger, session_scope
from booking_orchestrator.prompts.prompt_templates import (
    APOLOGY,
    NO_ACTIVE_BOOKING,
    PAYMENT_FAILED,
    RESTART_HINT,
    TRY_AGAIN_LATER,
    build_checkout_summary,
    build_summary,
)
from booking_orchestrator.prompts.system_prompts import build_assistant_instructions
from booking_orchestrator.runs.poller import RunPoller
from booking_orchestrator.runs.tool_loop import ToolCallLoop
from booking_orchestrator.schemas.job_schema import JobStatus
from booking_orchestrator.schemas.reply_schema import TurnResponse
from booking_orchestrator.schemas.session_schema import BookingSession, BookingStep
from booking_orchestrator.schemas.tool_schema import CartResult, decode_tool_output
from booking_orchestrator.tools import catalog
from booking_orchestrator.tools.gateway import ToolGateway
from booking_orchestrator.utils import minor_to_major

logger = get_session_logger(__name__)

_FAILED_STATUSES = (JobStatus.FAILED, JobStatus.EXPIRED, JobStatus.CANCELLED)


class SessionOrchestrator:
    """Composes flows, the assistant job path, and session storage."""

    def __init__(
        self,
        model: LanguageModel,
        executor: Optional[ToolExecutor] = None,
        *,
        gateway: Optional[ToolGateway] = None,
        store: Optional[SessionStore] = None,
        threads: Optional[ThreadRegistry] = None,
        poller: Optional[RunPoller] = None,
        flow: Optional[FlowDriver] = None,
        flow_strategy: Optional[str] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        if gateway is None and executor is None:
            raise ValueError("SessionOrchestrator needs a tool executor or a gateway")
        self.model = model
        self.gateway = gateway or ToolGateway(executor)
        self.extractor = StateExtractor()
        self.store = store or SessionStore()
        self.threads = threads or ThreadRegistry(model)
        self.poller = poller or RunPoller(model)
        self.tool_loop = ToolCallLoop(model, self.gateway, self.extractor, self.poller, today=today)
        self.flow = flow or create_flow(
            flow_strategy or settings.session.flow_strategy,
            gateway=self.gateway,
            extractor=self.extractor,
            model=model,
            today=today,
        )
        self.currency_symbol = settings.booking.currency_symbol

    async def take_turn(self, session_id: str, message: str) -> TurnResponse:
        """Process one user message and return the reply for the session."""
        with session_scope(session_id):
            session = self.store.get_or_create(session_id)
            logger.info("Turn at step '%s'", session.step.value)
            try:
                response = await self._route(session, message)
            except Exception:
                logger.exception("Turn failed at step '%s'", session.step.value)
                response = TurnResponse.text(APOLOGY)

        session.add_message("user", message)
        session.add_message("assistant", response.reply.content)
        return response

    def clear_session(self, session_id: str) -> bool:
        """Drop all state for a session; returns False if it did not exist."""
        return self.store.clear(session_id)

    async def complete_payment(self, session_id: str, token: str) -> TurnResponse:
        """
        Attach a tokenized card, check out, and close the session.

        The checkout summary shows subtotal, tax, and total in major units.
        The session is cleared only after a successful checkout.
        """
        with session_scope(session_id):
            return await self._checkout(session_id, token)

    async def _checkout(self, session_id: str, token: str) -> TurnResponse:
        session = self.store.get(session_id)
        if session is None or not session.booking.cart_id:
            return TurnResponse.text(NO_ACTIVE_BOOKING)
        cart_id = session.booking.cart_id

        attached = await self.gateway.invoke(
            catalog.ADD_PAYMENT_METHOD, {"cartId": cart_id, "token": token, "select": True}
        )
        if not attached.ok:
            return TurnResponse.text(PAYMENT_FAILED)

        checkout = await self.gateway.invoke(catalog.CHECKOUT, {"cartId": cart_id})
        if not checkout.ok:
            return TurnResponse.text(PAYMENT_FAILED)
        self.extractor.merge(checkout, session)

        subtotal = tax = total = None
        for kind, result in decode_tool_output(checkout.payload):
            if kind == catalog.CHECKOUT and isinstance(result, CartResult) and result.cart and result.cart.summary:
                summary = result.cart.summary
                subtotal = minor_to_major(summary.subtotal)
                tax = minor_to_major(summary.taxAmount)
                total = minor_to_major(summary.total)
                break

        logger.info("Checkout completed for cart %s", cart_id)
        self.clear_session(session_id)
        return TurnResponse.text(build_checkout_summary(subtotal, tax, total, self.currency_symbol))

    async def _route(self, session: BookingSession, message: str) -> TurnResponse:
        machine = BookingStateMachine(session)

        if is_reset(message):
            machine.reset()
            return await self.flow.start(session)

        step = session.step
        if step == BookingStep.CANCELLED:
            machine.reset()
            return await self.flow.handle(session, message)

        if step == BookingStep.SUMMARY_READY:
            intent = detect_intent(message)
            if intent == Intent.CONFIRM:
                machine.confirm()
                return await self._assistant_turn(session, message)
            if intent == Intent.DECLINE:
                machine.decline()
                return TurnResponse.text(RESTART_HINT)
            return TurnResponse.text(build_summary(session.booking, self.currency_symbol))

        if step == BookingStep.CONFIRMED:
            return await self._assistant_turn(session, message)

        return await self.flow.handle(session, message)

    async def _assistant_turn(self, session: BookingSession, message: str) -> TurnResponse:
        """Run one assistant job on the session's thread and resolve its outcome."""
        try:
            thread_id = await self.threads.post_message(session, message)
            job = await self.model.create_job(
                thread_id, build_assistant_instructions(session.booking, session.step)
            )
        except Exception as exc:
            logger.warning("Could not start assistant job: %s", exc)
            return TurnResponse.text(APOLOGY)

        job = await self.poller.await_terminal(thread_id, job.id, initial=job)
        if job.requires_action:
            outcome = await self.tool_loop.drive(session, job)
            if isinstance(outcome, TurnResponse):
                return outcome
            job = outcome

        if job.status == JobStatus.COMPLETED:
            try:
                reply = await self.model.latest_reply(thread_id)
            except Exception as exc:
                logger.warning("Could not read assistant reply: %s", exc)
                return TurnResponse.text(APOLOGY)
            return TurnResponse.text(reply or APOLOGY)

        if job.status in _FAILED_STATUSES:
            logger.warning("Assistant job %s ended as %s: %s", job.id, job.status.value, job.last_error)
            return TurnResponse.text(APOLOGY)

        logger.warning("Assistant job %s did not settle (status %s)", job.id, job.status.value)
        return TurnResponse.text(TRY_AGAIN_LATER)
