"""
Bounded tool-call loop for jobs in the requires-action state.

Each iteration executes the job's tool calls sequentially, merges every
result into the session's booking state, submits all outputs in one batch,
and polls the job again. The payment-ready tool short-circuits the loop:
once it has run, the user is handed a pay button instead of another
assistant message.
"""

from datetime import date, timedelta
from typing import Any, Callable, Optional, Union

from booking_orchestrator.adapters.base import LanguageModel
from booking_orchestrator.config import settings
from booking_orchestrator.conversation.state_extractor import StateExtractor
from booking_orchestrator.logging_context import get_session_logger
from booking_orchestrator.prompts.prompt_templates import build_payment_ready
from booking_orchestrator.runs.poller import RunPoller
from booking_orchestrator.schemas.job_schema import JobStatus, PendingJob, ToolOutput
from booking_orchestrator.schemas.reply_schema import (
    FrontendAction,
    FrontendActionType,
    Reply,
    TurnResponse,
)
from booking_orchestrator.schemas.session_schema import BookingSession, BookingState
from booking_orchestrator.schemas.tool_schema import ToolEnvelope
from booking_orchestrator.tools import catalog
from booking_orchestrator.tools.gateway import ToolGateway
from booking_orchestrator.utils import format_amount, normalize_bookable_time_id

logger = get_session_logger(__name__)


def prepare_arguments(
    tool_name: str,
    arguments: dict[str, Any],
    booking: BookingState,
    today: Optional[date] = None,
    date_search_days: Optional[int] = None,
) -> dict[str, Any]:
    """
    Reconcile model-supplied arguments with the session's booking state.

    * Any cart reference that differs from ``booking.cart_id`` is rewritten.
    * Declared identifier arguments the model left out are filled in.
    * ``bookableTimeId`` is normalized to the ``t_`` form.
    * ``cartBookableDates`` gets a default search window.
    """
    args = dict(arguments)

    if booking.cart_id:
        cart_keys = set(catalog.CART_ARGUMENT_KEYS)
        if tool_name in catalog.TOOL_CART_ARGUMENT:
            cart_keys.add(catalog.TOOL_CART_ARGUMENT[tool_name])
        for key, value in list(args.items()):
            is_cart_ref = key in cart_keys or (
                isinstance(value, str) and value.startswith(catalog.CART_URN_PREFIX)
            )
            if is_cart_ref and value and value != booking.cart_id:
                logger.info("Rewriting %s.%s cart id %s -> %s", tool_name, key, value, booking.cart_id)
                args[key] = booking.cart_id

    declared = catalog.declared_arguments(tool_name)
    fill = {
        "cartId": booking.cart_id,
        "locationId": booking.location_id,
        "serviceId": booking.service_id,
        "itemId": booking.selected_item_id,
        "bookableTimeId": booking.bookable_time_id,
        "staffVariantId": booking.staff_variant_id,
    }
    if tool_name in catalog.TOOL_CART_ARGUMENT:
        fill[catalog.TOOL_CART_ARGUMENT[tool_name]] = booking.cart_id
    for key, value in fill.items():
        if key in declared and not args.get(key) and value:
            args[key] = value

    if isinstance(args.get("bookableTimeId"), str):
        normalized = normalize_bookable_time_id(args["bookableTimeId"])
        if normalized:
            args["bookableTimeId"] = normalized

    if tool_name == catalog.BOOKABLE_DATES:
        today = today or date.today()
        days = settings.matching.date_search_days if date_search_days is None else date_search_days
        args.setdefault("searchRangeLower", today.isoformat())
        args.setdefault("searchRangeUpper", (today + timedelta(days=days)).isoformat())

    return args


def payment_ready_reply(booking: BookingState, envelope: ToolEnvelope) -> TurnResponse:
    """Build the reply that asks the frontend to show a pay button."""
    total = booking.total_amount
    if total is None and isinstance(envelope.data, dict):
        total = envelope.data.get("total")
    symbol = settings.booking.currency_symbol
    params: dict[str, Any] = {"cartId": booking.cart_id, "amount": total}
    if total is not None:
        params["formattedAmount"] = format_amount(total, symbol)
    action = FrontendAction(
        type=FrontendActionType.SHOW_PAY_BUTTON,
        url=settings.booking.checkout_url,
        params=params,
    )
    return TurnResponse(reply=Reply(content=build_payment_ready(total, symbol), frontend_action=action))


class ToolCallLoop:
    """Executes requested tool calls until the job settles or the budget runs out."""

    def __init__(
        self,
        model: LanguageModel,
        gateway: ToolGateway,
        extractor: StateExtractor,
        poller: RunPoller,
        max_iterations: Optional[int] = None,
        payment_ready_tool: Optional[str] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._model = model
        self._gateway = gateway
        self._extractor = extractor
        self._poller = poller
        self.max_iterations = settings.polling.max_tool_iterations if max_iterations is None else max_iterations
        self.payment_ready_tool = payment_ready_tool or settings.booking.payment_ready_tool
        self._today = today

    async def drive(self, session: BookingSession, job: PendingJob) -> Union[TurnResponse, PendingJob]:
        """
        Service ``job`` while it requires action.

        Returns:
            A pay-button ``TurnResponse`` if the payment-ready tool ran,
            otherwise the last observed job (terminal, or still pending
            when the iteration budget is exhausted).
        """
        iterations = 0
        while job.requires_action and iterations < self.max_iterations:
            iterations += 1
            outputs: list[ToolOutput] = []

            for call in job.tool_calls:
                arguments = prepare_arguments(call.name, call.arguments, session.booking, today=self._today())
                envelope = await self._gateway.invoke(call.name, arguments)
                if envelope.ok:
                    self._extractor.merge(envelope, session)
                    if call.name == self.payment_ready_tool:
                        logger.info("Payment-ready tool %s completed; showing pay button", call.name)
                        return payment_ready_reply(session.booking, envelope)
                outputs.append(ToolOutput(tool_call_id=call.id, output=envelope.to_output()))

            try:
                submitted = await self._model.submit_tool_outputs(job.thread_id, job.id, outputs)
            except Exception as exc:
                logger.warning("Submitting %d tool output(s) failed: %s", len(outputs), exc)
                return job.model_copy(update={"status": JobStatus.FAILED, "last_error": str(exc)})

            job = await self._poller.await_terminal(submitted.thread_id, submitted.id, initial=submitted)

        if job.requires_action:
            logger.warning("Tool loop exhausted after %d iteration(s)", iterations)
        return job
