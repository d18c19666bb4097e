"""
Flow drivers for the pre-confirmation part of a booking.

Two strategies share one interface and the same step handlers:

* ``StepValidatorFlow`` ("steps") treats each message as the answer to the
  current step. The value is validated against live options; a valid
  value runs the step's side effect (cart creation, service attachment,
  slot reservation, staff assignment) and the flow auto-advances to
  prompt for the next step.
* ``ActionRoutedFlow`` ("actions") asks the LLM for a structured
  ``ActionDecision``, positions the machine on the step the action
  targets, and runs that step's handler with the model-extracted value.
  Every entity the model names is re-validated against backend data.

Flows mutate sessions only through ``BookingStateMachine``.
"""

import json
import re
from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from booking_orchestrator.adapters.base import LanguageModel
from booking_orchestrator.config import settings
from booking_orchestrator.conversation.state_extractor import StateExtractor
from booking_orchestrator.conversation.state_machine import (
    BookingStateMachine,
    BookingTrigger,
    InvalidTransitionError,
)
from booking_orchestrator.errors import MalformedModelOutput, MissingPrerequisite
from booking_orchestrator.logging_context import get_session_logger
from booking_orchestrator.prompts.prompt_templates import (
    APOLOGY,
    build_greeting,
    build_missing_prerequisite,
    build_options_prompt,
    build_service_prompt,
    build_summary,
)
from booking_orchestrator.prompts.system_prompts import FALLBACK_PROMPT, build_router_prompt
from booking_orchestrator.schemas.decision_schema import ActionDecision, BookingAction
from booking_orchestrator.schemas.reply_schema import TurnResponse
from booking_orchestrator.schemas.session_schema import BookingSession, BookingStep
from booking_orchestrator.tools import catalog
from booking_orchestrator.tools.gateway import ToolGateway
from booking_orchestrator.tools.option_matcher import OptionMatcher
from booking_orchestrator.utils import (
    normalize_bookable_time_id,
    normalize_date,
    parse_time_to_hhmm,
)

logger = get_session_logger(__name__)

_SLOT_CLOCK = re.compile(r"T(\d{2}):(\d{2})")
_JSON_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")

ANY_STAFF = frozenset({"any", "anyone", "no preference", "whoever", "doesn't matter"})
HISTORY_WINDOW = 10

# The step order used for positioning, prerequisites, and rewinding.
STEP_ORDER: list[BookingStep] = [
    BookingStep.NEW,
    BookingStep.LOCATION_PENDING,
    BookingStep.CART_CREATED,
    BookingStep.SERVICE_PENDING,
    BookingStep.SERVICE_SELECTED,
    BookingStep.DATE_PENDING,
    BookingStep.DATE_SELECTED,
    BookingStep.TIME_PENDING,
    BookingStep.TIME_SELECTED,
    BookingStep.STAFF_PENDING,
    BookingStep.STAFF_SELECTED,
    BookingStep.SUMMARY_READY,
]

# Entity name -> (step before its prompt, its pending step).
ENTITY_STEPS: dict[str, tuple[BookingStep, BookingStep]] = {
    "location": (BookingStep.NEW, BookingStep.LOCATION_PENDING),
    "service": (BookingStep.CART_CREATED, BookingStep.SERVICE_PENDING),
    "date": (BookingStep.SERVICE_SELECTED, BookingStep.DATE_PENDING),
    "time": (BookingStep.DATE_SELECTED, BookingStep.TIME_PENDING),
    "staff": (BookingStep.TIME_SELECTED, BookingStep.STAFF_PENDING),
}


class _Halt(Exception):
    """Raised by a step handler to end the turn with ``reply``."""

    def __init__(self, reply: str) -> None:
        super().__init__(reply)
        self.reply = reply


def slot_label(slot: dict[str, Any]) -> str:
    """Human-readable HH:MM label for a bookable time slot."""
    match = _SLOT_CLOCK.search(str(slot.get("startTime") or ""))
    if match:
        return f"{match.group(1)}:{match.group(2)}"
    return str(slot.get("id", ""))


def missing_entity(step: BookingStep) -> str:
    """Name the first piece of booking data still needed at ``step``."""
    rank = STEP_ORDER.index(step) if step in STEP_ORDER else 0
    for entity, (_, pending) in ENTITY_STEPS.items():
        if entity != "staff" and rank <= STEP_ORDER.index(pending):
            return entity
    return "time"


class FlowDriver(ABC):
    """Common interface and step handlers for both flow strategies."""

    name: str = ""

    def __init__(
        self,
        gateway: ToolGateway,
        extractor: Optional[StateExtractor] = None,
        matcher: Optional[OptionMatcher] = None,
        model: Optional[LanguageModel] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.gateway = gateway
        self.extractor = extractor or StateExtractor()
        self.matcher = matcher or OptionMatcher()
        self.model = model
        self._today = today
        self.staff_selection = settings.matching.staff_selection
        self.accept_unlisted_time = settings.matching.accept_unlisted_time
        self.currency_symbol = settings.booking.currency_symbol

    @abstractmethod
    async def handle(self, session: BookingSession, message: str) -> TurnResponse:
        """Process one user message for a session that has not reached the summary."""

    async def start(self, session: BookingSession) -> TurnResponse:
        """Open a fresh booking by prompting for a location."""
        return await self._run(BookingStateMachine(session), None)

    async def _run(self, machine: BookingStateMachine, value: Optional[str], quiet: bool = False) -> TurnResponse:
        """Drive step handlers from the current step until one needs user input."""
        try:
            return TurnResponse.text(await self._advance(machine, value, quiet))
        except _Halt as halt:
            return TurnResponse.text(halt.reply)
        except MissingPrerequisite as exc:
            logger.info("Missing prerequisite: %s", exc.missing)
            return TurnResponse.text(build_missing_prerequisite(exc.missing))
        except InvalidTransitionError as exc:
            logger.warning("Rejected step change: %s", exc)
            return TurnResponse.text(APOLOGY)

    async def _advance(self, machine: BookingStateMachine, value: Optional[str], quiet: bool) -> str:
        handlers: dict[BookingStep, Callable[..., Awaitable[Optional[str]]]] = {
            BookingStep.NEW: self._location_step,
            BookingStep.LOCATION_PENDING: self._location_step,
            BookingStep.CART_CREATED: self._service_step,
            BookingStep.SERVICE_PENDING: self._service_step,
            BookingStep.SERVICE_SELECTED: self._date_step,
            BookingStep.DATE_PENDING: self._date_step,
            BookingStep.DATE_SELECTED: self._time_step,
            BookingStep.TIME_PENDING: self._time_step,
            BookingStep.TIME_SELECTED: self._staff_step,
            BookingStep.STAFF_PENDING: self._staff_step,
            BookingStep.STAFF_SELECTED: self._summary_step,
            BookingStep.SUMMARY_READY: self._summary_step,
        }
        for _ in range(len(handlers)):
            handler = handlers.get(machine.current_step)
            if handler is None:
                raise InvalidTransitionError(f"No flow handler for '{machine.current_step.value}'")
            reply = await handler(machine, value, quiet)
            if reply is not None:
                return reply
            value, quiet = None, False
        raise InvalidTransitionError("Flow did not settle on a step")

    async def _invoke(self, tool_name: str, arguments: dict[str, Any]) -> Any:
        envelope = await self.gateway.invoke(tool_name, arguments)
        if not envelope.ok:
            raise _Halt(APOLOGY)
        return envelope

    def _merge(self, machine: BookingStateMachine, envelope: Any) -> None:
        self.extractor.merge(envelope, machine.session)

    @staticmethod
    def _require(value: Optional[str], missing: str) -> str:
        if not value:
            raise MissingPrerequisite(missing)
        return value

    # ------------------------------------------------------------------ #
    # Step handlers: return a reply to stop, or None once the step advanced
    # ------------------------------------------------------------------ #

    async def _location_step(self, machine: BookingStateMachine, value: Optional[str], quiet: bool) -> Optional[str]:
        if machine.current_step == BookingStep.NEW:
            machine.transition(BookingTrigger.START_BOOKING)
            quiet = True

        envelope = await self._invoke(catalog.GET_LOCATIONS, {})
        locations = envelope.data or []
        result = self.matcher.match(locations, value)
        if not result.valid:
            machine.transition(BookingTrigger.ASK_LOCATION)
            if quiet or not value:
                return build_greeting(settings.booking.business_name, result.options)
            return build_options_prompt("location", result.options, value)

        machine.set_location(result.id, result.name)
        await self._open_cart(machine)
        return None

    async def _open_cart(self, machine: BookingStateMachine) -> None:
        booking = machine.booking
        created = await self._invoke(catalog.CREATE_CART, {"locationId": booking.location_id})
        self._merge(machine, created)
        cart_id = (created.data or {}).get("cartId") or booking.cart_id
        if not cart_id:
            logger.warning("Cart creation returned no cart id")
            raise _Halt(APOLOGY)
        machine.set_cart(cart_id)
        logger.info("Cart %s created for location %s", cart_id, booking.location_name)

    async def _service_step(self, machine: BookingStateMachine, value: Optional[str], quiet: bool) -> Optional[str]:
        cart_id = self._require(machine.booking.cart_id, "location")
        envelope = await self._invoke(catalog.AVAILABLE_SERVICES, {"cartId": cart_id})
        services = envelope.data or []
        result = self.matcher.match(services, value)
        if not result.valid:
            machine.transition(BookingTrigger.ASK_SERVICE)
            if value and not quiet:
                return build_options_prompt("service", result.options, value)
            return build_service_prompt(services, self.currency_symbol)

        added = await self._invoke(catalog.ADD_SERVICE, {"cartId": cart_id, "serviceId": result.id})
        self._merge(machine, added)
        selected_item_id = (added.data or {}).get("selectedItemId") or machine.booking.selected_item_id
        machine.set_service(result.id, result.name, selected_item_id)
        return None

    async def _date_step(self, machine: BookingStateMachine, value: Optional[str], quiet: bool) -> Optional[str]:
        booking = machine.booking
        cart_id = self._require(booking.cart_id, "location")
        self._require(booking.service_id, "service")
        today = self._today()
        envelope = await self._invoke(catalog.BOOKABLE_DATES, {
            "cartId": cart_id,
            "locationId": booking.location_id,
            "searchRangeLower": today.isoformat(),
            "searchRangeUpper": (today + timedelta(days=settings.matching.date_search_days)).isoformat(),
        })
        candidates = [{"id": d, "name": d} for d in envelope.data or []]
        normalized = normalize_date(value, today=today)
        result = self.matcher.match(candidates, normalized or value)
        if not result.valid:
            machine.transition(BookingTrigger.ASK_DATE)
            return build_options_prompt("date", result.options, None if quiet else value)

        machine.set_date(result.id)
        return None

    async def _fetch_slots(self, machine: BookingStateMachine) -> list[dict[str, Any]]:
        session, booking = machine.session, machine.booking
        if session.cached_times:
            return session.cached_times
        envelope = await self.gateway.invoke(catalog.BOOKABLE_TIMES, {
            "cartId": booking.cart_id,
            "locationId": booking.location_id,
            "serviceId": booking.service_id,
            "searchDate": booking.date,
        })
        if not envelope.ok:
            return []
        slots = [{**slot, "name": slot_label(slot)} for slot in envelope.data or []]
        session.cached_times = slots
        return slots

    async def _time_step(self, machine: BookingStateMachine, value: Optional[str], quiet: bool) -> Optional[str]:
        booking = machine.booking
        cart_id = self._require(booking.cart_id, "location")
        self._require(booking.date, "date")
        slots = await self._fetch_slots(machine)
        result = self.matcher.match_time(slots, value)

        if result.valid:
            clock = result.name
            bookable_time_id = normalize_bookable_time_id(result.id) or result.id
        elif not slots and value and self.accept_unlisted_time and parse_time_to_hhmm(value):
            clock = parse_time_to_hhmm(value)
            bookable_time_id = normalize_bookable_time_id(f"{booking.date}T{clock}")
            logger.info("No slot list available; accepting unlisted time %s", clock)
        else:
            machine.transition(BookingTrigger.ASK_TIME)
            return build_options_prompt("time", result.options, None if quiet else value)

        reserved = await self.gateway.invoke(
            catalog.RESERVE_SLOT, {"cartId": cart_id, "bookableTimeId": bookable_time_id}
        )
        if not reserved.ok:
            machine.session.cached_times = []
            machine.transition(BookingTrigger.ASK_TIME)
            return "Sorry, that time could not be reserved. Please choose another time."
        self._merge(machine, reserved)
        machine.set_time(clock, bookable_time_id)
        return None

    async def _staff_step(self, machine: BookingStateMachine, value: Optional[str], quiet: bool) -> Optional[str]:
        if not self.staff_selection:
            return await self._summary_step(machine, None, quiet)

        booking = machine.booking
        cart_id = self._require(booking.cart_id, "location")
        envelope = await self.gateway.invoke(catalog.STAFF_VARIANTS, {
            "id": cart_id,
            "itemId": booking.selected_item_id,
            "bookableTimeId": booking.bookable_time_id,
        })
        staff = (envelope.data or []) if envelope.ok else []
        if not staff:
            logger.info("No staff variants offered; skipping staff selection")
            return await self._summary_step(machine, None, quiet)

        if value and value.strip().casefold() in ANY_STAFF:
            value = str(staff[0].get("id"))
        result = self.matcher.match(staff, value)
        if not result.valid:
            machine.transition(BookingTrigger.ASK_STAFF)
            return build_options_prompt("staff member", result.options, None if quiet else value)

        assigned = await self._invoke(catalog.ASSIGN_STAFF, {
            "cartId": cart_id,
            "itemId": booking.selected_item_id,
            "staffVariantId": result.id,
        })
        self._merge(machine, assigned)
        machine.set_staff(result.id, result.name)
        return None

    async def _summary_step(self, machine: BookingStateMachine, value: Optional[str], quiet: bool) -> str:
        if machine.booking.cart_id:
            envelope = await self.gateway.invoke(catalog.CART_SUMMARY, {"cartId": machine.booking.cart_id})
            if envelope.ok:
                self._merge(machine, envelope)
        machine.show_summary()
        return build_summary(machine.booking, self.currency_symbol)


class StepValidatorFlow(FlowDriver):
    """Rigid flow: every message answers the current step."""

    name = "steps"

    async def handle(self, session: BookingSession, message: str) -> TurnResponse:
        return await self._run(BookingStateMachine(session), message.strip() or None)


class ActionRoutedFlow(FlowDriver):
    """LLM-routed flow: the model picks the next action, the flow validates and executes it."""

    name = "actions"

    _ENTITY_ACTIONS: dict[BookingAction, str] = {
        BookingAction.FETCH_LOCATIONS: "location",
        BookingAction.CHOOSE_LOCATION: "location",
        BookingAction.CREATE_CART: "location",
        BookingAction.FETCH_SERVICES: "service",
        BookingAction.CHOOSE_SERVICE: "service",
        BookingAction.ADD_SERVICE: "service",
        BookingAction.FETCH_DATES: "date",
        BookingAction.CHOOSE_DATE: "date",
        BookingAction.FETCH_TIMES: "time",
        BookingAction.CHOOSE_TIME: "time",
        BookingAction.RESERVE_SLOT: "time",
        BookingAction.FETCH_STAFF: "staff",
        BookingAction.CHOOSE_STAFF: "staff",
    }

    async def handle(self, session: BookingSession, message: str) -> TurnResponse:
        if self.model is None:
            raise ValueError("ActionRoutedFlow requires a language model")
        machine = BookingStateMachine(session)
        try:
            decision = await self.decide(session, message)
        except MalformedModelOutput as exc:
            logger.warning("Malformed action decision: %s", exc)
            return TurnResponse.text(await self._fallback_completion(session, message))
        except Exception as exc:
            logger.warning("Action decision failed: %s", exc)
            return TurnResponse.text(APOLOGY)

        logger.info("Action decision: %s", decision.action.value)
        return await self.execute(machine, decision, session, message)

    async def decide(self, session: BookingSession, message: str) -> ActionDecision:
        """Ask the model for the next action and validate the JSON it returns."""
        messages = [{"role": "system", "content": build_router_prompt(session.booking, session.step)}]
        messages += [m.to_dict() for m in session.history[-HISTORY_WINDOW:]]
        messages.append({"role": "user", "content": message})
        raw = await self.model.decide(messages)
        return parse_decision(raw)

    async def execute(
        self,
        machine: BookingStateMachine,
        decision: ActionDecision,
        session: BookingSession,
        message: str,
    ) -> TurnResponse:
        action = decision.action
        entity = self._ENTITY_ACTIONS.get(action)
        if entity is not None:
            value = None if action.value.startswith("fetch_") else getattr(decision.parameters, entity)
            try:
                await self._position(machine, entity)
            except MissingPrerequisite as exc:
                return TurnResponse.text(build_missing_prerequisite(exc.missing))
            except _Halt as halt:
                return TurnResponse.text(halt.reply)
            return await self._run(machine, value)

        if action in (BookingAction.GET_SUMMARY, BookingAction.CONFIRM):
            if machine.current_step not in (
                BookingStep.TIME_SELECTED, BookingStep.STAFF_PENDING, BookingStep.STAFF_SELECTED,
            ):
                return TurnResponse.text(build_missing_prerequisite(missing_entity(machine.current_step)))
            return TurnResponse.text(await self._summary_step(machine, None, False))

        # clarify and fallback: answer with the model's message when it wrote one
        if decision.message:
            return TurnResponse.text(decision.message)
        return TurnResponse.text(await self._fallback_completion(session, message))

    async def _position(self, machine: BookingStateMachine, entity: str) -> None:
        """Move the machine onto ``entity``'s step, rewinding if it was already chosen."""
        before, pending = ENTITY_STEPS[entity]
        current = machine.current_step
        if current in (before, pending):
            return
        rank = STEP_ORDER.index(current)
        if rank < STEP_ORDER.index(before):
            raise MissingPrerequisite(missing_entity(current))
        if entity == "service":
            await self._replace_cart(machine)
            return
        machine.rewind_to(pending)

    async def _replace_cart(self, machine: BookingStateMachine) -> None:
        """
        Start a new cart at the same location before a different service is added.

        The abandoned cart keeps its line item, so the old service can never
        reach the summary or the checkout total.
        """
        booking = machine.booking
        location_id, location_name, stale_cart = booking.location_id, booking.location_name, booking.cart_id
        machine.rewind_to(BookingStep.LOCATION_PENDING)
        machine.set_location(location_id, location_name)
        await self._open_cart(machine)
        logger.info("Service change: replaced cart %s with %s", stale_cart, machine.booking.cart_id)

    async def _fallback_completion(self, session: BookingSession, message: str) -> str:
        messages = [{"role": "system", "content": FALLBACK_PROMPT}]
        messages += [m.to_dict() for m in session.history[-HISTORY_WINDOW:]]
        messages.append({"role": "user", "content": message})
        try:
            text = await self.model.complete(messages)
        except Exception as exc:
            logger.warning("Fallback completion failed: %s", exc)
            return APOLOGY
        return text.strip() or APOLOGY


def parse_decision(raw: str) -> ActionDecision:
    """Parse model output into an ``ActionDecision``, tolerating code fences."""
    text = _JSON_FENCE.sub("", (raw or "").strip())
    try:
        return ActionDecision.model_validate(json.loads(text))
    except (ValueError, ValidationError) as exc:
        raise MalformedModelOutput(raw or "") from exc


# --------------------------------------------------------------------- #
# Registry
# --------------------------------------------------------------------- #

_FLOW_REGISTRY: dict[str, Callable[..., FlowDriver]] = {}


def register_flow(name: str, factory: Callable[..., FlowDriver]) -> None:
    """Register a flow factory by name."""
    _FLOW_REGISTRY[name] = factory
    logger.debug("Flow registered: %s", name)


def create_flow(name: str, **kwargs: Any) -> FlowDriver:
    """Create a flow driver by registered name.

    Raises:
        KeyError: If the flow name is not registered.
    """
    if name not in _FLOW_REGISTRY:
        registered = list(_FLOW_REGISTRY.keys())
        raise KeyError(f"Flow '{name}' not registered. Available: {registered}")
    return _FLOW_REGISTRY[name](**kwargs)


def get_registered_flows() -> list[str]:
    return list(_FLOW_REGISTRY.keys())


register_flow(StepValidatorFlow.name, StepValidatorFlow)
register_flow(ActionRoutedFlow.name, ActionRoutedFlow)
