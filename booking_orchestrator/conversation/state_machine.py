"""
Finite state machine for the booking step sequence.

Every step change goes through an explicit transition with a trigger, so
a session can only move along the booking path:

    NEW -> LOCATION_PENDING -> CART_CREATED -> SERVICE_PENDING ->
    SERVICE_SELECTED -> DATE_PENDING -> DATE_SELECTED -> TIME_PENDING ->
    TIME_SELECTED -> [STAFF_PENDING -> STAFF_SELECTED] -> SUMMARY_READY ->
    CONFIRMED | CANCELLED

``ASK_*`` triggers re-enter a pending step when the user must be prompted
again. Reset returns to NEW from any step.

Usage:
    machine = BookingStateMachine(session)
    machine.transition(BookingTrigger.START_BOOKING)
    machine.set_cart("urn:blvd:Cart:1")
    assert machine.current_step == BookingStep.CART_CREATED
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from booking_orchestrator.schemas.session_schema import BookingSession, BookingState, BookingStep

logger = logging.getLogger(__name__)


class BookingTrigger(str, Enum):
    """Events that cause step transitions."""
    START_BOOKING = "start_booking"
    ASK_LOCATION = "ask_location"
    CART_CREATED = "cart_created"
    ASK_SERVICE = "ask_service"
    SERVICE_ADDED = "service_added"
    ASK_DATE = "ask_date"
    DATE_CHOSEN = "date_chosen"
    ASK_TIME = "ask_time"
    TIME_RESERVED = "time_reserved"
    ASK_STAFF = "ask_staff"
    STAFF_ASSIGNED = "staff_assigned"
    SUMMARY_SHOWN = "summary_shown"
    USER_CONFIRMED = "user_confirmed"
    USER_DECLINED = "user_declined"


@dataclass
class Transition:
    """A single valid step transition."""
    from_step: BookingStep
    to_step: BookingStep
    trigger: BookingTrigger


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current step."""


# Booking fields owned by each step; rewinding to a step clears it and
# everything after it.
_STEP_FIELDS: list[tuple[BookingStep, tuple[str, ...]]] = [
    (BookingStep.LOCATION_PENDING, ("location_id", "location_name", "cart_id", "promotion_offer_id", "total_amount")),
    (BookingStep.SERVICE_PENDING, ("service_id", "service_name", "selected_item_id")),
    (BookingStep.DATE_PENDING, ("date",)),
    (BookingStep.TIME_PENDING, ("time", "bookable_time_id")),
    (BookingStep.STAFF_PENDING, ("staff_variant_id", "staff_name")),
]


class BookingStateMachine:
    """
    Step controller bound to one session.

    Flows never assign ``session.step`` or booking fields directly; they
    call the mutation methods here, which fire the matching trigger first
    and only record data once the transition has been accepted.
    """

    TRANSITIONS: list[Transition] = [
        # --- Location ---
        Transition(BookingStep.NEW, BookingStep.LOCATION_PENDING, BookingTrigger.START_BOOKING),
        Transition(BookingStep.LOCATION_PENDING, BookingStep.LOCATION_PENDING, BookingTrigger.ASK_LOCATION),
        Transition(BookingStep.NEW, BookingStep.CART_CREATED, BookingTrigger.CART_CREATED),
        Transition(BookingStep.LOCATION_PENDING, BookingStep.CART_CREATED, BookingTrigger.CART_CREATED),

        # --- Service ---
        Transition(BookingStep.CART_CREATED, BookingStep.SERVICE_PENDING, BookingTrigger.ASK_SERVICE),
        Transition(BookingStep.SERVICE_PENDING, BookingStep.SERVICE_PENDING, BookingTrigger.ASK_SERVICE),
        Transition(BookingStep.CART_CREATED, BookingStep.SERVICE_SELECTED, BookingTrigger.SERVICE_ADDED),
        Transition(BookingStep.SERVICE_PENDING, BookingStep.SERVICE_SELECTED, BookingTrigger.SERVICE_ADDED),

        # --- Date ---
        Transition(BookingStep.SERVICE_SELECTED, BookingStep.DATE_PENDING, BookingTrigger.ASK_DATE),
        Transition(BookingStep.DATE_PENDING, BookingStep.DATE_PENDING, BookingTrigger.ASK_DATE),
        Transition(BookingStep.SERVICE_SELECTED, BookingStep.DATE_SELECTED, BookingTrigger.DATE_CHOSEN),
        Transition(BookingStep.DATE_PENDING, BookingStep.DATE_SELECTED, BookingTrigger.DATE_CHOSEN),

        # --- Time ---
        Transition(BookingStep.DATE_SELECTED, BookingStep.TIME_PENDING, BookingTrigger.ASK_TIME),
        Transition(BookingStep.TIME_PENDING, BookingStep.TIME_PENDING, BookingTrigger.ASK_TIME),
        Transition(BookingStep.DATE_SELECTED, BookingStep.TIME_SELECTED, BookingTrigger.TIME_RESERVED),
        Transition(BookingStep.TIME_PENDING, BookingStep.TIME_SELECTED, BookingTrigger.TIME_RESERVED),

        # --- Staff (optional) ---
        Transition(BookingStep.TIME_SELECTED, BookingStep.STAFF_PENDING, BookingTrigger.ASK_STAFF),
        Transition(BookingStep.STAFF_PENDING, BookingStep.STAFF_PENDING, BookingTrigger.ASK_STAFF),
        Transition(BookingStep.TIME_SELECTED, BookingStep.STAFF_SELECTED, BookingTrigger.STAFF_ASSIGNED),
        Transition(BookingStep.STAFF_PENDING, BookingStep.STAFF_SELECTED, BookingTrigger.STAFF_ASSIGNED),

        # --- Summary ---
        Transition(BookingStep.TIME_SELECTED, BookingStep.SUMMARY_READY, BookingTrigger.SUMMARY_SHOWN),
        Transition(BookingStep.STAFF_PENDING, BookingStep.SUMMARY_READY, BookingTrigger.SUMMARY_SHOWN),
        Transition(BookingStep.STAFF_SELECTED, BookingStep.SUMMARY_READY, BookingTrigger.SUMMARY_SHOWN),
        Transition(BookingStep.SUMMARY_READY, BookingStep.SUMMARY_READY, BookingTrigger.SUMMARY_SHOWN),

        # --- Confirmation gate ---
        Transition(BookingStep.SUMMARY_READY, BookingStep.CONFIRMED, BookingTrigger.USER_CONFIRMED),
        Transition(BookingStep.SUMMARY_READY, BookingStep.CANCELLED, BookingTrigger.USER_DECLINED),
    ]

    def __init__(self, session: BookingSession) -> None:
        self.session = session

    @property
    def current_step(self) -> BookingStep:
        return self.session.step

    @property
    def booking(self) -> BookingState:
        return self.session.booking

    def transition(self, trigger: BookingTrigger) -> BookingStep:
        """
        Execute a step transition.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if t.from_step == self.session.step and t.trigger == trigger:
                old_step = self.session.step
                self.session.step = t.to_step
                logger.debug(
                    "Step transition: %s -> %s (trigger: %s)",
                    old_step.value, t.to_step.value, trigger.value,
                )
                return t.to_step

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self.session.step.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def can(self, trigger: BookingTrigger) -> bool:
        return trigger in self.get_valid_triggers()

    def get_valid_triggers(self) -> list[BookingTrigger]:
        """Return all triggers valid from the current step."""
        return [t.trigger for t in self.TRANSITIONS if t.from_step == self.session.step]

    def is_terminal(self) -> bool:
        return self.session.step in (BookingStep.CONFIRMED, BookingStep.CANCELLED)

    # ------------------------------------------------------------------ #
    # Session mutation
    # ------------------------------------------------------------------ #

    def reset(self) -> None:
        """Return to NEW from any step, dropping booking data and the thread."""
        self.session.reset()
        logger.info("Session reset to '%s'", BookingStep.NEW.value)

    def rewind_to(self, step: BookingStep) -> None:
        """
        Move back to an earlier pending step so the user can change a choice.

        Booking fields collected at ``step`` and after it are cleared.
        """
        clearing = False
        for pending, fields in _STEP_FIELDS:
            clearing = clearing or pending == step
            if clearing:
                for name in fields:
                    setattr(self.booking, name, None)
        if not clearing:
            raise InvalidTransitionError(f"Cannot rewind to '{step.value}'")
        self.session.cached_times = []
        self.session.step = step
        logger.info("Rewound session to '%s'", step.value)

    def set_location(self, location_id: str, name: Optional[str] = None) -> None:
        """Record the chosen location; the step advances when a cart is created for it."""
        self.booking.location_id = location_id
        self.booking.location_name = name

    def set_cart(self, cart_id: str) -> None:
        self.transition(BookingTrigger.CART_CREATED)
        self.booking.cart_id = cart_id

    def set_service(self, service_id: str, name: Optional[str], selected_item_id: Optional[str]) -> None:
        self.transition(BookingTrigger.SERVICE_ADDED)
        self.booking.service_id = service_id
        self.booking.service_name = name
        if selected_item_id:
            self.booking.selected_item_id = selected_item_id

    def set_date(self, value: str) -> None:
        self.transition(BookingTrigger.DATE_CHOSEN)
        self.booking.date = value

    def set_time(self, value: str, bookable_time_id: Optional[str]) -> None:
        self.transition(BookingTrigger.TIME_RESERVED)
        self.booking.time = value
        if bookable_time_id:
            self.booking.bookable_time_id = bookable_time_id
        self.session.cached_times = []

    def set_staff(self, staff_variant_id: str, name: Optional[str]) -> None:
        self.transition(BookingTrigger.STAFF_ASSIGNED)
        self.booking.staff_variant_id = staff_variant_id
        self.booking.staff_name = name

    def show_summary(self) -> None:
        self.transition(BookingTrigger.SUMMARY_SHOWN)

    def confirm(self) -> None:
        self.transition(BookingTrigger.USER_CONFIRMED)

    def decline(self) -> None:
        self.transition(BookingTrigger.USER_DECLINED)
