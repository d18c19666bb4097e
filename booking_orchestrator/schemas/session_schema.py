"""Per-session booking state and conversation history."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class BookingStep(str, Enum):
    """Where a session is in the booking sequence."""
    NEW = "new"
    LOCATION_PENDING = "location_pending"
    CART_CREATED = "cart_created"
    SERVICE_PENDING = "service_pending"
    SERVICE_SELECTED = "service_selected"
    DATE_PENDING = "date_pending"
    DATE_SELECTED = "date_selected"
    TIME_PENDING = "time_pending"
    TIME_SELECTED = "time_selected"
    STAFF_PENDING = "staff_pending"
    STAFF_SELECTED = "staff_selected"
    SUMMARY_READY = "summary_ready"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


@dataclass
class ChatMessage:
    """One role-tagged entry of the conversation history."""
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class BookingState:
    """
    Structured booking data accumulated across turns.

    ``service_id`` is the catalog service; ``selected_item_id`` is the
    cart line created when that service is attached to the cart. The two
    are never interchangeable.
    """
    location_id: Optional[str] = None
    location_name: Optional[str] = None
    service_id: Optional[str] = None
    service_name: Optional[str] = None
    selected_item_id: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    bookable_time_id: Optional[str] = None
    staff_variant_id: Optional[str] = None
    staff_name: Optional[str] = None
    cart_id: Optional[str] = None
    promotion_offer_id: Optional[str] = None
    client_email: Optional[str] = None
    total_amount: Optional[float] = None

    def collected(self) -> dict[str, Any]:
        """Return only the fields that have been set."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass
class BookingSession:
    """
    Everything the orchestrator keeps for one session key.

    ``thread_id`` and ``message_count`` belong to the thread lifecycle and
    are only changed by the thread registry, never by state extraction.
    """
    session_id: str
    history: list[ChatMessage] = field(default_factory=list)
    booking: BookingState = field(default_factory=BookingState)
    step: BookingStep = BookingStep.NEW
    thread_id: Optional[str] = None
    message_count: int = 0
    cached_times: list[dict[str, Any]] = field(default_factory=list)

    def add_message(self, role: str, content: str) -> None:
        self.history.append(ChatMessage(role=role, content=content))

    def reset(self) -> None:
        """Drop history, booking state, and the conversation thread."""
        self.history.clear()
        self.booking = BookingState()
        self.step = BookingStep.NEW
        self.thread_id = None
        self.message_count = 0
        self.cached_times = []
