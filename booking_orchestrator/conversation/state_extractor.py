"""
Booking state extraction from tool payloads.

Tool results are decoded into tagged variants (see
``schemas/tool_schema.decode_tool_output``) and the identifiers they carry
are folded into the session's ``BookingState``. Within a single payload
the first non-null value for each field wins.

Two invariants hold regardless of payload shape:
  * an existing cart id is only replaced by a cart-creation result
  * ``thread_id`` and ``message_count`` survive every merge untouched
"""

from typing import Any, Optional

from booking_orchestrator.logging_context import get_session_logger
from booking_orchestrator.schemas.session_schema import BookingSession, BookingState
from booking_orchestrator.schemas.tool_schema import (
    CART_CREATION_KIND,
    CART_RESULT_KEYS,
    CART_QUERY_KIND,
    FLAT_KIND,
    CartResult,
    FlatResult,
    ToolEnvelope,
    decode_tool_output,
)
from booking_orchestrator.tools.gateway import unwrap_payload
from booking_orchestrator.utils import minor_to_major, normalize_bookable_time_id

logger = get_session_logger(__name__)

_RESERVATION_KIND = "reserveCartBookableItems"


class _Findings:
    """Field values collected from one payload; first non-null wins."""

    def __init__(self) -> None:
        self.values: dict[str, Any] = {}
        self.created_cart_id: Optional[str] = None

    def offer(self, field_name: str, value: Any) -> None:
        if value is not None and field_name not in self.values:
            self.values[field_name] = value


class StateExtractor:
    """Folds identifiers from tool results into a session's booking state."""

    def merge(self, tool_output: Any, session: BookingSession) -> None:
        """Merge a tool result (envelope, raw response, or parsed payload) into ``session``."""
        payload = tool_output.payload if isinstance(tool_output, ToolEnvelope) else unwrap_payload(tool_output)

        thread_id, message_count = session.thread_id, session.message_count
        try:
            findings = self._collect(payload)
            self._apply(findings, session.booking)
        finally:
            session.thread_id, session.message_count = thread_id, message_count

    def _collect(self, payload: Any) -> _Findings:
        findings = _Findings()
        for kind, result in decode_tool_output(payload):
            if kind in CART_RESULT_KEYS or kind == CART_QUERY_KIND:
                self._collect_cart(kind, result, findings)
            elif kind == FLAT_KIND:
                self._collect_flat(result, findings)
        return findings

    @staticmethod
    def _collect_cart(kind: str, result: CartResult, findings: _Findings) -> None:
        cart = result.cart
        if cart is not None:
            if cart.id and kind == CART_CREATION_KIND and findings.created_cart_id is None:
                findings.created_cart_id = cart.id
            findings.offer("cart_id", cart.id)

            if cart.selectedItems:
                findings.offer("selected_item_id", cart.selectedItems[-1].id)
                for item in reversed(cart.selectedItems):
                    if item.staffVariant is not None and item.staffVariant.id:
                        findings.offer("staff_variant_id", item.staffVariant.id)
                        break

            if kind == _RESERVATION_KIND and cart.startTime:
                findings.offer("bookable_time_id", normalize_bookable_time_id(cart.startTime))

            if cart.clientInformation is not None:
                findings.offer("client_email", cart.clientInformation.email)

            if cart.summary is not None:
                findings.offer("total_amount", minor_to_major(cart.summary.total))

        if result.offer is not None:
            findings.offer("promotion_offer_id", result.offer.id)

    @staticmethod
    def _collect_flat(result: FlatResult, findings: _Findings) -> None:
        findings.offer("cart_id", result.cartId)
        findings.offer("selected_item_id", result.selectedItemId)
        if result.bookableTimeId:
            findings.offer("bookable_time_id", normalize_bookable_time_id(result.bookableTimeId))
        findings.offer("staff_variant_id", result.staffVariantId)
        findings.offer("promotion_offer_id", result.offerId)
        findings.offer("client_email", result.email)
        findings.offer("total_amount", minor_to_major(result.total))

    @staticmethod
    def _apply(findings: _Findings, booking: BookingState) -> None:
        values = dict(findings.values)
        found_cart_id = values.pop("cart_id", None)

        if findings.created_cart_id:
            if booking.cart_id and booking.cart_id != findings.created_cart_id:
                logger.info("Cart replaced by creation result: %s", findings.created_cart_id)
            booking.cart_id = findings.created_cart_id
        elif found_cart_id and booking.cart_id is None:
            booking.cart_id = found_cart_id
        elif found_cart_id and found_cart_id != booking.cart_id:
            logger.warning("Ignoring divergent cart id %s (keeping %s)", found_cart_id, booking.cart_id)

        for field_name, value in values.items():
            setattr(booking, field_name, value)

        if values:
            logger.debug("Extracted booking fields: %s", sorted(values))
