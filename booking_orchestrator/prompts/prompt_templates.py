"""User-facing message construction for the booking flow."""

from typing import Optional

from booking_orchestrator.schemas.session_schema import BookingState
from booking_orchestrator.utils import format_amount

TRY_AGAIN_LATER = "Sorry, this is taking longer than expected. Please try again later."
APOLOGY = "Sorry, something went wrong on our side. Please try again."
RESTART_HINT = "No problem, the booking was cancelled. Say hi whenever you'd like to start over."
NO_OPTIONS = "Sorry, there are no {kind} available right now. Please try again later."


def _bulleted(options: list[str]) -> str:
    return "\n".join(f"- {option}" for option in options)


def build_options_prompt(kind: str, options: list[str], invalid_value: Optional[str] = None) -> str:
    """Ask the user to pick one of ``options``, noting a rejected value if given."""
    if not options:
        return NO_OPTIONS.format(kind=f"{kind}s")
    lines = []
    if invalid_value:
        lines.append(f"Sorry, \"{invalid_value}\" isn't an available {kind}.")
    lines.append(f"Please choose a {kind}:")
    lines.append(_bulleted(options))
    return "\n".join(lines)


def build_greeting(business_name: str, locations: list[str]) -> str:
    if not locations:
        return f"Welcome to {business_name}! " + NO_OPTIONS.format(kind="locations")
    return f"Welcome to {business_name}! Which location would you like to book at?\n{_bulleted(locations)}"


def build_service_prompt(services: list[dict], currency_symbol: str = "$") -> str:
    """List services with prices where the backend reports one."""
    if not services:
        return NO_OPTIONS.format(kind="services")
    lines = ["Which service would you like?"]
    for service in services:
        price = service.get("price")
        if isinstance(price, (int, float)):
            lines.append(f"- {service['name']} ({format_amount(price, currency_symbol)})")
        else:
            lines.append(f"- {service['name']}")
    return "\n".join(lines)


def build_missing_prerequisite(missing: str) -> str:
    return f"Before that, I need the {missing}. Could you tell me which one you'd like?"


def build_summary(booking: BookingState, currency_symbol: str = "$") -> str:
    """Read back the collected booking and ask for confirmation."""
    lines = ["Here's your booking:"]
    if booking.location_name:
        lines.append(f"Location: {booking.location_name}")
    if booking.service_name:
        lines.append(f"Service: {booking.service_name}")
    if booking.date:
        lines.append(f"Date: {booking.date}")
    if booking.time:
        lines.append(f"Time: {booking.time}")
    if booking.staff_name:
        lines.append(f"Staff: {booking.staff_name}")
    if booking.total_amount is not None:
        lines.append(f"Total: {format_amount(booking.total_amount, currency_symbol)}")
    lines.append("Shall I confirm this booking? (yes/no)")
    return "\n".join(lines)


def build_payment_ready(total: Optional[float], currency_symbol: str = "$") -> str:
    if total is None:
        return "Your booking is ready. Tap Pay to complete your payment."
    return f"Your booking total is {format_amount(total, currency_symbol)}. Tap Pay to complete your payment."


def build_checkout_summary(
    subtotal: Optional[float],
    tax: Optional[float],
    total: Optional[float],
    currency_symbol: str = "$",
) -> str:
    """Final receipt shown after a successful checkout."""
    lines = ["Payment received, your appointment is booked!"]
    for label, amount in (("Subtotal", subtotal), ("Tax", tax), ("Total", total)):
        if amount is not None:
            lines.append(f"{label}: {format_amount(amount, currency_symbol)}")
    return "\n".join(lines)


PAYMENT_FAILED = "Sorry, the payment could not be processed. Please try again."
NO_ACTIVE_BOOKING = "There is no active booking to pay for. Say hi to start a new booking."
