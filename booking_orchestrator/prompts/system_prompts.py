"""
System prompts for the action router and the assistant job path.

Business-specific values are injected from configuration, and the
current booking state is rendered into each prompt so the model never
has to remember identifiers on its own.
"""

import json

from booking_orchestrator.config import settings
from booking_orchestrator.schemas.decision_schema import BookingAction
from booking_orchestrator.schemas.session_schema import BookingState, BookingStep

_biz = settings.booking

BUSINESS_CONTEXT = f"""
You are the booking assistant for {_biz.business_name}, helping clients book
appointments through chat. Keep replies short and friendly.
"""

ACTION_ROUTER_PROMPT = f"""{BUSINESS_CONTEXT}

Decide the single next booking action for the client's latest message.

Reply with ONE JSON object and nothing else:
{{"action": "<action>", "parameters": {{"location": null, "service": null,
"date": null, "time": null, "staff": null}}, "message": "<optional reply>"}}

Allowed actions: {", ".join(a.value for a in BookingAction)}.

RULES:
- Copy the client's wording into parameters; never invent ids.
- Use "fetch_*" when the client asks what is available.
- Use "choose_*" when the client names a location, service, date, time, or staff member.
- Use "get_summary" when the client wants to review the booking.
- Use "clarify" with a short question when the request is ambiguous.
- Use "fallback" for anything unrelated to booking.
"""

FALLBACK_PROMPT = f"""{BUSINESS_CONTEXT}

Reply to the client in one or two sentences and steer them back to choosing
a location, service, date, or time for their appointment.
"""

ASSISTANT_RULES = f"""
RULES:
- The booking below is already reserved. Do not create a new cart.
- Always use the cart id shown below for every tool call.
- Collect first name, last name, email and phone before calling setClientOnCart.
- Apply promotion codes only when the client gives one.
- When the client is ready to pay, call {_biz.payment_ready_tool}.
"""


def build_state_block(booking: BookingState, step: BookingStep) -> str:
    """Render the collected booking fields as a JSON block for instructions."""
    state = {"step": step.value, **booking.collected()}
    return "CURRENT BOOKING:\n" + json.dumps(state, indent=2, default=str)


def build_assistant_instructions(booking: BookingState, step: BookingStep) -> str:
    """Per-job instructions for the confirmed-booking assistant path."""
    return f"{BUSINESS_CONTEXT}\n{ASSISTANT_RULES}\n{build_state_block(booking, step)}"


def build_router_prompt(booking: BookingState, step: BookingStep) -> str:
    return f"{ACTION_ROUTER_PROMPT}\n{build_state_block(booking, step)}"
