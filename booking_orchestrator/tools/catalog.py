"""
Backend tool names and the function schemas advertised to the LLM.

The names match the tool-execution server. ``TOOL_DEFINITIONS`` is the
single source of truth for which arguments each tool declares, used both
for the assistant's tool list and for filling missing arguments from
session state before dispatch.
"""

from typing import Any

GET_LOCATIONS = "get_locations"
CREATE_CART = "createAppointmentCart"
AVAILABLE_SERVICES = "availableServices"
ADD_SERVICE = "addServiceToCart"
BOOKABLE_DATES = "cartBookableDates"
BOOKABLE_TIMES = "cartBookableTimes"
RESERVE_SLOT = "reserveCartBookableItems"
STAFF_VARIANTS = "cartBookableStaffVariants"
ASSIGN_STAFF = "updateCartSelectedBookableItem"
CART_SUMMARY = "getCartSummary"
APPLY_PROMOTION = "applyPromotionCode"
SET_CLIENT = "setClientOnCart"
ADD_PAYMENT_METHOD = "addCartCardPaymentMethod"
CHECKOUT = "checkoutCart"

CART_URN_PREFIX = "urn:blvd:Cart:"

# Argument names that always carry a cart id, plus tools whose cart id
# travels under a different name.
CART_ARGUMENT_KEYS: frozenset[str] = frozenset({"cartId"})
TOOL_CART_ARGUMENT: dict[str, str] = {STAFF_VARIANTS: "id"}


def _tool(name: str, description: str, properties: dict[str, Any], required: list[str]) -> dict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {"type": "object", "properties": properties, "required": required},
        },
    }


_STR = {"type": "string"}

TOOL_DEFINITIONS: list[dict] = [
    _tool(GET_LOCATIONS, "Fetch available business locations.", {}, []),
    _tool(CREATE_CART, "Create a booking cart for a location.",
          {"locationId": _STR}, ["locationId"]),
    _tool(AVAILABLE_SERVICES, "List available services in the current cart.",
          {"cartId": _STR}, ["cartId"]),
    _tool(ADD_SERVICE, "Add the selected service to the cart.",
          {"cartId": _STR, "serviceId": _STR}, ["cartId", "serviceId"]),
    _tool(BOOKABLE_DATES, "Fetch available booking dates.",
          {"cartId": _STR, "locationId": _STR, "searchRangeLower": _STR, "searchRangeUpper": _STR},
          ["cartId", "locationId", "searchRangeLower", "searchRangeUpper"]),
    _tool(BOOKABLE_TIMES, "Fetch available time slots for a date.",
          {"cartId": _STR, "locationId": _STR, "serviceId": _STR, "searchDate": _STR},
          ["cartId", "locationId", "serviceId", "searchDate"]),
    _tool(RESERVE_SLOT, "Reserve a bookable time on the cart.",
          {"cartId": _STR, "bookableTimeId": _STR}, ["cartId", "bookableTimeId"]),
    _tool(STAFF_VARIANTS, "Fetch available staff for the selected time.",
          {"id": _STR, "itemId": _STR, "bookableTimeId": _STR}, ["id", "itemId", "bookableTimeId"]),
    _tool(ASSIGN_STAFF, "Assign a staff variant to the selected cart item.",
          {"cartId": _STR, "itemId": _STR, "staffVariantId": _STR},
          ["cartId", "itemId", "staffVariantId"]),
    _tool(CART_SUMMARY, "Fetch the final cart totals. Call when the client is ready to pay.",
          {"cartId": _STR}, ["cartId"]),
    _tool(APPLY_PROMOTION, "Apply a promotion code to the cart.",
          {"cartId": _STR, "offerCode": _STR}, ["cartId", "offerCode"]),
    _tool(SET_CLIENT, "Attach client contact information to the cart.",
          {"cartId": _STR, "firstName": _STR, "lastName": _STR, "email": _STR, "phoneNumber": _STR},
          ["cartId", "firstName", "lastName", "email", "phoneNumber"]),
    _tool(ADD_PAYMENT_METHOD, "Attach a tokenized card to the cart.",
          {"cartId": _STR, "token": _STR, "select": {"type": "boolean"}}, ["cartId", "token"]),
    _tool(CHECKOUT, "Complete the checkout.", {"cartId": _STR}, ["cartId"]),
]


def declared_arguments(tool_name: str) -> frozenset[str]:
    """Return the argument names a tool declares, empty for unknown tools."""
    for definition in TOOL_DEFINITIONS:
        if definition["function"]["name"] == tool_name:
            return frozenset(definition["function"]["parameters"]["properties"])
    return frozenset()
