"""
Tool gateway: invokes backend tools and normalizes their responses.

Backend responses arrive in several envelopes: MCP-style content arrays
whose first text item holds JSON, plain dicts, arrays, or bare strings.
The gateway unwraps all of them into a parsed payload, then maps each
known tool's payload through an allow-list into a small shape that is
safe to hand back to the LLM as context.

Failures never propagate: every exception becomes an error envelope so
the turn can still produce a reply.
"""

import json
from typing import Any, Callable, Optional

from booking_orchestrator.adapters.base import ToolExecutor
from booking_orchestrator.logging_context import get_session_logger
from booking_orchestrator.schemas.tool_schema import ToolEnvelope
from booking_orchestrator.tools import catalog
from booking_orchestrator.utils import minor_to_major

logger = get_session_logger(__name__)

MAX_TEXT_CHARS = 500


def parse_json_text(text: str) -> Any:
    """Parse JSON text, falling back to the raw string."""
    try:
        return json.loads(text)
    except (ValueError, TypeError):
        return text


def _content_items(raw: Any) -> Optional[list]:
    content = raw.get("content") if isinstance(raw, dict) else getattr(raw, "content", None)
    return content if isinstance(content, list) else None


def _item_text(item: Any) -> Optional[str]:
    text = item.get("text") if isinstance(item, dict) else getattr(item, "text", None)
    return text if isinstance(text, str) else None


def is_error_result(raw: Any) -> bool:
    flag = raw.get("isError") if isinstance(raw, dict) else getattr(raw, "isError", False)
    return bool(flag)


def unwrap_payload(raw: Any) -> Any:
    """Strip a content-array/text envelope and parse the inner JSON if present."""
    items = _content_items(raw)
    if items:
        text = _item_text(items[0])
        if text is not None:
            return parse_json_text(text)
    if isinstance(raw, (str, bytes)):
        return parse_json_text(raw)
    return raw


def _dig(obj: Any, *path: Any) -> Any:
    """Walk nested dicts/lists, returning None as soon as a step is missing."""
    for key in path:
        if isinstance(key, int):
            if not isinstance(obj, list) or not obj or not -len(obj) <= key < len(obj):
                return None
            obj = obj[key]
        elif isinstance(obj, dict):
            obj = obj.get(key)
        else:
            return None
    return obj


def _as_list(payload: Any, *path: str) -> list:
    value = payload if isinstance(payload, list) else _dig(payload, *path)
    return value if isinstance(value, list) else []


# --------------------------------------------------------------------- #
# Per-tool minimizers
# --------------------------------------------------------------------- #

def _locations(payload: Any) -> list[dict]:
    entries = payload if isinstance(payload, list) else _dig(payload, "locations")
    if isinstance(entries, dict):
        entries = entries.get("edges")
    result = []
    for entry in entries if isinstance(entries, list) else []:
        node = entry.get("node", entry) if isinstance(entry, dict) else {}
        result.append({
            "id": node.get("id"),
            "name": node.get("name"),
            "city": _dig(node, "address", "city"),
        })
    return result


def _created_cart(payload: Any) -> dict:
    cart = _dig(payload, "createCart", "cart") or _dig(payload, "cart") or {}
    return {
        "cartId": cart.get("id"),
        "expiresAt": cart.get("expiresAt"),
        "locationName": _dig(cart, "location", "name"),
    }


def _services(payload: Any) -> list[dict]:
    if isinstance(payload, list):
        categories = [{"name": None, "availableItems": payload}]
    else:
        categories = _dig(payload, "cart", "availableCategories") or _dig(payload, "availableCategories") or []
    result = []
    for category in categories:
        for item in category.get("availableItems") or []:
            result.append({
                "id": item.get("id"),
                "name": item.get("name"),
                "category": category.get("name"),
                "price": minor_to_major(item.get("listPrice")),
            })
    return result


def _added_service(payload: Any) -> dict:
    cart = _dig(payload, "addCartSelectedBookableItem", "cart") or {}
    return {"cartId": cart.get("id"), "selectedItemId": _dig(cart, "selectedItems", -1, "id")}


def _dates(payload: Any) -> list[str]:
    dates = []
    for entry in _as_list(payload, "cartBookableDates"):
        value = entry.get("date") if isinstance(entry, dict) else entry
        if value:
            dates.append(str(value))
    return dates


def _times(payload: Any) -> list[dict]:
    return [
        {"id": entry.get("id"), "startTime": entry.get("startTime")}
        for entry in _as_list(payload, "cartBookableTimes")
        if isinstance(entry, dict)
    ]


def _reserved(payload: Any) -> dict:
    cart = _dig(payload, "reserveCartBookableItems", "cart") or {}
    return {"cartId": cart.get("id"), "expiresAt": cart.get("expiresAt")}


def staff_display_name(variant: dict) -> Optional[str]:
    staff = variant.get("staff") or {}
    if staff.get("displayName"):
        return staff["displayName"]
    parts = [staff.get("firstName"), staff.get("lastName")]
    name = " ".join(p for p in parts if p)
    return name or variant.get("name")


def _staff(payload: Any) -> list[dict]:
    return [
        {"id": variant.get("id"), "name": staff_display_name(variant)}
        for variant in _as_list(payload, "cartBookableStaffVariants")
        if isinstance(variant, dict)
    ]


def _assigned_staff(payload: Any) -> dict:
    cart = _dig(payload, "updateCartSelectedBookableItem", "cart") or {}
    return {"cartId": cart.get("id"), "staffVariantId": _dig(cart, "selectedItems", -1, "staffVariant", "id")}


def _summary(payload: Any) -> dict:
    cart = _dig(payload, "cart") or {}
    summary = cart.get("summary") or {}
    return {
        "cartId": cart.get("id"),
        "subtotal": minor_to_major(summary.get("subtotal")),
        "taxAmount": minor_to_major(summary.get("taxAmount")),
        "total": minor_to_major(summary.get("total")),
    }


def _promotion(payload: Any) -> dict:
    offer = _dig(payload, "addCartOffer", "offer") or {}
    return {
        "offerId": offer.get("id"),
        "code": offer.get("code"),
        "applied": offer.get("applied"),
        "total": minor_to_major(_dig(payload, "addCartOffer", "cart", "summary", "total")),
    }


def _client(payload: Any) -> dict:
    cart = _dig(payload, "updateCart", "cart") or {}
    return {"cartId": cart.get("id"), "email": _dig(cart, "clientInformation", "email")}


def _payment_method(payload: Any) -> dict:
    cart = _dig(payload, "addCartCardPaymentMethod", "cart") or {}
    methods = cart.get("availablePaymentMethods") or []
    return {"cartId": cart.get("id"), "paymentMethods": [m.get("name") for m in methods]}


def _checkout(payload: Any) -> dict:
    result = _dig(payload, "checkoutCart") or {}
    return {
        "cartId": _dig(result, "cart", "id"),
        "appointmentIds": [a.get("appointmentId") for a in result.get("appointments") or []],
        "total": minor_to_major(_dig(result, "cart", "summary", "total")),
    }


def generic_shape(payload: Any) -> dict:
    """Fallback shape for tools without an allow-list entry."""
    if isinstance(payload, dict):
        return {
            "status": payload.get("status", "ok"),
            "id": payload.get("id"),
            "message": payload.get("message"),
        }
    message = payload if isinstance(payload, str) else json.dumps(payload, default=str)
    return {"status": "ok", "id": None, "message": message[:MAX_TEXT_CHARS]}


MINIMIZERS: dict[str, Callable[[Any], Any]] = {
    catalog.GET_LOCATIONS: _locations,
    catalog.CREATE_CART: _created_cart,
    catalog.AVAILABLE_SERVICES: _services,
    catalog.ADD_SERVICE: _added_service,
    catalog.BOOKABLE_DATES: _dates,
    catalog.BOOKABLE_TIMES: _times,
    catalog.RESERVE_SLOT: _reserved,
    catalog.STAFF_VARIANTS: _staff,
    catalog.ASSIGN_STAFF: _assigned_staff,
    catalog.CART_SUMMARY: _summary,
    catalog.APPLY_PROMOTION: _promotion,
    catalog.SET_CLIENT: _client,
    catalog.ADD_PAYMENT_METHOD: _payment_method,
    catalog.CHECKOUT: _checkout,
}


def minimize(tool_name: str, payload: Any) -> Any:
    """Map a parsed payload to the tool's LLM-context-safe shape."""
    minimizer = MINIMIZERS.get(tool_name)
    if minimizer is None:
        return generic_shape(payload)
    if isinstance(payload, str):
        return payload[:MAX_TEXT_CHARS]
    try:
        return minimizer(payload)
    except (AttributeError, TypeError, KeyError) as exc:
        logger.warning("Unexpected '%s' payload shape (%s); using generic shape", tool_name, exc)
        return generic_shape(payload)


class ToolGateway:
    """Single entry point for backend tool calls."""

    def __init__(self, executor: ToolExecutor) -> None:
        self._executor = executor

    async def invoke(self, tool_name: str, arguments: Optional[dict[str, Any]] = None) -> ToolEnvelope:
        """Call a tool and return a normalized envelope; never raises."""
        arguments = arguments or {}
        logger.info("Invoking tool %s with %s", tool_name, sorted(arguments))
        try:
            raw = await self._executor.call_tool(tool_name, arguments)
        except Exception as exc:
            logger.warning("Tool %s failed: %s", tool_name, exc)
            return ToolEnvelope.failure(tool_name, str(exc) or exc.__class__.__name__)

        payload = unwrap_payload(raw)
        if is_error_result(raw):
            message = payload if isinstance(payload, str) else json.dumps(payload, default=str)
            logger.warning("Tool %s reported an error: %s", tool_name, message[:200])
            return ToolEnvelope.failure(tool_name, message[:MAX_TEXT_CHARS])

        return ToolEnvelope(tool_name=tool_name, data=minimize(tool_name, payload), payload=payload)
