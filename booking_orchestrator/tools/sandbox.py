"""
In-memory tool backend with Boulevard-shaped responses.

Used by the console ``--sandbox`` mode and by tests. Every response is
wrapped in the same content-array envelope the real tool server emits, so
the gateway and extractor exercise their full unwrapping path. Amounts
are in minor units (cents), as in the real API.

In production, tool calls go to the MCP tool server instead
(``adapters/mcp_tools.py``).
"""

import json
import logging
from datetime import date, timedelta
from typing import Any, Callable, Optional, TypedDict

from booking_orchestrator.errors import ExternalCallFailure
from booking_orchestrator.tools import catalog

logger = logging.getLogger(__name__)


class SandboxService(TypedDict):
    id: str
    name: str
    category: str
    listPrice: int


class SandboxCart(TypedDict, total=False):
    id: str
    location_id: str
    items: list[dict[str, Any]]
    start_time: Optional[str]
    client: dict[str, Any]
    discount_pct: int
    offer: Optional[dict[str, Any]]


LOCATIONS: list[dict[str, Any]] = [
    {"id": "urn:blvd:Location:1", "name": "Sandbox Location", "address": {"city": "Los Angeles"}},
    {"id": "urn:blvd:Location:2", "name": "Downtown Studio", "address": {"city": "Santa Monica"}},
]

SERVICES: list[SandboxService] = [
    {"id": "urn:blvd:Service:101", "name": "Hydra Facial", "category": "Facials", "listPrice": 12000},
    {"id": "urn:blvd:Service:102", "name": "Deep Cleansing Facial", "category": "Facials", "listPrice": 9500},
    {"id": "urn:blvd:Service:201", "name": "Swedish Massage", "category": "Massage", "listPrice": 15000},
]

STAFF_VARIANTS: list[dict[str, Any]] = [
    {"id": "urn:blvd:StaffVariant:1", "staff": {"id": "urn:blvd:Staff:1", "displayName": "Sarah Johnson"}},
    {"id": "urn:blvd:StaffVariant:2", "staff": {"id": "urn:blvd:Staff:2", "firstName": "Emily", "lastName": "Chen"}},
]

SLOT_TIMES = ("10:00", "11:30", "14:00", "16:00")
BOOKABLE_DAYS = 5
TAX_RATE = 0.1
TZ_OFFSET = "+05:30"
PROMOTIONS: dict[str, int] = {"WELCOME10": 10}


def envelope(payload: Any) -> dict[str, Any]:
    """Wrap a payload the way the tool server does."""
    return {"content": [{"type": "text", "text": json.dumps(payload)}], "isError": False}


class SandboxToolBackend:
    """``ToolExecutor`` serving fixed catalog data and tracking carts in memory."""

    def __init__(self, today: Callable[[], date] = date.today, fail_tools: Optional[set[str]] = None) -> None:
        self._today = today
        self.fail_tools: set[str] = set(fail_tools or ())
        self.carts: dict[str, SandboxCart] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._counter = 0
        self._handlers: dict[str, Callable[[dict[str, Any]], Any]] = {
            catalog.GET_LOCATIONS: self._get_locations,
            catalog.CREATE_CART: self._create_cart,
            catalog.AVAILABLE_SERVICES: self._available_services,
            catalog.ADD_SERVICE: self._add_service,
            catalog.BOOKABLE_DATES: self._bookable_dates,
            catalog.BOOKABLE_TIMES: self._bookable_times,
            catalog.RESERVE_SLOT: self._reserve,
            catalog.STAFF_VARIANTS: self._staff_variants,
            catalog.ASSIGN_STAFF: self._assign_staff,
            catalog.CART_SUMMARY: self._cart_summary,
            catalog.APPLY_PROMOTION: self._apply_promotion,
            catalog.SET_CLIENT: self._set_client,
            catalog.ADD_PAYMENT_METHOD: self._add_payment_method,
            catalog.CHECKOUT: self._checkout,
        }

    def calls_to(self, name: str) -> list[dict[str, Any]]:
        """Arguments of every recorded call to ``name``, in order."""
        return [args for tool, args in self.calls if tool == name]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        self.calls.append((name, dict(arguments)))
        if name in self.fail_tools:
            raise ExternalCallFailure(f"Sandbox failure for {name}")
        handler = self._handlers.get(name)
        if handler is None:
            raise ExternalCallFailure(f"Unknown tool: {name}")
        payload = handler(arguments)
        logger.debug("Sandbox %s -> %s", name, str(payload)[:120])
        return envelope(payload)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _next_id(self, kind: str) -> str:
        self._counter += 1
        return f"urn:blvd:{kind}:{self._counter}"

    def _cart(self, cart_id: Optional[str]) -> SandboxCart:
        cart = self.carts.get(cart_id or "")
        if cart is None:
            raise ExternalCallFailure(f"Cart not found: {cart_id}")
        return cart

    def _summary(self, cart: SandboxCart) -> dict[str, int]:
        subtotal = sum(item["price"] for item in cart["items"])
        subtotal -= subtotal * cart.get("discount_pct", 0) // 100
        tax = round(subtotal * TAX_RATE)
        return {"subtotal": subtotal, "taxAmount": tax, "total": subtotal + tax}

    def _selected_items(self, cart: SandboxCart) -> list[dict[str, Any]]:
        items = []
        for item in cart["items"]:
            entry: dict[str, Any] = {"id": item["id"], "item": {"id": item["service_id"]}}
            if item.get("staff_variant_id"):
                entry["staffVariant"] = {"id": item["staff_variant_id"]}
            items.append(entry)
        return items

    def _cart_view(self, cart: SandboxCart) -> dict[str, Any]:
        return {
            "id": cart["id"],
            "expiresAt": "2099-01-01T00:00:00Z",
            "startTime": cart.get("start_time"),
            "selectedItems": self._selected_items(cart),
            "clientInformation": cart.get("client") or None,
            "summary": self._summary(cart),
        }

    def _slot_dates(self) -> list[str]:
        today = self._today()
        return [(today + timedelta(days=offset)).isoformat() for offset in range(1, BOOKABLE_DAYS + 1)]

    # ------------------------------------------------------------------ #
    # Tool handlers
    # ------------------------------------------------------------------ #

    def _get_locations(self, arguments: dict[str, Any]) -> Any:
        return {"locations": {"edges": [{"node": location} for location in LOCATIONS]}}

    def _create_cart(self, arguments: dict[str, Any]) -> Any:
        location = next((loc for loc in LOCATIONS if loc["id"] == arguments.get("locationId")), None)
        if location is None:
            raise ExternalCallFailure(f"Unknown location: {arguments.get('locationId')}")
        cart_id = self._next_id("Cart")
        self.carts[cart_id] = {"id": cart_id, "location_id": location["id"], "items": [], "client": {}}
        return {"createCart": {"cart": {
            "id": cart_id,
            "expiresAt": "2099-01-01T00:00:00Z",
            "location": {"name": location["name"]},
        }}}

    def _available_services(self, arguments: dict[str, Any]) -> Any:
        cart = self._cart(arguments.get("cartId"))
        categories: dict[str, list[dict[str, Any]]] = {}
        for service in SERVICES:
            categories.setdefault(service["category"], []).append(
                {"id": service["id"], "name": service["name"], "listPrice": service["listPrice"]}
            )
        return {"cart": {
            "id": cart["id"],
            "availableCategories": [
                {"name": name, "availableItems": items} for name, items in categories.items()
            ],
        }}

    def _add_service(self, arguments: dict[str, Any]) -> Any:
        cart = self._cart(arguments.get("cartId"))
        service = next((s for s in SERVICES if s["id"] == arguments.get("serviceId")), None)
        if service is None:
            raise ExternalCallFailure(f"Unknown service: {arguments.get('serviceId')}")
        cart["items"].append({
            "id": self._next_id("CartAvailableBookableItem"),
            "service_id": service["id"],
            "price": service["listPrice"],
        })
        return {"addCartSelectedBookableItem": {"cart": self._cart_view(cart)}}

    def _bookable_dates(self, arguments: dict[str, Any]) -> Any:
        self._cart(arguments.get("cartId"))
        lower = arguments.get("searchRangeLower") or ""
        upper = arguments.get("searchRangeUpper") or "9999-12-31"
        return {"cartBookableDates": [{"date": d} for d in self._slot_dates() if lower <= d <= upper]}

    def _bookable_times(self, arguments: dict[str, Any]) -> Any:
        self._cart(arguments.get("cartId"))
        search_date = arguments.get("searchDate")
        if search_date not in self._slot_dates():
            return {"cartBookableTimes": []}
        return {"cartBookableTimes": [
            {"id": f"t_{search_date}T{clock}:00", "score": 1, "startTime": f"{search_date}T{clock}:00{TZ_OFFSET}"}
            for clock in SLOT_TIMES
        ]}

    def _reserve(self, arguments: dict[str, Any]) -> Any:
        cart = self._cart(arguments.get("cartId"))
        bookable_time_id = str(arguments.get("bookableTimeId") or "")
        if not bookable_time_id.startswith("t_"):
            raise ExternalCallFailure(f"Invalid bookable time id: {bookable_time_id!r}")
        cart["start_time"] = f"{bookable_time_id[2:]}{TZ_OFFSET}"
        return {"reserveCartBookableItems": {"cart": self._cart_view(cart)}}

    def _staff_variants(self, arguments: dict[str, Any]) -> Any:
        self._cart(arguments.get("id"))
        return {"cartBookableStaffVariants": STAFF_VARIANTS}

    def _assign_staff(self, arguments: dict[str, Any]) -> Any:
        cart = self._cart(arguments.get("cartId"))
        item = next((i for i in cart["items"] if i["id"] == arguments.get("itemId")), None)
        if item is None:
            raise ExternalCallFailure(f"Unknown cart item: {arguments.get('itemId')}")
        item["staff_variant_id"] = arguments.get("staffVariantId")
        return {"updateCartSelectedBookableItem": {"cart": self._cart_view(cart)}}

    def _cart_summary(self, arguments: dict[str, Any]) -> Any:
        cart = self._cart(arguments.get("cartId"))
        return {"cart": {"id": cart["id"], "summary": self._summary(cart)}}

    def _apply_promotion(self, arguments: dict[str, Any]) -> Any:
        cart = self._cart(arguments.get("cartId"))
        code = str(arguments.get("offerCode") or "").upper()
        if code not in PROMOTIONS:
            raise ExternalCallFailure(f"Invalid promotion code: {code}")
        cart["discount_pct"] = PROMOTIONS[code]
        offer = {"id": self._next_id("CartOffer"), "code": code, "applied": True}
        cart["offer"] = offer
        return {"addCartOffer": {"offer": offer, "cart": self._cart_view(cart)}}

    def _set_client(self, arguments: dict[str, Any]) -> Any:
        cart = self._cart(arguments.get("cartId"))
        cart["client"] = {
            key: arguments.get(key) for key in ("firstName", "lastName", "email", "phoneNumber")
        }
        return {"updateCart": {"cart": self._cart_view(cart)}}

    def _add_payment_method(self, arguments: dict[str, Any]) -> Any:
        cart = self._cart(arguments.get("cartId"))
        if not arguments.get("token"):
            raise ExternalCallFailure("Missing payment token")
        return {"addCartCardPaymentMethod": {"cart": {
            "id": cart["id"],
            "availablePaymentMethods": [{"id": self._next_id("CartPaymentMethod"), "name": "Visa ending 4242"}],
        }}}

    def _checkout(self, arguments: dict[str, Any]) -> Any:
        cart = self._cart(arguments.get("cartId"))
        appointments = [{"appointmentId": self._next_id("Appointment")} for _ in cart["items"]]
        return {"checkoutCart": {"cart": self._cart_view(cart), "appointments": appointments}}
