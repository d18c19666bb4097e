"""
Tool result models.

``ToolEnvelope`` is the normalized result of one tool invocation. The
remaining models describe the closed set of cart-bearing result shapes the
backend produces, so state extraction can decode a payload into tagged
variants instead of probing arbitrary nested keys.
"""

import json
import logging
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class ToolEnvelope(BaseModel):
    """Normalized outcome of a tool call; ephemeral, never stored on a session."""
    tool_name: str
    ok: bool = True
    data: Any = None
    payload: Any = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, tool_name: str, message: str) -> "ToolEnvelope":
        return cls(tool_name=tool_name, ok=False, error=message)

    def to_output(self) -> str:
        """Render the string submitted back to the LLM as this tool's output."""
        if not self.ok:
            return json.dumps({"error": True, "message": self.error})
        if isinstance(self.data, str):
            return self.data
        return json.dumps(self.data, default=str)


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CartSummary(_Lenient):
    # Minor units; left untyped so non-numeric values are never coerced.
    subtotal: Any = None
    taxAmount: Any = None
    total: Any = None


class ClientInformation(_Lenient):
    email: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    phoneNumber: Optional[str] = None


class StaffVariantRef(_Lenient):
    id: Optional[str] = None


class SelectedItem(_Lenient):
    id: Optional[str] = None
    staffVariant: Optional[StaffVariantRef] = None


class CartPayload(_Lenient):
    id: Optional[str] = None
    expiresAt: Optional[str] = None
    startTime: Optional[str] = None
    selectedItems: list[SelectedItem] = Field(default_factory=list)
    clientInformation: Optional[ClientInformation] = None
    summary: Optional[CartSummary] = None


class OfferPayload(_Lenient):
    id: Optional[str] = None
    code: Optional[str] = None
    applied: Optional[bool] = None


class CartResult(_Lenient):
    """Common shape of every cart mutation/query result."""
    cart: Optional[CartPayload] = None
    offer: Optional[OfferPayload] = None
    appointments: list[dict[str, Any]] = Field(default_factory=list)


class FlatResult(_Lenient):
    """Generic fallback: identifiers reported as top-level keys."""
    cartId: Optional[str] = None
    selectedItemId: Optional[str] = None
    bookableTimeId: Optional[str] = None
    staffVariantId: Optional[str] = None
    offerId: Optional[str] = None
    email: Optional[str] = None
    total: Any = None


# Root keys of cart-bearing results, in lookup order. ``createCart`` comes
# first because it is the only result allowed to replace a known cart id.
CART_RESULT_KEYS: tuple[str, ...] = (
    "createCart",
    "addCartSelectedBookableItem",
    "reserveCartBookableItems",
    "updateCartSelectedBookableItem",
    "updateCart",
    "addCartOffer",
    "addCartCardPaymentMethod",
    "checkoutCart",
)

CART_CREATION_KIND = "createCart"
FLAT_KIND = "flat"
CART_QUERY_KIND = "cart"


class DecodedResult(NamedTuple):
    kind: str
    result: Any


def decode_tool_output(payload: Any) -> list[DecodedResult]:
    """Decode a parsed tool payload into its known result variants.

    A payload may carry several variants at once (e.g. an offer mutation
    nested next to a cart). Shapes that fail validation are skipped.
    """
    if not isinstance(payload, dict):
        return []

    decoded: list[DecodedResult] = []
    for key in CART_RESULT_KEYS:
        section = payload.get(key)
        if isinstance(section, dict):
            _append(decoded, key, CartResult, section)

    if isinstance(payload.get("cart"), dict):
        _append(decoded, CART_QUERY_KIND, CartResult, {"cart": payload["cart"]})

    _append(decoded, FLAT_KIND, FlatResult, payload)
    return decoded


def _append(decoded: list[DecodedResult], kind: str, model: type[BaseModel], data: dict) -> None:
    try:
        decoded.append(DecodedResult(kind, model.model_validate(data)))
    except ValidationError as exc:
        logger.debug("Skipping malformed '%s' result: %s", kind, exc.error_count())
