"""Structured next-action decisions produced by the LLM for the action-routed flow."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BookingAction(str, Enum):
    FETCH_LOCATIONS = "fetch_locations"
    CHOOSE_LOCATION = "choose_location"
    CREATE_CART = "create_cart"
    FETCH_SERVICES = "fetch_services"
    CHOOSE_SERVICE = "choose_service"
    ADD_SERVICE = "add_service"
    FETCH_DATES = "fetch_dates"
    CHOOSE_DATE = "choose_date"
    FETCH_TIMES = "fetch_times"
    CHOOSE_TIME = "choose_time"
    RESERVE_SLOT = "reserve_slot"
    FETCH_STAFF = "fetch_staff"
    CHOOSE_STAFF = "choose_staff"
    GET_SUMMARY = "get_summary"
    CONFIRM = "confirm"
    CLARIFY = "clarify"
    FALLBACK = "fallback"


class ActionParameters(BaseModel):
    """Allow-listed parameters; anything else the model sends is dropped."""
    model_config = ConfigDict(extra="ignore")

    location: Optional[str] = None
    service: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    staff: Optional[str] = None


class ActionDecision(BaseModel):
    action: BookingAction
    parameters: ActionParameters = Field(default_factory=ActionParameters)
    message: str = ""
