from booking_orchestrator.conversation.flows import (
    ActionRoutedFlow,
    FlowDriver,
    StepValidatorFlow,
    create_flow,
)
from booking_orchestrator.conversation.intents import Intent, detect_intent
from booking_orchestrator.conversation.session_store import SessionStore, ThreadRegistry
from booking_orchestrator.conversation.state_extractor import StateExtractor
from booking_orchestrator.conversation.state_machine import (
    BookingStateMachine,
    BookingTrigger,
    InvalidTransitionError,
)

__all__ = [
    "BookingStateMachine",
    "BookingTrigger",
    "InvalidTransitionError",
    "StateExtractor",
    "FlowDriver",
    "StepValidatorFlow",
    "ActionRoutedFlow",
    "create_flow",
    "SessionStore",
    "ThreadRegistry",
    "Intent",
    "detect_intent",
]
