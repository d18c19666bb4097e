"""
Keyword intent detection for the few intents that bypass the flow driver.

Three checks, all on lowercased text with punctuation stripped:
1. reset: greeting/restart phrases that start a fresh booking
2. confirm: affirmative replies at the summary gate
3. decline: negative replies at the summary gate

Reset must match the whole message so "hi, I'd like a facial" is not
treated as a restart.
"""

import logging
import re
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

_PUNCTUATION = re.compile(r"[^\w\s']")


class Intent(str, Enum):
    RESET = "reset"
    CONFIRM = "confirm"
    DECLINE = "decline"


RESET_PHRASES = frozenset({
    "hi", "hello", "hey", "hi there", "hello there", "hey there",
    "restart", "start over", "reset", "new booking", "start again",
})

# Agreement idioms that contain a decline word ("no problem, go ahead").
AGREEMENT_IDIOMS = ["no problem", "no worries", "not a problem"]

CONFIRM_KEYWORDS = [
    "yes", "yeah", "yep", "yup", "sure", "confirm", "confirmed",
    "correct", "ok", "okay", "sounds good", "go ahead", "book it", "looks good",
] + AGREEMENT_IDIOMS

DECLINE_KEYWORDS = [
    "no", "nope", "nah", "cancel", "don't", "do not", "stop", "not now", "decline",
]


def _clean(text: str) -> str:
    return " ".join(_PUNCTUATION.sub(" ", text.lower()).split())


def _has_keyword(cleaned: str, keywords: list[str]) -> Optional[str]:
    padded = f" {cleaned} "
    for keyword in keywords:
        if f" {keyword} " in padded:
            return keyword
    return None


def is_reset(text: str) -> bool:
    return _clean(text) in RESET_PHRASES


def _without_idioms(cleaned: str) -> str:
    padded = f" {cleaned} "
    for idiom in AGREEMENT_IDIOMS:
        padded = padded.replace(f" {idiom} ", " ")
    return padded.strip()


def is_confirmation(text: str) -> bool:
    cleaned = _clean(text)
    # Negatives win over affirmatives ("no, that's not correct").
    return not is_decline(text) and _has_keyword(cleaned, CONFIRM_KEYWORDS) is not None


def is_decline(text: str) -> bool:
    return _has_keyword(_without_idioms(_clean(text)), DECLINE_KEYWORDS) is not None


def detect_intent(text: str) -> Optional[Intent]:
    """Classify ``text`` as reset, confirm, or decline; None when no keyword applies."""
    if is_reset(text):
        intent = Intent.RESET
    elif is_decline(text):
        intent = Intent.DECLINE
    elif is_confirmation(text):
        intent = Intent.CONFIRM
    else:
        return None
    logger.debug("Detected intent '%s'", intent.value)
    return intent
