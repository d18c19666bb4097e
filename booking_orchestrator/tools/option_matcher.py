"""
Fuzzy matching of free-text user values against backend option lists.

Candidates are ``{"id": ..., "name": ...}`` dicts in the order the backend
returned them. Matching is tiered, and the first candidate hit in the
earliest tier wins; there is no scoring across candidates.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from booking_orchestrator.config import settings
from booking_orchestrator.utils import parse_clock_time

logger = logging.getLogger(__name__)

_START_CLOCK = re.compile(r"T(\d{2}):(\d{2})")


@dataclass
class MatchResult:
    """Outcome of validating a user value against candidates."""
    valid: bool
    id: Optional[str] = None
    name: Optional[str] = None
    options: list[str] = field(default_factory=list)
    candidate: Optional[dict[str, Any]] = None


def _slot_clock(slot: dict[str, Any]) -> Optional[tuple[int, int]]:
    start = slot.get("startTime")
    if not isinstance(start, str):
        return None
    match = _START_CLOCK.search(start)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


class OptionMatcher:
    """Validates location/service/date/time/staff values against live options."""

    def __init__(self, time_tolerance_minutes: Optional[int] = None) -> None:
        if time_tolerance_minutes is None:
            time_tolerance_minutes = settings.matching.time_tolerance_minutes
        self.time_tolerance_minutes = time_tolerance_minutes

    def match(self, candidates: list[dict[str, Any]], user_value: Optional[str]) -> MatchResult:
        """
        Match ``user_value`` against candidates.

        Tiers: exact id, case-insensitive exact name, value contained in
        name, name contained in value. An absent value always returns the
        full option list so the caller can prompt for a choice.
        """
        options = [str(c.get("name", "")) for c in candidates]
        value = (user_value or "").strip()
        if not value:
            return MatchResult(valid=False, options=options)

        folded = value.casefold()
        tiers = (
            lambda c: str(c.get("id", "")) == value,
            lambda c: str(c.get("name", "")).casefold() == folded,
            lambda c: folded in str(c.get("name", "")).casefold(),
            lambda c: bool(c.get("name")) and str(c["name"]).casefold() in folded,
        )
        for tier in tiers:
            for candidate in candidates:
                if tier(candidate):
                    return self._hit(candidate, options)

        logger.debug("No option matched %r among %d candidates", value, len(candidates))
        return MatchResult(valid=False, options=options)

    def match_time(self, slots: list[dict[str, Any]], user_value: Optional[str]) -> MatchResult:
        """
        Match a time against bookable slots carrying ``startTime`` timestamps.

        After id and exact-name checks, the value is parsed as a clock time
        and compared with each slot's start: an exact clock match first,
        then the same hour within the configured minute tolerance. Plain
        substring matching is the last resort.
        """
        options = [str(s.get("name", "")) for s in slots]
        value = (user_value or "").strip()
        if not value:
            return MatchResult(valid=False, options=options)

        folded = value.casefold()
        for slot in slots:
            if str(slot.get("id", "")) == value or str(slot.get("name", "")).casefold() == folded:
                return self._hit(slot, options)

        requested = parse_clock_time(value)
        if requested is not None:
            clocks = [(_slot_clock(slot), slot) for slot in slots]
            for clock, slot in clocks:
                if clock == requested:
                    return self._hit(slot, options)
            for clock, slot in clocks:
                if (
                    clock is not None
                    and clock[0] == requested[0]
                    and abs(clock[1] - requested[1]) <= self.time_tolerance_minutes
                ):
                    return self._hit(slot, options)
            return MatchResult(valid=False, options=options)

        for slot in slots:
            if folded in str(slot.get("name", "")).casefold():
                return self._hit(slot, options)
        return MatchResult(valid=False, options=options)

    @staticmethod
    def _hit(candidate: dict[str, Any], options: list[str]) -> MatchResult:
        return MatchResult(
            valid=True,
            id=str(candidate.get("id")),
            name=str(candidate.get("name", "")),
            options=options,
            candidate=candidate,
        )
