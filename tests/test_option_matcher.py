"""Tests for fuzzy option matching."""

from booking_orchestrator.tools.option_matcher import OptionMatcher

LOCATIONS = [
    {"id": "urn:blvd:Location:1", "name": "Sandbox Location"},
    {"id": "urn:blvd:Location:2", "name": "Downtown Studio"},
    {"id": "urn:blvd:Location:3", "name": "Uptown"},
]

SLOTS = [
    {"id": "t_2025-11-05T10:00:00", "startTime": "2025-11-05T10:00:00+05:30", "name": "10:00"},
    {"id": "t_2025-11-05T11:30:00", "startTime": "2025-11-05T11:30:00+05:30", "name": "11:30"},
    {"id": "t_2025-11-05T14:00:00", "startTime": "2025-11-05T14:00:00+05:30", "name": "14:00"},
]


class TestAbsentValue:
    def test_none_returns_all_options_in_order(self, matcher):
        result = matcher.match(LOCATIONS, None)
        assert not result.valid
        assert result.options == ["Sandbox Location", "Downtown Studio", "Uptown"]

    def test_blank_string_is_absent(self, matcher):
        result = matcher.match(LOCATIONS, "   ")
        assert not result.valid
        assert result.options == ["Sandbox Location", "Downtown Studio", "Uptown"]

    def test_empty_candidates(self, matcher):
        result = matcher.match([], "anything")
        assert not result.valid
        assert result.options == []


class TestMatchTiers:
    def test_exact_id(self, matcher):
        result = matcher.match(LOCATIONS, "urn:blvd:Location:2")
        assert result.valid
        assert result.name == "Downtown Studio"

    def test_case_insensitive_exact_name(self, matcher):
        result = matcher.match(LOCATIONS, "sandbox location")
        assert result.valid
        assert result.id == "urn:blvd:Location:1"

    def test_substring_of_name(self, matcher):
        result = matcher.match(LOCATIONS, "Sandbox")
        assert result.valid
        assert result.id == "urn:blvd:Location:1"

    def test_name_contained_in_value(self, matcher):
        result = matcher.match(LOCATIONS, "I'd like Downtown Studio please")
        assert result.valid
        assert result.id == "urn:blvd:Location:2"

    def test_no_match(self, matcher):
        result = matcher.match(LOCATIONS, "Paris")
        assert not result.valid
        assert len(result.options) == 3

    def test_id_beats_substring_regardless_of_order(self, matcher):
        candidates = [
            {"id": "a", "name": "Facial b"},
            {"id": "b", "name": "Massage"},
        ]
        result = matcher.match(candidates, "b")
        assert result.valid
        assert result.id == "b"

    def test_exact_name_beats_earlier_substring(self, matcher):
        candidates = [
            {"id": "1", "name": "Hydra Facial Deluxe"},
            {"id": "2", "name": "Hydra Facial"},
        ]
        result = matcher.match(candidates, "hydra facial")
        assert result.id == "2"

    def test_first_candidate_wins_within_tier(self, matcher):
        candidates = [
            {"id": "1", "name": "Hydra Facial"},
            {"id": "2", "name": "Deep Facial"},
        ]
        assert matcher.match(candidates, "facial").id == "1"

    def test_result_carries_candidate(self, matcher):
        result = matcher.match(LOCATIONS, "Uptown")
        assert result.candidate == LOCATIONS[2]


class TestMatchTime:
    def test_exact_clock_with_meridiem(self, matcher):
        result = matcher.match_time(SLOTS, "2pm")
        assert result.valid
        assert result.id == "t_2025-11-05T14:00:00"

    def test_exact_name(self, matcher):
        assert matcher.match_time(SLOTS, "11:30").id == "t_2025-11-05T11:30:00"

    def test_within_tolerance_same_hour(self, matcher):
        result = matcher.match_time(SLOTS, "2:20 pm")
        assert result.valid
        assert result.name == "14:00"

    def test_outside_tolerance(self):
        strict = OptionMatcher(time_tolerance_minutes=10)
        assert not strict.match_time(SLOTS, "2:20 pm").valid

    def test_different_hour_never_matches(self, matcher):
        assert not matcher.match_time(SLOTS, "3pm").valid

    def test_bare_hour_does_not_substring_match(self, matcher):
        # "1" must not match "10:00" or "11:30" by substring
        assert not matcher.match_time(SLOTS, "1").valid

    def test_absent_value_lists_slots(self, matcher):
        result = matcher.match_time(SLOTS, None)
        assert not result.valid
        assert result.options == ["10:00", "11:30", "14:00"]

    def test_exact_minute_preferred_over_tolerance(self, matcher):
        slots = [
            {"id": "a", "startTime": "2025-11-05T11:00:00", "name": "11:00"},
            {"id": "b", "startTime": "2025-11-05T11:30:00", "name": "11:30"},
        ]
        assert matcher.match_time(slots, "11:30am").id == "b"

    def test_default_tolerance_from_settings(self):
        from booking_orchestrator.config import settings

        assert OptionMatcher().time_tolerance_minutes == settings.matching.time_tolerance_minutes
