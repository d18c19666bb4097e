"""Exception types raised inside a turn and resolved before it returns."""


class BookingError(Exception):
    """Base class for booking orchestration errors."""


class ExternalCallFailure(BookingError):
    """The LLM or tool-execution capability raised or returned an unusable result."""


class MalformedModelOutput(BookingError):
    """Structured model output did not parse into the expected decision shape."""

    def __init__(self, raw: str) -> None:
        super().__init__(f"Could not parse model decision: {raw[:200]!r}")
        self.raw = raw


class MissingPrerequisite(BookingError):
    """An action was requested before the booking data it depends on exists."""

    def __init__(self, missing: str) -> None:
        super().__init__(f"Missing prerequisite: {missing}")
        self.missing = missing
