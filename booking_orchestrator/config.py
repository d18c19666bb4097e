"""
Centralized configuration with environment variable overrides.

Polling bounds, thread rotation, matching tolerances, and model settings
are configurable here. Nothing is hardcoded in flow or tool-loop logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from booking_orchestrator.logging_context import SessionIdFilter

load_dotenv()

logger = logging.getLogger(__name__)

FLOW_STRATEGIES = ("steps", "actions")


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    """Parse a boolean flag (true/false, yes/no, 1/0) from an env var."""
    raw = os.getenv(env_var, default).strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


@dataclass(frozen=True)
class ModelConfig:
    """LLM settings for completions, action decisions, and assistant runs."""

    llm_model: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    llm_temperature: float = _safe_float("LLM_TEMPERATURE", "0.35")
    assistant_id: str = os.getenv("OPENAI_ASSISTANT_ID", "")


@dataclass(frozen=True)
class PollingConfig:
    """Bounds for job polling and the tool-call loop."""

    poll_interval_sec: float = _safe_float("POLL_INTERVAL_SEC", "1.0")
    max_poll_attempts: int = _safe_int("MAX_POLL_ATTEMPTS", "30")
    max_tool_iterations: int = _safe_int("MAX_TOOL_ITERATIONS", "5")


@dataclass(frozen=True)
class SessionConfig:
    """Session lifecycle and flow strategy selection."""

    flow_strategy: str = os.getenv("FLOW_STRATEGY", "steps")
    max_thread_messages: int = _safe_int("MAX_THREAD_MESSAGES", "20")


@dataclass(frozen=True)
class MatchingConfig:
    """Fuzzy matching policy for user-supplied values."""

    time_tolerance_minutes: int = _safe_int("TIME_TOLERANCE_MINUTES", "30")
    accept_unlisted_time: bool = _safe_bool("ACCEPT_UNLISTED_TIME", "true")
    date_search_days: int = _safe_int("DATE_SEARCH_DAYS", "7")
    staff_selection: bool = _safe_bool("STAFF_SELECTION", "true")


@dataclass(frozen=True)
class BookingConfig:
    """Business-facing booking settings."""

    business_name: str = os.getenv("BUSINESS_NAME", "Boulevard Spa")
    payment_ready_tool: str = os.getenv("PAYMENT_READY_TOOL", "getCartSummary")
    checkout_url: str = os.getenv("CHECKOUT_URL", "/checkout")
    currency_symbol: str = os.getenv("CURRENCY_SYMBOL", "$")


@dataclass(frozen=True)
class BackendConfig:
    """How to launch the tool-execution server."""

    tool_server_command: str = os.getenv("TOOL_SERVER_COMMAND", "node")
    tool_server_args: str = os.getenv("TOOL_SERVER_ARGS", "dist/appointment-booking.js")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    model: ModelConfig = field(default_factory=ModelConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    booking: BookingConfig = field(default_factory=BookingConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not 0.0 <= config.model.llm_temperature <= 2.0:
        raise ValueError(
            f"LLM_TEMPERATURE must be between 0.0 and 2.0, got {config.model.llm_temperature}"
        )
    if config.polling.poll_interval_sec < 0:
        raise ValueError(
            f"POLL_INTERVAL_SEC must be >= 0, got {config.polling.poll_interval_sec}"
        )
    if config.polling.max_poll_attempts < 1:
        raise ValueError(
            f"MAX_POLL_ATTEMPTS must be >= 1, got {config.polling.max_poll_attempts}"
        )
    if config.polling.max_tool_iterations < 1:
        raise ValueError(
            f"MAX_TOOL_ITERATIONS must be >= 1, got {config.polling.max_tool_iterations}"
        )
    if config.session.flow_strategy not in FLOW_STRATEGIES:
        raise ValueError(
            f"FLOW_STRATEGY must be one of {FLOW_STRATEGIES}, "
            f"got {config.session.flow_strategy!r}"
        )
    if config.session.max_thread_messages < 1:
        raise ValueError(
            f"MAX_THREAD_MESSAGES must be >= 1, got {config.session.max_thread_messages}"
        )
    if not 0 <= config.matching.time_tolerance_minutes <= 59:
        raise ValueError(
            "TIME_TOLERANCE_MINUTES must be between 0 and 59, "
            f"got {config.matching.time_tolerance_minutes}"
        )
    if config.matching.date_search_days < 1:
        raise ValueError(
            f"DATE_SEARCH_DAYS must be >= 1, got {config.matching.date_search_days}"
        )
    if not config.booking.payment_ready_tool:
        raise ValueError("PAYMENT_READY_TOOL must not be empty")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    handler = logging.StreamHandler()
    handler.addFilter(SessionIdFilter())
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(session_id)s] [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[handler],
    )
    logger.info("Configuration loaded for '%s'", config.booking.business_name)
    return config


# Singleton instance
settings = load_config()
