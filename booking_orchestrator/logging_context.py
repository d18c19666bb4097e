"""Per-turn session id on log records.

``session_scope`` binds the booking session key while one turn (or one
payment) is processed and restores the previous value afterwards, so
concurrent turns on the event loop never see each other's id.
``SessionIdFilter`` copies the bound id onto every record; the handler
installed by ``config.load_config`` prints it as ``%(session_id)s``.

Usage:
    with session_scope("web-42"):
        logger.info("Processing turn")  # record.session_id == "web-42"
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

NO_SESSION = "-"

_session_id: ContextVar[str] = ContextVar("session_id", default=NO_SESSION)


@contextmanager
def session_scope(session_id: str) -> Iterator[None]:
    token = _session_id.set(session_id)
    try:
        yield
    finally:
        _session_id.reset(token)


def current_session_id() -> str:
    return _session_id.get()


class SessionIdFilter(logging.Filter):
    """Adds ``session_id`` to records; never drops one."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = current_session_id()  # type: ignore[attr-defined]
        return True


def get_session_logger(name: str) -> logging.Logger:
    """Return a module logger carrying the ``SessionIdFilter``.

    Records from these loggers carry the id even when they reach a handler
    that was installed without the filter, such as pytest's capture handler.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, SessionIdFilter) for f in logger.filters):
        logger.addFilter(SessionIdFilter())
    return logger
