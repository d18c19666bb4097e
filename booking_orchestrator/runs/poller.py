"""
Bounded polling of asynchronous LLM jobs.

Polls at a fixed interval until the job settles (a terminal status or
``requires_action``) or the attempt budget runs out. Exhaustion is not an
error: the last observed job is returned and the caller decides what to
tell the user.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from booking_orchestrator.adapters.base import LanguageModel
from booking_orchestrator.config import settings
from booking_orchestrator.logging_context import get_session_logger
from booking_orchestrator.schemas.job_schema import JobStatus, PendingJob

logger = get_session_logger(__name__)


class RunPoller:
    """Polls a job until it settles or the attempt budget is spent."""

    def __init__(
        self,
        model: LanguageModel,
        interval_sec: Optional[float] = None,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._model = model
        self.interval_sec = settings.polling.poll_interval_sec if interval_sec is None else interval_sec
        self.max_attempts = settings.polling.max_poll_attempts if max_attempts is None else max_attempts
        self._sleep = sleep

    async def await_terminal(
        self, thread_id: str, job_id: str, initial: Optional[PendingJob] = None
    ) -> PendingJob:
        """
        Poll ``job_id`` until it settles.

        Args:
            thread_id: Thread the job runs on.
            job_id: Job to poll.
            initial: Last known snapshot, returned if no fetch succeeds.

        Returns:
            The settled job, or the last observed one on exhaustion.
        """
        last = initial or PendingJob(id=job_id, thread_id=thread_id, status=JobStatus.QUEUED)

        for attempt in range(1, self.max_attempts + 1):
            try:
                job = await self._model.get_job(thread_id, job_id)
            except Exception as exc:
                logger.warning("Job %s status fetch failed (attempt %d): %s", job_id, attempt, exc)
                last = last.model_copy(update={"last_error": str(exc)})
            else:
                last = job
                if job.is_settled:
                    logger.debug("Job %s settled as %s after %d attempt(s)", job_id, job.status.value, attempt)
                    return job

            if attempt < self.max_attempts:
                await self._sleep(self.interval_sec)

        logger.warning(
            "Polling exhausted for job %s after %d attempts (last status: %s)",
            job_id, self.max_attempts, last.status.value,
        )
        return last
