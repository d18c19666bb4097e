"""Asynchronous LLM job (run) models."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: frozenset[JobStatus] = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
    JobStatus.EXPIRED,
    JobStatus.CANCELLED,
})

# Statuses at which polling stops: terminal, or waiting on the caller.
SETTLED_STATUSES: frozenset[JobStatus] = TERMINAL_STATUSES | {JobStatus.REQUIRES_ACTION}


class ToolInvocation(BaseModel):
    """One tool call requested by a job in the requires-action state."""
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolOutput(BaseModel):
    """Result of one tool invocation, submitted back against the job."""
    tool_call_id: str
    output: str


class PendingJob(BaseModel):
    """Snapshot of an asynchronous job as last observed by polling."""
    id: str
    thread_id: str
    status: JobStatus
    tool_calls: list[ToolInvocation] = Field(default_factory=list)
    last_error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_settled(self) -> bool:
        return self.status in SETTLED_STATUSES

    @property
    def requires_action(self) -> bool:
        return self.status == JobStatus.REQUIRES_ACTION
