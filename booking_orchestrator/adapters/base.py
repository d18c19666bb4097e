"""
Capability interfaces the orchestrator depends on.

The core never imports an SDK directly; it talks to these protocols.
``adapters/openai_backend.py`` and ``adapters/mcp_tools.py`` provide the
production implementations, ``tools/sandbox.py`` an in-memory backend.
"""

from typing import Any, Protocol

from booking_orchestrator.schemas.job_schema import PendingJob, ToolOutput


class ToolExecutor(Protocol):
    """Executes a named backend tool and returns its raw response."""

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any: ...


class LanguageModel(Protocol):
    """Completion, structured decision, and asynchronous job capability."""

    async def complete(self, messages: list[dict[str, str]]) -> str: ...

    async def decide(self, messages: list[dict[str, str]]) -> str:
        """Return raw text expected to hold an ``ActionDecision`` JSON object."""
        ...

    async def create_thread(self) -> str: ...

    async def add_message(self, thread_id: str, role: str, content: str) -> None: ...

    async def create_job(self, thread_id: str, instructions: str) -> PendingJob: ...

    async def get_job(self, thread_id: str, job_id: str) -> PendingJob: ...

    async def submit_tool_outputs(
        self, thread_id: str, job_id: str, outputs: list[ToolOutput]
    ) -> PendingJob: ...

    async def latest_reply(self, thread_id: str) -> str: ...
