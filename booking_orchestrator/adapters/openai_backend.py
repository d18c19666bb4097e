"""
OpenAI implementation of the ``LanguageModel`` capability.

Completions and action decisions use chat completions (decisions with the
JSON-object response format). Jobs map onto Assistants threads and runs;
run snapshots are converted to ``PendingJob`` so the core never sees SDK
objects.
"""

import json
import logging
from typing import Any, Optional

from openai import AsyncOpenAI, OpenAIError

from booking_orchestrator.config import settings
from booking_orchestrator.errors import ExternalCallFailure
from booking_orchestrator.schemas.job_schema import JobStatus, PendingJob, ToolInvocation, ToolOutput
from booking_orchestrator.tools.catalog import TOOL_DEFINITIONS

logger = logging.getLogger(__name__)

_RUN_STATUS: dict[str, JobStatus] = {
    "queued": JobStatus.QUEUED,
    "in_progress": JobStatus.IN_PROGRESS,
    "requires_action": JobStatus.REQUIRES_ACTION,
    "completed": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "incomplete": JobStatus.FAILED,
    "expired": JobStatus.EXPIRED,
    "cancelling": JobStatus.CANCELLED,
    "cancelled": JobStatus.CANCELLED,
}


def _parse_arguments(raw: Optional[str]) -> dict[str, Any]:
    try:
        parsed = json.loads(raw or "{}")
    except json.JSONDecodeError:
        logger.warning("Discarding unparseable tool arguments: %r", (raw or "")[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {}


def run_to_job(run: Any) -> PendingJob:
    """Convert an Assistants run object into a ``PendingJob`` snapshot."""
    tool_calls: list[ToolInvocation] = []
    required = getattr(run, "required_action", None)
    submit = getattr(required, "submit_tool_outputs", None) if required else None
    for call in getattr(submit, "tool_calls", None) or []:
        tool_calls.append(ToolInvocation(
            id=call.id,
            name=call.function.name,
            arguments=_parse_arguments(call.function.arguments),
        ))

    last_error = getattr(run, "last_error", None)
    return PendingJob(
        id=run.id,
        thread_id=run.thread_id,
        status=_RUN_STATUS.get(run.status, JobStatus.IN_PROGRESS),
        tool_calls=tool_calls,
        last_error=getattr(last_error, "message", None) if last_error else None,
    )


class OpenAILanguageModel:
    """``LanguageModel`` backed by the OpenAI API."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        assistant_id: Optional[str] = None,
    ) -> None:
        self.client = client or AsyncOpenAI()
        self.model = model or settings.model.llm_model
        self.temperature = settings.model.llm_temperature if temperature is None else temperature
        self.assistant_id = assistant_id or settings.model.assistant_id

    async def complete(self, messages: list[dict[str, str]]) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                messages=messages,
            )
        except OpenAIError as exc:
            raise ExternalCallFailure(f"Completion failed: {exc}") from exc
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def decide(self, messages: list[dict[str, str]]) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                temperature=0,
                messages=messages,
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            raise ExternalCallFailure(f"Decision failed: {exc}") from exc
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def create_thread(self) -> str:
        try:
            thread = await self.client.beta.threads.create()
        except OpenAIError as exc:
            raise ExternalCallFailure(f"Thread creation failed: {exc}") from exc
        return thread.id

    async def add_message(self, thread_id: str, role: str, content: str) -> None:
        try:
            await self.client.beta.threads.messages.create(thread_id=thread_id, role=role, content=content)
        except OpenAIError as exc:
            raise ExternalCallFailure(f"Adding message failed: {exc}") from exc

    async def create_job(self, thread_id: str, instructions: str) -> PendingJob:
        if not self.assistant_id:
            raise ExternalCallFailure("OPENAI_ASSISTANT_ID is not configured")
        try:
            run = await self.client.beta.threads.runs.create(
                thread_id=thread_id,
                assistant_id=self.assistant_id,
                additional_instructions=instructions,
                tools=TOOL_DEFINITIONS,
            )
        except OpenAIError as exc:
            raise ExternalCallFailure(f"Run creation failed: {exc}") from exc
        return run_to_job(run)

    async def get_job(self, thread_id: str, job_id: str) -> PendingJob:
        try:
            run = await self.client.beta.threads.runs.retrieve(job_id, thread_id=thread_id)
        except OpenAIError as exc:
            raise ExternalCallFailure(f"Run retrieval failed: {exc}") from exc
        return run_to_job(run)

    async def submit_tool_outputs(
        self, thread_id: str, job_id: str, outputs: list[ToolOutput]
    ) -> PendingJob:
        try:
            run = await self.client.beta.threads.runs.submit_tool_outputs(
                job_id,
                thread_id=thread_id,
                tool_outputs=[o.model_dump() for o in outputs],
            )
        except OpenAIError as exc:
            raise ExternalCallFailure(f"Submitting tool outputs failed: {exc}") from exc
        return run_to_job(run)

    async def latest_reply(self, thread_id: str) -> str:
        try:
            page = await self.client.beta.threads.messages.list(thread_id=thread_id, order="desc", limit=10)
        except OpenAIError as exc:
            raise ExternalCallFailure(f"Listing messages failed: {exc}") from exc
        for message in page.data:
            if message.role != "assistant":
                continue
            parts = [
                block.text.value
                for block in message.content
                if getattr(block, "type", None) == "text"
            ]
            if parts:
                return "\n".join(parts)
        return ""
