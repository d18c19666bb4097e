"""Shared test fixtures and helpers."""

import asyncio
from datetime import date
from typing import Any, Optional, Union

import pytest

from booking_orchestrator.conversation.state_extractor import StateExtractor
from booking_orchestrator.orchestrator import SessionOrchestrator
from booking_orchestrator.runs.poller import RunPoller
from booking_orchestrator.schemas.job_schema import JobStatus, PendingJob, ToolInvocation, ToolOutput
from booking_orchestrator.schemas.session_schema import BookingSession
from booking_orchestrator.tools.gateway import ToolGateway
from booking_orchestrator.tools.option_matcher import OptionMatcher
from booking_orchestrator.tools.sandbox import SandboxToolBackend

TODAY = date(2025, 11, 3)


def fixed_today() -> date:
    return TODAY


def make_job(
    status: JobStatus,
    tool_calls: Optional[list[ToolInvocation]] = None,
    job_id: str = "run_1",
    thread_id: str = "thread_1",
) -> PendingJob:
    """Helper to create a PendingJob snapshot."""
    return PendingJob(id=job_id, thread_id=thread_id, status=status, tool_calls=tool_calls or [])


def tool_call(name: str, arguments: Optional[dict[str, Any]] = None, call_id: str = "call_1") -> ToolInvocation:
    return ToolInvocation(id=call_id, name=name, arguments=arguments or {})


class FakeLanguageModel:
    """Scriptable ``LanguageModel``.

    ``polls`` is consumed by ``get_job`` in order; entries are job
    snapshots or exceptions to raise. Once empty, jobs stay in progress.
    """

    def __init__(self) -> None:
        self.decisions: list[Union[str, Exception]] = []
        self.completions: list[Union[str, Exception]] = []
        self.polls: list[Union[PendingJob, Exception]] = []
        self.reply = "Thanks! Could I have your name and email?"
        self.thread_delay = 0
        self.fail_submit = False
        self.threads_created = 0
        self.messages: list[tuple[str, str, str]] = []
        self.jobs_created: list[tuple[str, str]] = []
        self.submitted: list[list[ToolOutput]] = []
        self.get_job_calls = 0
        self.decide_requests: list[list[dict[str, str]]] = []

    @staticmethod
    def _next(queue: list, default: Any) -> Any:
        if not queue:
            return default
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def complete(self, messages: list[dict[str, str]]) -> str:
        return self._next(self.completions, "I can help you book an appointment.")

    async def decide(self, messages: list[dict[str, str]]) -> str:
        self.decide_requests.append(messages)
        return self._next(self.decisions, '{"action": "fallback"}')

    async def create_thread(self) -> str:
        for _ in range(self.thread_delay):
            await asyncio.sleep(0)
        self.threads_created += 1
        return f"thread_{self.threads_created}"

    async def add_message(self, thread_id: str, role: str, content: str) -> None:
        self.messages.append((thread_id, role, content))

    async def create_job(self, thread_id: str, instructions: str) -> PendingJob:
        self.jobs_created.append((thread_id, instructions))
        return make_job(JobStatus.QUEUED, job_id=f"run_{len(self.jobs_created)}", thread_id=thread_id)

    async def get_job(self, thread_id: str, job_id: str) -> PendingJob:
        self.get_job_calls += 1
        job = self._next(self.polls, make_job(JobStatus.IN_PROGRESS))
        return job.model_copy(update={"id": job_id, "thread_id": thread_id})

    async def submit_tool_outputs(self, thread_id: str, job_id: str, outputs: list[ToolOutput]) -> PendingJob:
        if self.fail_submit:
            raise RuntimeError("submit rejected")
        self.submitted.append(outputs)
        return make_job(JobStatus.QUEUED, job_id=job_id, thread_id=thread_id)

    async def latest_reply(self, thread_id: str) -> str:
        return self.reply


async def no_sleep(_: float) -> None:
    return None


@pytest.fixture
def model():
    return FakeLanguageModel()


@pytest.fixture
def sandbox():
    return SandboxToolBackend(today=fixed_today)


@pytest.fixture
def gateway(sandbox):
    return ToolGateway(sandbox)


@pytest.fixture
def extractor():
    return StateExtractor()


@pytest.fixture
def matcher():
    return OptionMatcher(time_tolerance_minutes=30)


@pytest.fixture
def poller(model):
    return RunPoller(model, interval_sec=0.0, max_attempts=3, sleep=no_sleep)


@pytest.fixture
def session():
    return BookingSession(session_id="test-session")


@pytest.fixture
def orchestrator(model, sandbox, poller):
    return SessionOrchestrator(
        model,
        sandbox,
        poller=poller,
        flow_strategy="steps",
        today=fixed_today,
    )


async def open_cart(sandbox: SandboxToolBackend, session: BookingSession) -> str:
    """Create a cart with a Hydra Facial in the sandbox and record it on ``session``."""
    from booking_orchestrator.tools.gateway import unwrap_payload
    from booking_orchestrator.tools.sandbox import LOCATIONS, SERVICES

    created = unwrap_payload(await sandbox.call_tool("createAppointmentCart", {"locationId": LOCATIONS[0]["id"]}))
    cart_id = created["createCart"]["cart"]["id"]
    added = unwrap_payload(await sandbox.call_tool("addServiceToCart", {"cartId": cart_id, "serviceId": SERVICES[0]["id"]}))
    booking = session.booking
    booking.location_id = LOCATIONS[0]["id"]
    booking.location_name = LOCATIONS[0]["name"]
    booking.cart_id = cart_id
    booking.service_id = SERVICES[0]["id"]
    booking.service_name = SERVICES[0]["name"]
    booking.selected_item_id = added["addCartSelectedBookableItem"]["cart"]["selectedItems"][-1]["id"]
    sandbox.calls.clear()
    return cart_id
