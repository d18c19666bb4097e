from booking_orchestrator.runs.poller import RunPoller
from booking_orchestrator.runs.tool_loop import ToolCallLoop, prepare_arguments

__all__ = [
    "RunPoller",
    "ToolCallLoop",
    "prepare_arguments",
]
