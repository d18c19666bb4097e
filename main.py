"""
Booking orchestrator console entry point.

Runs an interactive text session against the orchestrator, with tools
served either by the MCP tool server or by the in-memory sandbox backend.

Usage:
    Tool server:     python main.py console
    Sandbox tools:   python main.py console --sandbox

Console commands:
    pay <token>   complete payment for the current booking
    clear         drop the session
    quit          exit
"""

import argparse
import asyncio
import logging
import sys
import uuid

from booking_orchestrator.config import settings

logger = logging.getLogger(__name__)

GREEN = "\033[92m"
DIM = "\033[2m"
BOLD = "\033[1m"
RESET = "\033[0m"


def _print_reply(response) -> None:
    print(f"{GREEN}{BOLD}[{settings.booking.business_name}]{RESET} {GREEN}{response.reply.content}{RESET}")
    action = response.reply.frontend_action
    if action is not None:
        print(f"{DIM}  >> frontend action: {action.type.value} {action.params}{RESET}")


async def _chat(orchestrator, session_id: str) -> None:
    loop = asyncio.get_running_loop()
    while True:
        text = (await loop.run_in_executor(None, input, "> ")).strip()
        if not text:
            continue
        if text.lower() in ("quit", "exit"):
            return
        if text.lower() == "clear":
            orchestrator.clear_session(session_id)
            print(f"{DIM}  >> session cleared{RESET}")
            continue
        if text.lower().startswith("pay "):
            _print_reply(await orchestrator.complete_payment(session_id, text[4:].strip()))
            continue
        _print_reply(await orchestrator.take_turn(session_id, text))


async def _run_console_mode(sandbox: bool) -> None:
    from booking_orchestrator.adapters.openai_backend import OpenAILanguageModel
    from booking_orchestrator.orchestrator import SessionOrchestrator

    model = OpenAILanguageModel()
    session_id = f"console-{uuid.uuid4().hex[:8]}"

    if sandbox:
        from booking_orchestrator.tools.sandbox import SandboxToolBackend

        await _chat(SessionOrchestrator(model, SandboxToolBackend()), session_id)
        return

    from booking_orchestrator.adapters.mcp_tools import McpToolExecutor

    async with McpToolExecutor() as executor:
        await _chat(SessionOrchestrator(model, executor), session_id)


def main(argv: list[str]) -> int:
    parser = argparse.ArgumentParser(description="Appointment booking orchestrator")
    parser.add_argument("mode", choices=["console"])
    parser.add_argument("--sandbox", action="store_true", help="serve tools from the in-memory sandbox")
    args = parser.parse_args(argv)

    try:
        asyncio.run(_run_console_mode(args.sandbox))
    except (KeyboardInterrupt, EOFError):
        print()
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
