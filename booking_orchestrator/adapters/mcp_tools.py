"""
MCP implementation of the ``ToolExecutor`` capability.

Launches the tool-execution server as a stdio subprocess and forwards
``call_tool`` requests over an MCP client session. Results are returned
as plain dicts (``{"content": [...], "isError": ...}``) for the gateway
to unwrap.

Usage:
    async with McpToolExecutor() as executor:
        raw = await executor.call_tool("get_locations", {})
"""

import logging
import shlex
from contextlib import AsyncExitStack
from typing import Any, Optional

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from booking_orchestrator.config import settings
from booking_orchestrator.errors import ExternalCallFailure
from booking_orchestrator.tools import catalog

logger = logging.getLogger(__name__)


class McpToolExecutor:
    """Tool executor speaking MCP to a stdio server subprocess."""

    def __init__(
        self,
        command: Optional[str] = None,
        args: Optional[list[str]] = None,
        env: Optional[dict[str, str]] = None,
    ) -> None:
        self.command = command or settings.backend.tool_server_command
        self.args = args if args is not None else shlex.split(settings.backend.tool_server_args)
        self.env = env
        self._stack: Optional[AsyncExitStack] = None
        self._session: Optional[ClientSession] = None

    async def connect(self) -> None:
        params = StdioServerParameters(command=self.command, args=self.args, env=self.env)
        stack = AsyncExitStack()
        try:
            read, write = await stack.enter_async_context(stdio_client(params))
            session = await stack.enter_async_context(ClientSession(read, write))
            await session.initialize()
        except Exception:
            await stack.aclose()
            raise
        self._stack, self._session = stack, session
        logger.info("Connected to tool server: %s %s", self.command, " ".join(self.args))
        missing = await self.missing_tools()
        if missing:
            logger.warning("Tool server does not offer: %s", ", ".join(missing))

    async def close(self) -> None:
        if self._stack is not None:
            await self._stack.aclose()
        self._stack, self._session = None, None

    async def __aenter__(self) -> "McpToolExecutor":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def list_tools(self) -> list[str]:
        if self._session is None:
            raise ExternalCallFailure("Tool server is not connected")
        result = await self._session.list_tools()
        return [tool.name for tool in result.tools]

    async def missing_tools(self) -> list[str]:
        """Catalog tools the connected server does not advertise."""
        offered = set(await self.list_tools())
        return [d["function"]["name"] for d in catalog.TOOL_DEFINITIONS if d["function"]["name"] not in offered]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        if self._session is None:
            raise ExternalCallFailure("Tool server is not connected")
        result = await self._session.call_tool(name, arguments)
        return result.model_dump()
