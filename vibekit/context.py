"""Per-invocation context handed to handlers, tools and hooks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from vibekit.errors import VibkitError

if TYPE_CHECKING:
    from mcp.types import CallToolResult

    from vibekit.llm import LanguageModel
    from vibekit.tool_servers import ToolServerClient, ToolServerClientManager


@dataclass
class InvocationContext:
    """Bundle created fresh for each incoming instruction; never persisted."""

    skill_id: str
    context_id: str
    custom: Any = None
    model: LanguageModel | None = None
    tool_servers: dict[str, ToolServerClient] = field(default_factory=dict)
    skill_input: Any = None
    manager: ToolServerClientManager | None = None

    async def call_tool(self, server: str, tool_name: str, arguments: dict[str, Any]) -> CallToolResult:
        """Call a tool on one of this invocation's connected tool servers."""
        client = self.tool_servers.get(server)
        if client is None:
            raise VibkitError.tool_server_unavailable(server, f"not connected for skill '{self.skill_id}'")
        if self.manager is not None:
            return await self.manager.call(client, tool_name, arguments)
        return await client.call_tool(tool_name, arguments)
