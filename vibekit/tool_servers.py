"""Lifecycle of out-of-process tool servers spoken to over MCP."""

from __future__ import annotations

import asyncio
import logging
import os
from enum import Enum
from typing import Any, Callable

from mcp import ClientSession, StdioServerParameters
from mcp import types as mcp_types
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.shared.exceptions import McpError

from vibekit import __version__
from vibekit.config import DEFAULT_HANDSHAKE_TIMEOUT
from vibekit.errors import VibkitError
from vibekit.skills import Tool, ToolServerSpec

logger = logging.getLogger(__name__)


class ClientState(str, Enum):
    """Connection state of a tool server client."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class ToolServerClient:
    """Live MCP connection to one tool server.

    The transport and session context managers are entered and exited by a
    single background task, which stays parked until ``close()`` is called
    or the server goes away.
    """

    def __init__(
        self,
        skill_id: str,
        spec: ToolServerSpec,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
    ):
        self.skill_id = skill_id
        self.spec = spec
        self.handshake_timeout = handshake_timeout
        self.state = ClientState.CLOSED
        self.tools: dict[str, mcp_types.Tool] = {}
        self._session: ClientSession | None = None
        self._task: asyncio.Task | None = None
        self._ready = asyncio.Event()
        self._stop = asyncio.Event()
        self._error: BaseException | None = None
        self._close_lock = asyncio.Lock()
        self._closed = False

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def is_connected(self) -> bool:
        return (
            self.state == ClientState.CONNECTED
            and self._task is not None
            and not self._task.done()
        )

    def _open_transport(self):
        spec = self.spec
        transport = spec.resolved_transport
        if transport == "stdio":
            params = StdioServerParameters(
                command=spec.command,
                args=list(spec.args),
                env={**os.environ, **spec.env},
            )
            return stdio_client(params)
        if transport == "sse":
            return sse_client(spec.url, headers=dict(spec.headers) or None)
        return streamablehttp_client(spec.url, headers=dict(spec.headers) or None)

    async def _run(self) -> None:
        try:
            async with self._open_transport() as streams:
                read_stream, write_stream = streams[0], streams[1]
                async with ClientSession(
                    read_stream,
                    write_stream,
                    client_info=mcp_types.Implementation(
                        name=f"vibekit-{self.skill_id}-client",
                        version=__version__,
                    ),
                ) as session:
                    await session.initialize()
                    listed = await session.list_tools()
                    self.tools = {tool.name: tool for tool in listed.tools}
                    self._session = session
                    self.state = ClientState.CONNECTED
                    self._ready.set()
                    logger.info(
                        f"Tool server connected: {self.skill_id}/{self.name} ({len(self.tools)} tools)"
                    )
                    await self._stop.wait()
        except Exception as e:
            if not self._ready.is_set():
                self._error = e
            else:
                logger.warning(f"Tool server {self.skill_id}/{self.name} terminated: {e}")
        finally:
            self._session = None
            self.state = ClientState.CLOSED
            self._ready.set()

    async def connect(self) -> None:
        """Launch/connect, perform the handshake and discover tools.

        Raises:
            VibkitError: ToolServerUnavailable if the server exits or the
                handshake times out
        """
        self.state = ClientState.CONNECTING
        self._task = asyncio.create_task(self._run(), name=f"tool-server:{self.skill_id}/{self.name}")
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=self.handshake_timeout)
        except asyncio.TimeoutError as e:
            await self.close()
            raise VibkitError.tool_server_unavailable(
                self.name, f"handshake timed out after {self.handshake_timeout}s"
            ) from e

        if self.state != ClientState.CONNECTED:
            error = self._error
            await self.close()
            reason = str(error) if error else "server exited during handshake"
            raise VibkitError.tool_server_unavailable(self.name, reason) from error

    async def list_tools(self) -> list[mcp_types.Tool]:
        """Tools discovered at connect time."""
        return list(self.tools.values())

    def _mark_lost(self, reason: str) -> None:
        """Stop treating the client as live after its transport went away."""
        if self.state == ClientState.CONNECTED:
            logger.warning(f"Tool server {self.skill_id}/{self.name} lost: {reason}")
        self.state = ClientState.CLOSED
        self._session = None
        self._stop.set()

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> mcp_types.CallToolResult:
        """Forward a single call.

        Raises:
            VibkitError: ToolInvocationError when the remote tool reports a
                failure (remote payload kept verbatim in ``data``);
                ToolServerUnavailable on transport failure, after which the
                client is no longer connected
        """
        session = self._session
        if session is None or not self.is_connected:
            raise VibkitError.tool_server_unavailable(self.name, "not connected")

        try:
            result = await session.call_tool(tool_name, arguments)
        except McpError as e:
            if e.error.code == mcp_types.CONNECTION_CLOSED:
                self._mark_lost(e.error.message)
                raise VibkitError.tool_server_unavailable(self.name, e.error.message) from e
            raise VibkitError.tool_invocation_error(
                tool_name,
                e.error.message,
                data=e.error.model_dump(mode="json", exclude_none=True),
            ) from e
        except Exception as e:
            reason = str(e) or type(e).__name__
            self._mark_lost(reason)
            raise VibkitError.tool_server_unavailable(self.name, reason) from e

        if result.isError:
            text = next(
                (part.text for part in result.content if isinstance(part, mcp_types.TextContent)),
                "remote tool reported an error",
            )
            raise VibkitError.tool_invocation_error(
                tool_name,
                text,
                data=result.model_dump(mode="json", by_alias=True, exclude_none=True),
            )
        return result

    async def close(self) -> None:
        """Close the connection; safe to call any number of times."""
        async with self._close_lock:
            if self._closed:
                return
            self._closed = True
            self._stop.set()
            task = self._task
            if task is None:
                self.state = ClientState.CLOSED
                return
            if not self._ready.is_set() or self.state != ClientState.CONNECTED:
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            logger.info(f"Tool server closed: {self.skill_id}/{self.name}")


ClientFactory = Callable[..., ToolServerClient]


def _discard_result(task: asyncio.Task) -> None:
    if not task.cancelled():
        task.exception()


class ToolServerClientManager:
    """Process-wide pool of tool server clients keyed by (skill id, server name)."""

    def __init__(
        self,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
        client_factory: ClientFactory = ToolServerClient,
    ):
        self.handshake_timeout = handshake_timeout
        self._client_factory = client_factory
        self._clients: dict[tuple[str, str], ToolServerClient] = {}
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._shutdown_lock = asyncio.Lock()

    def get(self, skill_id: str, server_name: str) -> ToolServerClient | None:
        return self._clients.get((skill_id, server_name))

    def clients_for(self, skill_id: str) -> dict[str, ToolServerClient]:
        """Connected clients of one skill, by server name."""
        return {
            name: client
            for (owner, name), client in self._clients.items()
            if owner == skill_id and client.is_connected
        }

    async def ensure_connected(self, skill_id: str, spec: ToolServerSpec) -> ToolServerClient:
        """Return the live client for (skill, server), connecting if needed.

        A dead entry is replaced, never duplicated.

        Args:
            skill_id: Owning skill
            spec: Tool server descriptor

        Returns:
            Connected ToolServerClient

        Raises:
            VibkitError: ToolServerUnavailable
        """
        key = (skill_id, spec.name)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            client = self._clients.get(key)
            if client is not None and client.is_connected:
                return client
            if client is not None:
                logger.warning(f"Tool server {skill_id}/{spec.name} is closed, reconnecting")
                del self._clients[key]
                await client.close()

            client = self._client_factory(skill_id, spec, handshake_timeout=self.handshake_timeout)
            await client.connect()
            self._clients[key] = client
            return client

    async def call(self, client: ToolServerClient, tool_name: str, arguments: dict[str, Any]) -> Any:
        """Forward one call through a client.

        If the caller is cancelled the call still runs to completion and its
        result is discarded, so the shared session is left intact.
        """
        inner = asyncio.ensure_future(client.call_tool(tool_name, arguments))
        inner.add_done_callback(_discard_result)
        return await asyncio.shield(inner)

    async def disconnect(self, skill_id: str, server_name: str) -> None:
        """Explicitly tear down one client."""
        client = self._clients.pop((skill_id, server_name), None)
        if client is not None:
            await client.close()

    async def close_all(self) -> None:
        """Close every client exactly once; close errors are logged only."""
        async with self._shutdown_lock:
            clients = list(self._clients.items())
            self._clients.clear()
            if not clients:
                return
            results = await asyncio.gather(
                *(client.close() for _, client in clients),
                return_exceptions=True,
            )
            for (key, _), result in zip(clients, results):
                if isinstance(result, BaseException):
                    logger.error(f"Error closing tool server {key[0]}/{key[1]}: {result}")


def remote_tool(
    client: ToolServerClient,
    tool: mcp_types.Tool,
    manager: ToolServerClientManager | None = None,
) -> Tool:
    """Expose a discovered remote tool as a local Tool (schema passed through)."""

    async def execute(args: dict[str, Any], context: Any) -> mcp_types.CallToolResult:
        if manager is None:
            return await client.call_tool(tool.name, args)
        return await manager.call(client, tool.name, args)

    return Tool(
        name=tool.name,
        description=tool.description or tool.name,
        parameters=dict(tool.inputSchema),
        execute=execute,
    )
