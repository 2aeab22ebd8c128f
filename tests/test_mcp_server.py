"""Tests for exposing skills as MCP tools."""

import asyncio
import inspect
import json

import pytest
from mcp.server.fastmcp.exceptions import ToolError

from mcp_vibekit.server import build_mcp_server, make_skill_tool
from stubs import ScriptedModel, build_lending_skill, final, make_settings, tool_call
from vibekit.agent import Agent
from vibekit.protocol import create_info_message
from vibekit.skills import define_skill


async def _status_handler(skill_input, context):
    return create_info_message(f"Pool status for {skill_input}: open")


STATUS_SKILL = define_skill(
    id="pool-status",
    name="Pool Status",
    description="Report whether a lending pool is open",
    tags=["status"],
    examples=["Is the USDC pool open?"],
    input_schema=str,
    handler=_status_handler,
)


@pytest.fixture
def agent():
    model = ScriptedModel([tool_call("borrow", {"tokenName": "USDC", "amount": "50"}), final("ok")])
    return Agent(
        name="Lending Agent",
        version="1.0.0",
        skills=[build_lending_skill(), STATUS_SKILL],
        model=model,
        settings=make_settings(),
    )


class TestBuildMcpServer:
    """Test tool registration."""

    def test_one_tool_per_skill(self, agent):
        server = build_mcp_server(agent)
        tools = {tool.name: tool for tool in asyncio.run(server.list_tools())}

        assert set(tools) == {"lending", "pool-status"}
        assert tools["lending"].description.startswith("Borrow tokens from a lending pool\n\n<tags>")
        assert "<example>Borrow 50 USDC</example>" in tools["lending"].description
        assert set(tools["lending"].inputSchema["properties"]) == {"instruction", "wallet_address"}
        assert tools["lending"].inputSchema["required"] == ["instruction"]
        assert tools["pool-status"].inputSchema["required"] == ["instruction"]


class TestSkillTool:
    """Test the generated tool functions."""

    def test_signature_mirrors_input_model(self, agent):
        fn = make_skill_tool(agent, agent.registry.resolve("lending"))
        params = inspect.signature(fn).parameters
        assert list(params) == ["instruction", "wallet_address"]
        assert params["instruction"].default is inspect.Parameter.empty
        assert params["wallet_address"].default is None

    def test_invoke_returns_embedded_task(self, agent):
        fn = make_skill_tool(agent, agent.registry.resolve("lending"))
        content = asyncio.run(fn(instruction="Borrow 50 USDC", wallet_address=None))

        resource = content[0].resource
        task = json.loads(resource.text)
        assert task["status"]["state"] == "completed"
        assert str(resource.uri).startswith("tag:lending-agent,")

    def test_text_skill(self, agent):
        fn = make_skill_tool(agent, agent.registry.resolve("pool-status"))
        content = asyncio.run(fn(instruction="USDC"))
        message = json.loads(content[0].resource.text)
        assert message["kind"] == "message"
        assert message["parts"][0]["text"] == "Pool status for USDC: open"

    def test_errors_raise_tool_error(self, agent):
        fn = make_skill_tool(agent, agent.registry.resolve("lending"))
        with pytest.raises(ToolError) as exc_info:
            asyncio.run(fn(instruction=None, wallet_address=None))
        assert str(exc_info.value).startswith("[InvalidParamsError]: ")
