"""MCP server exposing an agent's skills as tools."""

from __future__ import annotations

import inspect
import logging
from contextlib import asynccontextmanager
from typing import Any

from mcp import types as mcp_types
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from vibekit.agent import Agent
from vibekit.errors import VibkitError
from vibekit.mcp_utils import create_mcp_a2a_response, format_tool_description
from vibekit.skills import Skill

logger = logging.getLogger(__name__)

TEXT_PARAMETER = "instruction"


def _parameters(skill: Skill) -> list[inspect.Parameter]:
    if skill.input_schema is str:
        return [inspect.Parameter(TEXT_PARAMETER, inspect.Parameter.KEYWORD_ONLY, annotation=str)]

    params = []
    for field_name, field in skill.input_schema.model_fields.items():
        default = (
            inspect.Parameter.empty if field.is_required() else field.get_default(call_default_factory=True)
        )
        params.append(
            inspect.Parameter(
                field_name,
                inspect.Parameter.KEYWORD_ONLY,
                annotation=field.annotation,
                default=default,
            )
        )
    return params


def make_skill_tool(agent: Agent, skill: Skill):
    """Build the tool function invoking one skill.

    The function's signature mirrors the skill's input model (or a single
    ``instruction`` string) so FastMCP derives the tool schema from it.
    """

    async def run_skill(**kwargs: Any) -> list[mcp_types.EmbeddedResource]:
        payload = kwargs[TEXT_PARAMETER] if skill.input_schema is str else kwargs
        try:
            result = await agent.invoke(skill.id, payload)
        except VibkitError as e:
            logger.warning(f"Skill {skill.id} rejected: {e.message}")
            raise ToolError(f"[{e.name}]: {e.message}") from e
        return list(create_mcp_a2a_response(result, agent.name).content)

    run_skill.__name__ = skill.id.replace("-", "_")
    run_skill.__doc__ = skill.description
    run_skill.__signature__ = inspect.Signature(_parameters(skill))
    return run_skill


def build_mcp_server(agent: Agent) -> FastMCP:
    """Create a FastMCP server with one tool per skill.

    Args:
        agent: Agent whose skills are exposed; started and stopped with the
            server lifespan

    Returns:
        FastMCP server ready to ``run()``
    """

    @asynccontextmanager
    async def lifespan(server: FastMCP):
        await agent.start()
        try:
            yield {}
        finally:
            await agent.stop()

    mcp = FastMCP(agent.name, lifespan=lifespan)
    for skill in agent.registry.all():
        mcp.add_tool(
            make_skill_tool(agent, skill),
            name=skill.id,
            description=format_tool_description(skill.description, skill.tags, skill.examples),
        )
        logger.info(f"Exposed skill as MCP tool: {skill.id}")
    return mcp
