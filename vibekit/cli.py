"""CLI for vibekit agents: serve, inspect and invoke skills."""

from __future__ import annotations

import asyncio
import importlib
import json
import logging
from typing import Any

import click

from vibekit import __version__
from vibekit.agent import Agent
from vibekit.errors import VibkitError
from vibekit.skills import JSON_MIME

APP_HELP = "Agent to load, as 'module:attribute' (an Agent or a factory returning one)"


def load_agent(target: str) -> Agent:
    """Import an agent from a ``module:attribute`` reference.

    Raises:
        click.BadParameter: If the reference cannot be resolved to an Agent
    """
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise click.BadParameter(f"expected 'module:attribute', got {target!r}", param_hint="--app")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"cannot import {module_name!r}: {e}", param_hint="--app") from e

    try:
        obj = getattr(module, attribute)
    except AttributeError:
        raise click.BadParameter(f"{module_name!r} has no attribute {attribute!r}", param_hint="--app") from None

    if not isinstance(obj, Agent) and callable(obj):
        obj = obj()
    if not isinstance(obj, Agent):
        raise click.BadParameter(f"{target!r} is not an Agent", param_hint="--app")
    return obj


def _parse_payload(agent: Agent, skill_id: str, payload: str) -> Any:
    try:
        skill = agent.registry.resolve(skill_id)
    except VibkitError as e:
        raise click.ClickException(f"[{e.name}] {e.message}") from e
    if skill.input_mime_type != JSON_MIME:
        return payload
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"skill {skill_id!r} expects JSON input: {e.msg}", param_hint="PAYLOAD") from e


@click.group()
@click.version_option(version=__version__, prog_name="vibekit")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level",
)
def main(log_level: str) -> None:
    """vibekit - Skill orchestration runtime for tool-calling agents."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@main.command()
@click.option("--app", "target", required=True, help=APP_HELP)
@click.option("--host", default=None, help="Host to bind to (defaults to VIBEKIT_HOST)")
@click.option("--port", default=None, type=int, help="Port to listen on (defaults to VIBEKIT_PORT)")
def serve(target: str, host: str | None, port: int | None) -> None:
    """Start the HTTP/JSON-RPC server for an agent."""
    import uvicorn

    from vibekit.server import create_app

    agent = load_agent(target)
    host = host or agent.settings.host
    port = port or agent.settings.port
    click.echo(f"Starting {agent.name} on {host}:{port}")
    uvicorn.run(create_app(agent), host=host, port=port)


@main.command()
@click.option("--app", "target", required=True, help=APP_HELP)
def card(target: str) -> None:
    """Print the agent's capability card."""
    agent = load_agent(target)
    click.echo(json.dumps(agent.card.to_wire(), indent=2))


@main.command()
@click.option("--app", "target", required=True, help=APP_HELP)
@click.option("--context-id", default=None, help="Conversation id to correlate the result with")
@click.argument("skill_id")
@click.argument("payload")
def invoke(target: str, context_id: str | None, skill_id: str, payload: str) -> None:
    """Run one instruction against a skill and print the result.

    \b
    Example:
        vibekit invoke --app lending:agent lending '{"instruction": "Borrow 50 USDC"}'
    """
    agent = load_agent(target)
    skill_input = _parse_payload(agent, skill_id, payload)

    async def run() -> Any:
        async with agent:
            return await agent.invoke(skill_id, skill_input, context_id=context_id)

    try:
        result = asyncio.run(run())
    except VibkitError as e:
        raise click.ClickException(f"[{e.name}] {e.message}") from e
    click.echo(json.dumps(result.to_wire(), indent=2))


@main.command()
@click.option("--app", "target", required=True, help=APP_HELP)
def mcp(target: str) -> None:
    """Run the agent's skills as an MCP server over stdio.

    \b
    Configure in .mcp.json:
        {
            "mcpServers": {
                "lending": {
                    "command": "vibekit",
                    "args": ["mcp", "--app", "lending:agent"]
                }
            }
        }
    """
    from mcp_vibekit.server import build_mcp_server

    build_mcp_server(load_agent(target)).run()


if __name__ == "__main__":
    main()
