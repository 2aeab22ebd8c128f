"""Helpers for reading and building MCP tool responses."""

from __future__ import annotations

import html
import json
import re
from datetime import datetime, timezone
from typing import Any, Sequence, TypeVar

from mcp import types as mcp_types
from pydantic import BaseModel, ValidationError

from vibekit.errors import VibkitError
from vibekit.protocol import new_id
from vibekit.schemas import Message, Task

ModelT = TypeVar("ModelT", bound=BaseModel)


def _as_result(raw: Any) -> mcp_types.CallToolResult:
    if isinstance(raw, mcp_types.CallToolResult):
        return raw
    try:
        return mcp_types.CallToolResult.model_validate(raw)
    except ValidationError as e:
        raise VibkitError.invalid_agent_response(f"Malformed tool response: {e.error_count()} error(s)") from e


def _first_text(result: mcp_types.CallToolResult) -> str | None:
    if not result.content:
        return None
    first = result.content[0]
    return first.text if isinstance(first, mcp_types.TextContent) else None


def _raise_if_error(result: mcp_types.CallToolResult, tool_name: str) -> None:
    if result.isError:
        text = _first_text(result) or "tool response is an error"
        raise VibkitError.tool_invocation_error(tool_name, text)


def parse_tool_response_text(raw: Any, tool_name: str = "tool") -> str:
    """Extract the text of the first content part.

    Raises:
        VibkitError: ToolInvocationError if the response is an error,
            InvalidAgentResponse if it has no text content
    """
    result = _as_result(raw)
    _raise_if_error(result, tool_name)
    if not result.content:
        raise VibkitError.invalid_agent_response("Tool response content is empty")
    text = _first_text(result)
    if text is None:
        raise VibkitError.invalid_agent_response("First content part of tool response is not text")
    return text


def parse_tool_response_payload(raw: Any, model: type[ModelT], tool_name: str = "tool") -> ModelT:
    """Validate a tool response's payload against a pydantic model.

    Uses ``structuredContent`` when present, otherwise a JSON text part.

    Raises:
        VibkitError: ToolInvocationError if the response is an error,
            InvalidAgentResponse if the payload is missing or does not fit
    """
    result = _as_result(raw)
    _raise_if_error(result, tool_name)

    payload = result.structuredContent
    if payload is None:
        text = _first_text(result)
        if text is None:
            raise VibkitError.invalid_agent_response("Tool response has no structured content")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise VibkitError.invalid_agent_response(f"Tool response is not valid JSON: {e.msg}") from e

    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise VibkitError.invalid_agent_response(
            f"Tool response does not match {model.__name__}",
            data=json.loads(e.json(include_url=False)),
        ) from e


def to_tag_uri_authority(agent_id: str) -> str:
    """Lowercase an agent id and collapse non-alphanumeric runs to hyphens."""
    return re.sub(r"[^a-z0-9]+", "-", agent_id.lower()).strip("-")


def create_mcp_a2a_response(result: Task | Message, agent_id: str) -> mcp_types.CallToolResult:
    """Wrap a Task or Message as an embedded JSON resource."""
    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    return mcp_types.CallToolResult(
        content=[
            mcp_types.EmbeddedResource(
                type="resource",
                resource=mcp_types.TextResourceContents(
                    uri=f"tag:{to_tag_uri_authority(agent_id)},{today}:{new_id()}",
                    mimeType="application/json",
                    text=json.dumps(result.to_wire()),
                ),
            )
        ]
    )


def create_mcp_error_response(message: str, error_name: str | None = None) -> mcp_types.CallToolResult:
    text = f"[{error_name}]: {message}" if error_name else message
    return mcp_types.CallToolResult(
        isError=True,
        content=[mcp_types.TextContent(type="text", text=text)],
    )


def create_mcp_text_response(text: str) -> mcp_types.CallToolResult:
    return mcp_types.CallToolResult(content=[mcp_types.TextContent(type="text", text=text)])


def format_tool_description(description: str, tags: Sequence[str], examples: Sequence[str]) -> str:
    """Append escaped <tags> and <examples> XML to a tool description."""
    tags_xml = "<tags>" + "".join(f"<tag>{html.escape(tag)}</tag>" for tag in tags) + "</tags>"
    examples_xml = (
        "<examples>" + "".join(f"<example>{html.escape(example)}</example>" for example in examples) + "</examples>"
    )
    return f"{description}\n\n{tags_xml}\n{examples_xml}"
