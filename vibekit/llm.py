"""Narrow LLM provider contract and an Ollama chat implementation."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

import httpx

from vibekit.config import DEFAULT_LLM_TIMEOUT, DEFAULT_MODEL, DEFAULT_OLLAMA_BASE_URL
from vibekit.errors import VibkitError
from vibekit.protocol import new_id
from vibekit.skills import Tool

logger = logging.getLogger(__name__)

OLLAMA_CHAT_PATH = "/api/chat"


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: Any = field(default_factory=dict)


@dataclass
class LlmResponse:
    """Model output: final text, structured object, or tool calls."""

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    structured: Any = None

    @property
    def is_final(self) -> bool:
        return not self.tool_calls


class LanguageModel(Protocol):
    """What the engine needs from an LLM provider.

    Messages use a provider-neutral shape::

        {"role": "system" | "user", "content": str}
        {"role": "assistant", "content": str, "tool_calls": [{"id", "name", "arguments"}]}
        {"role": "tool", "tool_call_id": str, "name": str, "content": str}
    """

    async def generate(
        self,
        messages: Sequence[dict[str, Any]],
        tools: Sequence[dict[str, Any]] | None = None,
        schema: dict[str, Any] | None = None,
    ) -> LlmResponse: ...


def tool_descriptor(tool: Tool) -> dict[str, Any]:
    """Function-calling descriptor for a tool."""
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.json_schema(),
        },
    }


def _to_ollama_message(message: dict[str, Any]) -> dict[str, Any]:
    role = message["role"]
    if role == "assistant" and message.get("tool_calls"):
        return {
            "role": "assistant",
            "content": message.get("content") or "",
            "tool_calls": [
                {"function": {"name": call["name"], "arguments": call["arguments"]}}
                for call in message["tool_calls"]
            ],
        }
    if role == "tool":
        return {"role": "tool", "content": message["content"], "tool_name": message.get("name")}
    return {"role": role, "content": message.get("content") or ""}


def _parse_arguments(raw: Any) -> Any:
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw
    return raw if raw is not None else {}


class OllamaChatModel:
    """LanguageModel backed by Ollama's /api/chat endpoint."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_OLLAMA_BASE_URL,
        timeout: float = DEFAULT_LLM_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _post(self, payload: dict[str, Any], timeout: float) -> dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=self._transport,
        ) as client:
            response = await client.post(OLLAMA_CHAT_PATH, json=payload)
            response.raise_for_status()
            return response.json()

    async def _chat(self, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            return await self._post(payload, self.timeout)

        except httpx.ConnectError as e:
            logger.error(f"Failed to connect to Ollama: {e}")
            raise VibkitError.internal_error("Ollama service unavailable") from e

        except httpx.TimeoutException as e:
            logger.warning("Ollama request timed out, retrying once...")
            try:
                return await self._post(payload, self.timeout * 1.5)
            except httpx.HTTPError as retry_error:
                logger.error(f"Ollama retry failed: {retry_error}")
                raise VibkitError.internal_error("Ollama request timed out after retry") from e

        except httpx.HTTPStatusError as e:
            logger.error(f"Ollama HTTP error: {e}")
            raise VibkitError.internal_error(f"Ollama returned error: {e.response.status_code}") from e

    async def generate(
        self,
        messages: Sequence[dict[str, Any]],
        tools: Sequence[dict[str, Any]] | None = None,
        schema: dict[str, Any] | None = None,
    ) -> LlmResponse:
        """Run one chat completion.

        Args:
            messages: Conversation so far
            tools: Function descriptors the model may call
            schema: JSON schema requesting a structured answer

        Returns:
            LlmResponse with text, tool calls, or a structured object
        """
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [_to_ollama_message(m) for m in messages],
            "stream": False,
        }
        if tools:
            payload["tools"] = list(tools)
        if schema:
            payload["format"] = schema

        data = await self._chat(payload)
        message = data.get("message") or {}
        tool_calls = [
            ToolCall(
                id=new_id(),
                name=call.get("function", {}).get("name", ""),
                arguments=_parse_arguments(call.get("function", {}).get("arguments")),
            )
            for call in message.get("tool_calls") or []
        ]
        text = message.get("content") or ""

        structured = None
        if schema and text and not tool_calls:
            try:
                structured = json.loads(text)
            except json.JSONDecodeError:
                logger.warning("Model did not return valid JSON for the requested schema")

        return LlmResponse(text=text, tool_calls=tool_calls, structured=structured)
