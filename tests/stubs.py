"""Test doubles: scripted language models, fake tool server clients, a lending skill."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from mcp import types as mcp_types
from pydantic import BaseModel, ConfigDict, Field

from vibekit.config import Settings
from vibekit.errors import VibkitError
from vibekit.hooks import with_hooks
from vibekit.llm import LlmResponse, ToolCall
from vibekit.protocol import (
    create_error_task,
    create_input_required_task,
    create_success_task,
    create_transaction_artifact,
)
from vibekit.skills import Tool, define_skill


def tool_call(name: str, arguments: Any, call_id: str | None = None) -> LlmResponse:
    return LlmResponse(tool_calls=[ToolCall(id=call_id or f"call-{name}", name=name, arguments=arguments)])


def final(text: str) -> LlmResponse:
    return LlmResponse(text=text)


class ScriptedModel:
    """Replays canned responses; raises entries that are exceptions."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def generate(self, messages, tools=None, schema=None):
        self.calls.append({"messages": [dict(m) for m in messages], "tools": list(tools or [])})
        if not self.responses:
            return final("done")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class LoopingModel:
    """Never gives a final answer."""

    def __init__(self, name: str = "echo", arguments: Any = None):
        self.name = name
        self.arguments = arguments if arguments is not None else {"text": "again"}
        self.calls = 0

    async def generate(self, messages, tools=None, schema=None):
        self.calls += 1
        return tool_call(self.name, self.arguments, call_id=f"call-{self.calls}")


def make_settings(**overrides) -> Settings:
    return Settings(**{"max_steps": 5, "handshake_timeout": 1.0, **overrides})


# --- Fake tool servers ---


ECHO_TOOL = mcp_types.Tool(
    name="echo",
    description="Echo the given text",
    inputSchema={"type": "object", "properties": {"text": {"type": "string"}}, "required": ["text"]},
)


class FakeClient:
    """Stands in for ToolServerClient without spawning anything."""

    def __init__(self, skill_id, spec, handshake_timeout=30.0, fail=False):
        self.skill_id = skill_id
        self.spec = spec
        self.handshake_timeout = handshake_timeout
        self.fail = fail
        self.connected = False
        self.close_count = 0
        self.calls: list[tuple[str, dict]] = []
        self.tools = {ECHO_TOOL.name: ECHO_TOOL}

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def connect(self) -> None:
        if self.fail:
            raise VibkitError.tool_server_unavailable(self.name, "process exited")
        self.connected = True

    async def call_tool(self, tool_name, arguments):
        self.calls.append((tool_name, arguments))
        return mcp_types.CallToolResult(
            content=[mcp_types.TextContent(type="text", text=json.dumps(arguments))]
        )

    async def close(self) -> None:
        self.close_count += 1
        self.connected = False


class FakeClientFactory:
    """Creates FakeClients; the first ``failures`` connects fail."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.created: list[FakeClient] = []

    def __call__(self, skill_id, spec, handshake_timeout=30.0):
        fail = len(self.created) < self.failures
        client = FakeClient(skill_id, spec, handshake_timeout=handshake_timeout, fail=fail)
        self.created.append(client)
        return client


# --- Lending domain ---


@dataclass(frozen=True)
class TokenInfo:
    chain_id: str
    address: str


TOKEN_MAP = {
    "USDC": [TokenInfo(chain_id="42161", address="0xaf88d065e77c8cc2239327c5edb3a432268e5831")],
    "WETH": [
        TokenInfo(chain_id="42161", address="0x82af49447d8a07e3bd95bd0d56f35241523fbab1"),
        TokenInfo(chain_id="1", address="0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"),
    ],
}


def find_token_info(token_name: str) -> tuple[str, Any]:
    """Resolve a token symbol to notFound, clarificationNeeded or found."""
    matches = TOKEN_MAP.get(token_name.upper())
    if not matches:
        return "notFound", None
    if len(matches) > 1:
        return "clarificationNeeded", matches
    return "found", matches[0]


class LendingInput(BaseModel):
    instruction: str
    wallet_address: str | None = None


class BorrowParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token_name: str = Field(alias="tokenName")
    amount: str


def resolve_token(args: dict, context):
    """Before hook: replace the symbol with resolved token info, or stop."""
    status, info = find_token_info(args["token_name"])
    if status == "notFound":
        return create_error_task(
            "borrow",
            VibkitError.invalid_params(f"Token '{args['token_name']}' not supported."),
        )
    if status == "clarificationNeeded":
        options = "\n".join(f"- {args['token_name']} on chain {token.chain_id}" for token in info)
        return create_input_required_task(
            "borrow",
            f"Which {args['token_name']} do you want to use? Please specify the chain:\n{options}",
        )
    return {**args, "token": info}


async def execute_borrow(args: dict, context):
    token = args["token"]
    tx_plan = [{"to": token.address, "data": "0x", "value": "0", "chainId": token.chain_id}]
    preview = {"tokenName": args["token_name"], "amount": args["amount"], "action": "borrow"}
    return create_success_task(
        "borrow",
        artifacts=[create_transaction_artifact(tx_plan, preview, description=f"Borrow {args['token_name']}")],
        message=f"Borrowing {args['amount']} {args['token_name']}",
    )


def build_borrow_tool(after=None) -> Tool:
    tool = Tool(
        name="borrow",
        description="Borrow a token from the lending pool",
        parameters=BorrowParams,
        execute=execute_borrow,
    )
    return with_hooks(tool, before=[resolve_token], after=after)


def build_lending_skill(**overrides):
    fields = {
        "id": "lending",
        "name": "Lending",
        "description": "Borrow tokens from a lending pool",
        "tags": ["defi", "lending"],
        "examples": ["Borrow 50 USDC", "Borrow 1 WETH"],
        "input_schema": LendingInput,
        "tools": [build_borrow_tool()],
    }
    fields.update(overrides)
    return define_skill(**fields)
