"""Orchestration engine: manual handler or bounded LLM tool-calling loop."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from pydantic import BaseModel

from vibekit.config import DEFAULT_MAX_STEPS
from vibekit.context import InvocationContext
from vibekit.errors import VibkitError
from vibekit.hooks import maybe_await
from vibekit.llm import ToolCall, tool_descriptor
from vibekit.protocol import Outcome, is_protocol_result, to_wire
from vibekit.schemas import Message, Task, TaskState, WireModel
from vibekit.skills import Skill, Tool
from vibekit.tool_servers import remote_tool

logger = logging.getLogger(__name__)


def build_system_prompt(skill: Skill, base_system_prompt: str | None = None) -> str:
    """System prompt steering the model toward one skill."""
    examples = "\n".join(
        f"<example{i}>\nUser: {example}\nExpected behavior: {skill.description}\n</example{i}>"
        for i, example in enumerate(skill.examples, start=1)
    )
    prompt = (
        f'You are fulfilling the "{skill.name}" skill.\n\n'
        f"Skill Description: {skill.description}\n"
        f"Tags: {', '.join(skill.tags)}\n\n"
        "Your task is to use the available tools to accomplish what the user is asking for "
        "within the context of this skill.\n\n"
        f"Examples of requests for this skill:\n{examples}\n\n"
        f"{base_system_prompt or ''}"
    )
    return prompt.strip()


def _user_content(skill_input: Any) -> str:
    if isinstance(skill_input, BaseModel):
        return skill_input.model_dump_json()
    if isinstance(skill_input, str):
        return skill_input
    return json.dumps(skill_input, default=str)


def _observation(result: Any) -> str:
    """Serialize a tool result for the model."""
    if isinstance(result, str):
        return result
    if isinstance(result, WireModel):
        return json.dumps(result.to_wire())
    if isinstance(result, BaseModel):
        return result.model_dump_json(by_alias=True, exclude_none=True)
    try:
        return json.dumps(result)
    except (TypeError, ValueError):
        return str(result)


def _error_observation(error: VibkitError) -> str:
    return json.dumps({"error": error.to_jsonrpc_error().model_dump(exclude_none=True)})


class OrchestrationEngine:
    """Turns a validated instruction into a terminal Task or Message.

    Args:
        max_steps: Maximum model turns before giving up
        base_system_prompt: Agent-wide text appended to every skill prompt
    """

    def __init__(self, max_steps: int = DEFAULT_MAX_STEPS, base_system_prompt: str | None = None):
        if max_steps < 1:
            raise VibkitError.configuration_error(f"max_steps must be at least 1, got {max_steps}")
        self.max_steps = max_steps
        self.base_system_prompt = base_system_prompt

    def _failed(self, error: VibkitError, context: InvocationContext) -> Task:
        return to_wire(Outcome.failed(error), context_id=context.context_id)

    async def run(self, skill: Skill, skill_input: Any, context: InvocationContext) -> Task | Message:
        """Run one invocation to a terminal result.

        Args:
            skill: Resolved skill
            skill_input: Input already validated against the skill schema
            context: Fresh invocation context

        Returns:
            Task or Message; failures come back as a Failed Task
        """
        if skill.handler is not None:
            return await self._run_handler(skill, skill_input, context)
        return await self._run_loop(skill, skill_input, context)

    # --- Manual handler ---

    async def _run_handler(self, skill: Skill, skill_input: Any, context: InvocationContext) -> Task | Message:
        logger.info(f"Running manual handler for skill: {skill.id}")
        try:
            result = await maybe_await(skill.handler(skill_input, context))
        except Exception as e:
            error = VibkitError.from_exception(e, name=type(e).__name__)
            if isinstance(e, VibkitError):
                logger.warning(f"Handler for skill {skill.id} failed: {error.message}")
            else:
                logger.error(f"Handler for skill {skill.id} raised", exc_info=True)
            return self._failed(error, context)

        if not is_protocol_result(result):
            error = VibkitError.invalid_agent_response(
                f"Handler for skill '{skill.id}' returned {type(result).__name__}, expected Task or Message"
            )
            return self._failed(error, context)
        return result

    # --- LLM loop ---

    def tools_for(self, skill: Skill, context: InvocationContext) -> list[Tool]:
        """Local tools plus remote tools of servers marked ``expose_tools``."""
        tools = list(skill.tools)
        names = {tool.name for tool in tools}
        for spec in skill.tool_servers:
            if not spec.expose_tools:
                continue
            client = context.tool_servers.get(spec.name)
            if client is None:
                continue
            for mcp_tool in client.tools.values():
                if mcp_tool.name in names:
                    logger.warning(
                        f"Remote tool '{mcp_tool.name}' on {spec.name} shadowed by a local tool"
                    )
                    continue
                names.add(mcp_tool.name)
                tools.append(remote_tool(client, mcp_tool, context.manager))
        return tools

    async def _execute_call(
        self,
        tools: dict[str, Tool],
        call: ToolCall,
        context: InvocationContext,
    ) -> tuple[str, Any]:
        """Run one requested call; failures become error observations."""
        tool = tools.get(call.name)
        if tool is None:
            error = VibkitError.method_not_found(call.name)
            logger.warning(f"Model requested unknown tool: {call.name}")
            return _error_observation(error), error

        try:
            args = tool.validate_args(call.arguments)
            result = await maybe_await(tool.execute(args, context))
        except Exception as e:
            error = VibkitError.from_exception(e)
            logger.warning(f"Tool '{call.name}' failed: {error.message}")
            return _error_observation(error), error

        return _observation(result), result

    async def _run_loop(self, skill: Skill, skill_input: Any, context: InvocationContext) -> Task | Message:
        model = context.model
        if model is None:
            return self._failed(
                VibkitError.configuration_error(f"Skill '{skill.id}' needs a language model"),
                context,
            )

        tools = self.tools_for(skill, context)
        by_name = {tool.name: tool for tool in tools}
        descriptors = [tool_descriptor(tool) for tool in tools]
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": build_system_prompt(skill, self.base_system_prompt)},
            {"role": "user", "content": _user_content(skill_input)},
        ]
        last_task: Task | None = None

        for step in range(1, self.max_steps + 1):
            try:
                response = await model.generate(messages, tools=descriptors)
            except Exception as e:
                error = VibkitError.from_exception(e, "LLM provider error")
                logger.error(f"LLM call failed for skill {skill.id}: {error.message}")
                return self._failed(error, context)

            if response.is_final:
                logger.info(f"Skill {skill.id} finished after {step} step(s)")
                if last_task is not None:
                    return last_task
                return to_wire(Outcome.reply(response.text), context_id=context.context_id)

            logger.info(
                f"Step {step}/{self.max_steps}: {', '.join(call.name for call in response.tool_calls)}"
            )
            messages.append(
                {
                    "role": "assistant",
                    "content": response.text,
                    "tool_calls": [
                        {"id": call.id, "name": call.name, "arguments": call.arguments}
                        for call in response.tool_calls
                    ],
                }
            )

            results = await asyncio.gather(
                *(self._execute_call(by_name, call, context) for call in response.tool_calls)
            )

            pending: Task | None = None
            for call, (observation, result) in zip(response.tool_calls, results):
                messages.append(
                    {"role": "tool", "tool_call_id": call.id, "name": call.name, "content": observation}
                )
                if isinstance(result, Task):
                    last_task = result
                    if result.status.state == TaskState.INPUT_REQUIRED and pending is None:
                        pending = result

            if pending is not None:
                logger.info(f"Skill {skill.id} needs more input")
                return pending

        logger.warning(f"Skill {skill.id} exhausted {self.max_steps} steps without a final answer")
        return self._failed(VibkitError.orchestration_exhausted(skill.name, self.max_steps), context)
