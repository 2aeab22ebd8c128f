"""Agent runtime: explicit owner of skills, tool servers, model and tasks."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Sequence

from vibekit.config import Settings
from vibekit.context import InvocationContext
from vibekit.engine import OrchestrationEngine
from vibekit.errors import VibkitError
from vibekit.hooks import maybe_await
from vibekit.llm import LanguageModel, OllamaChatModel
from vibekit.protocol import Outcome, create_info_message, current_timestamp, new_id, to_wire
from vibekit.schemas import AgentCard, Message, Task, TaskState, TaskStatus, TERMINAL_STATES
from vibekit.skills import Skill, SkillRegistry
from vibekit.store import InMemoryTaskStore
from vibekit.tool_servers import ToolServerClient, ToolServerClientManager

logger = logging.getLogger(__name__)


def _with_context_id(result: Task | Message, context_id: str) -> Task | Message:
    """Copy of a result correlated to the caller's conversation."""
    if isinstance(result, Message):
        return result.model_copy(update={"context_id": context_id})
    status = result.status
    if status.message is not None:
        status = status.model_copy(update={"message": status.message.model_copy(update={"context_id": context_id})})
    return result.model_copy(update={"context_id": context_id, "status": status})


def _payload_text(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, default=str)


class Agent:
    """Runtime context holding every skill, client and setting of one agent.

    Args:
        name: Agent name published in the capability card
        version: Agent version
        skills: Skill definitions (at least one)
        description: Card description
        model: Language model for LLM-loop skills (Ollama by default)
        settings: Runtime settings (environment by default)
        context_provider: Callable returning the custom context, sync or async
        base_system_prompt: Text appended to every skill's system prompt
        manager: Tool server client manager (one per agent by default)
        task_store: Store for returned tasks
        url: Public URL published in the card
    """

    def __init__(
        self,
        name: str,
        version: str,
        skills: Sequence[Skill],
        description: str = "",
        model: LanguageModel | None = None,
        settings: Settings | None = None,
        context_provider: Callable[[], Any] | None = None,
        base_system_prompt: str | None = None,
        manager: ToolServerClientManager | None = None,
        task_store: InMemoryTaskStore | None = None,
        url: str | None = None,
    ):
        if not skills:
            raise VibkitError.configuration_error("Agent requires at least one skill")

        self.name = name
        self.version = version
        self.description = description
        self.url = url
        self.settings = settings or Settings.from_env()
        self.registry = SkillRegistry(skills)

        if model is None and any(skill.handler is None for skill in self.registry.all()):
            model = OllamaChatModel(
                model=self.settings.model,
                base_url=self.settings.ollama_base_url,
                timeout=self.settings.llm_timeout,
            )
        self.model = model

        self.context_provider = context_provider
        self.custom_context: Any = None
        self.manager = manager or ToolServerClientManager(handshake_timeout=self.settings.handshake_timeout)
        self.engine = OrchestrationEngine(self.settings.max_steps, base_system_prompt)
        self.task_store = task_store or InMemoryTaskStore()

        self._lifecycle_lock = asyncio.Lock()
        self._started = False

    @property
    def card(self) -> AgentCard:
        return self.registry.to_capability_card(self.name, self.version, self.description, self.url)

    @property
    def is_started(self) -> bool:
        return self._started

    # --- Lifecycle ---

    async def start(self) -> None:
        """Resolve the custom context and pre-connect declared tool servers.

        Connection failures are logged; each invocation retries on its own.
        """
        async with self._lifecycle_lock:
            if self._started:
                return
            if self.context_provider is not None:
                self.custom_context = await maybe_await(self.context_provider())

            for skill in self.registry.all():
                for spec in skill.tool_servers:
                    try:
                        await self.manager.ensure_connected(skill.id, spec)
                    except VibkitError as e:
                        logger.warning(f"Could not pre-connect {skill.id}/{spec.name}: {e.message}")

            self._started = True
            logger.info(f"Agent {self.name} v{self.version} started with {len(self.registry)} skills")

    async def stop(self) -> None:
        """Close every tool server connection; safe to call repeatedly."""
        async with self._lifecycle_lock:
            await self.manager.close_all()
            if self._started:
                logger.info(f"Agent {self.name} stopped")
            self._started = False

    async def __aenter__(self) -> Agent:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    # --- Invocation ---

    async def _ensure_servers(self, skill: Skill) -> dict[str, ToolServerClient]:
        """Connect every server of a skill, retrying each once."""
        for spec in skill.tool_servers:
            try:
                await self.manager.ensure_connected(skill.id, spec)
            except VibkitError as e:
                logger.warning(f"Tool server {skill.id}/{spec.name} unavailable, retrying: {e.message}")
                await self.manager.ensure_connected(skill.id, spec)
        return self.manager.clients_for(skill.id)

    async def invoke(self, skill_id: str, payload: Any, context_id: str | None = None) -> Task | Message:
        """Run one instruction against a skill.

        Args:
            skill_id: Target skill
            payload: Instruction payload matching the skill's input schema
            context_id: Conversation id to correlate the result with

        Returns:
            Task or Message; tool server and execution failures come back as
            a Failed Task

        Raises:
            VibkitError: SkillNotFound or InvalidParams, before anything runs
        """
        skill = self.registry.resolve(skill_id)
        skill_input = skill.validate_input(payload)

        if not self._started:
            await self.start()

        logger.info(f"Invoking skill: {skill.id}")
        effective_context_id = context_id or new_id()

        try:
            clients = await self._ensure_servers(skill)
        except VibkitError as e:
            logger.error(f"Skill {skill.id} unusable: {e.message}")
            result: Task | Message = to_wire(Outcome.failed(e), context_id=effective_context_id)
        else:
            context = InvocationContext(
                skill_id=skill.id,
                context_id=effective_context_id,
                custom=self.custom_context,
                model=self.model,
                tool_servers=clients,
                skill_input=skill_input,
                manager=self.manager,
            )
            result = await self.engine.run(skill, skill_input, context)

        if context_id:
            result = _with_context_id(result, context_id)

        if isinstance(result, Task):
            request = create_info_message(_payload_text(payload), role="user", context_id=result.context_id)
            self.task_store.save(result, history=[request])
            logger.info(f"Skill {skill.id} returned task {result.id} ({result.status.state.value})")
        return result

    # --- Task queries ---

    def get_task(self, task_id: str) -> Task:
        """Look up a returned task.

        Raises:
            VibkitError: TaskNotFound
        """
        return self.task_store.load(task_id).task

    def cancel_task(self, task_id: str) -> Task:
        """Cancel a task still waiting for input.

        Raises:
            VibkitError: TaskNotFound, or TaskNotCancelable for terminal tasks
        """
        stored = self.task_store.load(task_id)
        task = stored.task
        if task.status.state in TERMINAL_STATES:
            raise VibkitError.task_not_cancelable(task_id)

        canceled = task.model_copy(
            update={
                "status": TaskStatus(
                    state=TaskState.CANCELED,
                    message=create_info_message("Task canceled", context_id=task.context_id, task_id=task.id),
                    timestamp=current_timestamp(),
                )
            }
        )
        self.task_store.save(canceled, history=stored.history)
        logger.info(f"Task {task_id} canceled")
        return canceled
