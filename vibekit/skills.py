"""Skill, tool and tool-server definitions plus the skill registry."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Mapping, Sequence, Union

from pydantic import BaseModel, ValidationError

from vibekit.errors import VibkitError
from vibekit.schemas import AgentCard, AgentSkill, Message, Task

if TYPE_CHECKING:
    from vibekit.context import InvocationContext

logger = logging.getLogger(__name__)

JSON_MIME = "application/json"
TEXT_MIME = "text/plain"

TRANSPORTS = ("stdio", "http", "sse")

# Key under which a text-parameter tool receives its argument from the model.
TEXT_ARGUMENT = "input"

ToolExecute = Callable[[Any, "InvocationContext"], Union[Any, Awaitable[Any]]]
Handler = Callable[[Any, "InvocationContext"], Awaitable[Union[Task, Message]]]


def _is_model(schema: Any) -> bool:
    return isinstance(schema, type) and issubclass(schema, BaseModel)


def _schema_name(schema: Any) -> str:
    return getattr(schema, "__name__", type(schema).__name__)


def get_input_mime_type(schema: Any, skill_name: str | None = None) -> str:
    """Derive the content type of a schema.

    Only pydantic models (structured content) and ``str`` (text content)
    are supported.

    Args:
        schema: Input or parameter schema
        skill_name: Skill name for the error message

    Returns:
        The MIME type string

    Raises:
        VibkitError: ConfigurationError for any other schema
    """
    if schema is str:
        return TEXT_MIME
    if _is_model(schema):
        return JSON_MIME
    prefix = f'Skill "{skill_name}": ' if skill_name else ""
    raise VibkitError.configuration_error(
        f"{prefix}{_schema_name(schema)} not supported",
        data={"schema": _schema_name(schema)},
    )


@dataclass(frozen=True)
class Tool:
    """A single callable operation with a parameter schema.

    ``parameters`` is a pydantic model, ``str``, or (for tools discovered on
    a tool server) the remote JSON schema dict passed through unchanged.
    """

    name: str
    description: str
    parameters: Any
    execute: ToolExecute

    def json_schema(self) -> dict[str, Any]:
        """JSON schema presented to the model."""
        if isinstance(self.parameters, dict):
            return self.parameters
        if self.parameters is str:
            return {
                "type": "object",
                "properties": {TEXT_ARGUMENT: {"type": "string"}},
                "required": [TEXT_ARGUMENT],
            }
        return self.parameters.model_json_schema()

    def validate_args(self, raw: Any) -> Any:
        """Validate model-supplied arguments.

        Returns:
            Args for ``execute``: a dict for structured tools, a string for
            text tools

        Raises:
            VibkitError: InvalidParams when the arguments do not fit
        """
        if isinstance(self.parameters, dict):
            if not isinstance(raw, dict):
                raise VibkitError.invalid_params(f"Arguments for tool '{self.name}' must be an object")
            return raw

        if self.parameters is str:
            if isinstance(raw, str):
                return raw
            if isinstance(raw, dict) and isinstance(raw.get(TEXT_ARGUMENT), str):
                return raw[TEXT_ARGUMENT]
            raise VibkitError.invalid_params(
                f"Tool '{self.name}' expects a string argument '{TEXT_ARGUMENT}'"
            )

        try:
            return self.parameters.model_validate(raw).model_dump()
        except ValidationError as e:
            raise VibkitError.invalid_params(
                f"Invalid arguments for tool '{self.name}': {e.error_count()} validation error(s)",
                data=json.loads(e.json(include_url=False)),
            ) from e


@dataclass(frozen=True)
class ToolServerSpec:
    """Connection descriptor for an out-of-process tool server."""

    name: str
    command: str | None = None
    args: tuple[str, ...] = ()
    url: str | None = None
    transport: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    expose_tools: bool = False

    @property
    def resolved_transport(self) -> str:
        """Transport name, inferred from command/url when not given."""
        if self.transport:
            return self.transport
        return "stdio" if self.command else "http"


@dataclass(frozen=True)
class Skill:
    """A named, schema-validated capability exposing tools and/or a handler."""

    id: str
    name: str
    description: str
    tags: tuple[str, ...]
    examples: tuple[str, ...]
    input_schema: Any
    tools: tuple[Tool, ...] = ()
    tool_servers: tuple[ToolServerSpec, ...] = ()
    handler: Handler | None = None

    @property
    def input_mime_type(self) -> str:
        return get_input_mime_type(self.input_schema, self.name)

    def validate_input(self, payload: Any) -> Any:
        """Validate an instruction payload against the input schema.

        Raises:
            VibkitError: InvalidParams on mismatch
        """
        if self.input_schema is str:
            if not isinstance(payload, str):
                raise VibkitError.invalid_params(f"Skill '{self.id}' expects text input")
            return payload
        try:
            return self.input_schema.model_validate(payload)
        except ValidationError as e:
            raise VibkitError.invalid_params(
                f"Invalid arguments for skill {self.name}: {e.error_count()} validation error(s)",
                data=json.loads(e.json(include_url=False)),
            ) from e

    def to_agent_skill(self) -> AgentSkill:
        """Published projection used in the capability card."""
        return AgentSkill(
            id=self.id,
            name=self.name,
            description=self.description,
            tags=list(self.tags),
            examples=list(self.examples),
            input_modes=[self.input_mime_type],
            output_modes=[JSON_MIME],
        )


def _validate_tool_server(skill: Skill, spec: ToolServerSpec) -> None:
    if not spec.name:
        raise VibkitError.configuration_error(f'Skill "{skill.name}": tool server must have a name')
    if bool(spec.command) == bool(spec.url):
        raise VibkitError.configuration_error(
            f'Skill "{skill.name}": tool server "{spec.name}" needs exactly one of command or url'
        )
    transport = spec.resolved_transport
    if transport not in TRANSPORTS:
        raise VibkitError.configuration_error(
            f'Skill "{skill.name}": unknown transport "{transport}" for tool server "{spec.name}"'
        )
    if (transport == "stdio") != bool(spec.command):
        raise VibkitError.configuration_error(
            f'Skill "{skill.name}": transport "{transport}" does not match tool server "{spec.name}" endpoint'
        )


def validate_skill(skill: Skill) -> None:
    """Check one skill definition.

    Raises:
        VibkitError: ConfigurationError describing the first problem found
    """
    if not skill.id or not skill.id.strip():
        raise VibkitError.configuration_error("Skill must have a non-empty id")
    if not skill.tags:
        raise VibkitError.configuration_error(f'Skill "{skill.name}" must have at least one tag')
    if not skill.examples:
        raise VibkitError.configuration_error(f'Skill "{skill.name}" must have at least one example')
    if skill.handler is None and not skill.tools:
        raise VibkitError.configuration_error(
            f'Skill "{skill.name}" must have at least one tool or a handler'
        )

    get_input_mime_type(skill.input_schema, skill.name)

    seen_tools: set[str] = set()
    for tool in skill.tools:
        if tool.name in seen_tools:
            raise VibkitError.configuration_error(f'Skill "{skill.name}": duplicate tool "{tool.name}"')
        seen_tools.add(tool.name)
        get_input_mime_type(tool.parameters, f"{skill.name}/{tool.name}")

    seen_servers: set[str] = set()
    for spec in skill.tool_servers:
        _validate_tool_server(skill, spec)
        if spec.name in seen_servers:
            raise VibkitError.configuration_error(
                f'Skill "{skill.name}": duplicate tool server "{spec.name}"'
            )
        seen_servers.add(spec.name)


def define_skill(
    id: str,
    name: str,
    description: str,
    tags: Sequence[str],
    examples: Sequence[str],
    input_schema: Any,
    tools: Sequence[Tool] = (),
    tool_servers: Sequence[ToolServerSpec] = (),
    handler: Handler | None = None,
) -> Skill:
    """Build and validate a skill definition.

    Tags are de-duplicated preserving order.

    Raises:
        VibkitError: ConfigurationError for malformed definitions
    """
    skill = Skill(
        id=id,
        name=name,
        description=description,
        tags=tuple(dict.fromkeys(tags)),
        examples=tuple(examples),
        input_schema=input_schema,
        tools=tuple(tools),
        tool_servers=tuple(tool_servers),
        handler=handler,
    )
    validate_skill(skill)
    return skill


class SkillRegistry:
    """Validated index of skills, keyed by id."""

    def __init__(self, skills: Iterable[Skill] = ()):
        self._skills: dict[str, Skill] = {}
        self.register(skills)

    def register(self, skills: Iterable[Skill]) -> SkillRegistry:
        """Validate and add skills; nothing is added if any skill is rejected.

        Raises:
            VibkitError: ConfigurationError on duplicate ids or bad definitions
        """
        batch = list(skills)
        ids = set(self._skills)
        for skill in batch:
            validate_skill(skill)
            if skill.id in ids:
                raise VibkitError.configuration_error(f"Duplicate skill id: {skill.id}")
            ids.add(skill.id)

        for skill in batch:
            self._skills[skill.id] = skill
            logger.info(f"Registered skill: {skill.id} ({len(skill.tools)} tools)")
        return self

    def resolve(self, skill_id: str) -> Skill:
        """Look up a skill by id.

        Raises:
            VibkitError: SkillNotFound
        """
        try:
            return self._skills[skill_id]
        except KeyError:
            raise VibkitError.skill_not_found(skill_id) from None

    def all(self) -> list[Skill]:
        return list(self._skills.values())

    def __len__(self) -> int:
        return len(self._skills)

    def __contains__(self, skill_id: object) -> bool:
        return skill_id in self._skills

    def to_capability_card(
        self,
        name: str,
        version: str,
        description: str = "",
        url: str | None = None,
    ) -> AgentCard:
        """Project the registry onto the published capability card."""
        return AgentCard(
            name=name,
            version=version,
            description=description,
            url=url,
            skills=[skill.to_agent_skill() for skill in self._skills.values()],
        )
