"""Pydantic schemas for the task/message wire protocol and capability card."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for wire objects: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dump to the JSON-compatible wire shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TaskState(str, Enum):
    """Task lifecycle states."""

    SUBMITTED = "submitted"
    WORKING = "working"
    INPUT_REQUIRED = "input-required"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_STATES = frozenset({TaskState.COMPLETED, TaskState.FAILED, TaskState.CANCELED})


# --- Content Parts ---


class TextPart(WireModel):
    """Plain text content."""

    kind: Literal["text"] = "text"
    text: str
    metadata: dict[str, Any] | None = None


class DataPart(WireModel):
    """Structured JSON content."""

    kind: Literal["data"] = "data"
    data: dict[str, Any]
    metadata: dict[str, Any] | None = None


Part = Annotated[Union[TextPart, DataPart], Field(discriminator="kind")]


# --- Message / Task ---


class Message(WireModel):
    """Single-turn reply."""

    kind: Literal["message"] = "message"
    role: Literal["agent", "user"] = "agent"
    parts: list[Part] = Field(default_factory=list)
    message_id: str
    context_id: str | None = None
    task_id: str | None = None
    metadata: dict[str, Any] | None = None
    reference_task_ids: list[str] | None = None

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "\n".join(part.text for part in self.parts if isinstance(part, TextPart))


class TaskStatus(WireModel):
    """Current state of a task plus an optional agent message."""

    state: TaskState
    message: Message | None = None
    timestamp: str | None = None


class Artifact(WireModel):
    """Named data bundle attached to a task."""

    artifact_id: str
    name: str | None = None
    description: str | None = None
    parts: list[Part] = Field(default_factory=list)
    metadata: dict[str, Any] | None = None


class Task(WireModel):
    """Protocol-level result with lifecycle state and artifacts."""

    kind: Literal["task"] = "task"
    id: str
    context_id: str
    status: TaskStatus
    artifacts: list[Artifact] | None = None
    metadata: dict[str, Any] | None = None


# --- Capability Card ---


class AgentSkill(WireModel):
    """Published projection of a skill."""

    id: str
    name: str
    description: str
    tags: list[str]
    examples: list[str]
    input_modes: list[str]
    output_modes: list[str]


class AgentCapabilities(WireModel):
    """Optional protocol features advertised by the agent."""

    streaming: bool = False
    push_notifications: bool = False
    state_transition_history: bool = False


class AgentCard(WireModel):
    """Capability card consumed by discovery clients."""

    name: str
    version: str
    description: str = ""
    url: str | None = None
    capabilities: AgentCapabilities = Field(default_factory=AgentCapabilities)
    default_input_modes: list[str] = Field(default_factory=lambda: ["application/json"])
    default_output_modes: list[str] = Field(default_factory=lambda: ["application/json"])
    skills: list[AgentSkill]


# --- JSON-RPC ---


class JSONRPCError(BaseModel):
    """JSON-RPC error object."""

    code: int
    message: str
    data: Any | None = None


class JSONRPCRequest(BaseModel):
    """JSON-RPC 2.0 request envelope."""

    jsonrpc: Literal["2.0"]
    id: str | int | None = None
    method: str
    params: dict[str, Any] = Field(default_factory=dict)


class InvokeSkillParams(WireModel):
    """Params for the skills/invoke method."""

    skill_id: str
    input: Any = None
    context_id: str | None = None


class TaskIdParams(WireModel):
    """Params for methods addressing a task by id."""

    id: str
