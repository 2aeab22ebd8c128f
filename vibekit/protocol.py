"""Conversion of orchestration outcomes into Task/Message wire objects."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Sequence

from vibekit.errors import VibkitError
from vibekit.schemas import (
    Artifact,
    DataPart,
    Message,
    Part,
    Task,
    TaskState,
    TaskStatus,
    TextPart,
)

TRANSACTION_PLAN_ARTIFACT = "transaction-plan"


def new_id() -> str:
    """Generate a fresh identifier."""
    return uuid.uuid4().hex


def current_timestamp() -> str:
    """Current UTC time in ISO 8601 format."""
    return datetime.now(timezone.utc).isoformat()


def make_context_id(prefix: str, suffix: str) -> str:
    """Build a correlation id like ``borrow-success-1718000000000-a1b2c3``."""
    return f"{prefix}-{suffix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


def is_protocol_result(value: Any) -> bool:
    """Check whether a value is already a Task or Message."""
    return isinstance(value, (Task, Message))


# --- Builders ---


def create_info_message(
    text: str,
    role: str = "agent",
    context_id: str | None = None,
    task_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    message_id: str | None = None,
) -> Message:
    """Create a single-text-part Message."""
    return Message(
        role=role,
        parts=[TextPart(text=text)],
        message_id=message_id or new_id(),
        context_id=context_id,
        task_id=task_id,
        metadata=metadata,
    )


def create_artifact(
    parts: Sequence[Part] | dict[str, Any],
    name: str | None = None,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
    artifact_id: str | None = None,
) -> Artifact:
    """Create an Artifact from parts, or from a dict wrapped as one data part."""
    if isinstance(parts, dict):
        parts = [DataPart(data=parts)]
    return Artifact(
        artifact_id=artifact_id or new_id(),
        name=name,
        description=description,
        parts=list(parts),
        metadata=metadata,
    )


def create_transaction_artifact(
    tx_plan: Sequence[dict[str, Any]],
    tx_preview: dict[str, Any],
    description: str | None = None,
) -> Artifact:
    """Create the artifact carrying a transaction plan and its preview."""
    return create_artifact(
        {"txPlan": list(tx_plan), "txPreview": tx_preview},
        name=TRANSACTION_PLAN_ARTIFACT,
        description=description,
    )


# --- Outcome mapping ---


@dataclass(frozen=True)
class Outcome:
    """Internal result of an invocation before it becomes a wire object.

    ``state`` of None means a single-turn reply with no task lifecycle.
    """

    state: TaskState | None
    text: str
    artifacts: tuple[Artifact, ...] = ()
    error: VibkitError | None = None
    metadata: dict[str, Any] | None = field(default=None, compare=False)

    @classmethod
    def completed(cls, text: str, artifacts: Sequence[Artifact] = ()) -> Outcome:
        return cls(TaskState.COMPLETED, text, tuple(artifacts))

    @classmethod
    def input_required(cls, text: str) -> Outcome:
        return cls(TaskState.INPUT_REQUIRED, text)

    @classmethod
    def failed(cls, error: VibkitError) -> Outcome:
        return cls(TaskState.FAILED, error.message, error=error)

    @classmethod
    def reply(cls, text: str) -> Outcome:
        return cls(None, text)


def to_wire(
    outcome: Outcome,
    context_id: str,
    task_id: str | None = None,
    timestamp: str | None = None,
) -> Task | Message:
    """Map an outcome onto a Task or Message.

    The result depends only on the outcome plus the id/timestamp fields, so
    converting the same outcome twice with those held fixed gives equal
    payloads.

    Args:
        outcome: Internal outcome
        context_id: Conversation correlation id
        task_id: Task/message id (generated when omitted)
        timestamp: Status timestamp (now when omitted)

    Returns:
        Task for lifecycle outcomes, Message for plain replies
    """
    task_id = task_id or new_id()

    if outcome.state is None:
        return create_info_message(
            outcome.text,
            context_id=context_id,
            metadata=outcome.metadata,
            message_id=task_id,
        )

    status = TaskStatus(
        state=outcome.state,
        message=create_info_message(
            outcome.text,
            context_id=context_id,
            task_id=task_id,
            message_id=f"{task_id}-status",
        ),
        timestamp=timestamp or current_timestamp(),
    )

    metadata = dict(outcome.metadata) if outcome.metadata else None
    if outcome.error is not None:
        metadata = {**(metadata or {}), "error": outcome.error.to_dict()}

    artifacts = None
    if outcome.state == TaskState.COMPLETED and outcome.artifacts:
        artifacts = list(outcome.artifacts)

    return Task(
        id=task_id,
        context_id=context_id,
        status=status,
        artifacts=artifacts,
        metadata=metadata,
    )


def create_success_task(
    skill_name: str,
    artifacts: Sequence[Artifact] | None = None,
    message: str = "Task completed successfully",
    context_id_suffix: str = "success",
) -> Task:
    """Create a completed Task."""
    return to_wire(
        Outcome.completed(message, artifacts or ()),
        context_id=make_context_id(skill_name, context_id_suffix),
    )


def create_input_required_task(
    skill_name: str,
    message: str,
    context_id_suffix: str = "input-required",
) -> Task:
    """Create a Task asking the user for more input."""
    return to_wire(
        Outcome.input_required(message),
        context_id=make_context_id(skill_name, context_id_suffix),
    )


def create_error_task(
    skill_name: str,
    error: BaseException,
    context_id_suffix: str = "error",
) -> Task:
    """Create a failed Task; the error code is kept in ``metadata.error``."""
    if not isinstance(error, VibkitError):
        error = VibkitError.from_exception(error, name=type(error).__name__)
    return to_wire(
        Outcome.failed(error),
        context_id=make_context_id(skill_name, context_id_suffix),
    )


def error_code_of(result: Task | Message) -> int | None:
    """Return the preserved error code of a failed Task, if any."""
    if isinstance(result, Task) and result.metadata:
        error = result.metadata.get("error")
        if isinstance(error, dict):
            return error.get("code")
    return None
