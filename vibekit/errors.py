"""Typed failure values with stable JSON-RPC error codes."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from vibekit.schemas import JSONRPCError


class ErrorKind(str, Enum):
    """Stable error kind names."""

    PARSE_ERROR = "JSONParseError"
    INVALID_REQUEST = "InvalidRequestError"
    METHOD_NOT_FOUND = "MethodNotFoundError"
    INVALID_PARAMS = "InvalidParamsError"
    INTERNAL_ERROR = "InternalError"
    TASK_NOT_FOUND = "TaskNotFoundError"
    TASK_NOT_CANCELABLE = "TaskNotCancelableError"
    PUSH_NOTIFICATION_NOT_SUPPORTED = "PushNotificationNotSupportedError"
    UNSUPPORTED_OPERATION = "UnsupportedOperationError"
    CONTENT_TYPE_NOT_SUPPORTED = "ContentTypeNotSupportedError"
    INVALID_AGENT_RESPONSE = "InvalidAgentResponseError"
    TOOL_SERVER_UNAVAILABLE = "ToolServerUnavailableError"
    TOOL_INVOCATION_ERROR = "ToolInvocationError"
    SKILL_NOT_FOUND = "SkillNotFoundError"
    CONFIGURATION_ERROR = "ConfigurationError"
    ORCHESTRATION_EXHAUSTED = "OrchestrationExhaustedError"


# JSON-RPC reserved codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
TASK_NOT_FOUND = -32001
TASK_NOT_CANCELABLE = -32002
PUSH_NOTIFICATION_NOT_SUPPORTED = -32003
UNSUPPORTED_OPERATION = -32004
CONTENT_TYPE_NOT_SUPPORTED = -32005
INVALID_AGENT_RESPONSE = -32006

ERROR_CODES: dict[ErrorKind, int] = {
    ErrorKind.PARSE_ERROR: PARSE_ERROR,
    ErrorKind.INVALID_REQUEST: INVALID_REQUEST,
    ErrorKind.METHOD_NOT_FOUND: METHOD_NOT_FOUND,
    ErrorKind.INVALID_PARAMS: INVALID_PARAMS,
    ErrorKind.INTERNAL_ERROR: INTERNAL_ERROR,
    ErrorKind.TASK_NOT_FOUND: TASK_NOT_FOUND,
    ErrorKind.TASK_NOT_CANCELABLE: TASK_NOT_CANCELABLE,
    ErrorKind.PUSH_NOTIFICATION_NOT_SUPPORTED: PUSH_NOTIFICATION_NOT_SUPPORTED,
    ErrorKind.UNSUPPORTED_OPERATION: UNSUPPORTED_OPERATION,
    ErrorKind.CONTENT_TYPE_NOT_SUPPORTED: CONTENT_TYPE_NOT_SUPPORTED,
    ErrorKind.INVALID_AGENT_RESPONSE: INVALID_AGENT_RESPONSE,
    ErrorKind.TOOL_SERVER_UNAVAILABLE: INTERNAL_ERROR,
    ErrorKind.TOOL_INVOCATION_ERROR: INTERNAL_ERROR,
    ErrorKind.SKILL_NOT_FOUND: METHOD_NOT_FOUND,
    ErrorKind.CONFIGURATION_ERROR: INTERNAL_ERROR,
    ErrorKind.ORCHESTRATION_EXHAUSTED: INTERNAL_ERROR,
}

KNOWN_CODES = frozenset(ERROR_CODES.values())


def _jsonable(data: Any) -> Any:
    """Return data unchanged if it serializes to JSON, else its repr."""
    try:
        json.dumps(data)
        return data
    except (TypeError, ValueError):
        return repr(data)


class VibkitError(Exception):
    """Failure carrying a stable kind, numeric code and optional data."""

    def __init__(
        self,
        name: str | ErrorKind,
        code: int,
        message: str,
        data: Any = None,
        task_id: str | None = None,
    ):
        super().__init__(message)
        self.name = name.value if isinstance(name, ErrorKind) else name
        self.code = code
        self.message = message
        self.data = data
        self.task_id = task_id

    def __repr__(self) -> str:
        return f"VibkitError(name={self.name!r}, code={self.code}, message={self.message!r})"

    @classmethod
    def of(cls, kind: ErrorKind, message: str, data: Any = None, task_id: str | None = None) -> VibkitError:
        """Create an error of the given kind with its reserved code."""
        return cls(kind, ERROR_CODES[kind], message, data, task_id)

    def to_jsonrpc_error(self) -> JSONRPCError:
        """Convert to a JSON-RPC error object.

        Never raises: unknown codes fall back to InternalError and
        non-serializable data is replaced by its repr.
        """
        code = self.code if self.code in KNOWN_CODES else INTERNAL_ERROR
        message = self.message if isinstance(self.message, str) else str(self.message)
        if self.data is None:
            return JSONRPCError(code=code, message=message)
        return JSONRPCError(code=code, message=message, data=_jsonable(self.data))

    def to_dict(self) -> dict[str, Any]:
        """Details for task metadata."""
        return {"name": self.name, "code": self.code, "message": self.message}

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        message: str | None = None,
        name: str | None = None,
    ) -> VibkitError:
        """Wrap an arbitrary exception as InternalError; VibkitError passes through.

        ``name`` replaces the InternalError kind name while keeping its code.
        """
        if isinstance(exc, VibkitError):
            return exc
        text = str(exc) or type(exc).__name__
        return cls(
            name or ErrorKind.INTERNAL_ERROR,
            ERROR_CODES[ErrorKind.INTERNAL_ERROR],
            f"{message}: {text}" if message else text,
            data={"exception": type(exc).__name__},
        )

    # --- Reserved protocol errors ---

    @classmethod
    def parse_error(cls, message: str = "Invalid JSON payload", data: Any = None) -> VibkitError:
        return cls.of(ErrorKind.PARSE_ERROR, message, data)

    @classmethod
    def invalid_request(cls, message: str = "Request payload validation error", data: Any = None) -> VibkitError:
        return cls.of(ErrorKind.INVALID_REQUEST, message, data)

    @classmethod
    def method_not_found(cls, method: str | None = None) -> VibkitError:
        message = f"Method not found: {method}" if method else "Method not found"
        return cls.of(ErrorKind.METHOD_NOT_FOUND, message)

    @classmethod
    def invalid_params(cls, message: str = "Invalid parameters", data: Any = None) -> VibkitError:
        return cls.of(ErrorKind.INVALID_PARAMS, message, data)

    @classmethod
    def internal_error(cls, message: str = "Internal error", data: Any = None) -> VibkitError:
        return cls.of(ErrorKind.INTERNAL_ERROR, message, data)

    @classmethod
    def task_not_found(cls, task_id: str | None = None) -> VibkitError:
        message = f"Task not found: {task_id}" if task_id else "Task not found"
        return cls.of(ErrorKind.TASK_NOT_FOUND, message, task_id=task_id)

    @classmethod
    def task_not_cancelable(cls, task_id: str | None = None) -> VibkitError:
        message = f"Task cannot be canceled: {task_id}" if task_id else "Task cannot be canceled"
        return cls.of(ErrorKind.TASK_NOT_CANCELABLE, message, task_id=task_id)

    @classmethod
    def push_notification_not_supported(cls) -> VibkitError:
        return cls.of(ErrorKind.PUSH_NOTIFICATION_NOT_SUPPORTED, "Push Notification is not supported")

    @classmethod
    def unsupported_operation(cls, operation: str | None = None) -> VibkitError:
        message = (
            f"This operation is not supported: {operation}" if operation else "This operation is not supported"
        )
        return cls.of(ErrorKind.UNSUPPORTED_OPERATION, message)

    @classmethod
    def content_type_not_supported(cls, message: str = "Incompatible content types") -> VibkitError:
        return cls.of(ErrorKind.CONTENT_TYPE_NOT_SUPPORTED, message)

    @classmethod
    def invalid_agent_response(cls, message: str = "Invalid agent response", data: Any = None) -> VibkitError:
        return cls.of(ErrorKind.INVALID_AGENT_RESPONSE, message, data)

    # --- Runtime errors ---

    @classmethod
    def tool_server_unavailable(cls, server_name: str, reason: str) -> VibkitError:
        return cls.of(
            ErrorKind.TOOL_SERVER_UNAVAILABLE,
            f"Tool server '{server_name}' unavailable: {reason}",
            data={"server": server_name},
        )

    @classmethod
    def tool_invocation_error(cls, tool_name: str, message: str, data: Any = None) -> VibkitError:
        return cls.of(ErrorKind.TOOL_INVOCATION_ERROR, f"Tool '{tool_name}' failed: {message}", data)

    @classmethod
    def skill_not_found(cls, skill_id: str) -> VibkitError:
        return cls.of(ErrorKind.SKILL_NOT_FOUND, f"Skill not found: {skill_id}", data={"skillId": skill_id})

    @classmethod
    def configuration_error(cls, message: str, data: Any = None) -> VibkitError:
        return cls.of(ErrorKind.CONFIGURATION_ERROR, message, data)

    @classmethod
    def orchestration_exhausted(cls, skill_name: str, max_steps: int) -> VibkitError:
        return cls.of(
            ErrorKind.ORCHESTRATION_EXHAUSTED,
            f"Skill '{skill_name}' did not produce a final answer within {max_steps} steps",
            data={"maxSteps": max_steps},
        )
