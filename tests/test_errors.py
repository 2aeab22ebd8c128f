"""Tests for the error taxonomy."""

import pytest

from vibekit.errors import (
    ERROR_CODES,
    INTERNAL_ERROR,
    METHOD_NOT_FOUND,
    ErrorKind,
    VibkitError,
)


class TestErrorCodes:
    """Test reserved code assignments."""

    def test_every_kind_has_a_code(self):
        """No kind is left without a code."""
        assert set(ERROR_CODES) == set(ErrorKind)

    @pytest.mark.parametrize(
        "factory,code",
        [
            (VibkitError.parse_error, -32700),
            (VibkitError.invalid_request, -32600),
            (VibkitError.method_not_found, -32601),
            (VibkitError.invalid_params, -32602),
            (VibkitError.internal_error, -32603),
            (VibkitError.task_not_found, -32001),
            (VibkitError.task_not_cancelable, -32002),
            (VibkitError.push_notification_not_supported, -32003),
            (VibkitError.unsupported_operation, -32004),
            (VibkitError.content_type_not_supported, -32005),
            (VibkitError.invalid_agent_response, -32006),
        ],
    )
    def test_protocol_codes(self, factory, code):
        """Protocol errors use the reserved JSON-RPC range."""
        assert factory().code == code

    def test_runtime_kinds_map_to_internal_error(self):
        """Runtime failures without a closer code report InternalError."""
        assert VibkitError.tool_server_unavailable("pool", "gone").code == INTERNAL_ERROR
        assert VibkitError.tool_invocation_error("borrow", "boom").code == INTERNAL_ERROR
        assert VibkitError.configuration_error("bad").code == INTERNAL_ERROR
        assert VibkitError.orchestration_exhausted("Lending", 5).code == INTERNAL_ERROR

    def test_skill_not_found_uses_method_not_found(self):
        """A missing skill is closest to a missing method."""
        error = VibkitError.skill_not_found("swap")
        assert error.code == METHOD_NOT_FOUND
        assert error.name == "SkillNotFoundError"
        assert error.data == {"skillId": "swap"}


class TestVibkitError:
    """Test error values and conversions."""

    def test_fields(self):
        """Errors carry kind, code, message, data and task id."""
        error = VibkitError.task_not_found("task-1")
        assert error.name == "TaskNotFoundError"
        assert error.message == "Task not found: task-1"
        assert error.task_id == "task-1"
        assert str(error) == "Task not found: task-1"

    def test_to_jsonrpc_error(self):
        """Conversion keeps code, message and data."""
        error = VibkitError.invalid_params("bad amount", data={"field": "amount"})
        wire = error.to_jsonrpc_error()
        assert wire.code == -32602
        assert wire.message == "bad amount"
        assert wire.data == {"field": "amount"}

    def test_unknown_code_defaults_to_internal_error(self):
        """Codes outside the taxonomy are reported as InternalError."""
        error = VibkitError("CustomError", 1234, "odd")
        assert error.to_jsonrpc_error().code == INTERNAL_ERROR

    def test_unserializable_data_never_raises(self):
        """Data that cannot be JSON encoded is replaced by its repr."""
        marker = object()
        error = VibkitError.internal_error("boom", data={"obj": marker})
        wire = error.to_jsonrpc_error()
        assert wire.data == repr({"obj": marker})

    def test_from_exception_wraps(self):
        """Foreign exceptions become InternalError."""
        error = VibkitError.from_exception(ValueError("nope"), "while borrowing")
        assert error.code == INTERNAL_ERROR
        assert error.message == "while borrowing: nope"
        assert error.data == {"exception": "ValueError"}

    def test_from_exception_named(self):
        """A caller-supplied name is set at construction; the code stays InternalError."""
        error = VibkitError.from_exception(KeyError("token"), name="KeyError")
        assert error.name == "KeyError"
        assert error.code == INTERNAL_ERROR
        assert error.to_jsonrpc_error().code == INTERNAL_ERROR

    def test_invalid_agent_response_keeps_data(self):
        error = VibkitError.invalid_agent_response("bad payload", data={"field": "amount"})
        assert error.name == "InvalidAgentResponseError"
        assert error.data == {"field": "amount"}
        assert error.to_jsonrpc_error().data == {"field": "amount"}

    def test_from_exception_passes_through(self):
        """A VibkitError is returned unchanged."""
        original = VibkitError.skill_not_found("swap")
        assert VibkitError.from_exception(original) is original

    def test_to_dict(self):
        """Task metadata form has name, code and message."""
        error = VibkitError.orchestration_exhausted("Lending", 3)
        assert error.to_dict() == {
            "name": "OrchestrationExhaustedError",
            "code": INTERNAL_ERROR,
            "message": "Skill 'Lending' did not produce a final answer within 3 steps",
        }
