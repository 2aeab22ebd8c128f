"""Pytest configuration and fixtures for vibekit tests."""

from pathlib import Path

import pytest

from stubs import FakeClientFactory, build_lending_skill, make_settings
from vibekit.context import InvocationContext
from vibekit.tool_servers import ToolServerClientManager

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def settings():
    """Settings with small limits for tests."""
    return make_settings()


@pytest.fixture
def lending_skill():
    """LLM-loop lending skill with a hooked borrow tool."""
    return build_lending_skill()


@pytest.fixture
def client_factory() -> FakeClientFactory:
    """Factory producing fake tool server clients."""
    return FakeClientFactory()


@pytest.fixture
def manager(client_factory) -> ToolServerClientManager:
    """Client manager wired to fake clients."""
    return ToolServerClientManager(handshake_timeout=1.0, client_factory=client_factory)


@pytest.fixture
def make_context():
    """Build invocation contexts for direct engine/tool calls."""

    def _make(skill_id: str = "lending", **kwargs) -> InvocationContext:
        return InvocationContext(skill_id=skill_id, context_id=kwargs.pop("context_id", "ctx-1"), **kwargs)

    return _make


@pytest.fixture
def echo_server_path() -> Path:
    """Path to the stdio MCP echo server script."""
    return FIXTURES_DIR / "echo_server.py"
