"""Runtime configuration for the agent."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from vibekit.errors import VibkitError

# LLM tool-calling loop
DEFAULT_MAX_STEPS = 5

# Tool server handshake
DEFAULT_HANDSHAKE_TIMEOUT = 30.0  # seconds

# Ollama API
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "qwen2.5:7b-instruct"
DEFAULT_LLM_TIMEOUT = 60.0  # seconds

# HTTP server
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 41241


def _number(env: Mapping[str, str], key: str, default, cast):
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise VibkitError.configuration_error(f"{key} must be a number, got {raw!r}") from None
    if value <= 0:
        raise VibkitError.configuration_error(f"{key} must be positive, got {raw!r}")
    return value


@dataclass
class Settings:
    """Agent runtime settings."""

    max_steps: int = DEFAULT_MAX_STEPS
    handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT
    ollama_base_url: str = DEFAULT_OLLAMA_BASE_URL
    model: str = DEFAULT_MODEL
    llm_timeout: float = DEFAULT_LLM_TIMEOUT
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from VIBEKIT_* / OLLAMA_* environment variables."""
        env = os.environ if env is None else env
        return cls(
            max_steps=_number(env, "VIBEKIT_MAX_STEPS", DEFAULT_MAX_STEPS, int),
            handshake_timeout=_number(env, "VIBEKIT_HANDSHAKE_TIMEOUT", DEFAULT_HANDSHAKE_TIMEOUT, float),
            ollama_base_url=env.get("OLLAMA_BASE_URL") or DEFAULT_OLLAMA_BASE_URL,
            model=env.get("VIBEKIT_MODEL") or DEFAULT_MODEL,
            llm_timeout=_number(env, "VIBEKIT_LLM_TIMEOUT", DEFAULT_LLM_TIMEOUT, float),
            host=env.get("VIBEKIT_HOST") or DEFAULT_HOST,
            port=_number(env, "VIBEKIT_PORT", DEFAULT_PORT, int),
        )
