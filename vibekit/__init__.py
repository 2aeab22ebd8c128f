"""Vibekit skill orchestration runtime.

Resolves an instruction for a declared skill into either a manual handler
call or a bounded LLM tool-calling loop, runs the resulting tool calls
against local tools and MCP tool servers, and packages the outcome as a
Task or Message.
"""

__version__ = "0.1.0"
