"""Tests for the Ollama chat provider."""

import asyncio
import json

import httpx
import pytest

from stubs import build_borrow_tool
from vibekit.errors import VibkitError
from vibekit.llm import OllamaChatModel, tool_descriptor


def _model(handler) -> OllamaChatModel:
    return OllamaChatModel(
        model="test-model",
        base_url="http://ollama.test/",
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


class TestOllamaChatModel:
    """Test request building and response parsing."""

    def test_final_text(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"message": {"role": "assistant", "content": "Hello"}, "done": True})

        response = asyncio.run(_model(handler).generate([{"role": "user", "content": "hi"}]))

        assert response.text == "Hello"
        assert response.is_final
        assert seen["url"] == "http://ollama.test/api/chat"
        assert seen["body"] == {
            "model": "test-model",
            "messages": [{"role": "user", "content": "hi"}],
            "stream": False,
        }

    def test_tool_calls(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "message": {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [
                        {"function": {"name": "borrow", "arguments": {"tokenName": "USDC", "amount": "50"}}},
                        {"function": {"name": "borrow", "arguments": '{"tokenName": "WETH", "amount": "1"}'}},
                    ],
                },
            })

        tools = [tool_descriptor(build_borrow_tool())]
        response = asyncio.run(_model(handler).generate([{"role": "user", "content": "x"}], tools=tools))

        assert not response.is_final
        assert [call.name for call in response.tool_calls] == ["borrow", "borrow"]
        assert response.tool_calls[0].arguments == {"tokenName": "USDC", "amount": "50"}
        assert response.tool_calls[1].arguments == {"tokenName": "WETH", "amount": "1"}
        assert response.tool_calls[0].id != response.tool_calls[1].id
        assert seen["body"]["tools"][0]["type"] == "function"
        assert seen["body"]["tools"][0]["function"]["name"] == "borrow"

    def test_conversation_messages_converted(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"message": {"content": "done"}})

        messages = [
            {"role": "system", "content": "Be brief"},
            {"role": "assistant", "content": "", "tool_calls": [{"id": "1", "name": "borrow", "arguments": {"a": 1}}]},
            {"role": "tool", "tool_call_id": "1", "name": "borrow", "content": "{}"},
        ]
        asyncio.run(_model(handler).generate(messages))

        sent = seen["body"]["messages"]
        assert sent[0] == {"role": "system", "content": "Be brief"}
        assert sent[1]["tool_calls"] == [{"function": {"name": "borrow", "arguments": {"a": 1}}}]
        assert sent[2] == {"role": "tool", "content": "{}", "tool_name": "borrow"}

    def test_structured_output(self):
        schema = {"type": "object", "properties": {"answer": {"type": "string"}}}
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"message": {"content": '{"answer": "yes"}'}})

        response = asyncio.run(_model(handler).generate([{"role": "user", "content": "?"}], schema=schema))

        assert seen["body"]["format"] == schema
        assert response.structured == {"answer": "yes"}

    def test_http_error(self):
        def handler(request):
            return httpx.Response(500, json={"error": "model not loaded"})

        with pytest.raises(VibkitError) as exc_info:
            asyncio.run(_model(handler).generate([{"role": "user", "content": "hi"}]))
        assert exc_info.value.code == -32603
        assert "500" in exc_info.value.message

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(VibkitError) as exc_info:
            asyncio.run(_model(handler).generate([{"role": "user", "content": "hi"}]))
        assert exc_info.value.message == "Ollama service unavailable"

    def test_timeout_retried_once(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json={"message": {"content": "late"}})

        response = asyncio.run(_model(handler).generate([{"role": "user", "content": "hi"}]))
        assert response.text == "late"
        assert len(attempts) == 2

    def test_timeout_twice_fails(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(VibkitError) as exc_info:
            asyncio.run(_model(handler).generate([{"role": "user", "content": "hi"}]))
        assert "timed out" in exc_info.value.message
