"""
OpenRouter Client Tests
"""

import json

import httpx
import pytest

from verdict_service.llm.openrouter_base import OpenRouterBaseClient


def _client_with(handler):
    client = OpenRouterBaseClient(api_key="test-key", model="openai/gpt-4o", timeout=5)
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


@pytest.mark.asyncio
async def test_complete_sends_json_request_and_reads_usage():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={
            "choices": [{"message": {"content": "{\"ok\": true}"}}],
            "usage": {"prompt_tokens": 11, "completion_tokens": 7},
        })

    client = _client_with(handler)
    result = await client.complete("system", "user")
    await client.close()

    assert result.success is True
    assert result.content == "{\"ok\": true}"
    assert (result.input_tokens, result.output_tokens) == (11, 7)
    assert seen["auth"] == "Bearer test-key"
    assert seen["body"]["response_format"] == {"type": "json_object"}
    assert [m["role"] for m in seen["body"]["messages"]] == ["system", "user"]


@pytest.mark.asyncio
async def test_http_error_is_returned_not_raised():
    client = _client_with(lambda request: httpx.Response(503, text="overloaded"))

    result = await client.complete("system", "user")

    assert result.success is False
    assert result.error.startswith("HTTP 503")


@pytest.mark.asyncio
async def test_missing_content_is_a_failure():
    client = _client_with(lambda request: httpx.Response(200, json={"choices": []}))

    result = await client.complete("system", "user")

    assert result.success is False
    assert "missing content" in result.error


@pytest.mark.asyncio
async def test_without_api_key_no_request_is_made():
    def handler(request):
        raise AssertionError("no HTTP call expected")

    client = _client_with(handler)
    client.api_key = None

    result = await client.complete("system", "user")

    assert result.success is False
    assert result.error == "API key not configured"
