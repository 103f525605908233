import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import httpx
import pytest
from pydantic import BaseModel

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from lamp.adapters.anthropic_adapter import AnthropicAdapter
from lamp.adapters.base import GenerationAborted, GenerationError, until_aborted
from lamp.adapters.mock_adapter import MockAdapter
from lamp.adapters.openai_adapter import OpenAIAdapter
from lamp.adapters.openrouter_adapter import OpenRouterAdapter
from lamp.core.types import Usage


class Fruits(BaseModel):
    fruits: list[str]


def _client(handler, base_url):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=base_url)


def _openai_reply(content, prompt_tokens=11, completion_tokens=4):
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    }


def test_openai_text_request_and_usage(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=_openai_reply("apple, fig"))

    adapter = OpenAIAdapter("gpt-4o-mini", client=_client(handler, "https://api.openai.com/v1"))
    params = {"temperature": 0.5, "stop_sequences": ["END"], "top_k": 3, "headers": {"x-extra": "1"}}
    res = asyncio.run(adapter.generate_text("List fruit", system="Be terse", params=params))

    assert res["text"] == "apple, fig"
    assert res["usage"] == Usage(prompt_tokens=11, completion_tokens=4, total_tokens=15)
    request = seen[0]
    assert request.url.path == "/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert request.headers["x-extra"] == "1"
    body = json.loads(request.content)
    assert body["messages"] == [
        {"role": "system", "content": "Be terse"},
        {"role": "user", "content": "List fruit"},
    ]
    assert body["temperature"] == 0.5
    assert body["stop"] == ["END"]
    assert "top_k" not in body
    assert "headers" not in body


def test_openai_object_uses_json_schema_and_validates():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json=_openai_reply('{"fruits": ["kiwi"]}'))

    adapter = OpenAIAdapter("gpt-4o", client=_client(handler, "https://api.openai.com/v1"))
    res = asyncio.run(adapter.generate_object("Fruit?", Fruits))

    assert res["object"] == Fruits(fruits=["kiwi"])
    fmt = seen[0]["response_format"]
    assert fmt["type"] == "json_schema"
    assert fmt["json_schema"]["name"] == "Fruits"
    assert "fruits" in fmt["json_schema"]["schema"]["properties"]


def test_openai_schema_mismatch_is_generation_error():
    def handler(request):
        return httpx.Response(200, json=_openai_reply('{"vegetables": []}'))

    adapter = OpenAIAdapter("gpt-4o", client=_client(handler, "https://api.openai.com/v1"))
    with pytest.raises(GenerationError, match="does not match schema"):
        asyncio.run(adapter.generate_object("Fruit?", Fruits))


def test_openai_http_error_message_and_retry_budget():
    attempts = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(401, json={"error": {"message": "bad key"}})

    adapter = OpenAIAdapter("gpt-4o", client=_client(handler, "https://api.openai.com/v1"))
    with pytest.raises(GenerationError) as excinfo:
        asyncio.run(adapter.generate_text("hi", params={"max_retries": 0}))
    assert excinfo.value.status_code == 401
    assert "OPENAI_API_KEY" in str(excinfo.value)
    assert len(attempts) == 1


def test_retries_until_success():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) < 2:
            return httpx.Response(500, json={"error": {"message": "oops"}})
        return httpx.Response(200, json=_openai_reply("ok"))

    adapter = OpenAIAdapter("gpt-4o", client=_client(handler, "https://api.openai.com/v1"))
    res = asyncio.run(adapter.generate_text("hi", params={"max_retries": 1}))
    assert res["text"] == "ok"
    assert len(attempts) == 2


def test_openrouter_strips_prefix_and_uses_its_key(monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=_openai_reply("hello"))

    adapter = OpenRouterAdapter("openrouter:meta/llama-3", client=_client(handler, "https://openrouter.ai/api/v1"))
    asyncio.run(adapter.generate_text("hi"))
    assert adapter.model == "meta/llama-3"
    assert seen[0].headers["Authorization"] == "Bearer or-key"
    assert json.loads(seen[0].content)["model"] == "meta/llama-3"


def test_anthropic_text_request():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "content": [{"type": "text", "text": "plum"}],
                "usage": {"input_tokens": 8, "output_tokens": 2},
            },
        )

    adapter = AnthropicAdapter("claude-3-5-haiku-latest", client=_client(handler, "https://api.anthropic.com/v1"))
    res = asyncio.run(adapter.generate_text("Fruit?", system="One word", params={"top_k": 5}))

    assert res["text"] == "plum"
    assert res["usage"].total_tokens == 10
    body = json.loads(seen[0].content)
    assert body["system"] == "One word"
    assert body["messages"] == [{"role": "user", "content": "Fruit?"}]
    assert body["max_tokens"] == 1024
    assert body["top_k"] == 5
    assert seen[0].headers["anthropic-version"] == "2023-06-01"


def test_anthropic_object_via_forced_tool():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "content": [{"type": "tool_use", "name": "json", "input": {"fruits": ["pear"]}}],
                "usage": {"input_tokens": 20, "output_tokens": 6},
            },
        )

    adapter = AnthropicAdapter("claude-3-7-sonnet-latest", client=_client(handler, "https://api.anthropic.com/v1"))
    res = asyncio.run(adapter.generate_object("Fruit?", Fruits, params={"max_tokens": 64}))

    assert res["object"] == Fruits(fruits=["pear"])
    assert seen[0]["tool_choice"] == {"type": "tool", "name": "json"}
    assert seen[0]["max_tokens"] == 64


def test_mock_adapter_usage_counts_words():
    adapter = MockAdapter(text="one two three")
    res = asyncio.run(adapter.generate_text("a b", system="c"))
    assert res["usage"] == Usage(prompt_tokens=3, completion_tokens=3, total_tokens=6)


def test_mock_adapter_object_mode():
    adapter = MockAdapter(obj={"fruits": ["lime"]})
    res = asyncio.run(adapter.generate_object("Fruit?", Fruits))
    assert res["object"] == Fruits(fruits=["lime"])


def test_abort_signal_already_set():
    async def _run():
        event = asyncio.Event()
        event.set()
        await until_aborted(asyncio.sleep(10), event)

    with pytest.raises(GenerationAborted):
        asyncio.run(_run())


def test_abort_signal_cancels_in_flight_call():
    async def _run():
        event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, event.set)
        await until_aborted(asyncio.sleep(10), event)

    with pytest.raises(GenerationAborted):
        asyncio.run(_run())


def test_abort_signal_unused_returns_result():
    async def _run():
        async def answer():
            return 42

        return await until_aborted(answer(), asyncio.Event())

    assert asyncio.run(_run()) == 42


class Basket(BaseModel):
    owner: str
    size: int
    fruits: list[Fruits]
    note: Optional[str] = None


def test_mock_adapter_builds_placeholder_from_pydantic_schema():
    res = asyncio.run(MockAdapter().generate_object("Basket?", Basket))
    assert res["object"] == Basket(owner="", size=0, fruits=[], note=None)


def test_mock_adapter_builds_placeholder_from_dict_schema():
    schema = {
        "type": "object",
        "properties": {
            "name": {"type": "string"},
            "ripe": {"type": "boolean"},
            "colour": {"enum": ["red", "green"]},
            "origin": {"type": "object", "properties": {"country": {"type": "string"}}},
        },
    }
    res = asyncio.run(MockAdapter().generate_object("Fruit?", schema))
    assert res["object"] == {"name": "", "ripe": False, "colour": "red", "origin": {"country": ""}}


def test_mock_adapter_honours_abort_signal():
    async def _run():
        event = asyncio.Event()
        event.set()
        await MockAdapter().generate_text("hi", params={"abort_signal": event})

    with pytest.raises(GenerationAborted):
        asyncio.run(_run())


def test_anthropic_explicit_zero_max_tokens_is_forwarded():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"content": [], "usage": {}})

    adapter = AnthropicAdapter("claude-3-5-haiku-latest", client=_client(handler, "https://api.anthropic.com/v1"))
    asyncio.run(adapter.generate_text("hi", params={"max_tokens": 0}))
    assert seen[0]["max_tokens"] == 0
