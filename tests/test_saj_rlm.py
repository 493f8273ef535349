import asyncio

import pytest
from saj.saj_rlm import (
    coerce_response, frame_prompt, llm_call, DEPTH_EXCEEDED, DEFAULT_SYSTEM_PROMPT,
    context_set, context_get, context_list, context_clear,
)
from saj.saj_effects import EffectContext, create_effect_handler
from saj.saj_interpreter import execute_sequence
from saj.saj_datatypes import MissingModelClient


class StubClient:
    """A call-counting stand-in for the Messages API."""
    def __init__(self, text="ok"):
        self.text = text
        self.calls = []

    async def create_message(self, **request):
        self.calls.append(request)
        return {"content": [{"type": "text", "text": self.text}]}


# --- Context store ---

@pytest.mark.asyncio
async def test_context_store_roundtrip():
    ctx = EffectContext()
    assert await context_set({"name": "doc", "text": "hello"}, ctx) == {"stored": "doc", "length": 5}
    assert await context_get({"name": "doc"}, ctx) == "hello"
    await context_set({"name": "other", "text": "abc"}, ctx)
    assert await context_list({}, ctx) == [{"name": "doc", "length": 5}, {"name": "other", "length": 3}]


@pytest.mark.asyncio
async def test_context_get_missing_is_an_error_value():
    ctx = EffectContext()
    assert await context_get({"name": "gone"}, ctx) == {"error": 'Context "gone" not found'}


@pytest.mark.asyncio
async def test_context_clear_one_and_all():
    ctx = EffectContext(context_store={"a": "1", "b": "2", "c": "3"})
    assert await context_clear({"name": "a"}, ctx) == {"cleared": 1}
    assert await context_clear({"name": "a"}, ctx) == {"cleared": 0}
    assert await context_clear({}, ctx) == {"cleared": 2}
    assert ctx.context_store == {}


# --- Coercion ---

@pytest.mark.parametrize("text, expect, expected", [
    ('here you go: {"a":1} thanks', "json", {"a": 1}),
    ("no json here", "json", "no json here"),
    ('[1, 2, {"b": "]"}] trailing', "json", [1, 2, {"b": "]"}]),
    ('"just a string"', "json", "just a string"),
    ("42", "number", 42.0),
    ("about 3.5 units", "number", 3.5),
    ("-7", "number", -7.0),
    ("none", "number", "none"),
    ("inf", "number", "inf"),
    ("1_000", "number", 1.0),
    ("42 items", "number", 42.0),
    ("1.5e3", "number", 1500.0),
    ("Infinity", "number", float("inf")),
    ("Yes", "boolean", True),
    (" false ", "boolean", False),
    ("maybe", "boolean", "maybe"),
    ("as is", None, "as is"),
    ("as is", "text", "as is"),
])
def test_coerce_response(text, expect, expected):
    assert coerce_response(text, expect) == expected


def test_frame_prompt():
    store = {"doc": "the body"}
    assert frame_prompt("Q?", "doc", store) == 'Context "doc":\nthe body\n\n---\n\nQ?'
    assert frame_prompt("Q?", "missing", store) == "Q?"
    assert frame_prompt("Q?", None, store) == "Q?"


# --- llm_call ---

@pytest.mark.asyncio
async def test_llm_call_max_depth_zero_never_calls_client():
    client = StubClient()
    ctx = EffectContext(llm_client=client)
    result = await llm_call({"prompt": "hi", "max_depth": 0}, ctx)
    assert result == {"error": DEPTH_EXCEEDED}
    assert client.calls == []
    assert ctx.depth == 0


@pytest.mark.asyncio
async def test_llm_call_without_client():
    with pytest.raises(MissingModelClient):
        await llm_call({"prompt": "hi"}, EffectContext())


@pytest.mark.asyncio
async def test_llm_call_builds_request_and_counts_depth():
    client = StubClient('{"answer": 4}')
    ctx = EffectContext(llm_client=client, model="m", max_tokens=50, context_store={"doc": "text"})
    result = await llm_call({"prompt": "2+2?", "context_name": "doc", "expect": "json"}, ctx)
    assert result == {"answer": 4}
    assert ctx.depth == 1
    (request,) = client.calls
    assert request["model"] == "m"
    assert request["max_tokens"] == 50
    assert request["system"] == DEFAULT_SYSTEM_PROMPT
    assert request["messages"] == [{"role": "user", "content": 'Context "doc":\ntext\n\n---\n\n2+2?'}]


@pytest.mark.asyncio
async def test_llm_call_custom_system_prompt_and_depth_limit():
    client = StubClient("fine")
    ctx = EffectContext(llm_client=client, max_depth=2)
    assert await llm_call({"prompt": "a", "system": "be terse"}, ctx) == "fine"
    assert client.calls[0]["system"] == "be terse"
    assert await llm_call({"prompt": "b"}, ctx) == "fine"
    assert await llm_call({"prompt": "c"}, ctx) == {"error": DEPTH_EXCEEDED}
    assert len(client.calls) == 2


class SlowClient(StubClient):
    async def create_message(self, **request):
        self.calls.append(request)
        await asyncio.sleep(0.01)
        return {"content": [{"type": "text", "text": self.text}]}


@pytest.mark.asyncio
async def test_concurrent_llm_calls_respect_max_depth():
    client = SlowClient("x")
    ctx = EffectContext(llm_client=client, max_depth=1)
    results = await asyncio.gather(*[llm_call({"prompt": str(i)}, ctx) for i in range(3)])
    assert sorted(results, key=str) == sorted(["x", {"error": DEPTH_EXCEEDED}, {"error": DEPTH_EXCEEDED}], key=str)
    assert len(client.calls) == 1
    assert ctx.depth == 1


@pytest.mark.asyncio
async def test_failed_llm_call_releases_depth():
    class FailingClient:
        async def create_message(self, **request):
            raise RuntimeError("network down")

    ctx = EffectContext(llm_client=FailingClient(), max_depth=1)
    with pytest.raises(RuntimeError):
        await llm_call({"prompt": "a"}, ctx)
    assert ctx.depth == 0


@pytest.mark.asyncio
async def test_missing_client_does_not_consume_depth():
    ctx = EffectContext()
    with pytest.raises(MissingModelClient):
        await llm_call({"prompt": "hi"}, ctx)
    assert ctx.depth == 0


@pytest.mark.asyncio
async def test_llm_call_from_a_program():
    client = StubClient("12")
    handler = create_effect_handler(llm_client=client)
    programs = [
        {"type": "effect", "name": "llm_call", "args": {"prompt": "count", "expect": "number"}, "bind": "n"},
        {"type": "arithmeticOperation", "operation": "*",
         "operands": [{"type": "variable", "key": "n"}, {"type": "number", "value": 2}]},
    ]
    out = await execute_sequence(programs, {}, handler)
    assert out.result == 24
    assert out.env["n"] == 12


@pytest.mark.asyncio
async def test_llm_call_accepts_sync_clients_and_objects():
    class Block:
        type = "text"
        text = "true"

    class Message:
        content = [Block()]

    class SyncClient:
        def create_message(self, **request):
            return Message()

    ctx = EffectContext(llm_client=SyncClient())
    assert await llm_call({"prompt": "?", "expect": "boolean"}, ctx) is True
