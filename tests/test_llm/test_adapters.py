"""
Tests for the provider adapters (non-streaming paths).

Tests cover:
1. ToolDefinition — schema normalization per provider
2. Message conversion — Claude, OpenAI, Gemini, Perplexity
3. Response parsing — text, tool calls, finish reasons, usage
4. Error mapping — non-2xx, timeout, connection, bad envelopes
5. Perplexity research — citations and related questions
6. Plain exchange round trip — every provider keeps roles and text

All HTTP goes through httpx.MockTransport.
"""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from guardian.exceptions import (
    GuardianError,
    ProviderConnectionError,
    ProviderError,
    ProviderTimeoutError,
    UnsupportedCapabilityError,
)
from guardian.llm.adapters import (
    ClaudeAdapter,
    GeminiAdapter,
    KimiAdapter,
    OpenAIAdapter,
    PerplexityAdapter,
)
from guardian.llm.adapters import claude as claude_adapter
from guardian.llm.adapters import gemini as gemini_adapter
from guardian.llm.adapters import openai as openai_adapter
from guardian.llm.adapters.perplexity import extract_citations, format_sources
from guardian.llm.llm_config import CLAUDE_HAIKU, GEMINI_PRO
from guardian.llm.parsing import parse_tool_arguments
from guardian.llm.types import (
    Capability,
    ChatRequest,
    FinishReason,
    Message,
    MessageRole,
    ResearchRequest,
    ToolCall,
    ToolDefinition,
)


# ===========================================================================
# Helpers
# ===========================================================================

class Recorder:
    """MockTransport handler that records requests and replays one reply."""

    def __init__(self, payload: Any = None, status: int = 200, raw: bytes | None = None):
        self.payload = payload
        self.status = status
        self.raw = raw
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raw is not None:
            return httpx.Response(self.status, content=self.raw)
        return httpx.Response(self.status, json=self.payload)

    @property
    def body(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def _raising_client(exc_factory: Callable[[httpx.Request], Exception]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc_factory(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


SEARCH_TOOL = ToolDefinition(
    name="search_customers",
    description="Search customers by name or city",
    parameters={
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Name or city"},
            "limit": {"type": "integer", "minimum": 1, "default": 10},
        },
        "required": ["query", "ghost"],
        "additionalProperties": False,
    },
)

TOOL_CONVERSATION = [
    Message.system("You are a roofing assistant."),
    Message.user("Find Dana and check weather"),
    Message.assistant(
        "Looking that up.",
        [
            ToolCall(id="call_1", name="search_customers", arguments={"query": "Dana"}),
            ToolCall(id="call_2", name="get_weather", arguments={"zip": "17601"}),
        ],
    ),
    Message.tool("call_1", '{"id": "c-1"}'),
    Message.tool("call_2", "hail 1.5in"),
    Message.user("Thanks"),
]


# ===========================================================================
# Test: ToolDefinition
# ===========================================================================

class TestToolDefinition:

    def test_input_schema_filters_unknown_required(self):
        schema = SEARCH_TOOL.input_schema()
        assert schema["type"] == "object"
        assert set(schema["properties"]) == {"query", "limit"}
        assert schema["required"] == ["query"]

    def test_bare_property_map(self):
        tool = ToolDefinition(name="lookup", parameters={"zip": "ZIP code", "radius": {"type": "number"}})
        schema = tool.input_schema()
        assert schema["properties"]["zip"] == {"type": "string", "description": "ZIP code"}
        assert schema["properties"]["radius"] == {"type": "number"}
        assert schema["required"] == []

    def test_anthropic_and_openai_shapes(self):
        assert SEARCH_TOOL.to_anthropic()["input_schema"]["required"] == ["query"]
        openai_tool = SEARCH_TOOL.to_openai()
        assert openai_tool["type"] == "function"
        assert openai_tool["function"]["name"] == "search_customers"
        assert openai_tool["function"]["parameters"]["properties"]["query"]["type"] == "string"

    def test_gemini_schema_sanitized(self):
        declaration = SEARCH_TOOL.to_gemini()
        limit = declaration["parameters"]["properties"]["limit"]
        assert "default" not in limit
        assert limit["minimum"] == 1
        assert "additionalProperties" not in declaration["parameters"]

    def test_gemini_omits_empty_parameters(self):
        declaration = ToolDefinition(name="ping", description="Health check").to_gemini()
        assert declaration == {"name": "ping", "description": "Health check"}

    @pytest.mark.parametrize("parameters", [
        {"type": "object", "properties": ["zip", "radius"], "required": ["zip"]},
        {"type": "object", "properties": None},
        {"properties": "zip"},
        ["zip", "radius"],
        None,
    ])
    def test_malformed_properties_become_empty(self, parameters):
        tool = ToolDefinition(name="lookup", parameters=parameters)

        assert tool.input_schema() == {"type": "object", "properties": {}, "required": []}
        assert tool.to_openai()["function"]["parameters"]["properties"] == {}
        assert "parameters" not in tool.to_gemini()

    @pytest.mark.parametrize("required", ["zip", {"zip": True}, 7, [{"zip": 1}, "zip"]])
    def test_malformed_required(self, required):
        tool = ToolDefinition(name="lookup", parameters={
            "type": "object",
            "properties": {"zip": {"type": "string"}},
            "required": required,
        })

        expected = ["zip"] if isinstance(required, list) else []
        assert tool.input_schema()["required"] == expected
        assert tool.to_anthropic()["input_schema"]["properties"] == {"zip": {"type": "string"}}


class TestParseToolArguments:

    @pytest.mark.parametrize("raw, expected", [
        ({"a": 1}, {"a": 1}),
        ('{"a": 1}', {"a": 1}),
        ("", {}),
        (None, {}),
        ("[1, 2]", None),
        ('{"a": ', None),
        (42, None),
    ])
    def test_decoding(self, raw, expected):
        assert parse_tool_arguments(raw) == expected


# ===========================================================================
# Test: Adapter construction
# ===========================================================================

class TestAdapterBasics:

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            OpenAIAdapter("")

    def test_capabilities(self):
        assert ClaudeAdapter("k").supports(Capability.CLASSIFY)
        assert ClaudeAdapter("k").supports("parse")
        assert PerplexityAdapter("k").supports(Capability.RESEARCH)
        assert not OpenAIAdapter("k").supports(Capability.RESEARCH)
        assert GeminiAdapter("k").supports(Capability.STREAM)

    def test_profile_selects_model(self):
        adapter = GeminiAdapter("k", profile=GEMINI_PRO)
        assert adapter.model == "gemini-1.5-pro"
        assert adapter.api_model == "gemini-1.5-pro"
        assert ClaudeAdapter("k", profile=CLAUDE_HAIKU).api_model == "claude-haiku-4-5"

    @pytest.mark.asyncio
    async def test_unsupported_operation_raises(self):
        with pytest.raises(UnsupportedCapabilityError) as exc_info:
            await OpenAIAdapter("k").research(ResearchRequest(query="q"))
        assert exc_info.value.model == "gpt-4o"
        assert exc_info.value.capability == "research"


# ===========================================================================
# Test: Claude
# ===========================================================================

class TestClaudeAdapter:

    def test_convert_messages(self):
        converted = claude_adapter.convert_messages(TOOL_CONVERSATION)

        assert [m["role"] for m in converted] == ["user", "assistant", "user", "user"]
        assistant = converted[1]["content"]
        assert assistant[0] == {"type": "text", "text": "Looking that up."}
        assert assistant[1]["type"] == "tool_use"
        assert assistant[1]["input"] == {"query": "Dana"}
        results = converted[2]["content"]
        assert [b["tool_use_id"] for b in results] == ["call_1", "call_2"]
        assert converted[3] == {"role": "user", "content": "Thanks"}

    @pytest.mark.asyncio
    async def test_request_shape(self):
        recorder = Recorder({"id": "msg_1", "content": [], "stop_reason": "end_turn"})
        adapter = ClaudeAdapter("sk-ant", http_client=recorder.client())

        await adapter.chat(ChatRequest(
            messages=[Message.system("A"), Message.system("B"), Message.user("Hi")],
            tools=[SEARCH_TOOL],
            temperature=0.2,
            max_tokens=256,
        ))

        request = recorder.requests[0]
        assert str(request.url) == "https://api.anthropic.com/v1/messages"
        assert request.headers["x-api-key"] == "sk-ant"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = recorder.body
        assert body["model"] == "claude-sonnet-4-5"
        assert body["system"] == "A\n\nB"
        assert body["max_tokens"] == 256
        assert body["temperature"] == 0.2
        assert body["tools"][0]["name"] == "search_customers"
        assert "stream" not in body

    @pytest.mark.asyncio
    async def test_tool_use_response(self):
        recorder = Recorder({
            "id": "msg_2",
            "content": [
                {"type": "text", "text": "Searching."},
                {"type": "tool_use", "id": "toolu_1", "name": "search_customers", "input": {"query": "Dana"}},
                {"type": "tool_use", "id": "toolu_2", "name": "search_customers", "input": "not json"},
            ],
            "stop_reason": "tool_use",
            "usage": {"input_tokens": 40, "output_tokens": 12},
        })
        adapter = ClaudeAdapter("sk-ant", http_client=recorder.client())

        response = await adapter.chat(ChatRequest(messages=[Message.user("Find Dana")]))

        assert response.id == "msg_2"
        assert response.content == "Searching."
        assert [c.id for c in response.tool_calls] == ["toolu_1"]
        assert response.finish_reason == FinishReason.TOOL_CALLS
        assert response.usage.total_tokens == 52
        assert response.model == "claude-sonnet-4.5"

    @pytest.mark.parametrize("stop_reason, expected", [
        ("end_turn", FinishReason.STOP),
        ("max_tokens", FinishReason.LENGTH),
        ("tool_use", FinishReason.TOOL_CALLS),
        (None, FinishReason.STOP),
    ])
    def test_finish_reason_mapping(self, stop_reason, expected):
        assert claude_adapter.map_finish_reason(stop_reason) == expected


# ===========================================================================
# Test: OpenAI / Kimi
# ===========================================================================

class TestOpenAIAdapter:

    def test_convert_messages(self):
        converted = openai_adapter.convert_messages(TOOL_CONVERSATION, "You are a roofing assistant.")

        assert converted[0] == {"role": "system", "content": "You are a roofing assistant."}
        assistant = converted[2]
        assert assistant["tool_calls"][0]["function"]["arguments"] == '{"query": "Dana"}'
        assert converted[3] == {"role": "tool", "content": '{"id": "c-1"}', "tool_call_id": "call_1"}
        assert sum(1 for m in converted if m["role"] == "system") == 1

    @pytest.mark.asyncio
    async def test_request_shape_with_tools(self):
        recorder = Recorder({"choices": [{"message": {"content": "ok"}, "finish_reason": "stop"}]})
        adapter = OpenAIAdapter("sk", http_client=recorder.client())

        await adapter.chat(ChatRequest(messages=[Message.user("Hi")], tools=[SEARCH_TOOL]))

        assert str(recorder.requests[0].url) == "https://api.openai.com/v1/chat/completions"
        body = recorder.body
        assert body["model"] == "gpt-4o"
        assert body["tool_choice"] == "auto"
        assert body["tools"][0]["function"]["name"] == "search_customers"
        assert body["max_tokens"] == 4096

    @pytest.mark.asyncio
    async def test_malformed_tool_call_dropped(self, caplog):
        recorder = Recorder({
            "id": "chatcmpl-1",
            "choices": [{
                "message": {
                    "content": None,
                    "tool_calls": [
                        {"id": "call_a", "type": "function",
                         "function": {"name": "lookup", "arguments": '{"zip": "17601"}'}},
                        {"id": "call_b", "type": "function",
                         "function": {"name": "lookup", "arguments": "{broken"}},
                    ],
                },
                "finish_reason": "tool_calls",
            }],
        })
        adapter = OpenAIAdapter("sk", http_client=recorder.client())

        response = await adapter.chat(ChatRequest(messages=[Message.user("Lookup")]))

        assert [c.id for c in response.tool_calls] == ["call_a"]
        assert response.tool_calls[0].arguments == {"zip": "17601"}
        assert response.content == ""
        assert response.finish_reason == FinishReason.TOOL_CALLS
        assert any(r.getMessage() == "ai_tool_call_dropped" for r in caplog.records)

    @pytest.mark.asyncio
    async def test_length_finish_and_missing_usage(self):
        recorder = Recorder({"choices": [{"message": {"content": "Partial"}, "finish_reason": "length"}]})
        adapter = OpenAIAdapter("sk", http_client=recorder.client())

        response = await adapter.chat(ChatRequest(messages=[Message.user("Long answer")]))

        assert response.finish_reason == FinishReason.LENGTH
        assert response.usage.prompt_tokens == 0
        assert response.usage.completion_tokens == 0
        assert response.usage.total_tokens == 0
        assert response.id.startswith("openai-")

    @pytest.mark.asyncio
    async def test_empty_choices_is_error_finish(self):
        adapter = OpenAIAdapter("sk", http_client=Recorder({"choices": []}).client())

        response = await adapter.chat(ChatRequest(messages=[Message.user("Hi")]))

        assert response.finish_reason == FinishReason.ERROR
        assert response.content == ""

    @pytest.mark.asyncio
    async def test_kimi_endpoint_and_model(self):
        recorder = Recorder({"choices": [{"message": {"content": "长文本"}, "finish_reason": "stop"}]})
        adapter = KimiAdapter("mk", http_client=recorder.client())

        response = await adapter.chat(ChatRequest(messages=[Message.user("Summarize")], tools=[SEARCH_TOOL]))

        assert str(recorder.requests[0].url) == "https://api.moonshot.cn/v1/chat/completions"
        assert recorder.body["model"] == "moonshot-v1-128k"
        assert recorder.body["max_tokens"] == 8192
        assert "tools" in recorder.body
        assert response.model == "kimi-k2"


# ===========================================================================
# Test: Error mapping
# ===========================================================================

class TestErrorMapping:

    @pytest.mark.asyncio
    async def test_non_2xx(self):
        recorder = Recorder(raw=b'{"error": {"message": "invalid x-api-key"}}', status=401)
        adapter = ClaudeAdapter("bad", http_client=recorder.client())

        with pytest.raises(ProviderError) as exc_info:
            await adapter.chat(ChatRequest(messages=[Message.user("Hi")]))

        assert exc_info.value.status_code == 401
        assert exc_info.value.provider == "claude"
        assert "invalid x-api-key" in exc_info.value.body

    @pytest.mark.asyncio
    async def test_timeout(self):
        client = _raising_client(lambda r: httpx.ConnectTimeout("slow", request=r))
        adapter = GeminiAdapter("g", timeout=2.5, http_client=client)

        with pytest.raises(ProviderTimeoutError) as exc_info:
            await adapter.chat(ChatRequest(messages=[Message.user("Hi")]))

        assert isinstance(exc_info.value, TimeoutError)
        assert isinstance(exc_info.value, GuardianError)
        assert exc_info.value.timeout_seconds == 2.5

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        client = _raising_client(lambda r: httpx.ConnectError("refused", request=r))
        adapter = OpenAIAdapter("sk", http_client=client)

        with pytest.raises(ProviderConnectionError) as exc_info:
            await adapter.chat(ChatRequest(messages=[Message.user("Hi")]))
        assert exc_info.value.provider == "openai"

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        adapter = OpenAIAdapter("sk", http_client=Recorder(raw=b"<html>gateway</html>").client())
        with pytest.raises(ProviderError, match="non-JSON"):
            await adapter.chat(ChatRequest(messages=[Message.user("Hi")]))

    @pytest.mark.asyncio
    async def test_non_object_envelope(self):
        adapter = OpenAIAdapter("sk", http_client=Recorder(payload=["unexpected"]).client())
        with pytest.raises(ProviderError, match="envelope"):
            await adapter.chat(ChatRequest(messages=[Message.user("Hi")]))


# ===========================================================================
# Test: Gemini
# ===========================================================================

class TestGeminiAdapter:

    def test_system_prepended_to_first_user_turn(self):
        contents = gemini_adapter.convert_messages(
            [Message.user("Hi"), Message.assistant("Hello"), Message.user("Again")],
            "Be brief.",
        )
        assert contents[0] == {"role": "user", "parts": [{"text": "Be brief.\n\n---\n\nHi"}]}
        assert contents[1]["role"] == "model"
        assert contents[2]["parts"][0]["text"] == "Again"

    def test_system_only_becomes_user_turn(self):
        contents = gemini_adapter.convert_messages([], "Say hi.")
        assert contents == [{"role": "user", "parts": [{"text": "Say hi."}]}]

    def test_tool_results_become_function_responses(self):
        contents = gemini_adapter.convert_messages(TOOL_CONVERSATION, None)

        model_turn = contents[1]
        assert model_turn["role"] == "model"
        assert model_turn["parts"][1] == {
            "functionCall": {"name": "search_customers", "args": {"query": "Dana"}}
        }
        responses = contents[2]["parts"]
        assert responses[0]["functionResponse"] == {
            "name": "search_customers", "response": {"id": "c-1"},
        }
        assert responses[1]["functionResponse"] == {
            "name": "get_weather", "response": {"content": "hail 1.5in"},
        }

    @pytest.mark.asyncio
    async def test_request_shape(self):
        recorder = Recorder({"candidates": []})
        adapter = GeminiAdapter("g-key", http_client=recorder.client())

        await adapter.chat(ChatRequest(messages=[Message.user("Hi")], tools=[SEARCH_TOOL]))

        request = recorder.requests[0]
        assert request.url.path == "/v1beta/models/gemini-2.0-flash-exp:generateContent"
        assert request.url.params["key"] == "g-key"
        body = recorder.body
        assert body["generationConfig"]["temperature"] == 0.7
        assert body["generationConfig"]["maxOutputTokens"] == 2048
        assert body["tools"][0]["functionDeclarations"][0]["name"] == "search_customers"
        assert {s["threshold"] for s in body["safetySettings"]} == {"BLOCK_NONE"}

    @pytest.mark.asyncio
    async def test_function_call_response(self):
        recorder = Recorder({
            "candidates": [{
                "content": {"role": "model", "parts": [
                    {"text": "Checking. "},
                    {"functionCall": {"name": "get_weather", "args": {"zip": "17601"}}},
                ]},
                "finishReason": "STOP",
            }],
            "usageMetadata": {"promptTokenCount": 10, "candidatesTokenCount": 5, "totalTokenCount": 15},
        })
        adapter = GeminiAdapter("g-key", http_client=recorder.client())

        response = await adapter.chat(ChatRequest(messages=[Message.user("Weather?")], tools=[SEARCH_TOOL]))

        assert response.content == "Checking. "
        assert response.tool_calls[0].name == "get_weather"
        assert response.tool_calls[0].id.startswith("call_")
        assert response.finish_reason == FinishReason.TOOL_CALLS
        assert response.usage.total_tokens == 15

    @pytest.mark.asyncio
    async def test_no_candidates_is_error(self):
        recorder = Recorder({"promptFeedback": {"blockReason": "SAFETY"}})
        adapter = GeminiAdapter("g-key", http_client=recorder.client())

        response = await adapter.chat(ChatRequest(messages=[Message.user("Hi")]))

        assert response.finish_reason == FinishReason.ERROR
        assert response.content == ""

    @pytest.mark.parametrize("raw, expected", [
        ("STOP", FinishReason.STOP),
        ("MAX_TOKENS", FinishReason.LENGTH),
        ("SAFETY", FinishReason.ERROR),
        ("RECITATION", FinishReason.ERROR),
    ])
    def test_finish_reason_mapping(self, raw, expected):
        assert gemini_adapter.map_finish_reason(raw) == expected


# ===========================================================================
# Test: Perplexity
# ===========================================================================

class TestPerplexityAdapter:

    @pytest.mark.asyncio
    async def test_turns_merged_and_tools_dropped(self):
        recorder = Recorder({"choices": [{"message": {"content": "ok"}, "finish_reason": "stop"}]})
        adapter = PerplexityAdapter("pplx", http_client=recorder.client())

        await adapter.chat(ChatRequest(messages=TOOL_CONVERSATION, tools=[SEARCH_TOOL]))

        body = recorder.body
        assert "tools" not in body
        roles = [m["role"] for m in body["messages"]]
        assert roles == ["system", "user", "assistant", "user"]
        assert body["messages"][3]["content"] == '{"id": "c-1"}\n\nhail 1.5in\n\nThanks'
        assert body["model"] == "sonar"

    @pytest.mark.asyncio
    async def test_chat_appends_sources(self):
        recorder = Recorder({
            "choices": [{"message": {"content": "Answer."}, "finish_reason": "stop"}],
            "citations": ["https://a.example", {"url": "https://b.example", "title": "B"}],
        })
        adapter = PerplexityAdapter("pplx", http_client=recorder.client())

        response = await adapter.chat(ChatRequest(messages=[Message.user("Q")]))

        assert response.content == (
            "Answer.\n\n**Sources:**\n"
            "[1] https://a.example - https://a.example\n"
            "[2] B - https://b.example\n"
        )

    @pytest.mark.asyncio
    async def test_research(self):
        recorder = Recorder({
            "choices": [{
                "message": {"content": "See [NOAA](https://noaa.gov/hail) and [PA](https://pa.gov)."},
                "finish_reason": "stop",
            }],
            "citations": ["https://noaa.gov/hail"],
            "related_questions": ["What size hail damages shingles?", 7],
        })
        adapter = PerplexityAdapter("pplx", http_client=recorder.client())

        result = await adapter.research(ResearchRequest(
            query="Hail frequency in Lancaster",
            context="Roofing sales",
            sources=["news"],
            max_results=2,
        ))

        body = recorder.body
        assert body["return_related_questions"] is True
        assert body["messages"][0]["content"].endswith("Focus on news sources.")
        assert body["messages"][1]["content"] == (
            "Context: Roofing sales\n\nQuery: Hail frequency in Lancaster"
        )
        assert [c.url for c in result.citations] == ["https://noaa.gov/hail", "https://pa.gov"]
        assert result.related_queries == ["What size hail damages shingles?"]
        assert "**Sources:**" in result.answer


class TestCitations:

    def test_numbered_and_markdown_deduplicated(self):
        text = (
            "Hail is common [1].\n\n**Sources:**\n"
            "[1] NOAA Storm Data - https://noaa.gov/storms\n"
            "More at [NOAA](https://noaa.gov/storms) and [IBHS](https://ibhs.org)."
        )
        citations = extract_citations(text)
        assert [(c.title, c.url) for c in citations] == [
            ("NOAA Storm Data", "https://noaa.gov/storms"),
            ("IBHS", "https://ibhs.org"),
        ]

    def test_plain_text_has_no_citations(self):
        assert extract_citations("No links here.") == []
        assert extract_citations("") == []

    def test_format_sources_empty(self):
        assert format_sources([]) == ""
        assert format_sources([{"title": "no url"}]) == ""


# ===========================================================================
# Test: Plain exchange round trip
# ===========================================================================

PLAIN_EXCHANGE = [Message.user("Hi"), Message.assistant("Hello"), Message.user("Again")]

_OPENAI_STYLE_REPLY = {
    "id": "chatcmpl-rt",
    "choices": [{"message": {"role": "assistant", "content": "Hello again"}, "finish_reason": "stop"}],
}

ROUND_TRIP_REPLIES = {
    ClaudeAdapter: {
        "id": "msg_rt",
        "content": [{"type": "text", "text": "Hello again"}],
        "stop_reason": "end_turn",
    },
    OpenAIAdapter: _OPENAI_STYLE_REPLY,
    KimiAdapter: _OPENAI_STYLE_REPLY,
    PerplexityAdapter: _OPENAI_STYLE_REPLY,
    GeminiAdapter: {
        "candidates": [{
            "content": {"role": "model", "parts": [{"text": "Hello again"}]},
            "finishReason": "STOP",
        }],
    },
}


def _wire_turns(body: dict[str, Any]) -> list[tuple[str, str]]:
    """(role, text) per turn, with Gemini's "model" read as assistant."""
    if "contents" in body:
        return [
            (
                "assistant" if turn["role"] == "model" else turn["role"],
                "".join(part.get("text", "") for part in turn["parts"]),
            )
            for turn in body["contents"]
        ]
    return [(m["role"], m["content"]) for m in body["messages"]]


class TestPlainExchangeRoundTrip:
    """A plain user/assistant exchange keeps roles and text on the wire and back."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "adapter_cls", list(ROUND_TRIP_REPLIES), ids=lambda cls: cls.__name__
    )
    async def test_roles_and_content_preserved(self, adapter_cls):
        recorder = Recorder(ROUND_TRIP_REPLIES[adapter_cls])
        adapter = adapter_cls("key", http_client=recorder.client())

        response = await adapter.chat(ChatRequest(messages=PLAIN_EXCHANGE))

        assert _wire_turns(recorder.body) == [
            ("user", "Hi"), ("assistant", "Hello"), ("user", "Again"),
        ]
        assert response.message.role == MessageRole.ASSISTANT
        assert response.content == "Hello again"
        assert response.finish_reason == FinishReason.STOP
        assert response.tool_calls == []
