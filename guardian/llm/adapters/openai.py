"""
OpenAI adapter — Chat Completions API, plus the shared base for
OpenAI-compatible providers (Kimi, Perplexity).

Wire shape:
    POST {base}/chat/completions
    headers: Authorization: Bearer <key>
    body: {model, messages, max_tokens, temperature?, tools?, tool_choice?, stream?}

System messages are merged into one leading system message. Assistant
tool calls are sent as `function` entries with JSON-string arguments;
tool results pass `tool_call_id` through.

Streaming: each `data:` line is a chat.completion.chunk. Tool call
fragments arrive keyed by `index` and are emitted as complete ToolCalls
on the choice's finish chunk. The stream ends with `data: [DONE]`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from guardian.llm.adapters.base import (
    HTTPCall,
    PendingToolCall,
    ProviderAdapter,
    StreamState,
    open_client,
    post_json,
)
from guardian.llm.llm_config import GPT_4O, AIProvider
from guardian.llm.parsing import build_tool_call
from guardian.llm.types import (
    ChatRequest,
    ChatResponse,
    FinishReason,
    Message,
    MessageRole,
    StreamChunk,
    ToolCall,
    Usage,
)

logger = logging.getLogger(__name__)

_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "length": FinishReason.LENGTH,
    "content_filter": FinishReason.ERROR,
}


def map_finish_reason(finish_reason: Optional[str]) -> FinishReason:
    return _FINISH_REASONS.get(finish_reason or "", FinishReason.STOP)


def convert_messages(
    messages: list[Message],
    system: Optional[str],
) -> list[dict[str, Any]]:
    """Convert turns into OpenAI message dicts with one leading system message."""
    converted: list[dict[str, Any]] = []
    if system:
        converted.append({"role": "system", "content": system})

    for message in messages:
        if message.role == MessageRole.SYSTEM:
            continue

        entry: dict[str, Any] = {"role": message.role.value, "content": message.content}
        if message.name:
            entry["name"] = message.name
        if message.tool_call_id:
            entry["tool_call_id"] = message.tool_call_id
        if message.tool_calls:
            entry["content"] = message.content or None
            entry["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": json.dumps(call.arguments),
                    },
                }
                for call in message.tool_calls
            ]
        converted.append(entry)

    return converted


class OpenAICompatibleAdapter(ProviderAdapter):
    """
    Shared implementation for providers speaking the Chat Completions
    protocol. Subclasses set provider, profile and base URL.
    """

    supports_tools = True
    stream_usage = False

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    def _convert_messages(self, request: ChatRequest) -> list[dict[str, Any]]:
        return convert_messages(request.messages, request.system_prompt())

    def _chat_call(self, request: ChatRequest, *, stream: bool = False) -> HTTPCall:
        body: dict[str, Any] = {
            "model": self.api_model,
            "messages": self._convert_messages(request),
            "max_tokens": self._max_tokens(request),
        }

        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.tools:
            if self.supports_tools:
                body["tools"] = [tool.to_openai() for tool in request.tools]
                body["tool_choice"] = "auto"
            else:
                logger.debug(
                    "ai_tools_ignored",
                    extra={"provider": self.provider.value, "model": self.model},
                )
        if stream:
            body["stream"] = True
            if self.stream_usage:
                body["stream_options"] = {"include_usage": True}

        return HTTPCall(
            url=f"{self.base_url}/chat/completions",
            body=body,
            headers=self._headers(),
        )

    async def _complete(
        self,
        request: ChatRequest,
        extra_body: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """POST a non-streaming completion and return the raw envelope."""
        call = self._chat_call(request)
        if extra_body:
            call = call._replace(body={**call.body, **extra_body})
        async with open_client(self._http_client, self.timeout) as client:
            return await post_json(
                client, call, provider=self.provider.value, timeout=self.timeout
            )

    def _parse_tool_calls(self, raw_calls: Any) -> list[ToolCall]:
        calls: list[ToolCall] = []
        for raw in raw_calls or []:
            function = raw.get("function") or {}
            call = build_tool_call(
                raw.get("id", ""),
                function.get("name"),
                function.get("arguments"),
                provider=self.provider.value,
            )
            if call is not None:
                calls.append(call)
        return calls

    def _parse_response(self, data: dict[str, Any]) -> ChatResponse:
        choices = data.get("choices") or []
        usage = data.get("usage") or {}
        response_usage = Usage.from_counts(
            usage.get("prompt_tokens"),
            usage.get("completion_tokens"),
            usage.get("total_tokens"),
        )
        message_id = data.get("id") or self._new_message_id()

        if not choices:
            logger.warning(
                "ai_empty_choices",
                extra={"provider": self.provider.value, "model": self.model},
            )
            return ChatResponse(
                id=message_id,
                message=Message.assistant(""),
                model=self.model,
                usage=response_usage,
                finish_reason=FinishReason.ERROR,
            )

        choice = choices[0]
        message = choice.get("message") or {}
        tool_calls = self._parse_tool_calls(message.get("tool_calls"))

        finish_reason = map_finish_reason(choice.get("finish_reason"))
        if tool_calls:
            finish_reason = FinishReason.TOOL_CALLS

        return ChatResponse(
            id=message_id,
            message=Message.assistant(message.get("content") or "", tool_calls),
            model=self.model,
            usage=response_usage,
            finish_reason=finish_reason,
        )

    def _parse_stream_event(
        self, event: dict[str, Any], state: StreamState
    ) -> Optional[StreamChunk]:
        if event.get("id"):
            state.message_id = event["id"]

        choices = event.get("choices") or []
        if not choices:
            return None

        choice = choices[0]
        delta = choice.get("delta") or {}
        text = delta.get("content") or ""

        for fragment in delta.get("tool_calls") or []:
            index = fragment.get("index", 0)
            pending = state.pending_tools.get(index)
            if pending is None:
                pending = state.pending_tools[index] = PendingToolCall(id=fragment.get("id", ""))
            function = fragment.get("function") or {}
            if fragment.get("id"):
                pending.id = fragment["id"]
            if function.get("name"):
                pending.name = function["name"]
            pending.arguments += function.get("arguments") or ""

        finish = choice.get("finish_reason")
        if finish:
            tool_calls = state.complete_all_tools(provider=self.provider.value)
            finish_reason = map_finish_reason(finish)
            if tool_calls:
                finish_reason = FinishReason.TOOL_CALLS
            return StreamChunk(
                id=state.message_id,
                delta=text,
                tool_calls=tool_calls,
                finish_reason=finish_reason,
            )

        if text:
            return StreamChunk(id=state.message_id, delta=text)
        return None


class OpenAIAdapter(OpenAICompatibleAdapter):
    """OpenAI GPT-4o."""

    provider = AIProvider.OPENAI
    default_profile = GPT_4O
    default_base_url = "https://api.openai.com/v1"
    id_prefix = "openai"
    stream_usage = True
