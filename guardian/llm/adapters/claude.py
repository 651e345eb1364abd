"""
Claude adapter — Anthropic Messages API.

Wire shape:
    POST {base}/v1/messages
    headers: x-api-key, anthropic-version: 2023-06-01
    body: {model, max_tokens, system?, messages, tools?, temperature?, stream?}

System messages are merged into the top-level `system` field. Tool
results become `tool_result` blocks inside a user turn; assistant tool
calls become `tool_use` blocks.

Streaming events (after `message_start` records the id):
    content_block_start (tool_use)   → start accumulating a tool call
    content_block_delta text_delta   → text chunk
    content_block_delta input_json   → tool argument fragment
    content_block_stop               → emit the completed tool call
    message_delta stop_reason        → finish chunk
    message_stop                     → end of stream
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from guardian.exceptions import ProviderError
from guardian.llm.adapters.base import (
    HTTPCall,
    PendingToolCall,
    ProviderAdapter,
    StreamState,
)
from guardian.llm.llm_config import CLAUDE_SONNET, AIProvider, AITask
from guardian.llm.parsing import (
    build_tool_call,
    classification_from_text,
    classify_system_prompt,
    extraction_from_text,
    parse_system_prompt,
)
from guardian.llm.types import (
    Capability,
    ChatRequest,
    ChatResponse,
    ClassifyRequest,
    ClassifyResult,
    FinishReason,
    Message,
    MessageRole,
    ParseRequest,
    ParseResult,
    StreamChunk,
    ToolCall,
    Usage,
)

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
PARSE_CONFIDENCE = 0.9

_FINISH_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "tool_use": FinishReason.TOOL_CALLS,
    "max_tokens": FinishReason.LENGTH,
    "refusal": FinishReason.ERROR,
}


def map_finish_reason(stop_reason: Optional[str]) -> FinishReason:
    return _FINISH_REASONS.get(stop_reason or "", FinishReason.STOP)


def convert_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Convert non-system turns into Anthropic message dicts."""
    converted: list[dict[str, Any]] = []

    for message in messages:
        if message.role == MessageRole.SYSTEM:
            continue

        if message.role == MessageRole.TOOL:
            block = {
                "type": "tool_result",
                "tool_use_id": message.tool_call_id or "",
                "content": message.content,
            }
            previous = converted[-1] if converted else None
            # Results answering one assistant turn share a single user turn.
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and all(b.get("type") == "tool_result" for b in previous["content"])
            ):
                previous["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})
            continue

        if message.role == MessageRole.ASSISTANT and message.tool_calls:
            blocks: list[dict[str, Any]] = []
            if message.content:
                blocks.append({"type": "text", "text": message.content})
            for call in message.tool_calls:
                blocks.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": call.arguments,
                })
            converted.append({"role": "assistant", "content": blocks})
            continue

        converted.append({"role": message.role.value, "content": message.content})

    return converted


class ClaudeAdapter(ProviderAdapter):
    """Anthropic Claude via the Messages API."""

    provider = AIProvider.CLAUDE
    default_profile = CLAUDE_SONNET
    default_base_url = "https://api.anthropic.com"
    id_prefix = "claude"
    capabilities = frozenset({Capability.STREAM, Capability.CLASSIFY, Capability.PARSE})

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def _chat_call(self, request: ChatRequest, *, stream: bool = False) -> HTTPCall:
        body: dict[str, Any] = {
            "model": self.api_model,
            "max_tokens": self._max_tokens(request),
            "messages": convert_messages(request.messages),
        }

        system = request.system_prompt()
        if system:
            body["system"] = system
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.tools:
            body["tools"] = [tool.to_anthropic() for tool in request.tools]
        if stream:
            body["stream"] = True

        return HTTPCall(url=f"{self.base_url}/v1/messages", body=body, headers=self._headers())

    def _parse_response(self, data: dict[str, Any]) -> ChatResponse:
        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []

        for block in data.get("content") or []:
            if block.get("type") == "text":
                text_parts.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                call = build_tool_call(
                    block.get("id", ""),
                    block.get("name"),
                    block.get("input"),
                    provider=self.provider.value,
                )
                if call is not None:
                    tool_calls.append(call)

        finish_reason = map_finish_reason(data.get("stop_reason"))
        if tool_calls:
            finish_reason = FinishReason.TOOL_CALLS

        usage = data.get("usage") or {}
        return ChatResponse(
            id=data.get("id") or self._new_message_id(),
            message=Message.assistant("".join(text_parts), tool_calls),
            model=self.model,
            usage=Usage.from_counts(usage.get("input_tokens"), usage.get("output_tokens")),
            finish_reason=finish_reason,
        )

    def _parse_stream_event(
        self, event: dict[str, Any], state: StreamState
    ) -> Optional[StreamChunk]:
        event_type = event.get("type")

        if event_type == "message_start":
            message_id = (event.get("message") or {}).get("id")
            if message_id:
                state.message_id = message_id
            return None

        if event_type == "content_block_start":
            block = event.get("content_block") or {}
            if block.get("type") == "tool_use":
                state.pending_tools[event.get("index", 0)] = PendingToolCall(
                    id=block.get("id", ""),
                    name=block.get("name", ""),
                )
            return None

        if event_type == "content_block_delta":
            delta = event.get("delta") or {}
            if delta.get("type") == "text_delta" and delta.get("text"):
                return StreamChunk(id=state.message_id, delta=delta["text"])
            if delta.get("type") == "input_json_delta":
                pending = state.pending_tools.get(event.get("index", 0))
                if pending is not None:
                    pending.arguments += delta.get("partial_json", "")
            return None

        if event_type == "content_block_stop":
            call = state.complete_tool(event.get("index", 0), provider=self.provider.value)
            if call is not None:
                return StreamChunk(id=state.message_id, tool_calls=[call])
            return None

        if event_type == "message_delta":
            stop_reason = (event.get("delta") or {}).get("stop_reason")
            if stop_reason:
                return StreamChunk(
                    id=state.message_id,
                    finish_reason=map_finish_reason(stop_reason),
                )
            return None

        if event_type == "message_stop":
            state.done = True
            return None

        if event_type == "error":
            error = event.get("error") or {}
            raise ProviderError(
                f"claude stream error: {error.get('type', 'unknown')} - {error.get('message', '')}",
                provider=self.provider.value,
                body=str(event),
            )

        return None

    # --- Structured tasks ---

    async def classify(self, request: ClassifyRequest) -> ClassifyResult:
        response = await self.chat(
            ChatRequest(
                messages=[
                    Message.system(classify_system_prompt(request)),
                    Message.user(request.text),
                ],
                task=AITask.CLASSIFY,
                temperature=0,
            )
        )
        return classification_from_text(response.content, request)

    async def parse(self, request: ParseRequest) -> ParseResult:
        response = await self.chat(
            ChatRequest(
                messages=[
                    Message.system(parse_system_prompt(request.schema)),
                    Message.user(request.text),
                ],
                task=AITask.PARSE,
                temperature=0,
            )
        )
        return extraction_from_text(response.content, confidence=PARSE_CONFIDENCE)
