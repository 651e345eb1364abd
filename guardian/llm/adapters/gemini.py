"""
Gemini adapter — Google Generative Language API.

Wire shape:
    POST {base}/models/{model}:generateContent?key=<key>
    POST {base}/models/{model}:streamGenerateContent?alt=sse&key=<key>
    body: {contents, generationConfig, safetySettings, tools?}

Roles are "user" and "model". Gemini has no system role here: the merged
system text is prepended to the first user turn, separated by "---".
Assistant tool calls become `functionCall` parts and tool results become
`functionResponse` parts. A single `chat()` handles both plain and
tool-calling requests.

Streaming: each SSE event is a partial GenerateContentResponse; the
stream ends when the connection closes.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Optional

from guardian.llm.adapters.base import HTTPCall, ProviderAdapter, StreamState
from guardian.llm.llm_config import GEMINI_FLASH, AIProvider
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

DEFAULT_TEMPERATURE = 0.7

HARM_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_NONE"} for category in HARM_CATEGORIES
]

_FINISH_REASONS = {
    "STOP": FinishReason.STOP,
    "MAX_TOKENS": FinishReason.LENGTH,
    "SAFETY": FinishReason.ERROR,
    "RECITATION": FinishReason.ERROR,
    "BLOCKLIST": FinishReason.ERROR,
    "PROHIBITED_CONTENT": FinishReason.ERROR,
    "SPII": FinishReason.ERROR,
    "MALFORMED_FUNCTION_CALL": FinishReason.ERROR,
}


def map_finish_reason(finish_reason: Optional[str]) -> FinishReason:
    return _FINISH_REASONS.get(finish_reason or "", FinishReason.STOP)


def _tool_response_payload(content: str) -> dict[str, Any]:
    try:
        decoded = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return {"content": content}
    return decoded if isinstance(decoded, dict) else {"content": decoded}


def convert_messages(
    messages: list[Message],
    system: Optional[str],
) -> list[dict[str, Any]]:
    """Convert turns into Gemini `contents` entries."""
    contents: list[dict[str, Any]] = []
    tool_names: dict[str, str] = {}
    system_pending = system

    for message in messages:
        if message.role == MessageRole.SYSTEM:
            continue

        if message.role == MessageRole.TOOL:
            name = message.name or tool_names.get(message.tool_call_id or "", "")
            part = {
                "functionResponse": {
                    "name": name,
                    "response": _tool_response_payload(message.content),
                }
            }
            previous = contents[-1] if contents else None
            if previous and previous["role"] == "user" and all(
                "functionResponse" in p for p in previous["parts"]
            ):
                previous["parts"].append(part)
            else:
                contents.append({"role": "user", "parts": [part]})
            continue

        if message.role == MessageRole.ASSISTANT:
            parts: list[dict[str, Any]] = []
            if message.content:
                parts.append({"text": message.content})
            for call in message.tool_calls:
                tool_names[call.id] = call.name
                parts.append({"functionCall": {"name": call.name, "args": call.arguments}})
            contents.append({"role": "model", "parts": parts or [{"text": ""}]})
            continue

        content = message.content
        if system_pending:
            content = f"{system_pending}\n\n---\n\n{content}"
            system_pending = None
        contents.append({"role": "user", "parts": [{"text": content}]})

    if system_pending:
        contents.insert(0, {"role": "user", "parts": [{"text": system_pending}]})

    return contents


class GeminiAdapter(ProviderAdapter):
    """Google Gemini (flash by default; pass profile=GEMINI_PRO for pro)."""

    provider = AIProvider.GOOGLE
    default_profile = GEMINI_FLASH
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"
    id_prefix = "gemini"

    def _chat_call(self, request: ChatRequest, *, stream: bool = False) -> HTTPCall:
        body: dict[str, Any] = {
            "contents": convert_messages(request.messages, request.system_prompt()),
            "generationConfig": {
                "temperature": (
                    request.temperature if request.temperature is not None else DEFAULT_TEMPERATURE
                ),
                "maxOutputTokens": self._max_tokens(request),
                "topP": 0.95,
                "topK": 40,
            },
            "safetySettings": SAFETY_SETTINGS,
        }
        if request.tools:
            body["tools"] = [
                {"functionDeclarations": [tool.to_gemini() for tool in request.tools]}
            ]

        params = {"key": self._api_key}
        method = "generateContent"
        if stream:
            method = "streamGenerateContent"
            params["alt"] = "sse"

        return HTTPCall(
            url=f"{self.base_url}/models/{self.api_model}:{method}",
            body=body,
            headers={"Content-Type": "application/json"},
            params=params,
        )

    def _parse_candidate(
        self, data: dict[str, Any]
    ) -> tuple[str, list[ToolCall], Optional[str]]:
        """Text, tool calls and raw finishReason of the first candidate."""
        candidates = data.get("candidates") or []
        if not candidates:
            return "", [], None

        candidate = candidates[0]
        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []

        for index, part in enumerate((candidate.get("content") or {}).get("parts") or []):
            if "text" in part:
                text_parts.append(part.get("text") or "")
            elif "functionCall" in part:
                function_call = part.get("functionCall") or {}
                call = build_tool_call(
                    f"call_{uuid.uuid4().hex[:12]}_{index}",
                    function_call.get("name"),
                    function_call.get("args"),
                    provider=self.provider.value,
                )
                if call is not None:
                    tool_calls.append(call)

        return "".join(text_parts), tool_calls, candidate.get("finishReason")

    def _parse_response(self, data: dict[str, Any]) -> ChatResponse:
        content, tool_calls, raw_finish = self._parse_candidate(data)

        if not data.get("candidates"):
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            logger.warning(
                "ai_gemini_no_candidates",
                extra={"model": self.model, "block_reason": block_reason},
            )
            finish_reason = FinishReason.ERROR
        elif tool_calls:
            finish_reason = FinishReason.TOOL_CALLS
        else:
            finish_reason = map_finish_reason(raw_finish)

        usage = data.get("usageMetadata") or {}
        return ChatResponse(
            id=data.get("responseId") or self._new_message_id(),
            message=Message.assistant(content, tool_calls),
            model=self.model,
            usage=Usage.from_counts(
                usage.get("promptTokenCount"),
                usage.get("candidatesTokenCount"),
                usage.get("totalTokenCount"),
            ),
            finish_reason=finish_reason,
        )

    def _parse_stream_event(
        self, event: dict[str, Any], state: StreamState
    ) -> Optional[StreamChunk]:
        text, tool_calls, raw_finish = self._parse_candidate(event)
        if tool_calls:
            state.saw_tool_calls = True

        finish_reason = None
        if raw_finish:
            finish_reason = map_finish_reason(raw_finish)
            if state.saw_tool_calls:
                finish_reason = FinishReason.TOOL_CALLS

        if not text and not tool_calls and finish_reason is None:
            return None
        return StreamChunk(
            id=state.message_id,
            delta=text,
            tool_calls=tool_calls,
            finish_reason=finish_reason,
        )
