"""
Perplexity adapter — web-grounded research via the Sonar model.

OpenAI-compatible wire format with two differences:
- Turns must strictly alternate user/assistant, so consecutive
  same-role turns are merged.
- Replies carry top-level `citations` (URL strings or {url, title}
  objects), appended to the content as a "**Sources:**" list.

`research()` is the specialty: a research-tuned prompt plus citation
extraction from the answer text.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from guardian.llm.adapters.base import StreamState
from guardian.llm.adapters.openai import OpenAICompatibleAdapter
from guardian.llm.llm_config import PERPLEXITY_SONAR, AIProvider
from guardian.llm.types import (
    Capability,
    ChatRequest,
    ChatResponse,
    Citation,
    Message,
    MessageRole,
    ResearchRequest,
    ResearchResult,
    StreamChunk,
)

logger = logging.getLogger(__name__)

RESEARCH_SYSTEM_PROMPT = (
    "You are a research assistant. Provide detailed, accurate information with citations."
)

_NUMBERED_CITATION = re.compile(r"\[(\d+)\]\s*([^-\n]+)\s*-?\s*(https?://[^\s\n]+)")
_MARKDOWN_LINK = re.compile(r"\[([^\]]+)\]\((https?://[^)]+)\)")


def format_sources(citations: list[Any]) -> str:
    """Render provider citations as the appended "**Sources:**" block."""
    lines: list[str] = []
    for i, citation in enumerate(citations, start=1):
        if isinstance(citation, dict):
            url = citation.get("url") or ""
            title = citation.get("title") or url
        else:
            url = title = str(citation)
        if url:
            lines.append(f"[{i}] {title} - {url}\n")
    if not lines:
        return ""
    return "\n\n**Sources:**\n" + "".join(lines)


def extract_citations(content: str) -> list[Citation]:
    """
    Pull citations out of answer text.

    Recognizes "[1] Title - https://..." lines and Markdown links,
    deduplicated by URL. Text without either yields an empty list.
    """
    citations: list[Citation] = []
    seen: set[str] = set()

    for match in _NUMBERED_CITATION.finditer(content or ""):
        url = match.group(3).strip()
        if url not in seen:
            seen.add(url)
            citations.append(Citation(title=match.group(2).strip(), url=url))

    for match in _MARKDOWN_LINK.finditer(content or ""):
        url = match.group(2).strip()
        if url not in seen:
            seen.add(url)
            citations.append(Citation(title=match.group(1).strip(), url=url))

    return citations


class PerplexityAdapter(OpenAICompatibleAdapter):
    """Perplexity Sonar."""

    provider = AIProvider.PERPLEXITY
    default_profile = PERPLEXITY_SONAR
    default_base_url = "https://api.perplexity.ai"
    id_prefix = "pplx"
    capabilities = frozenset({Capability.STREAM, Capability.RESEARCH})
    supports_tools = False

    def _convert_messages(self, request: ChatRequest) -> list[dict[str, Any]]:
        converted: list[dict[str, Any]] = []
        system = request.system_prompt()
        if system:
            converted.append({"role": "system", "content": system})

        for message in request.conversation():
            # No tool protocol here; results are plain user context.
            role = "assistant" if message.role == MessageRole.ASSISTANT else "user"
            if converted and converted[-1]["role"] == role:
                converted[-1]["content"] += "\n\n" + message.content
            else:
                converted.append({"role": role, "content": message.content})

        return converted

    def _parse_response(self, data: dict[str, Any]) -> ChatResponse:
        response = super()._parse_response(data)
        sources = format_sources(data.get("citations") or [])
        if sources:
            response.message.content += sources
        return response

    def _parse_stream_event(
        self, event: dict[str, Any], state: StreamState
    ) -> Optional[StreamChunk]:
        if event.get("citations"):
            state.citations = list(event["citations"])

        chunk = super()._parse_stream_event(event, state)
        if chunk is not None and chunk.finish_reason is not None:
            chunk.delta += format_sources(state.citations)
        return chunk

    async def research(self, request: ResearchRequest) -> ResearchResult:
        system_prompt = RESEARCH_SYSTEM_PROMPT
        if request.sources:
            system_prompt += f" Focus on {', '.join(request.sources)} sources."

        user_prompt = request.query
        if request.context:
            user_prompt = f"Context: {request.context}\n\nQuery: {request.query}"

        chat_request = ChatRequest(
            messages=[Message.system(system_prompt), Message.user(user_prompt)],
        )
        data = await self._complete(chat_request, {"return_related_questions": True})
        response = self._parse_response(data)

        citations = extract_citations(response.content)
        if request.max_results is not None:
            citations = citations[: request.max_results]

        related = [q for q in data.get("related_questions") or [] if isinstance(q, str)]

        logger.info(
            "ai_research_completed",
            extra={
                "provider": self.provider.value,
                "model": self.model,
                "citations": len(citations),
            },
        )
        return ResearchResult(
            answer=response.content,
            citations=citations,
            related_queries=related,
        )
