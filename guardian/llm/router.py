"""
AI Router — task-based dispatch across registered provider adapters.

Routes each call to the preferred model for its task:
- Chat / Tool Calls → Claude Sonnet
- Simple Tools / Classify / Parse → Claude Haiku
- Research / Summarize → Gemini Flash

If the preferred model has no registered adapter (its credential is not
configured), the router uses the fallback adapter (Gemini Flash by
default). Capabilities the resolved adapter lacks (research, classify,
parse) are emulated on top of plain chat. There is no retry loop:
provider errors surface to the caller.

Each public call runs under a request_id (kept if the caller set one),
so router and adapter log records for one call share it.

Usage:
    from guardian.llm.bootstrap import create_router

    router = create_router()   # once, at startup

    response = await router.chat(ChatRequest(messages=[Message.user("Hi")]))
    print(response.content, response.model)

    async for chunk in router.chat_stream(request):
        print(chunk.delta, end="")
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from dataclasses import replace
from types import MappingProxyType
from typing import AsyncIterator, Mapping, Optional

from guardian.exceptions import NoAdapterAvailableError, UnsupportedCapabilityError
from guardian.llm.adapters.base import ProviderAdapter
from guardian.llm.context import CustomerContext, build_system_prompt
from guardian.llm.llm_config import AITask, RoutingTable, coerce_task
from guardian.llm.parsing import (
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
    Message,
    ParseRequest,
    ParseResult,
    ResearchRequest,
    ResearchResult,
    StreamChunk,
)
from guardian.observability.logging_config import request_context

logger = logging.getLogger(__name__)

EMULATED_RESEARCH_PROMPT = (
    "You are a research assistant. Provide detailed, factual information "
    "with sources when possible."
)
EMULATED_PARSE_CONFIDENCE = 0.8


class AIRouter:
    """
    Registry of adapters keyed by model id, plus a fallback adapter.

    Built once at startup and shared; holds no per-request state. The
    registry mapping is replaced, never mutated, on registration.
    """

    def __init__(
        self,
        adapters: Optional[list[ProviderAdapter]] = None,
        *,
        routing: Optional[RoutingTable] = None,
    ):
        self._routing = routing or RoutingTable()
        self._adapters: Mapping[str, ProviderAdapter] = MappingProxyType({})
        self._fallback: Optional[ProviderAdapter] = None
        for adapter in adapters or []:
            self.register_adapter(adapter)

    @property
    def routing(self) -> RoutingTable:
        return self._routing

    @property
    def fallback_adapter(self) -> Optional[ProviderAdapter]:
        return self._fallback

    # --- Registry ---

    def register_adapter(self, adapter: ProviderAdapter) -> None:
        """Register an adapter under its model id; replaces any previous one."""
        self._adapters = MappingProxyType({**self._adapters, adapter.model: adapter})
        if adapter.model == self._routing.fallback_model:
            self._fallback = adapter

        logger.debug(
            "ai_adapter_registered",
            extra={
                "provider": adapter.provider.value,
                "model": adapter.model,
                "is_fallback": adapter is self._fallback,
            },
        )

    def has_adapters(self) -> bool:
        return bool(self._adapters)

    def registered_models(self) -> list[str]:
        return list(self._adapters)

    def get_adapter(self, task: str | AITask | None = None) -> ProviderAdapter:
        """
        Resolve the adapter for a task.

        Raises:
            NoAdapterAvailableError: Neither the preferred model nor the
                fallback is registered.
        """
        task = coerce_task(task)
        preferred = self._routing.model_for_task(task)

        adapter = self._adapters.get(preferred)
        if adapter is not None:
            return adapter

        if self._fallback is not None:
            logger.warning(
                "ai_router_fallback_used",
                extra={
                    "task": task.value,
                    "model": preferred,
                    "fallback_model": self._fallback.model,
                },
            )
            return self._fallback

        raise NoAdapterAvailableError(
            f"No adapter available for task: {task.value}",
            task=task.value,
            model=preferred,
        )

    # --- Chat ---

    async def chat(self, request: ChatRequest) -> ChatResponse:
        with request_context():
            adapter = self.get_adapter(request.task)
            return await adapter.chat(request)

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """
        Stream a chat reply. Resolution happens on first iteration, and
        the adapter opens its connection only then.
        """
        with request_context():
            adapter = self.get_adapter(request.task)
            if not adapter.supports(Capability.STREAM):
                raise UnsupportedCapabilityError(
                    f"Adapter {adapter.model} does not support streaming",
                    model=adapter.model,
                    capability=Capability.STREAM.value,
                )
            async with aclosing(adapter.chat_stream(request)) as stream:
                async for chunk in stream:
                    yield chunk

    async def chat_with_context(
        self,
        messages: list[Message],
        context: CustomerContext,
        task: str | AITask = AITask.CHAT,
    ) -> ChatResponse:
        """Chat with the customer context rendered into a leading system prompt."""
        request = ChatRequest(
            messages=[Message.system(build_system_prompt(context)), *messages],
            task=coerce_task(task),
            context=context,
        )
        return await self.chat(request)

    async def call_tool(self, request: ChatRequest, is_complex: bool = True) -> ChatResponse:
        """Tool-calling chat: tool_call for complex work, simple_tool otherwise."""
        task = AITask.TOOL_CALL if is_complex else AITask.SIMPLE_TOOL
        with request_context():
            adapter = self.get_adapter(task)
            return await adapter.chat(replace(request, task=task))

    # --- Research / Classify / Parse ---

    async def research(self, request: ResearchRequest) -> ResearchResult:
        with request_context():
            return await self._research(request)

    async def classify(self, request: ClassifyRequest) -> ClassifyResult:
        with request_context():
            return await self._classify(request)

    async def parse(self, request: ParseRequest) -> ParseResult:
        with request_context():
            return await self._parse(request)

    async def _research(self, request: ResearchRequest) -> ResearchResult:
        adapter = self.get_adapter(AITask.RESEARCH)
        if adapter.supports(Capability.RESEARCH):
            return await adapter.research(request)

        self._log_emulated(adapter, Capability.RESEARCH)
        query = request.query
        if request.context:
            query = f"Context: {request.context}\n\nQuery: {request.query}"

        response = await adapter.chat(
            ChatRequest(
                messages=[Message.system(EMULATED_RESEARCH_PROMPT), Message.user(query)],
                task=AITask.RESEARCH,
            )
        )
        return ResearchResult(answer=response.content, citations=[])

    async def _classify(self, request: ClassifyRequest) -> ClassifyResult:
        adapter = self.get_adapter(AITask.CLASSIFY)
        if adapter.supports(Capability.CLASSIFY):
            return await adapter.classify(request)

        self._log_emulated(adapter, Capability.CLASSIFY)
        response = await adapter.chat(
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

    async def _parse(self, request: ParseRequest) -> ParseResult:
        adapter = self.get_adapter(AITask.PARSE)
        if adapter.supports(Capability.PARSE):
            return await adapter.parse(request)

        self._log_emulated(adapter, Capability.PARSE)
        response = await adapter.chat(
            ChatRequest(
                messages=[
                    Message.system(parse_system_prompt(request.schema)),
                    Message.user(request.text),
                ],
                task=AITask.PARSE,
                temperature=0,
            )
        )
        return extraction_from_text(response.content, confidence=EMULATED_PARSE_CONFIDENCE)

    def _log_emulated(self, adapter: ProviderAdapter, capability: Capability) -> None:
        logger.info(
            "ai_capability_emulated",
            extra={
                "provider": adapter.provider.value,
                "model": adapter.model,
                "capability": capability.value,
            },
        )
