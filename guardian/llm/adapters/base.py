"""
Provider Adapter base — the uniform contract every provider implements.

An adapter translates a ChatRequest into one provider's native JSON body,
performs the HTTP call (or SSE stream), and translates the reply back
into ChatResponse / StreamChunk. Subclasses supply three hooks:

    _chat_call(request, stream)       → HTTPCall (url, body, headers, params)
    _parse_response(data)             → ChatResponse
    _parse_stream_event(event, state) → StreamChunk | None

Transport failures are mapped onto the guardian.exceptions taxonomy:
    httpx.TimeoutException → ProviderTimeoutError (also when the call deadline passes)
    httpx.RequestError     → ProviderConnectionError
    non-2xx status         → ProviderError (status + raw body)

Adapters hold only immutable configuration. Pass `http_client` to share
a caller-owned httpx.AsyncClient; otherwise a client is opened per call.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import aclosing, asynccontextmanager, contextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterator, NamedTuple, Optional

import httpx

from guardian.exceptions import (
    ProviderConnectionError,
    ProviderError,
    ProviderTimeoutError,
    UnsupportedCapabilityError,
)
from guardian.llm.llm_config import AIProvider, ModelProfile
from guardian.llm.parsing import build_tool_call
from guardian.llm.sse import SSEDecoder, aiter_sse_events
from guardian.llm.types import (
    Capability,
    ChatRequest,
    ChatResponse,
    ClassifyRequest,
    ClassifyResult,
    ParseRequest,
    ParseResult,
    ResearchRequest,
    ResearchResult,
    StreamChunk,
    ToolCall,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------

class HTTPCall(NamedTuple):
    url: str
    body: dict[str, Any]
    headers: dict[str, str]
    params: Optional[dict[str, str]] = None


def provider_error(response: httpx.Response, provider: str) -> ProviderError:
    """Build a ProviderError from a read, non-2xx response."""
    body = response.text
    return ProviderError(
        f"{provider} API error: {response.status_code} - {body[:500]}",
        provider=provider,
        status_code=response.status_code,
        body=body,
    )


@contextmanager
def translate_transport_errors(provider: str, timeout: float) -> Iterator[None]:
    """Map httpx transport exceptions onto the provider error taxonomy."""
    try:
        yield
    except (httpx.TimeoutException, asyncio.TimeoutError) as e:
        raise ProviderTimeoutError(
            f"{provider} request timed out after {timeout:g}s",
            provider=provider,
            timeout_seconds=timeout,
        ) from e
    except httpx.RequestError as e:
        raise ProviderConnectionError(
            f"{provider} request failed: {e.__class__.__name__}",
            provider=provider,
        ) from e


@asynccontextmanager
async def open_client(
    http_client: Optional[httpx.AsyncClient],
    timeout: float,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the shared client, or a fresh one closed on exit."""
    if http_client is not None:
        yield http_client
        return
    async with httpx.AsyncClient(timeout=timeout) as client:
        yield client


async def post_json(
    client: httpx.AsyncClient,
    call: HTTPCall,
    *,
    provider: str,
    timeout: float,
) -> dict[str, Any]:
    """POST a JSON body and decode the JSON reply."""
    with translate_transport_errors(provider, timeout):
        response = await asyncio.wait_for(
            client.post(
                call.url,
                json=call.body,
                headers=call.headers,
                params=call.params,
                timeout=timeout,
            ),
            timeout,
        )

    if not response.is_success:
        raise provider_error(response, provider)

    try:
        data = response.json()
    except ValueError as e:
        raise ProviderError(
            f"{provider} returned a non-JSON body",
            provider=provider,
            status_code=response.status_code,
            body=response.text,
        ) from e

    if not isinstance(data, dict):
        raise ProviderError(
            f"{provider} returned an unexpected JSON envelope",
            provider=provider,
            status_code=response.status_code,
            body=response.text,
        )
    return data


async def read_until(
    chunks: AsyncIterator[bytes],
    deadline: float,
) -> AsyncIterator[bytes]:
    """
    Yield byte chunks until `deadline` (a time.monotonic() value).

    httpx restarts its read timeout on every chunk, so a server that keeps
    sending keep-alives would hold the stream open forever. Each read here
    only gets the time left before the deadline; asyncio.TimeoutError is
    raised once it is spent.
    """
    iterator = chunks.__aiter__()
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise asyncio.TimeoutError()
        try:
            chunk = await asyncio.wait_for(iterator.__anext__(), remaining)
        except StopAsyncIteration:
            return
        yield chunk


# ---------------------------------------------------------------------------
# Stream state
# ---------------------------------------------------------------------------

@dataclass
class PendingToolCall:
    """A streamed tool call whose argument fragments are still arriving."""

    id: str
    name: str = ""
    arguments: str = ""


@dataclass
class StreamState:
    """Per-connection parse state for one chat_stream call."""

    message_id: str
    pending_tools: dict[int, PendingToolCall] = field(default_factory=dict)
    citations: list[Any] = field(default_factory=list)
    saw_tool_calls: bool = False
    done: bool = False

    def complete_tool(self, index: int, *, provider: str) -> Optional[ToolCall]:
        pending = self.pending_tools.pop(index, None)
        if pending is None:
            return None
        return build_tool_call(pending.id, pending.name, pending.arguments, provider=provider)

    def complete_all_tools(self, *, provider: str) -> list[ToolCall]:
        calls = [
            self.complete_tool(index, provider=provider)
            for index in sorted(self.pending_tools)
        ]
        return [call for call in calls if call is not None]


# ---------------------------------------------------------------------------
# Adapter contract
# ---------------------------------------------------------------------------

class ProviderAdapter(ABC):
    """
    Abstract provider adapter.

    Capabilities beyond chat are declared in `capabilities` and queried
    with `supports()`. Operations an adapter does not support raise
    UnsupportedCapabilityError; the router emulates research, classify
    and parse on top of chat instead of calling them.
    """

    provider: AIProvider
    default_profile: ModelProfile
    default_base_url: str = ""
    id_prefix: str = "msg"
    capabilities: frozenset[Capability] = frozenset({Capability.STREAM})

    def __init__(
        self,
        api_key: str,
        *,
        profile: Optional[ModelProfile] = None,
        base_url: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ValueError(f"{self.__class__.__name__} requires an API key")
        self._api_key = api_key
        self.profile = profile or self.default_profile
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.max_tokens = max_tokens or self.profile.max_tokens
        self.timeout = timeout
        self._http_client = http_client

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model!r})"

    @property
    def model(self) -> str:
        """Registry model id, e.g. "claude-sonnet-4.5"."""
        return self.profile.model_id

    @property
    def api_model(self) -> str:
        """Model id sent on the wire."""
        return self.profile.api_model

    def supports(self, capability: Capability | str) -> bool:
        return Capability(capability) in self.capabilities

    # --- Hooks ---

    @abstractmethod
    def _chat_call(self, request: ChatRequest, *, stream: bool = False) -> HTTPCall:
        """Translate a request into the provider's HTTP call."""

    @abstractmethod
    def _parse_response(self, data: dict[str, Any]) -> ChatResponse:
        """Translate a provider reply into a ChatResponse."""

    @abstractmethod
    def _parse_stream_event(
        self, event: dict[str, Any], state: StreamState
    ) -> Optional[StreamChunk]:
        """Translate one SSE payload into zero or one chunk."""

    # --- Operations ---

    async def chat(self, request: ChatRequest) -> ChatResponse:
        call = self._chat_call(request)
        start = time.monotonic()
        async with open_client(self._http_client, self.timeout) as client:
            data = await post_json(
                client, call, provider=self.provider.value, timeout=self.timeout
            )
        response = self._parse_response(data)
        self._log_completion(response, start)
        return response

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """
        Stream a chat reply as chunks.

        The connection is opened on the first iteration and closed when
        the stream ends or the consumer stops iterating.
        """
        if not self.supports(Capability.STREAM):
            raise UnsupportedCapabilityError(
                f"{self.model} does not support streaming",
                model=self.model,
                capability=Capability.STREAM.value,
            )

        call = self._chat_call(request, stream=True)
        state = StreamState(message_id=self._new_message_id())
        async with aclosing(self._stream_events(call)) as events:
            async for event in events:
                chunk = self._parse_stream_event(event, state)
                if chunk is not None:
                    yield chunk
                if state.done:
                    break

    async def research(self, request: ResearchRequest) -> ResearchResult:
        raise self._unsupported(Capability.RESEARCH)

    async def classify(self, request: ClassifyRequest) -> ClassifyResult:
        raise self._unsupported(Capability.CLASSIFY)

    async def parse(self, request: ParseRequest) -> ParseResult:
        raise self._unsupported(Capability.PARSE)

    # --- Internals ---

    async def _stream_events(self, call: HTTPCall) -> AsyncIterator[dict[str, Any]]:
        provider = self.provider.value
        deadline = time.monotonic() + self.timeout
        async with open_client(self._http_client, self.timeout) as client:
            with translate_transport_errors(provider, self.timeout):
                async with client.stream(
                    "POST",
                    call.url,
                    json=call.body,
                    headers=call.headers,
                    params=call.params,
                    timeout=self.timeout,
                ) as response:
                    if not response.is_success:
                        await response.aread()
                        raise provider_error(response, provider)
                    chunks = read_until(response.aiter_bytes(), deadline)
                    async with aclosing(aiter_sse_events(chunks, SSEDecoder())) as events:
                        async for event in events:
                            yield event

    def _new_message_id(self) -> str:
        return f"{self.id_prefix}-{uuid.uuid4().hex[:12]}"

    def _max_tokens(self, request: ChatRequest) -> int:
        return request.max_tokens or self.max_tokens

    def _unsupported(self, capability: Capability) -> UnsupportedCapabilityError:
        return UnsupportedCapabilityError(
            f"{self.model} does not support {capability.value}",
            model=self.model,
            capability=capability.value,
        )

    def _log_completion(self, response: ChatResponse, start: float) -> None:
        logger.info(
            "ai_chat_completed",
            extra={
                "provider": self.provider.value,
                "model": self.model,
                "finish_reason": response.finish_reason.value,
                "latency_ms": round((time.monotonic() - start) * 1000, 1),
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
            },
        )
