"""
Server-Sent-Event decoding for streamed provider responses.

SSEDecoder is a per-connection state machine, fed raw byte chunks in
arrival order and independent of the transport:

    AWAITING_LINE     no partial line buffered
    BUFFERED_PARTIAL  bytes received after the last newline
    TERMINAL          end sentinel seen; further input is ignored

A `data:` line is parsed only once its newline has arrived, so a JSON
payload split across network reads is never parsed in halves. Lines
that are not JSON (comments, `event:` lines, keep-alives) produce
nothing.

Usage:
    decoder = SSEDecoder()
    async for event in aiter_sse_events(response.aiter_bytes(), decoder):
        handle(event)  # dict payload of one data line
"""

from __future__ import annotations

import codecs
import json
import logging
from enum import Enum
from typing import Any, AsyncIterator, Optional

from guardian.llm.types import FinishReason, StreamChunk, ToolCall

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class SSEState(str, Enum):
    AWAITING_LINE = "awaiting_line"
    BUFFERED_PARTIAL = "buffered_partial"
    TERMINAL = "terminal"


class SSEDecoder:
    """Incremental SSE `data:` line decoder."""

    def __init__(self) -> None:
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.state = SSEState.AWAITING_LINE

    @property
    def is_terminal(self) -> bool:
        return self.state is SSEState.TERMINAL

    def finish(self) -> None:
        """Mark the stream complete (provider-specific terminal event)."""
        self._buffer = ""
        self.state = SSEState.TERMINAL

    def feed(self, data: bytes | str) -> list[dict[str, Any]]:
        """Consume one chunk; return the payloads of completed data lines."""
        if self.is_terminal:
            return []

        if isinstance(data, bytes):
            data = self._utf8.decode(data)
        self._buffer += data

        events: list[dict[str, Any]] = []
        while "\n" in self._buffer and not self.is_terminal:
            line, self._buffer = self._buffer.split("\n", 1)
            payload = self._parse_line(line.rstrip("\r"))
            if payload is not None:
                events.append(payload)

        if not self.is_terminal:
            self.state = SSEState.BUFFERED_PARTIAL if self._buffer else SSEState.AWAITING_LINE
        return events

    def flush(self) -> list[dict[str, Any]]:
        """Connection closed: treat any buffered partial line as complete."""
        if self.is_terminal:
            return []
        tail = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        self.state = SSEState.AWAITING_LINE
        payload = self._parse_line(tail.rstrip("\r")) if tail.strip() else None
        return [payload] if payload is not None else []

    def _parse_line(self, line: str) -> Optional[dict[str, Any]]:
        if not line.startswith("data:"):
            return None

        data = line[5:].strip()
        if not data:
            return None
        if data == DONE_SENTINEL:
            self.finish()
            return None

        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("sse_frame_unparsable", extra={"preview": data[:80]})
            return None

        if not isinstance(payload, dict):
            logger.debug("sse_frame_not_object", extra={"preview": data[:80]})
            return None
        return payload


async def aiter_sse_events(
    byte_stream: AsyncIterator[bytes],
    decoder: Optional[SSEDecoder] = None,
) -> AsyncIterator[dict[str, Any]]:
    """Decode an async byte stream into SSE JSON payloads."""
    decoder = decoder or SSEDecoder()
    async for raw in byte_stream:
        for event in decoder.feed(raw):
            yield event
        if decoder.is_terminal:
            return
    for event in decoder.flush():
        yield event


# ---------------------------------------------------------------------------
# Stream Helpers
# ---------------------------------------------------------------------------

async def collect_stream(stream: AsyncIterator[StreamChunk]) -> StreamChunk:
    """
    Consume a chunk stream into a single aggregate chunk.

    Useful when you want streaming semantics upstream but need the whole
    reply in one place, e.g. in tests or CLI summaries.

    Usage:
        final = await collect_stream(router.chat_stream(request))
        print(final.delta, final.finish_reason)
    """
    message_id = ""
    parts: list[str] = []
    tool_calls: list[ToolCall] = []
    finish_reason: Optional[FinishReason] = None

    async for chunk in stream:
        message_id = chunk.id or message_id
        parts.append(chunk.delta)
        tool_calls.extend(chunk.tool_calls)
        if chunk.finish_reason is not None:
            finish_reason = chunk.finish_reason

    return StreamChunk(
        id=message_id,
        delta="".join(parts),
        tool_calls=tool_calls,
        finish_reason=finish_reason,
    )
