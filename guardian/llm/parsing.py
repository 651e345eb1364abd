"""
Best-effort JSON extraction from model output.

Models are asked for JSON and usually comply, sometimes wrapped in a
Markdown fence, sometimes not at all. Every helper here has an explicit
degrade branch instead of raising: malformed content is a policy, not
an error.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from guardian.llm.types import (
    CategoryScore,
    ClassifyRequest,
    ClassifyResult,
    ParseResult,
    ToolCall,
)

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def strip_code_fences(text: str) -> str:
    """Return the body of the first ``` fence, or the stripped text."""
    match = _CODE_FENCE.search(text or "")
    if match:
        return match.group(1).strip()
    return (text or "").strip()


def loads_lenient(text: str) -> Optional[Any]:
    """json.loads after fence stripping; None when it does not parse."""
    try:
        return json.loads(strip_code_fences(text))
    except (json.JSONDecodeError, TypeError):
        return None


def parse_tool_arguments(raw: Any) -> Optional[dict[str, Any]]:
    """
    Decode tool-call arguments.

    Accepts an already-decoded dict or a JSON string. An empty string
    means "no arguments". Anything that is not a JSON object is None.
    """
    if isinstance(raw, dict):
        return raw
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return {}
    if not isinstance(raw, str):
        return None
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return decoded if isinstance(decoded, dict) else None


def build_tool_call(
    call_id: str,
    name: Optional[str],
    raw_arguments: Any,
    *,
    provider: str,
) -> Optional[ToolCall]:
    """Normalize one tool call; malformed calls are logged and dropped."""
    arguments = parse_tool_arguments(raw_arguments)
    if not name or arguments is None:
        logger.warning(
            "ai_tool_call_dropped",
            extra={
                "provider": provider,
                "tool_call_id": call_id,
                "tool_name": name,
            },
        )
        return None
    return ToolCall(id=call_id, name=name, arguments=arguments)


# ---------------------------------------------------------------------------
# Classification / Extraction
# ---------------------------------------------------------------------------

def degraded_classification(request: ClassifyRequest) -> ClassifyResult:
    """First category at 0.5; empty when there are no categories."""
    if not request.categories:
        return ClassifyResult(categories=[])
    return ClassifyResult(
        categories=[CategoryScore(label=request.categories[0], confidence=0.5)]
    )


def _as_score(item: Any) -> Optional[CategoryScore]:
    if not isinstance(item, dict):
        return None
    label = item.get("label")
    confidence = item.get("confidence")
    if not isinstance(label, str) or isinstance(confidence, bool):
        return None
    if not isinstance(confidence, (int, float)):
        return None
    return CategoryScore(label=label, confidence=min(max(float(confidence), 0.0), 1.0))


def classification_from_text(text: str, request: ClassifyRequest) -> ClassifyResult:
    """
    Parse a classification reply: one {"label", "confidence"} object or a
    list of them. Degrades to the first category at 0.5.
    """
    decoded = loads_lenient(text)
    items = decoded if isinstance(decoded, list) else [decoded]
    scores = [score for score in (_as_score(item) for item in items) if score]

    if not scores:
        logger.info(
            "ai_classification_degraded",
            extra={"preview": (text or "")[:120]},
        )
        return degraded_classification(request)

    if not request.multi_label:
        scores = scores[:1]
    return ClassifyResult(categories=scores)


def extraction_from_text(text: str, *, confidence: float) -> ParseResult:
    """Parse an extraction reply; degrades to ({}, 0.0)."""
    decoded = loads_lenient(text)
    if not isinstance(decoded, dict):
        logger.info(
            "ai_extraction_degraded",
            extra={"preview": (text or "")[:120]},
        )
        return ParseResult(data={}, confidence=0.0)
    return ParseResult(data=decoded, confidence=confidence)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

def classify_system_prompt(request: ClassifyRequest) -> str:
    categories = ", ".join(request.categories)
    if request.multi_label:
        return (
            f"Classify the following text into one or more of these categories: {categories}. "
            'Return a JSON array of objects with "label" and "confidence" (0-1) fields. '
            "Only return valid JSON."
        )
    return (
        f"Classify the following text into exactly one of these categories: {categories}. "
        'Return a JSON object with "label" and "confidence" (0-1) fields. '
        "Only return valid JSON."
    )


def parse_system_prompt(schema: dict[str, Any]) -> str:
    return (
        "Extract structured data from the following text according to this schema:\n"
        f"{json.dumps(schema, indent=2)}\n\n"
        "Return only valid JSON matching the schema. "
        "If a field cannot be determined, use null."
    )
