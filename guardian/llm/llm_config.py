"""
LLM Configuration — task routing rules and the model catalog.

Defines which registry model handles which task, plus the single
fallback model used when the preferred one has no registered adapter.
Deployments can override any route from the YAML config (see
guardian.config.schema.RoutingSettings).

Usage:
    from guardian.llm.llm_config import RoutingTable, AITask

    table = RoutingTable()
    table.model_for_task("classify")
    # → "claude-haiku-4.5"

    table.model_for_task("not-a-task")
    # → "claude-sonnet-4.5"  (unknown tasks route like chat)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Task Categories
# ---------------------------------------------------------------------------

class AITask(str, Enum):
    """Categories of work that route to different models."""

    CHAT = "chat"                    # Conversational assistant turns
    TOOL_CALL = "tool_call"          # Multi-step tool use
    SIMPLE_TOOL = "simple_tool"      # Single cheap lookup
    RESEARCH = "research"            # Web-grounded research
    CLASSIFY = "classify"            # Label text against categories
    PARSE = "parse"                  # Structured extraction
    SUMMARIZE = "summarize"          # Condensing long text


class AIProvider(str, Enum):
    """Provider families. One credential per family."""

    CLAUDE = "claude"
    OPENAI = "openai"
    KIMI = "kimi"
    GOOGLE = "google"
    PERPLEXITY = "perplexity"


# ---------------------------------------------------------------------------
# Model Profile
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModelProfile:
    """A registry model id and the provider model it maps to."""

    model_id: str           # registry key, e.g. "claude-sonnet-4.5"
    provider: AIProvider
    api_model: str          # id sent on the wire, e.g. "claude-sonnet-4-5"
    max_tokens: int = 4096
    context_window: int = 128000
    supports_vision: bool = False
    supports_tools: bool = True

    @property
    def display_name(self) -> str:
        return f"{self.provider.value}/{self.api_model}"


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

# --- Anthropic ---
CLAUDE_OPUS = ModelProfile(
    model_id="claude-opus-4.5",
    provider=AIProvider.CLAUDE,
    api_model="claude-opus-4-5",
    supports_vision=True,
    context_window=200000,
)

CLAUDE_SONNET = ModelProfile(
    model_id="claude-sonnet-4.5",
    provider=AIProvider.CLAUDE,
    api_model="claude-sonnet-4-5",
    supports_vision=True,
    context_window=200000,
)

CLAUDE_HAIKU = ModelProfile(
    model_id="claude-haiku-4.5",
    provider=AIProvider.CLAUDE,
    api_model="claude-haiku-4-5",
    supports_vision=True,
    context_window=200000,
)

# --- OpenAI ---
GPT_4O = ModelProfile(
    model_id="gpt-4o",
    provider=AIProvider.OPENAI,
    api_model="gpt-4o",
    supports_vision=True,
)

# --- Moonshot ---
KIMI_K2 = ModelProfile(
    model_id="kimi-k2",
    provider=AIProvider.KIMI,
    api_model="moonshot-v1-128k",
    max_tokens=8192,
)

# --- Perplexity ---
PERPLEXITY_SONAR = ModelProfile(
    model_id="perplexity-sonar",
    provider=AIProvider.PERPLEXITY,
    api_model="sonar",
    supports_tools=False,
)

# --- Google ---
GEMINI_FLASH = ModelProfile(
    model_id="gemini-2.0-flash-exp",
    provider=AIProvider.GOOGLE,
    api_model="gemini-2.0-flash-exp",
    max_tokens=2048,
    context_window=1000000,
    supports_vision=True,
)

GEMINI_PRO = ModelProfile(
    model_id="gemini-1.5-pro",
    provider=AIProvider.GOOGLE,
    api_model="gemini-1.5-pro",
    max_tokens=2048,
    context_window=2000000,
    supports_vision=True,
)

MODEL_CATALOG: dict[str, ModelProfile] = {
    profile.model_id: profile
    for profile in (
        CLAUDE_OPUS, CLAUDE_SONNET, CLAUDE_HAIKU, GPT_4O,
        KIMI_K2, PERPLEXITY_SONAR, GEMINI_FLASH, GEMINI_PRO,
    )
}


def get_model_profile(model_id: str) -> Optional[ModelProfile]:
    """Look up a registry model id in the catalog."""
    return MODEL_CATALOG.get(model_id)


# ---------------------------------------------------------------------------
# Default Routing Table
# ---------------------------------------------------------------------------

FALLBACK_MODEL = GEMINI_FLASH.model_id

DEFAULT_TASK_MODELS: dict[AITask, str] = {
    AITask.CHAT: CLAUDE_SONNET.model_id,
    AITask.TOOL_CALL: CLAUDE_SONNET.model_id,
    AITask.SIMPLE_TOOL: CLAUDE_HAIKU.model_id,
    AITask.RESEARCH: GEMINI_FLASH.model_id,
    AITask.CLASSIFY: CLAUDE_HAIKU.model_id,
    AITask.PARSE: CLAUDE_HAIKU.model_id,
    AITask.SUMMARIZE: GEMINI_FLASH.model_id,
}


def coerce_task(task: str | AITask | None) -> AITask:
    """Normalize a task name; None and unknown names become CHAT."""
    if task is None:
        return AITask.CHAT
    if isinstance(task, AITask):
        return task
    try:
        return AITask(task)
    except ValueError:
        logger.debug("ai_unknown_task", extra={"task": task})
        return AITask.CHAT


# ---------------------------------------------------------------------------
# Routing Table Manager
# ---------------------------------------------------------------------------

class RoutingTable:
    """
    Task → preferred model id, plus the fallback model id.

    Tasks not present in the overrides use DEFAULT_TASK_MODELS.
    """

    def __init__(
        self,
        task_models: Optional[dict[AITask, str]] = None,
        fallback_model: Optional[str] = None,
    ):
        self._task_models = dict(DEFAULT_TASK_MODELS)
        for task, model_id in (task_models or {}).items():
            self._task_models[coerce_task(task)] = model_id
        self.fallback_model = fallback_model or FALLBACK_MODEL

    def model_for_task(self, task: str | AITask | None) -> str:
        """Get the preferred model id for a task."""
        return self._task_models[coerce_task(task)]

    def override(self, task: AITask, model_id: str) -> None:
        """Override routing for a single task."""
        self._task_models[coerce_task(task)] = model_id

    def list_routes(self) -> list[dict[str, Any]]:
        """Return a summary of all configured routes."""
        return [
            {
                "task": task.value,
                "model": model_id,
                "fallback": self.fallback_model,
            }
            for task, model_id in self._task_models.items()
        ]
