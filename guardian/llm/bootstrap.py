"""
Startup wiring — build the router and damage analyzer from settings.

Called once per process; the returned objects are passed explicitly to
whatever needs them. A provider whose credential is absent is skipped.

Usage:
    from guardian.config import load_ai_settings, load_environment
    from guardian.llm.bootstrap import create_router

    load_environment()
    router = create_router(load_ai_settings())
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from guardian.config.loader import load_ai_settings
from guardian.config.schema import AISettings, ProviderSettings
from guardian.llm.adapters import (
    ClaudeAdapter,
    GeminiAdapter,
    KimiAdapter,
    OpenAIAdapter,
    PerplexityAdapter,
    ProviderAdapter,
)
from guardian.llm.llm_config import (
    CLAUDE_HAIKU,
    CLAUDE_OPUS,
    CLAUDE_SONNET,
    GEMINI_FLASH,
    GEMINI_PRO,
    RoutingTable,
)
from guardian.llm.router import AIRouter
from guardian.llm.vision import DamageAnalyzer

logger = logging.getLogger(__name__)


def _adapter_kwargs(
    settings: ProviderSettings,
    http_client: Optional[httpx.AsyncClient],
) -> dict:
    return {
        "base_url": settings.base_url,
        "max_tokens": settings.max_tokens,
        "timeout": settings.timeout_seconds,
        "http_client": http_client,
    }


def build_adapters(
    settings: AISettings,
    http_client: Optional[httpx.AsyncClient] = None,
) -> list[ProviderAdapter]:
    """One adapter per configured model, in registration order."""
    adapters: list[ProviderAdapter] = []

    if settings.claude.enabled:
        kwargs = _adapter_kwargs(settings.claude, http_client)
        for profile in (CLAUDE_OPUS, CLAUDE_SONNET, CLAUDE_HAIKU):
            adapters.append(ClaudeAdapter(settings.claude.api_key, profile=profile, **kwargs))

    if settings.kimi.enabled:
        adapters.append(
            KimiAdapter(settings.kimi.api_key, **_adapter_kwargs(settings.kimi, http_client))
        )

    if settings.perplexity.enabled:
        adapters.append(
            PerplexityAdapter(
                settings.perplexity.api_key,
                **_adapter_kwargs(settings.perplexity, http_client),
            )
        )

    if settings.openai.enabled:
        adapters.append(
            OpenAIAdapter(settings.openai.api_key, **_adapter_kwargs(settings.openai, http_client))
        )

    if settings.google.enabled:
        kwargs = _adapter_kwargs(settings.google, http_client)
        for profile in (GEMINI_FLASH, GEMINI_PRO):
            adapters.append(GeminiAdapter(settings.google.api_key, profile=profile, **kwargs))

    return adapters


def create_router(
    settings: Optional[AISettings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> AIRouter:
    """Build the process-wide router from settings (loaded if not given)."""
    settings = settings or load_ai_settings()
    routing = RoutingTable(
        task_models=settings.routing.task_models,
        fallback_model=settings.routing.fallback_model,
    )
    router = AIRouter(build_adapters(settings, http_client), routing=routing)

    if not router.has_adapters():
        logger.warning("ai_router_no_adapters")
    elif router.fallback_adapter is None:
        logger.warning(
            "ai_router_no_fallback",
            extra={"model": routing.fallback_model},
        )
    else:
        logger.info(
            "ai_router_ready",
            extra={"models": router.registered_models()},
        )
    return router


def create_damage_analyzer(
    settings: Optional[AISettings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> DamageAnalyzer:
    settings = settings or load_ai_settings()
    return DamageAnalyzer(
        gemini_api_key=settings.google.api_key if settings.vision.enabled else None,
        openai_api_key=settings.openai.api_key if settings.vision.enabled else None,
        timeout=max(settings.google.timeout_seconds, settings.openai.timeout_seconds),
        photo_delay_seconds=settings.vision.photo_delay_seconds,
        http_client=http_client,
    )
