"""
Pydantic configuration schema for the Guardian Intel AI layer.

An optional ai.yaml (pointed to by GUARDIAN_AI_CONFIG) conforms to these
models. Credentials never live in the file: the loader overlays them
from the environment. A provider without a key is simply not registered.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from guardian.llm.llm_config import FALLBACK_MODEL, AIProvider, AITask


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

class ProviderSettings(BaseModel):
    """Connection settings for one provider family."""
    api_key: Optional[str] = Field(
        None, description="Credential; normally injected from the environment"
    )
    base_url: Optional[str] = Field(
        None, description="Override the provider's default API base URL"
    )
    timeout_seconds: float = Field(60.0, gt=0, le=600)
    max_tokens: Optional[int] = Field(
        None, ge=1, description="Default completion budget for this provider"
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        return v.rstrip("/") if v else v

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


class RoutingSettings(BaseModel):
    """Task → model overrides on top of the built-in routing table."""
    task_models: dict[AITask, str] = Field(default_factory=dict)
    fallback_model: str = FALLBACK_MODEL


class VisionSettings(BaseModel):
    """Damage analysis behavior."""
    enabled: bool = True
    photo_delay_seconds: float = Field(
        0.5, ge=0, description="Pause between photos in batch analysis"
    )


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

class AISettings(BaseModel):
    """
    Complete configuration for the AI layer.

    One ProviderSettings per provider family, keyed by AIProvider value.
    """
    claude: ProviderSettings = Field(default_factory=ProviderSettings)
    openai: ProviderSettings = Field(default_factory=ProviderSettings)
    kimi: ProviderSettings = Field(default_factory=ProviderSettings)
    google: ProviderSettings = Field(default_factory=ProviderSettings)
    perplexity: ProviderSettings = Field(default_factory=ProviderSettings)

    routing: RoutingSettings = Field(default_factory=RoutingSettings)
    vision: VisionSettings = Field(default_factory=VisionSettings)

    def provider(self, provider: AIProvider | str) -> ProviderSettings:
        return getattr(self, AIProvider(provider).value)

    def enabled_providers(self) -> list[AIProvider]:
        return [p for p in AIProvider if self.provider(p).enabled]
