"""Configuration schema and loader for the AI layer."""

from guardian.config.loader import load_ai_settings, load_environment
from guardian.config.schema import AISettings, ProviderSettings, RoutingSettings

__all__ = [
    "AISettings",
    "ProviderSettings",
    "RoutingSettings",
    "load_ai_settings",
    "load_environment",
]
