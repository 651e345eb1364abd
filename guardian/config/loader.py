"""
Configuration loader for the Guardian Intel AI layer.

Reads the optional YAML file, overlays provider credentials from the
environment, and validates the result against the Pydantic schema.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from guardian.config.schema import AISettings
from guardian.exceptions import ConfigurationError
from guardian.llm.llm_config import AIProvider

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "GUARDIAN_AI_CONFIG"

# First variable that is set wins.
PROVIDER_ENV_KEYS: dict[AIProvider, tuple[str, ...]] = {
    AIProvider.CLAUDE: ("ANTHROPIC_API_KEY",),
    AIProvider.OPENAI: ("OPENAI_API_KEY",),
    AIProvider.KIMI: ("MOONSHOT_API_KEY",),
    AIProvider.PERPLEXITY: ("PERPLEXITY_API_KEY",),
    AIProvider.GOOGLE: ("GOOGLE_API_KEY", "GOOGLE_AI_API_KEY", "GEMINI_API_KEY"),
}


def load_environment(dotenv_path: Optional[str | Path] = None) -> bool:
    """Load a .env file into os.environ. Returns True if one was found."""
    return load_dotenv(dotenv_path, override=True)


def resolve_api_key(
    provider: AIProvider,
    env: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """Return the first non-empty credential variable for a provider."""
    env = os.environ if env is None else env
    for var in PROVIDER_ENV_KEYS[provider]:
        value = (env.get(var) or "").strip()
        if value:
            return value
    return None


def _read_yaml(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise ConfigurationError(
            f"Config not found: {config_path}",
            config_path=str(config_path),
        )

    try:
        with open(config_path, "r") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Config is not valid YAML: {config_path}\n{e}",
            config_path=str(config_path),
        ) from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Config root must be a mapping: {config_path}",
            config_path=str(config_path),
        )
    return raw


def load_ai_settings(
    config_path: Optional[str | Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> AISettings:
    """
    Load and validate the AI layer configuration.

    Args:
        config_path: Optional explicit path to a YAML file. If not provided,
                     GUARDIAN_AI_CONFIG is consulted; with neither, defaults
                     plus environment credentials are used.
        env: Environment mapping (defaults to os.environ).

    Returns:
        Validated AISettings instance.

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid.
    """
    env = os.environ if env is None else env

    if config_path is None and env.get(CONFIG_PATH_ENV):
        config_path = env[CONFIG_PATH_ENV]

    raw: dict[str, Any] = {}
    if config_path is not None:
        raw = _read_yaml(Path(config_path))

    for provider in AIProvider:
        api_key = resolve_api_key(provider, env)
        if api_key is None:
            continue
        section = raw.get(provider.value) or {}
        if not isinstance(section, dict):
            raise ConfigurationError(
                f"Section '{provider.value}' must be a mapping",
                config_path=str(config_path) if config_path else None,
            )
        raw[provider.value] = {**section, "api_key": api_key}

    try:
        settings = AISettings.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid AI config:\n{e}",
            config_path=str(config_path) if config_path else None,
        ) from e

    logger.debug(
        "ai_settings_loaded",
        extra={
            "config_path": str(config_path) if config_path else None,
            "providers": [p.value for p in settings.enabled_providers()],
        },
    )
    return settings
