"""
Custom exception hierarchy for the Guardian Intel AI layer.

Structured error handling with clear categories:
- Configuration errors (caught at startup)
- Provider failures (non-2xx, timeout, transport) surfaced to callers
- Dispatch failures (no adapter, missing capability)

Model output that fails to parse is NOT an error: classify, parse,
research and damage analysis degrade to well-typed default results.

Usage:
    from guardian.exceptions import ProviderError, ProviderTimeoutError

    try:
        response = await router.chat(request)
    except ProviderTimeoutError:
        ...  # retry against another task/model
    except ProviderError as e:
        logger.warning("upstream_failed", extra={"status": e.status_code})
"""

from __future__ import annotations

from typing import Optional


class GuardianError(Exception):
    """
    Base exception for all Guardian Intel errors.

    All custom exceptions inherit from this, so you can catch
    `GuardianError` to handle any platform-specific error.
    """

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


# ── Configuration Errors ──────────────────────────────────────────


class ConfigurationError(GuardianError):
    """
    Raised when the AI configuration file is unreadable or invalid.

    Missing API keys are NOT configuration errors; the adapter for that
    provider is simply never registered.
    """

    def __init__(
        self,
        message: str,
        *,
        config_path: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.config_path = config_path


# ── Provider Errors ───────────────────────────────────────────────


class ProviderError(GuardianError):
    """
    Raised when an upstream provider returns a non-2xx response.

    Carries the HTTP status and the raw body text so callers can decide
    whether to retry against a different task/model.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        body: str = "",
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.provider = provider
        self.status_code = status_code
        self.body = body


class ProviderTimeoutError(GuardianError, TimeoutError):
    """
    Raised when a provider call exceeds its configured deadline.

    Also a builtin TimeoutError, so `except TimeoutError` catches it.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.provider = provider
        self.timeout_seconds = timeout_seconds


class ProviderConnectionError(GuardianError):
    """
    Raised when the provider could not be reached (DNS, refused, reset).
    """

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.provider = provider


# ── Dispatch Errors ───────────────────────────────────────────────


class UnsupportedCapabilityError(GuardianError):
    """
    Raised when the resolved adapter lacks a capability (e.g. streaming)
    and the router has no emulation path for it.
    """

    def __init__(
        self,
        message: str,
        *,
        model: Optional[str] = None,
        capability: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.model = model
        self.capability = capability


class NoAdapterAvailableError(GuardianError):
    """
    Raised when neither the task's preferred model nor the fallback
    model has a registered adapter.

    In practice this only happens when no credentials are configured.
    """

    def __init__(
        self,
        message: str,
        *,
        task: Optional[str] = None,
        model: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.task = task
        self.model = model
