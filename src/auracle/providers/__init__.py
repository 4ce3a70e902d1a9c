"""Model providers for auracle."""

from __future__ import annotations

import os

from auracle.config import ModelSettings
from auracle.errors import UnknownProviderError

from .base import ModelDiscovery, Provider, ProviderCapability, ProviderFactories, ProviderFactory
from .republic import HOSTED_MODEL_ENDPOINTS, RepublicProvider

API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}


def default_provider_factories() -> ProviderFactories:
    return {
        "ollama": RepublicProvider,
        "openai": RepublicProvider,
        "anthropic": RepublicProvider,
        "openrouter": RepublicProvider,
    }


def build_provider(factories: ProviderFactories, settings: ModelSettings) -> Provider:
    factory = factories.get(settings.provider)
    if factory is None:
        raise UnknownProviderError(f"unknown provider: {settings.provider}")
    return factory(settings)


def discovery_settings(provider: str, current: ModelSettings) -> ModelSettings | None:
    """Settings used to query `provider` for models, or None when it has no credentials."""
    if provider == current.provider:
        return current
    if provider in HOSTED_MODEL_ENDPOINTS:
        api_key = os.getenv(API_KEY_ENV.get(provider, ""), "")
        if not api_key:
            return None
        return ModelSettings(provider=provider, name="", api_key=api_key)
    return ModelSettings(provider=provider, name="")


__all__ = [
    "ModelDiscovery",
    "Provider",
    "ProviderCapability",
    "ProviderFactories",
    "ProviderFactory",
    "RepublicProvider",
    "build_provider",
    "default_provider_factories",
    "discovery_settings",
]
