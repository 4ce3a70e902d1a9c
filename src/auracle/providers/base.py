"""Provider contracts."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol, runtime_checkable

from auracle.config import ModelSettings


class ProviderCapability(StrEnum):
    BASIC_GENERATE = "basic_generate"
    STREAMING_GENERATE = "streaming_generate"
    TOOL_NATIVE = "tool_native"


@runtime_checkable
class Provider(Protocol):
    """A text generation backend."""

    name: str
    capabilities: frozenset[ProviderCapability]

    async def generate(self, prompt: str) -> str: ...

    async def list_models(self) -> list[str]: ...


@dataclass(frozen=True)
class ModelDiscovery:
    name: str
    provider: str


ProviderFactory = Callable[[ModelSettings], Provider]
ProviderFactories = dict[str, ProviderFactory]
