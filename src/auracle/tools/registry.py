"""Unified tool registry."""

from __future__ import annotations

import asyncio
import builtins
import inspect
import json
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from pydantic import BaseModel
from republic import Tool, tool_from_model

from auracle.errors import ToolNotFoundError
from auracle.tools.security import SecurityGuard


def _shorten_text(text: str, width: int = 30, placeholder: str = "...") -> str:
    """Shorten text to width characters, cutting in the middle of words if needed.

    Unlike textwrap.shorten, this function can cut in the middle of a word,
    ensuring long strings without spaces are still truncated properly.
    """
    if len(text) <= width:
        return text

    available = width - len(placeholder)
    if available <= 0:
        return placeholder

    return text[:available] + placeholder


@dataclass(frozen=True)
class ToolMetadata:
    """What the model is told about a tool."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass(frozen=True)
class ToolDescriptor:
    """Tool metadata and runtime handle."""

    name: str
    short_description: str
    detail: str
    tool: Tool
    permissions: frozenset[str] = field(default_factory=frozenset)
    source: str = "builtin"

    def metadata(self) -> ToolMetadata:
        parameters = self.tool.parameters if isinstance(self.tool.parameters, dict) else {}
        return ToolMetadata(name=self.name, description=self.short_description, parameters=dict(parameters))


class ToolRegistry:
    """Registry of tools the agent may call by name."""

    def __init__(self, guard: SecurityGuard | None = None) -> None:
        self._tools: dict[str, ToolDescriptor] = {}
        self._guard = guard

    @property
    def guard(self) -> SecurityGuard | None:
        return self._guard

    def register(
        self,
        *,
        name: str,
        short_description: str,
        model: type[BaseModel],
        detail: str | None = None,
        permissions: Iterable[str] = (),
        source: str = "builtin",
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator registering a handler that takes one validated `model` instance."""

        def decorator(handler: Callable[..., Any]) -> Callable[..., Any]:
            description = detail or inspect.getdoc(handler) or short_description
            self.add(
                ToolDescriptor(
                    name=name,
                    short_description=short_description,
                    detail=description,
                    tool=tool_from_model(model, handler, name=name, description=short_description),
                    permissions=frozenset(permissions),
                    source=source,
                )
            )
            return handler

        return decorator

    def add(self, descriptor: ToolDescriptor) -> None:
        if descriptor.name in self._tools:
            logger.warning("tool.register.replace name={}", descriptor.name)
        self._tools[descriptor.name] = descriptor

    def has(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def descriptors(self) -> builtins.list[ToolDescriptor]:
        return sorted(self._tools.values(), key=lambda item: item.name)

    def names(self) -> builtins.list[str]:
        return [descriptor.name for descriptor in self.descriptors()]

    def metadata(self, name: str) -> ToolMetadata:
        descriptor = self.get(name)
        if descriptor is None:
            raise ToolNotFoundError(name)
        return descriptor.metadata()

    def prompt_definitions(self, names: Iterable[str] | None = None) -> str:
        """Render `- name: description` rows for the prompt, in the order asked."""
        selected = self.names() if names is None else list(names)
        rows: builtins.list[str] = []
        for name in selected:
            descriptor = self.get(name)
            if descriptor is None:
                continue
            rows.append(f"- {descriptor.name}: {descriptor.short_description}\n")
        return "".join(rows)

    def detail(self, name: str) -> str:
        descriptor = self.get(name)
        if descriptor is None:
            raise ToolNotFoundError(name)
        return (
            f"name: {descriptor.name}\n"
            f"source: {descriptor.source}\n"
            f"description: {descriptor.short_description}\n"
            f"detail: {descriptor.detail}\n"
            f"permissions: {', '.join(sorted(descriptor.permissions)) or '-'}\n"
            f"schema: {json.dumps(descriptor.metadata().parameters, ensure_ascii=False)}"
        )

    def _log_tool_call(self, name: str, kwargs: dict[str, Any]) -> None:
        params: builtins.list[str] = []
        for key, value in kwargs.items():
            try:
                rendered = json.dumps(value, ensure_ascii=False)
            except TypeError:
                rendered = repr(value)
            value = _shorten_text(rendered, width=30, placeholder="...")
            if value.startswith('"') and not value.endswith('"'):
                value = value + '"'
            if value.startswith("{") and not value.endswith("}"):
                value = value + "}"
            if value.startswith("[") and not value.endswith("]"):
                value = value + "]"
            params.append(f"{key}={value}")
        logger.info("tool.call.start name={} {{ {} }}", name, ", ".join(params))

    async def execute(self, name: str, *, kwargs: dict[str, Any]) -> Any:
        """Run one tool. Raises ToolNotFoundError, InterventionRequiredError, or the tool's own error."""
        descriptor = self.get(name)
        if descriptor is None:
            raise ToolNotFoundError(name)
        if self._guard is not None:
            self._guard.check(descriptor.name, descriptor.permissions)

        self._log_tool_call(descriptor.name, kwargs)
        start = time.monotonic()
        try:
            result = await asyncio.to_thread(descriptor.tool.run, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception:
            logger.exception("tool.call.error name={}", descriptor.name)
            raise
        finally:
            duration = time.monotonic() - start
            logger.info("tool.call.end name={} duration={:.3f}ms", descriptor.name, duration * 1000)
