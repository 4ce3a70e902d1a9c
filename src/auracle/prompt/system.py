"""Prompt composition: classify, layer, recall, render."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from loguru import logger

from auracle.config import Settings
from auracle.core.types import Snapshot
from auracle.prompt.intent import Intent, looks_like_prompt, resolve_intent
from auracle.prompt.layers import InstructionLayers, RepoMetadataSource
from auracle.prompt.recommend import Recommendation, RecommendationSampler, Recommender

LEARNING_TEXT_LIMIT = 160
SNAPSHOT_PATTERN = re.compile(
    r"SYSTEM SNAPSHOT:\nCWD: (?P<cwd>[^\n]*)\nCPU: (?P<cpu>-?\d+(?:\.\d+)?)%\nMEM: (?P<mem>-?\d+(?:\.\d+)?)%\n"
)


class PromptMemory(Protocol):
    def recall(self, query: str) -> list[str]: ...

    def store(self, id: str, value: str) -> None: ...  # noqa: A002


@dataclass(frozen=True)
class Envelope:
    intent: Intent
    prompt: str
    instructions: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def ignored(self) -> bool:
        return bool(self.metadata.get("ignored"))


@dataclass(frozen=True)
class BuildResult:
    envelope: Envelope
    recommendations: list[Recommendation] = field(default_factory=list)


def tool_usage_guide(working_dir: str) -> str:
    return (
        "\nTOOL USAGE:\n"
        "You can use tools to complete tasks. To invoke a tool, output a JSON code block:\n"
        "\n"
        "```json\n"
        '{"tool": "TOOL_NAME", "parameters": {"param1": "value1"}}\n'
        "```\n"
        "\n"
        "Example - Create a file:\n"
        "```json\n"
        '{"tool": "sys_write_file", "parameters": {"path": "example.txt", "content": "Hello world"}}\n'
        "```\n"
        "\n"
        "Example - Read a file:\n"
        "```json\n"
        '{"tool": "sys_read_file", "parameters": {"path": "README.md"}}\n'
        "```\n"
        "\n"
        "Guidelines:\n"
        "- Execute tool calls directly without asking for permission\n"
        "- Handle typos by interpreting the user's intent\n"
        "- Report results briefly after tool execution\n"
        f"- Current directory: {working_dir}\n"
        "\n"
    )


def compose(layers: list[str], recall: str, snapshot: Snapshot, tool_defs: str, user_text: str) -> str:
    """Render the sectioned prompt. CPU and MEM are written with two decimals."""
    parts = ["SYSTEM INSTRUCTIONS:\n"]
    parts.extend(f"- {layer}\n" for layer in layers)

    if recall.strip():
        parts.append(f"\nLEARNING/RECALL (local):\n{recall}\n")

    parts.append(
        f"\nSYSTEM SNAPSHOT:\nCWD: {snapshot.working_dir}\n"
        f"CPU: {snapshot.cpu_percent:.2f}%\nMEM: {snapshot.mem_percent:.2f}%\n"
    )

    if tool_defs.strip():
        parts.append("\nAVAILABLE TOOLS:\n")
        parts.append(tool_defs)
        parts.append(tool_usage_guide(snapshot.working_dir))

    parts.append(f"\nUSER PROMPT:\n{user_text}\n")
    return "".join(parts)


def parse_snapshot_section(prompt: str) -> Snapshot | None:
    """Read the system snapshot back out of a composed prompt.

    Percentages come back at the two-decimal precision `compose` writes them with.
    """
    match = SNAPSHOT_PATTERN.search(prompt)
    if match is None:
        return None
    return Snapshot(
        working_dir=match.group("cwd"),
        cpu_percent=float(match.group("cpu")),
        mem_percent=float(match.group("mem")),
    )


class PromptSystem:
    """Turns user text plus runtime context into a prompt envelope."""

    def __init__(
        self,
        settings: Settings,
        memory: PromptMemory | None = None,
        recommender: Recommender | None = None,
        *,
        repo_metadata: RepoMetadataSource | None = None,
    ) -> None:
        self._settings = settings
        self._memory = memory
        self._layers = InstructionLayers(settings, repo_metadata=repo_metadata)
        self._sampler = RecommendationSampler(settings, recommender)

    @property
    def sampler(self) -> RecommendationSampler:
        return self._sampler

    def set_recommender(self, recommender: Recommender | None) -> None:
        self._sampler.set_recommender(recommender)

    def update_settings(self, settings: Settings) -> None:
        self._settings = settings
        self._layers.update_settings(settings)
        self._sampler.update_settings(settings)

    async def build(
        self,
        user_text: str,
        snapshot: Snapshot,
        tool_defs: str,
        *,
        agent_mode: str | None = None,
    ) -> BuildResult:
        intent = resolve_intent(user_text, self._settings.prompt.mode)
        if not looks_like_prompt(user_text):
            logger.info("prompt.build.ignored length={}", len(user_text))
            return BuildResult(envelope=Envelope(intent=intent, prompt="", metadata={"ignored": True}))

        layers = self._layers.layers(intent, snapshot.working_dir, agent_mode=agent_mode)
        memory = self._memory if self._settings.prompt.learning_enabled else None

        recall = "\n".join(_recall(memory, user_text)) if memory is not None else ""
        prompt = compose(layers, recall, snapshot, tool_defs, user_text)

        if memory is not None:
            _remember(memory, intent, user_text)

        try:
            recommendations = await self._sampler.maybe_recommend(intent, user_text, snapshot.working_dir)
        except Exception as exc:
            logger.warning("prompt.recommend.error error={}", exc)
            recommendations = []

        envelope = Envelope(
            intent=intent,
            prompt=prompt,
            instructions=tuple(layers),
            metadata={
                "working_dir": snapshot.working_dir,
                "cpu": snapshot.cpu_percent,
                "mem": snapshot.mem_percent,
            },
        )
        logger.debug("prompt.build.done intent={} layers={} chars={}", intent, len(layers), len(prompt))
        return BuildResult(envelope=envelope, recommendations=recommendations)


def _recall(memory: PromptMemory, user_text: str) -> list[str]:
    try:
        return memory.recall(user_text)
    except Exception as exc:
        logger.warning("prompt.recall.error error={}", exc)
        return []


def _remember(memory: PromptMemory, intent: Intent, user_text: str) -> None:
    compact = user_text[:LEARNING_TEXT_LIMIT]
    try:
        memory.store(f"prompt:{time.time_ns()}", f"intent={intent} text={compact}")
    except Exception as exc:
        logger.warning("prompt.learning.error error={}", exc)
