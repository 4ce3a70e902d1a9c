"""Ordered instruction layers for the composed system prompt."""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from pathlib import Path

import yaml
from loguru import logger

from auracle.config import Settings
from auracle.prompt.intent import Intent

PERSONA_LAYER = "You are auracle, an AI coding assistant. You help users by executing tasks directly."
TYPO_LAYER = "Handle typos gracefully by interpreting the user's likely intent."
BREVITY_LAYER = "Keep responses brief and focused on results."
PROJECT_INSTRUCTION_DIRS = (".github/agents", ".github/auracle")
REPO_VIEW_FIELDS = "name,owner,description,stargazerCount,primaryLanguage,licenseInfo,url"
REPO_VIEW_TIMEOUT_SECONDS = 5.0
MODE_LAYERS = {
    Intent.ASK: "Mode: Answer questions clearly and concisely.",
    Intent.PLAN: "Mode: Create a structured plan.",
    Intent.CRUD: "Mode: Execute file and code changes.",
}
DEFAULT_MODE_LAYER = "Mode: Execute the requested task."

RepoMetadataSource = Callable[[str], str]


def gh_repo_metadata(working_dir: str) -> str:
    """Describe the repository at `working_dir` with `gh repo view`; empty when unavailable."""
    try:
        completed = subprocess.run(  # noqa: S603
            ["gh", "repo", "view", "--json", REPO_VIEW_FIELDS],  # noqa: S607
            cwd=working_dir or None,
            capture_output=True,
            text=True,
            timeout=REPO_VIEW_TIMEOUT_SECONDS,
            check=True,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("prompt.repo_metadata.unavailable error={}", exc)
        return ""
    return completed.stdout.strip()


def split_frontmatter(content: str) -> tuple[dict[str, object], str]:
    lines = content.splitlines()
    if not lines or lines[0].strip() != "---":
        return {}, content

    for idx, line in enumerate(lines[1:], start=1):
        if line.strip() == "---":
            body = "\n".join(lines[idx + 1 :])
            try:
                parsed = yaml.safe_load("\n".join(lines[1:idx]))
            except yaml.YAMLError:
                return {}, body
            if isinstance(parsed, dict):
                return {str(key).lower(): value for key, value in parsed.items()}, body
            return {}, body
    return {}, content


def discover_project_instructions(working_dir: str) -> str:
    """Concatenate enabled markdown rule files found under the project metadata directories."""
    root = Path(working_dir)
    chunks: list[str] = []
    for relative in PROJECT_INSTRUCTION_DIRS:
        directory = root / relative
        if not directory.is_dir():
            continue
        for path in sorted(directory.iterdir(), key=lambda item: item.name):
            if not path.is_file() or path.suffix.lower() != ".md":
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except OSError:
                continue
            frontmatter, body = split_frontmatter(content)
            if frontmatter.get("enabled") is False:
                continue
            chunks.append(f"\n--- Source: {path.name} ---\n{body}\n")
    return "".join(chunks)


class InstructionLayers:
    """Builds the instruction layers for one prompt, in a fixed order."""

    def __init__(self, settings: Settings, *, repo_metadata: RepoMetadataSource | None = None) -> None:
        self._settings = settings
        self._repo_metadata = repo_metadata

    def update_settings(self, settings: Settings) -> None:
        self._settings = settings

    def layers(self, intent: Intent, working_dir: str, *, agent_mode: str | None = None) -> list[str]:
        layers = [PERSONA_LAYER, TYPO_LAYER, BREVITY_LAYER]

        if working_dir:
            project_layer = self._project_layer(working_dir)
            if project_layer:
                layers.append(project_layer)

        manual = self._settings.prompt.project_instructions
        if manual.strip():
            layers.append("MANUAL INSTRUCTIONS:\n" + manual)

        agent = self._settings.active_custom_agent(agent_mode)
        if agent is not None and agent.instructions.strip():
            layers.append(f"AGENT INSTRUCTIONS ({agent.name}):\n{agent.instructions}")

        layers.append(MODE_LAYERS.get(intent, DEFAULT_MODE_LAYER))
        return layers

    def _project_layer(self, working_dir: str) -> str:
        project_rules = discover_project_instructions(working_dir)
        try:
            repo_meta = (self._repo_metadata or gh_repo_metadata)(working_dir)
        except Exception as exc:
            logger.warning("prompt.repo_metadata.error error={}", exc)
            repo_meta = ""

        combined = ""
        if repo_meta:
            combined += "REPOSITORY IDENTITY:\n" + repo_meta + "\n"
        if project_rules:
            combined += "PROJECT RULES:\n" + project_rules
        return combined
