from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from auracle.config import ConfigManager, Settings
from auracle.core.brain import Brain
from auracle.core.retry import RetryPolicy
from auracle.core.types import Snapshot
from auracle.memory import MemoryStore
from auracle.providers import ProviderCapability
from auracle.tools import SecurityGuard, ToolRegistry, register_core_tools


@dataclass
class FakeProvider:
    """Replays scripted responses and records every prompt it receives."""

    responses: list[str] = field(default_factory=lambda: ["Mocked AI Response"])
    name: str = "fake"
    capabilities: frozenset[ProviderCapability] = frozenset({ProviderCapability.BASIC_GENERATE})
    models: list[str] = field(default_factory=list)
    prompts: list[str] = field(default_factory=list)
    failures: list[Exception] = field(default_factory=list)
    closed: bool = False

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.failures:
            raise self.failures.pop(0)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    async def list_models(self) -> list[str]:
        return list(self.models)

    def close(self) -> None:
        self.closed = True


@dataclass
class RecordingReporter:
    events: list[tuple[str, str, str]] = field(default_factory=list)

    def report(self, icon: str, step: str, message: str) -> None:
        self.events.append((icon, step, message))

    def steps(self) -> list[str]:
        return [step for _, step, _ in self.events]


@dataclass
class FixedMonitor:
    snapshot: Snapshot = field(default_factory=lambda: Snapshot(working_dir="/work", cpu_percent=12.5, mem_percent=40.25))

    def get_snapshot(self) -> Snapshot:
        return self.snapshot


@pytest.fixture(autouse=True)
def _no_repo_metadata(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("auracle.prompt.layers.gh_repo_metadata", lambda _working_dir: "")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(data_dir=tmp_path / "home", autodetect_model=False)


@pytest.fixture
def config_manager(tmp_path: Path) -> ConfigManager:
    return ConfigManager(tmp_path / "config.json")


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def memory(settings: Settings) -> MemoryStore:
    return MemoryStore(settings.resolve_home(), window_size=settings.memory.window_size)


@pytest.fixture
def fake_provider() -> type[FakeProvider]:
    return FakeProvider


@pytest.fixture
def fixed_monitor() -> type[FixedMonitor]:
    return FixedMonitor


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def no_wait_policy() -> RetryPolicy:
    return RetryPolicy(initial_interval=0.001, multiplier=1.0, randomization=0.0, max_interval=0.001, max_elapsed=5.0)


@pytest.fixture
def make_brain(
    settings: Settings,
    config_manager: ConfigManager,
    workspace: Path,
    memory: MemoryStore,
    reporter: RecordingReporter,
    no_wait_policy: RetryPolicy,
) -> Callable[..., Brain]:
    def _make(provider: FakeProvider | None = None, **overrides: Any) -> Brain:
        fake = provider or FakeProvider()
        settings.model.provider = "fake"
        monitor = FixedMonitor(Snapshot(working_dir=str(workspace), cpu_percent=1.0, mem_percent=2.0))
        tools = ToolRegistry(SecurityGuard())
        register_core_tools(tools, workspace=workspace, monitor=monitor)
        options: dict[str, Any] = {
            "config_manager": config_manager,
            "provider_factories": {"fake": lambda _settings: fake},
            "tools": tools,
            "memory": memory,
            "monitor": monitor,
            "reporter": reporter,
            "retry_policy": no_wait_policy,
            "autodetect": False,
        }
        options.update(overrides)
        return Brain(settings, **options)

    return _make
