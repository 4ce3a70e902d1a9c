"""Configuration management for auracle."""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

AgentMode = Literal["vibe", "sdk", "custom"]
PromptMode = Literal["auto", "ask", "plan", "crud"]

AGENT_MODES: tuple[str, ...] = ("vibe", "sdk", "custom")
DEFAULT_PROVIDER = "ollama"
DEFAULT_MODEL_NAME = "llama3"
DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"
CONFIG_FILE_NAME = "config.json"


class ModelSettings(BaseModel):
    provider: str = Field(default=DEFAULT_PROVIDER, description="Provider name (e.g. 'ollama', 'openai')")
    name: str = Field(default=DEFAULT_MODEL_NAME, description="Model name on that provider")
    endpoint: str = Field(default="", description="Optional API base URL")
    api_key: str | None = Field(default=None, description="API key for hosted providers")
    max_tokens: int = Field(default=4000, ge=1, description="Maximum tokens per response")


class CustomAgent(BaseModel):
    name: str
    description: str = ""
    instructions: str = ""


class AgentSettings(BaseModel):
    mode: AgentMode = Field(default="vibe", description="Agent runtime: internal loop, backend-delegated, or custom")
    max_turns: int = Field(default=10, ge=1, description="Maximum generate/act cycles per request")
    loop_repeat_threshold: int = Field(default=3, ge=1, description="Exact repeats that count as a loop")
    loop_history: int = Field(default=10, ge=1, description="Actions remembered by the loop detector")
    custom_agents: list[CustomAgent] = Field(default_factory=list)
    active_custom: str = ""


class PromptSettings(BaseModel):
    enabled: bool = True
    mode: PromptMode = "auto"
    learning_enabled: bool = True
    project_instructions: str = ""
    recommendations_enabled: bool = False
    recommendations_max_per_run: int = Field(default=0, ge=0)
    recommendations_sample_rate: float = Field(default=0.05, ge=0.0, le=1.0)


class RetrySettings(BaseModel):
    initial_interval: float = Field(default=0.5, gt=0)
    multiplier: float = Field(default=1.5, ge=1.0)
    randomization: float = Field(default=0.5, ge=0.0, le=1.0)
    max_interval: float = Field(default=60.0, gt=0)
    max_elapsed: float = Field(default=900.0, gt=0)


class MemorySettings(BaseModel):
    window_size: int = Field(default=20, ge=1)
    recall_limit: int = Field(default=5, ge=1)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="AURACLE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    model: ModelSettings = Field(default_factory=ModelSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    prompt: PromptSettings = Field(default_factory=PromptSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    memory: MemorySettings = Field(default_factory=MemorySettings)

    data_dir: Path = Field(default_factory=lambda: Path.home() / ".auracle", description="Home for memory and state")
    autodetect_model: bool = Field(default=True, description="Query providers for a better default model at startup")

    def resolve_home(self) -> Path:
        home = self.data_dir.expanduser().resolve()
        home.mkdir(parents=True, exist_ok=True)
        return home

    def uses_default_model(self) -> bool:
        return self.model.name in {"", "none", DEFAULT_MODEL_NAME}

    def active_custom_agent(self, mode: str | None = None) -> CustomAgent | None:
        if (mode or self.agent.mode) != "custom" or not self.agent.active_custom:
            return None
        for agent in self.agent.custom_agents:
            if agent.name == self.agent.active_custom:
                return agent
        return None


class ConfigManager:
    """Loads and persists settings; writes are serialized behind one lock."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or default_config_path()
        self._lock = threading.RLock()

    def load(self) -> Settings:
        data = self._read_file()
        return Settings(**data)

    def save(self, settings: Settings) -> None:
        payload = settings.model_dump(mode="json")
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(".json.tmp")
            tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(self.path)
        logger.info("config.saved path={}", self.path)

    @property
    def lock(self) -> Any:
        """Writer lock shared with callers that read-modify-write settings."""
        return self._lock

    def _read_file(self) -> dict[str, Any]:
        if not self.path.is_file():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("config.read.invalid path={}", self.path)
            return {}
        if not isinstance(payload, dict):
            return {}
        return payload


def default_config_path() -> Path:
    override = os.getenv("AURACLE_CONFIG")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".auracle" / CONFIG_FILE_NAME


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from the config file layered over env and defaults."""
    return ConfigManager(path).load()
