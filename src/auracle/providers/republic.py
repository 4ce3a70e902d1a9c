"""Republic-backed providers."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from urllib.request import Request, urlopen

from loguru import logger
from republic import LLM

from auracle.config import DEFAULT_OLLAMA_ENDPOINT, ModelSettings
from auracle.errors import ModelPullError
from auracle.providers.base import ProviderCapability

LIST_MODELS_TIMEOUT_SECONDS = 10
PULL_TIMEOUT_SECONDS = 3600
HOSTED_MODEL_ENDPOINTS = {
    "openai": "https://api.openai.com/v1",
    "anthropic": "https://api.anthropic.com/v1",
    "openrouter": "https://openrouter.ai/api/v1",
}


def extract_text(response: Any) -> str:
    if isinstance(response, str):
        return response
    choices = getattr(response, "choices", None)
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    if message is None:
        return ""
    return getattr(message, "content", "") or ""


def _get_json(url: str, headers: dict[str, str]) -> Any:
    request = Request(url, headers=headers)  # noqa: S310
    with urlopen(request, timeout=LIST_MODELS_TIMEOUT_SECONDS) as response:  # noqa: S310
        return json.loads(response.read().decode("utf-8"))


def _post_json(url: str, payload: dict[str, Any], timeout: float) -> Any:
    body = json.dumps(payload).encode("utf-8")
    request = Request(url, data=body, headers={"Content-Type": "application/json"}, method="POST")  # noqa: S310
    with urlopen(request, timeout=timeout) as response:  # noqa: S310
        return json.loads(response.read().decode("utf-8"))


class RepublicProvider:
    """Single-turn text generation through `republic.LLM`."""

    capabilities = frozenset({ProviderCapability.BASIC_GENERATE})

    def __init__(self, settings: ModelSettings) -> None:
        self.name = settings.provider
        self._settings = settings
        self._llm: LLM | None = None

    @property
    def model(self) -> str:
        return f"{self.name}:{self._settings.name}"

    @property
    def llm(self) -> LLM:
        if self._llm is None:
            self._llm = LLM(
                model=self.model,
                api_key=self._settings.api_key,
                api_base=self._settings.endpoint or None,
            )
        return self._llm

    async def generate(self, prompt: str) -> str:
        response = await asyncio.to_thread(
            self.llm.chat.raw,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self._settings.max_tokens,
        )
        return extract_text(response)

    async def list_models(self) -> list[str]:
        return await asyncio.to_thread(self._list_models)

    def _list_models(self) -> list[str]:
        payload = _get_json(self._models_url(), self._models_headers())
        if not isinstance(payload, dict):
            return []
        if self.name == "ollama":
            entries = payload.get("models", [])
            key = "name"
        else:
            entries = payload.get("data", [])
            key = "id"
        names = [str(entry[key]) for entry in entries if isinstance(entry, dict) and entry.get(key)]
        logger.debug("provider.list_models provider={} count={}", self.name, len(names))
        return names

    def _models_url(self) -> str:
        if self.name == "ollama":
            base = self._settings.endpoint or DEFAULT_OLLAMA_ENDPOINT
            return f"{base.rstrip('/')}/api/tags"
        base = self._settings.endpoint or HOSTED_MODEL_ENDPOINTS.get(self.name, "")
        return f"{base.rstrip('/')}/models"

    def _models_headers(self) -> dict[str, str]:
        key = self._settings.api_key
        if not key or self.name == "ollama":
            return {}
        if self.name == "anthropic":
            return {"x-api-key": key, "anthropic-version": "2023-06-01"}
        return {"Authorization": f"Bearer {key}"}

    async def pull_model(self, name: str) -> None:
        """Ask the Ollama daemon to download `name`; waits until the pull finishes."""
        if self.name != "ollama":
            raise ModelPullError(f"provider '{self.name}' does not support pulling models")
        base = self._settings.endpoint or DEFAULT_OLLAMA_ENDPOINT
        url = f"{base.rstrip('/')}/api/pull"
        logger.info("provider.pull.start provider={} model={}", self.name, name)
        try:
            payload = await asyncio.to_thread(_post_json, url, {"model": name, "stream": False}, PULL_TIMEOUT_SECONDS)
        except OSError as exc:
            raise ModelPullError(f"failed to pull model {name}: {exc}") from exc
        if not isinstance(payload, dict) or payload.get("error") or payload.get("status") != "success":
            detail = payload.get("error") if isinstance(payload, dict) else None
            raise ModelPullError(f"failed to pull model {name}: {detail or payload}")
        logger.info("provider.pull.done provider={} model={}", self.name, name)
