"""Sampled, best-effort follow-up recommendations."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from loguru import logger
from pydantic import BaseModel, TypeAdapter, ValidationError

from auracle.config import Settings
from auracle.prompt.intent import Intent

if TYPE_CHECKING:
    from auracle.providers.base import Provider

DEFAULT_SAMPLE_RATE = 0.05
MAX_MODEL_RECOMMENDATIONS = 3
RECOMMENDABLE_INTENTS = frozenset({Intent.PLAN, Intent.CRUD})


class Recommendation(BaseModel):
    title: str
    detail: str = ""
    kind: str = "suggestion"


RECOMMENDATION_LIST = TypeAdapter(list[Recommendation])


@dataclass(frozen=True)
class RecommendInput:
    intent: Intent
    user_text: str
    working_dir: str
    time: datetime = field(default_factory=lambda: datetime.now(UTC))


class Recommender(Protocol):
    async def recommend(self, payload: RecommendInput) -> list[Recommendation]: ...


class NoopRecommender:
    async def recommend(self, payload: RecommendInput) -> list[Recommendation]:
        return []


class ModelRecommender:
    """Asks the active model for a handful of follow-up suggestions."""

    def __init__(self, provider: Provider) -> None:
        self._provider = provider

    async def recommend(self, payload: RecommendInput) -> list[Recommendation]:
        prompt = (
            f"Suggest at most {MAX_MODEL_RECOMMENDATIONS} short follow-up improvements for this "
            f"{payload.intent} request in {payload.working_dir or 'the current project'}.\n"
            'Reply with only a JSON list of objects with "title" and "detail" keys.\n\n'
            f"Request:\n{payload.user_text}\n"
        )
        text = await self._provider.generate(prompt)
        return parse_recommendations(text)[:MAX_MODEL_RECOMMENDATIONS]


def parse_recommendations(text: str) -> list[Recommendation]:
    start = text.find("[")
    end = text.rfind("]")
    if start < 0 or end <= start:
        return []
    try:
        return RECOMMENDATION_LIST.validate_json(text[start : end + 1])
    except ValidationError:
        logger.debug("prompt.recommend.unparsable length={}", len(text))
        return []


class RecommendationSampler:
    """Gates recommender calls by configuration, quota, intent and a cheap time-based sample."""

    def __init__(
        self,
        settings: Settings,
        recommender: Recommender | None = None,
        *,
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        self._settings = settings
        self._recommender = recommender
        self._clock = clock
        self.used = 0

    @property
    def recommender(self) -> Recommender | None:
        return self._recommender

    def set_recommender(self, recommender: Recommender | None) -> None:
        self._recommender = recommender

    def update_settings(self, settings: Settings) -> None:
        self._settings = settings

    async def maybe_recommend(self, intent: Intent, user_text: str, working_dir: str) -> list[Recommendation]:
        prompt_settings = self._settings.prompt
        if not prompt_settings.recommendations_enabled:
            return []
        if self._recommender is None:
            return []
        max_per_run = prompt_settings.recommendations_max_per_run
        if max_per_run > 0 and self.used >= max_per_run:
            return []
        if intent not in RECOMMENDABLE_INTENTS:
            return []

        rate = prompt_settings.recommendations_sample_rate
        if rate <= 0:
            rate = DEFAULT_SAMPLE_RATE
        if self._clock() % 1000 > int(rate * 1000):
            return []

        self.used += 1
        logger.info("prompt.recommend.sampled intent={} used={}", intent, self.used)
        return await self._recommender.recommend(
            RecommendInput(intent=intent, user_text=user_text, working_dir=working_dir)
        )
