"""Prompt composition for auracle."""

from .intent import Intent, classify_intent, looks_like_prompt, resolve_intent
from .layers import InstructionLayers
from .recommend import (
    ModelRecommender,
    NoopRecommender,
    RecommendationSampler,
    Recommendation,
    RecommendInput,
    Recommender,
)
from .system import BuildResult, Envelope, PromptSystem, compose, parse_snapshot_section

__all__ = [
    "BuildResult",
    "Envelope",
    "InstructionLayers",
    "Intent",
    "ModelRecommender",
    "NoopRecommender",
    "PromptSystem",
    "RecommendInput",
    "Recommendation",
    "RecommendationSampler",
    "Recommender",
    "classify_intent",
    "compose",
    "looks_like_prompt",
    "parse_snapshot_section",
    "resolve_intent",
]
