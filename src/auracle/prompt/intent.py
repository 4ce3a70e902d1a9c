"""Intent classification for user prompts."""

from __future__ import annotations

import re
from enum import StrEnum


class Intent(StrEnum):
    ASK = "ask"
    PLAN = "plan"
    CRUD = "crud"
    OTHER = "other"


WORD_PATTERN = re.compile(r"[a-z0-9_'-]+")
QUESTION_WORDS = frozenset({
    "what",
    "why",
    "how",
    "who",
    "when",
    "where",
    "which",
    "is",
    "are",
    "does",
    "do",
    "can",
    "could",
    "should",
    "would",
    "explain",
    "describe",
})
PLAN_WORDS = frozenset({
    "plan",
    "planning",
    "design",
    "roadmap",
    "steps",
    "strategy",
    "architecture",
    "outline",
    "approach",
    "proposal",
})
CRUD_WORDS = frozenset({
    "create",
    "write",
    "add",
    "delete",
    "remove",
    "update",
    "edit",
    "modify",
    "change",
    "fix",
    "implement",
    "refactor",
    "rename",
    "move",
    "run",
    "install",
    "build",
    "generate",
    "make",
    "execute",
    "replace",
    "append",
})
MODE_OVERRIDES = {"ask": Intent.ASK, "plan": Intent.PLAN, "crud": Intent.CRUD}


def _words(text: str) -> list[str]:
    return WORD_PATTERN.findall(text.lower())


def classify_intent(text: str) -> Intent:
    words = _words(text)
    if not words:
        return Intent.OTHER

    crud_hits = sum(1 for word in words if word in CRUD_WORDS)
    plan_hits = sum(1 for word in words if word in PLAN_WORDS)
    is_question = text.rstrip().endswith("?") or words[0] in QUESTION_WORDS

    if plan_hits and plan_hits >= crud_hits:
        return Intent.PLAN
    if is_question and crud_hits <= 1 and words[0] not in CRUD_WORDS:
        return Intent.ASK
    if crud_hits:
        return Intent.CRUD
    if is_question:
        return Intent.ASK
    return Intent.OTHER


def resolve_intent(text: str, mode: str | None) -> Intent:
    """Classify `text`, letting a fixed `ask`/`plan`/`crud` mode override the result."""
    intent = classify_intent(text)
    normalized = (mode or "").strip().lower()
    return MODE_OVERRIDES.get(normalized, intent)


def looks_like_prompt(text: str) -> bool:
    stripped = text.strip()
    if not stripped:
        return False
    if not any(char.isalnum() for char in stripped):
        return False
    compact = "".join(stripped.split())
    return len(set(compact.lower())) > 1
