"""Repetition tracking for the agent turn loop."""

from __future__ import annotations

from collections import deque

DEFAULT_MAX_HISTORY = 10
DEFAULT_REPEAT_THRESHOLD = 3


class LoopDetector:
    """Flags an action once it already sits in the bounded history `repeat_threshold` times."""

    def __init__(self, max_history: int = DEFAULT_MAX_HISTORY, repeat_threshold: int = DEFAULT_REPEAT_THRESHOLD) -> None:
        if max_history < 1:
            raise ValueError("max_history must be positive")
        self._history: deque[str] = deque(maxlen=max_history)
        self._repeat_threshold = repeat_threshold

    @property
    def max_history(self) -> int:
        return self._history.maxlen or 0

    @property
    def history(self) -> tuple[str, ...]:
        return tuple(self._history)

    def reset(self) -> None:
        self._history.clear()

    def add_action(self, action: str) -> bool:
        """Record one action; return True when it is a loop and the caller should halt."""
        normalized = action.strip()
        repeats = sum(1 for seen in self._history if seen == normalized)
        if repeats >= self._repeat_threshold:
            return True
        # deque(maxlen) evicts the oldest entry
        self._history.append(normalized)
        return False
