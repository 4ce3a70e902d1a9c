"""Shared core dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

DEFAULT_SESSION_ID = "default"


class StopReason(StrEnum):
    COMPLETE = "complete"
    IGNORED = "ignored"
    DELEGATED = "delegated"
    LOOP_DETECTED = "loop_detected"
    TOOL_LOOP_DETECTED = "tool_loop_detected"
    MAX_TURNS = "max_turns"


class ToolStatus(StrEnum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Request:
    """One user turn; the id doubles as the thread id."""

    id: str
    content: str


@dataclass(frozen=True)
class Response:
    """Terminal output of one process call."""

    content: str
    error: str | None = None
    stop_reason: StopReason = StopReason.COMPLETE


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time read of working directory and resource utilization."""

    working_dir: str = ""
    cpu_percent: float = 0.0
    mem_percent: float = 0.0


@dataclass(frozen=True)
class ToolCall:
    """Tool invocation parsed from model output."""

    tool: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    content: str
    status: ToolStatus = ToolStatus.SUCCESS
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is ToolStatus.SUCCESS


@dataclass
class Thread:
    """Audit record of one completed request."""

    id: str
    prompt: str
    response: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Session:
    """Append-only collection of threads for one session id."""

    id: str
    threads: list[Thread] = field(default_factory=list)

    def add_thread(self, thread: Thread) -> None:
        self.threads.append(thread)
