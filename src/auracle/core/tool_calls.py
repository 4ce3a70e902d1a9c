"""Extraction and sequential execution of fenced tool calls in model output."""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger

from auracle.core.types import ToolCall, ToolResult, ToolStatus
from auracle.errors import ToolNotFoundError, is_intervention

if TYPE_CHECKING:
    from auracle.status import StatusReporter
    from auracle.tools.registry import ToolRegistry

FENCE_OPEN = "```json"
FENCE_CLOSE = "```"


def parse_tool_call(block: str) -> ToolCall | None:
    """Decode one fenced block body; None when it is not a tool call."""
    try:
        payload = json.loads(block.strip())
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None

    tool = payload.get("tool")
    if not isinstance(tool, str) or not tool:
        return None

    parameters = payload.get("parameters")
    if parameters is None:
        parameters = {}
    if not isinstance(parameters, dict):
        return None
    return ToolCall(tool=tool, parameters=parameters)


def iter_fenced_blocks(text: str) -> Iterator[str]:
    remaining = text
    while True:
        start = remaining.find(FENCE_OPEN)
        if start < 0:
            return
        body = remaining[start + len(FENCE_OPEN) :]
        end = body.find(FENCE_CLOSE)
        if end < 0:
            return
        yield body[:end]
        remaining = body[end + len(FENCE_CLOSE) :]


def iter_tool_calls(text: str) -> Iterator[ToolCall]:
    for block in iter_fenced_blocks(text):
        call = parse_tool_call(block)
        if call is not None:
            yield call


@dataclass
class ToolExecution:
    """Outcome of running every tool call found in one model response."""

    executed: bool = False
    results: list[tuple[ToolCall, ToolResult]] = field(default_factory=list)
    intervention: Exception | None = None
    error: Exception | None = None

    @property
    def output(self) -> str:
        return "\n".join(_render(call, result) for call, result in self.results)


def _render(call: ToolCall, result: ToolResult) -> str:
    if result.ok:
        return f"[{call.tool}]: {result.content}"
    return result.content


def _to_result(value: Any) -> ToolResult:
    if isinstance(value, ToolResult):
        return value
    if isinstance(value, str):
        return ToolResult(content=value)
    try:
        return ToolResult(content=json.dumps(value, ensure_ascii=False))
    except TypeError:
        return ToolResult(content=str(value))


def _report(reporter: StatusReporter | None, icon: str, step: str, message: str) -> None:
    if reporter is None:
        return
    try:
        reporter.report(icon, step, message)
    except Exception as exc:
        logger.warning("status.report.error step={} error={}", step, exc)


async def execute_tool_calls(
    registry: ToolRegistry,
    text: str,
    reporter: StatusReporter | None = None,
) -> ToolExecution:
    """Run the tool calls in `text` one at a time, in document order.

    Unknown tools and failing tools become inline error entries and processing
    continues. An intervention stops processing and is returned separately.
    """
    execution = ToolExecution()
    for call in iter_tool_calls(text):
        execution.executed = True
        _report(reporter, "🔧", "tool", f"Executing: {call.tool}")

        try:
            value = await registry.execute(call.tool, kwargs=call.parameters)
        except ToolNotFoundError as exc:
            execution.error = exc
            message = f"Error: {exc}"
            execution.results.append((call, ToolResult(content=message, status=ToolStatus.ERROR, error=str(exc))))
            continue
        except Exception as exc:
            if is_intervention(exc):
                logger.info("tool.intervention name={} error={}", call.tool, exc)
                execution.intervention = exc
                break
            execution.error = exc
            message = f"Error executing {call.tool}: {exc}"
            execution.results.append((call, ToolResult(content=message, status=ToolStatus.ERROR, error=str(exc))))
            continue

        execution.results.append((call, _to_result(value)))

    return execution
