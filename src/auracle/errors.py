"""Application-level exception types for auracle."""

from __future__ import annotations

INTERVENTION_MARKER = "intervention required"


class AuracleError(Exception):
    """Base exception for auracle."""


class ConfigurationError(AuracleError):
    """Base exception for configuration and startup validation errors."""


class ModelNotConfiguredError(ConfigurationError):
    """Raised when no generation backend is available."""


class UnknownProviderError(ConfigurationError):
    """Raised when a provider name has no registered constructor."""


class InvalidAgentModeError(ConfigurationError):
    """Raised when the agent mode is not one of vibe, sdk or custom."""


class CustomAgentNotFoundError(ConfigurationError):
    """Raised when activating a custom agent that was never registered."""


class GenerationError(AuracleError):
    """Raised when the model backend keeps failing after all retries."""


class ModelPullError(AuracleError):
    """Raised when a model download is unsupported or fails."""


class PermanentError(AuracleError):
    """Wraps an exception that must not be retried."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(str(cause))
        self.cause = cause


class ToolError(AuracleError):
    """Base exception for tool resolution and execution."""


class ToolNotFoundError(ToolError, KeyError):
    """Raised when a tool name is not registered."""

    def __str__(self) -> str:
        return f"tool '{self.args[0]}' not found" if self.args else "tool not found"


class InterventionRequiredError(ToolError):
    """Raised when a tool call hits a human approval gate."""

    def __init__(self, tool: str, reason: str = "") -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(f"{INTERVENTION_MARKER} for tool '{tool}'{detail}")
        self.tool = tool
        self.reason = reason


def is_intervention(exc: BaseException) -> bool:
    """Return whether an exception signals a human approval gate."""

    return isinstance(exc, InterventionRequiredError) or INTERVENTION_MARKER in str(exc)
