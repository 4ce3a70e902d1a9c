"""Tools package for auracle."""

from .builtin import CORE_TOOLS, register_core_tools
from .registry import ToolDescriptor, ToolMetadata, ToolRegistry
from .security import SecurityGuard

__all__ = [
    "CORE_TOOLS",
    "SecurityGuard",
    "ToolDescriptor",
    "ToolMetadata",
    "ToolRegistry",
    "register_core_tools",
]
