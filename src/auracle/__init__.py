"""auracle - a terminal-resident AI coding assistant."""

from .core.brain import Brain
from .core.types import Request, Response

__version__ = "0.1.0"

__all__ = ["Brain", "Request", "Response"]
