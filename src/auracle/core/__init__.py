"""Core module for auracle."""

from .loop_detector import LoopDetector
from .types import Request, Response, Session, Snapshot, StopReason, Thread

__all__ = ["LoopDetector", "Request", "Response", "Session", "Snapshot", "StopReason", "Thread"]
