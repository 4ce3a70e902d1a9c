from .monitor import SystemMonitor

__all__ = ["SystemMonitor"]
