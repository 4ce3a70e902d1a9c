"""Status reporting for agent progress."""

from __future__ import annotations

import threading
from typing import Protocol

from loguru import logger
from rich.console import Console
from rich.markup import escape


class StatusReporter(Protocol):
    def report(self, icon: str, step: str, message: str) -> None: ...


class LogStatusReporter:
    """Writes progress updates to the log."""

    def report(self, icon: str, step: str, message: str) -> None:
        logger.info("status step={} icon={} message={}", step, icon, message)


class ConsoleStatusReporter:
    """Prints progress updates as dim lines on a rich console."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)
        self._print_lock = threading.Lock()

    def report(self, icon: str, step: str, message: str) -> None:
        with self._print_lock:
            self.console.print(f"{icon} [bold]{escape(step)}[/bold] [dim]{escape(message)}[/dim]")
