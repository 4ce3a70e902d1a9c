"""System awareness."""

from __future__ import annotations

import os

import psutil

from auracle.core.types import Snapshot


class SystemMonitor:
    """Reads working directory and resource utilization."""

    def get_snapshot(self) -> Snapshot:
        cpu = psutil.cpu_percent(interval=None)
        memory = psutil.virtual_memory()
        try:
            working_dir = os.getcwd()
        except OSError:
            working_dir = ""
        return Snapshot(working_dir=working_dir, cpu_percent=float(cpu), mem_percent=float(memory.percent))
