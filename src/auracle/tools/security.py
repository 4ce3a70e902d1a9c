"""Approval gate for tools with side effects."""

from __future__ import annotations

import threading
from collections.abc import Iterable

from loguru import logger

from auracle.errors import InterventionRequiredError

PERM_READ = "read"
PERM_WRITE = "write"
PERM_EXECUTE = "execute"
PERM_NETWORK = "network"
PERM_SENSITIVE = "sensitive"

DEFAULT_AUTO_APPROVE = frozenset({PERM_READ, PERM_NETWORK, PERM_WRITE})


class SecurityGuard:
    """Decides whether a tool may run without a human in the loop.

    A tool passes when every permission it declares is auto-approved, or when
    its name was approved explicitly. Anything else raises
    `InterventionRequiredError`.
    """

    def __init__(
        self,
        *,
        auto_approve: Iterable[str] = DEFAULT_AUTO_APPROVE,
        approved: Iterable[str] = (),
    ) -> None:
        self._auto_approve = frozenset(auto_approve)
        self._approved = set(approved)
        self._lock = threading.Lock()

    def approve(self, tool_name: str) -> None:
        with self._lock:
            self._approved.add(tool_name)
        logger.info("security.approved tool={}", tool_name)

    def revoke(self, tool_name: str) -> None:
        with self._lock:
            self._approved.discard(tool_name)

    def is_approved(self, tool_name: str) -> bool:
        return tool_name in self._approved

    def check(self, tool_name: str, permissions: Iterable[str]) -> None:
        if self.is_approved(tool_name):
            return
        blocked = sorted(set(permissions) - self._auto_approve)
        if blocked:
            logger.warning("security.intervention tool={} permissions={}", tool_name, blocked)
            raise InterventionRequiredError(tool_name, f"needs approval for {', '.join(blocked)}")
