"""User-facing notifications (toasts and blocking alerts)."""

from __future__ import annotations

from typing import List, Protocol

import structlog

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    def notify(self, message: str) -> None:
        """Short-lived, non-blocking notice."""

    def alert(self, message: str) -> None:
        """Failure the user must acknowledge."""


class LogNotifier:
    """Notifier that logs every message and keeps them for inspection."""

    def __init__(self) -> None:
        self.notices: List[str] = []
        self.alerts: List[str] = []

    def notify(self, message: str) -> None:
        self.notices.append(message)
        logger.info("notify", message=message)

    def alert(self, message: str) -> None:
        self.alerts.append(message)
        logger.warning("alert", message=message)

    @property
    def last(self) -> str | None:
        return self.notices[-1] if self.notices else None


__all__ = ["LogNotifier", "Notifier"]
