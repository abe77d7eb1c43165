"""User-facing notifications."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .logging import NOTIFY_CHANNEL, get_logger

Sink = Callable[[str, str], None]

_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class Notifier:
    """Logs a message and forwards it to an optional UI sink as ``(level, message)``."""

    def __init__(self, sink: Optional[Sink] = None) -> None:
        self._sink = sink
        self.logger = get_logger(NOTIFY_CHANNEL)

    def info(self, message: str) -> None:
        self._emit("info", message)

    def warning(self, message: str) -> None:
        self._emit("warning", message)

    def error(self, message: str) -> None:
        self._emit("error", message)

    def _emit(self, level: str, message: str) -> None:
        self.logger.log(_LEVELS[level], message)
        if self._sink is not None:
            self._sink(level, message)


class RecordingNotifier(Notifier):
    """Notifier that keeps every message, used by the CLI summary and tests."""

    def __init__(self, sink: Optional[Sink] = None) -> None:
        super().__init__(sink)
        self.messages: list[tuple[str, str]] = []

    def _emit(self, level: str, message: str) -> None:
        self.messages.append((level, message))
        super()._emit(level, message)

    def of_level(self, level: str) -> list[str]:
        return [message for lvl, message in self.messages if lvl == level]


__all__ = ["Notifier", "RecordingNotifier", "Sink"]
