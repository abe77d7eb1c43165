"""Logging for shadowsync.

Everything logs under the ``shadowsync`` logger. Records from the notifier
(``shadowsync.notify``) are the messages a user would see in an editor, so the
console prints them bare; component records carry their level and component.
"""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "shadowsync"
NOTIFY_CHANNEL = "notify"

CONSOLE_PREFIX = "[shadowsync]"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a component logger under the shadowsync hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


class ConsoleFormatter(logging.Formatter):
    """``[shadowsync] message`` for notifications, with level and component otherwise."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        component = _component(record.name)
        if component == NOTIFY_CHANNEL:
            if record.levelno >= logging.WARNING:
                return f"{CONSOLE_PREFIX} {record.levelname.lower()}: {message}"
            return f"{CONSOLE_PREFIX} {message}"
        if component:
            return f"{CONSOLE_PREFIX} {record.levelname} {component}: {message}"
        return f"{CONSOLE_PREFIX} {record.levelname} {message}"


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Install the console handler, plus a file handler when ``log_file`` is given.

    Handlers are replaced on every call, so repeated CLI invocations in one
    process do not print twice.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(ConsoleFormatter("%(message)s"))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)
        # The file keeps debug detail even when the console does not.
        logger.setLevel(logging.DEBUG)

    return logger


def _component(name: str) -> str:
    if name == _LOGGER_NAME:
        return ""
    return name[len(_LOGGER_NAME) + 1 :] if name.startswith(_LOGGER_NAME + ".") else name


__all__ = ["ConsoleFormatter", "NOTIFY_CHANNEL", "configure_logging", "get_logger"]
