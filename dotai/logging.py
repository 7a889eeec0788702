"""Logging utilities for dotai commands and the sync engine."""

from __future__ import annotations

import logging

_LOGGER_NAME = "dotai"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the dotai hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def parse_level(level: str | None, default: int = logging.INFO) -> int:
    """Translate a settings `log.level` value into a logging level."""
    if not level:
        return default
    return _LEVELS.get(level.strip().lower(), default)


def configure_logging(*, verbose: bool = False) -> logging.Logger:
    """Configure the dotai logger with console output."""
    resolved = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(resolved)
    logger.propagate = False

    # Reset handlers to avoid duplicate output when the CLI runs multiple times.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(resolved)
    stream_handler.setFormatter(logging.Formatter("[dotai] %(levelname)s %(message)s"))
    logger.addHandler(stream_handler)

    return logger


def apply_level(level: str | None) -> None:
    """Adjust the dotai logger level without touching its handlers."""
    resolved = parse_level(level)
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(resolved)
    for handler in logger.handlers:
        handler.setLevel(resolved)


__all__ = ["apply_level", "configure_logging", "get_logger", "parse_level"]
