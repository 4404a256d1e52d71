"""Pluggable log sink used by pipeline policies."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger("azqueue_sdk.pipeline")


class LogLevel(enum.IntEnum):
    """Severity of a pipeline log event; lower values are more severe."""

    NONE = 0
    FATAL = 1
    PANIC = 2
    ERROR = 3
    WARNING = 4
    INFO = 5
    DEBUG = 6


_STDLIB_LEVELS = {
    LogLevel.FATAL: logging.CRITICAL,
    LogLevel.PANIC: logging.CRITICAL,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.INFO: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
}


def to_stdlib_level(level: LogLevel) -> int:
    return _STDLIB_LEVELS.get(level, logging.NOTSET)


def default_should_log(level: LogLevel) -> bool:
    return level != LogLevel.NONE and level <= LogLevel.WARNING and logger.isEnabledFor(to_stdlib_level(level))


def default_log(level: LogLevel, message: str) -> None:
    logger.log(to_stdlib_level(level), message)


@dataclass(frozen=True)
class LogOptions:
    """Where pipeline log events go and which ones are kept.

    ``should_log`` is consulted before any message is formatted.
    """

    should_log: Callable[[LogLevel], bool] = default_should_log
    log: Callable[[LogLevel, str], None] = default_log
