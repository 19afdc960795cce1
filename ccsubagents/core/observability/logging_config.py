"""
Logging for the ccsubagents CLI.

``setup_logging`` runs once from the click group callback; modules only
ever call ``logging.getLogger(__name__)``.

Console level, first match wins:
    --debug > --verbose > --quiet > $CCSUBAGENTS_LOG_LEVEL > WARNING

``$CCSUBAGENTS_LOG_FILE`` adds a file handler that always uses the
detailed format, at ``$CCSUBAGENTS_LOG_FILE_LEVEL`` (default: console
level). ``$GITHUB_TOKEN`` is masked on every handler.
"""

from __future__ import annotations

import logging
import os
import sys

LOG_LEVEL_ENV = "CCSUBAGENTS_LOG_LEVEL"
LOG_FILE_ENV = "CCSUBAGENTS_LOG_FILE"
LOG_FILE_LEVEL_ENV = "CCSUBAGENTS_LOG_FILE_LEVEL"

_DETAILED = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s"

# (max level, format) pairs, checked in order
_CONSOLE_FORMATS = (
    (logging.DEBUG, _DETAILED),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s"),
)
_CONSOLE_DEFAULT_FORMAT = "%(levelname)s: %(message)s"

_CONSOLE_DATEFMT = "%H:%M:%S"
_FILE_DATEFMT = "%Y-%m-%dT%H:%M:%S"

_QUIETED = ("urllib.request", "urllib3")


class TokenRedactingFilter(logging.Filter):
    """Mask a secret value wherever it appears in a formatted record."""

    def __init__(self, secret: str):
        super().__init__()
        self._secret = secret

    def filter(self, record: logging.LogRecord) -> bool:
        if self._secret:
            message = record.getMessage()
            if self._secret in message:
                record.msg = message.replace(self._secret, "***")
                record.args = None
        return True


def resolve_level(debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Pick the console level from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(LOG_LEVEL_ENV, "WARNING")


def _level_number(name: str | None) -> int:
    value = getattr(logging, (name or "").upper(), None) if name else None
    return value if isinstance(value, int) else logging.WARNING


def _console_format(level: int) -> str:
    for ceiling, fmt in _CONSOLE_FORMATS:
        if level <= ceiling:
            return fmt
    return _CONSOLE_DEFAULT_FORMAT


def _attach(
    root: logging.Logger,
    handler: logging.Handler,
    level: int,
    fmt: str,
    datefmt: str,
    redactor: logging.Filter,
) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    handler.addFilter(redactor)
    root.addHandler(handler)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root logger's handlers.

    Args:
        level: Console level name; unknown names mean WARNING.
        log_file: Optional log file path.
        log_file_level: Level for ``log_file``; defaults to ``level``.
    """
    console_level = _level_number(level)
    redactor = TokenRedactingFilter(os.environ.get("GITHUB_TOKEN", "").strip())

    root = logging.getLogger()
    root.handlers.clear()
    _attach(
        root,
        logging.StreamHandler(sys.stderr),
        console_level,
        _console_format(console_level),
        _CONSOLE_DATEFMT,
        redactor,
    )

    lowest = console_level
    if log_file:
        file_level = _level_number(log_file_level) if log_file_level else console_level
        _attach(
            root,
            logging.FileHandler(log_file, encoding="utf-8"),
            file_level,
            _DETAILED,
            _FILE_DATEFMT,
            redactor,
        )
        lowest = min(lowest, file_level)

    root.setLevel(lowest)

    if console_level > logging.DEBUG:
        for name in _QUIETED:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False
