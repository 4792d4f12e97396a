"""
Logging configuration — one call from the CLI entrypoint.

Every module logs through ``logging.getLogger(__name__)``; nothing below
the entrypoint adds handlers.  Level precedence::

    --debug  >  --verbose  >  --quiet  >  TELESTACK_LOG_LEVEL  >  WARNING

``TELESTACK_LOG_FILE`` adds a file handler (its parent directory is
created); ``TELESTACK_LOG_FILE_LEVEL`` gives it a level of its own, so a
quiet console can still leave a full DEBUG trail of a provisioning run.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Console formats by threshold, most detailed first.
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s %(levelname)-7s %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(levelname)s: %(message)s", None),
)

_FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d  %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# HTTP client chatter from the proxy API calls.
_THIRD_PARTY = ("urllib3", "requests", "charset_normalizer")


def _parse_level(level: str | None) -> int:
    """Level name → number; unknown or empty names mean WARNING."""
    numeric = logging.getLevelName(level.strip().upper()) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = next(
        (f, d) for threshold, f, d in _CONSOLE_FORMATS if level <= threshold
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(target, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    return handler


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure the root logger for this process.

    Replaces any handlers already on the root logger, so calling it
    again reconfigures rather than duplicates output.

    Args:
        level: Console level name.
        log_file: Optional log file path.
        log_file_level: Level for the file (default: ``level``).
        quiet_third_party: Hold HTTP client loggers at WARNING unless the
            console is at DEBUG.
    """
    console_level = _parse_level(level)
    handlers = [_console_handler(console_level)]

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handlers.append(_file_handler(log_file, file_level))

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(min(h.level for h in handlers))

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _THIRD_PARTY:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False
