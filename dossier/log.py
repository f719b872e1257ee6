"""Logging setup for the CLI and MCP server.

Console output uses the standard format; when ``LOG_FILE`` is configured a
size-rotated file handler is added alongside it.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator

from dossier.config.settings import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(
    level: str | int | None = None,
    log_file: str | None = None,
) -> None:
    """Configure root logging.

    Parameters
    ----------
    level:
        Log level name or number. Defaults to ``settings.LOG_LEVEL``.
    log_file:
        Optional path for a rotating log file. Defaults to
        ``settings.LOG_FILE``; empty disables file logging.
    """
    if level is None:
        level = settings.LOG_LEVEL
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    log_file = settings.LOG_FILE if log_file is None else log_file
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=settings.LOG_MAX_BYTES,
            backupCount=settings.LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        handlers=handlers,
        force=True,
    )


@contextmanager
def log_operation(
    logger: logging.Logger, name: str, **details: Any
) -> Iterator[dict[str, Any]]:
    """Log START / DONE / FAIL for a named operation with elapsed time.

    The yielded dict may be filled with result fields that are logged on
    success.
    """
    logger.info("START %s %s", name, details or "")
    result: dict[str, Any] = {}
    start = time.monotonic()
    try:
        yield result
    except Exception as exc:
        elapsed = (time.monotonic() - start) * 1000
        logger.error("FAIL %s (%.0fms): %s", name, elapsed, exc)
        raise
    elapsed = (time.monotonic() - start) * 1000
    logger.info("DONE %s (%.0fms) %s", name, elapsed, result or "")
