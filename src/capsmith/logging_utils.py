"""Logging helpers."""

from __future__ import annotations

import logging
import os
from pathlib import Path

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(log_level: str | None = None, log_file: str | None = None) -> None:
    """Configure stdlib logging for capsmith.

    The ``capsmith`` logger does not propagate, so the sandbox's interception
    of the root logger never swallows host messages.
    """
    env_level = os.getenv("CAPSMITH_LOG_LEVEL")
    level_name = (log_level or env_level or "").upper()
    if not level_name and not log_file:
        return
    if not level_name:
        level_name = "WARNING"
    level = logging.getLevelName(level_name)
    if isinstance(level, str):
        raise ValueError(f"Invalid log level: {level_name}")

    handlers: list[logging.Handler] = []
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path))
    else:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))

    logger = logging.getLogger("capsmith")
    logger.setLevel(level)
    logger.propagate = False
    logger.handlers = handlers


def abbreviate(text: str | None, limit: int = 200) -> str:
    """Return a single-line, truncated preview string."""
    if text is None:
        return ""
    flattened = text.replace("\n", "\\n")
    if len(flattened) <= limit:
        return flattened
    return f"{flattened[:limit]}..."
