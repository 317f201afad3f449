"""Logging configuration for the explorer entrypoints.

Library modules only call ``logging.getLogger(__name__)``; the CLI calls
``configure_logging`` once at startup.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

ENV_LOG_LEVEL = "PRODUCT_EXPLORER_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_CONFIGURED = False


def parse_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv(ENV_LOG_LEVEL)
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level = level.strip().upper()
        if level.isdigit():
            return int(level)
        numeric = getattr(logging, level, None)
        if isinstance(numeric, int):
            return numeric
    return logging.WARNING


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return

    resolved = parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(resolved)
    _CONFIGURED = True
