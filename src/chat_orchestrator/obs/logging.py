"""Logging setup for the package logger."""

from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach one stream handler to the `chat_orchestrator` logger.

    Calling it again only updates the level.
    """

    logger = logging.getLogger("chat_orchestrator")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(getattr(h, "_chat_orchestrator", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._chat_orchestrator = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
