"""Logging setup for the web backend."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "modelit"
LOG_FILENAME = "modelit.log"


def configure_logging(log_dir: Optional[Path], *, debug: bool = False) -> logging.Logger:
    """Attach a DEBUG file handler under ``log_dir`` and an INFO stdout handler, once."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    if getattr(logger, "_modelit_configured", False):
        return logger

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_dir / LOG_FILENAME, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(fh)

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(logging.DEBUG if debug else logging.INFO)
    ch.setFormatter(logging.Formatter(fmt="%(message)s"))
    logger.addHandler(ch)
    logger._modelit_configured = True  # type: ignore[attr-defined]
    return logger


__all__ = ["LOGGER_NAME", "configure_logging"]
