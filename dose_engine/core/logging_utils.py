# dose_engine/core/logging_utils.py
from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any

from dose_engine.core.engine_config import LOG_FILE, LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = LOG_LEVEL, log_file: str = LOG_FILE) -> logging.Logger:
    """
    Configure the `dose_engine` logger tree:
    - console at the configured level
    - optional rotating file (DEBUG and above) when LOG_FILE is set
    """
    root = logging.getLogger("dose_engine")
    root.setLevel(logging.DEBUG)

    fmt = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    ch.setLevel(getattr(logging, level, logging.INFO))

    root.handlers.clear()
    root.addHandler(ch)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        fh = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=10, encoding="utf-8")
        fh.setFormatter(fmt)
        fh.setLevel(logging.DEBUG)
        root.addHandler(fh)

    return root


def kv(**kwargs: Any) -> str:
    """Key=value compact formatting (values repr()'d for clarity)."""
    return " ".join(f"{k}={v!r}" for k, v in kwargs.items())
