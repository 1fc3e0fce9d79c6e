#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
sync_logging.py
===============================================================================
Run logging for the Syscom → Shopify sync.

Every sync run gets its own log file:

      ~/.syscom_to_shopify/logs/run_YYYYMMDD_HHMMSS.txt

The file keeps the full DEBUG trail (per-PID image counts, pricing lines,
Shopify payloads on errors); the console only shows ``console_level`` and
up, so a cron run stays readable while the file is there for post-mortems.

syscom_to_shopify.main() calls setup_logging() before anything else; library
modules only ask for a logger:

    logger = get_logger(__name__)
===============================================================================
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Optional

DEFAULT_LOG_ROOT = "~/.syscom_to_shopify/logs"

FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(name)s: %(message)s"

# chatty third-party loggers capped at WARNING
QUIET_LOGGERS = ("urllib3",)


def _run_log_path(log_root: Optional[str]) -> str:
    root = os.path.expanduser(log_root or DEFAULT_LOG_ROOT)
    os.makedirs(root, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return os.path.join(root, f"run_{stamp}.txt")


def setup_logging(
    level: int = logging.DEBUG,
    log_root: Optional[str] = None,
    console_level: int = logging.INFO,
) -> str:
    """
    Point the root logger at a fresh run file plus the console.

    Handlers from an earlier call are closed and replaced, so calling this
    twice in one process does not duplicate output.

    Returns:
        Path of the run log file.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    log_file = _run_log_path(log_root)

    file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    root_logger.setLevel(min(level, console_level))
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info("Sync run log: %s", log_file)
    return log_file


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name if name is not None else "syscom_sync")
