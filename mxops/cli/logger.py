# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

import logging
import os

DEFAULT_LOG_LEVEL = logging.INFO
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def _get_numeric_log_level(level_str: str) -> int:
    """Convert a log level name, falling back to DEFAULT_LOG_LEVEL if invalid."""
    numeric_level = getattr(logging, level_str.upper(), None)
    if not isinstance(numeric_level, int):
        return DEFAULT_LOG_LEVEL
    return numeric_level


def _get_default_log_level() -> int:
    if level_str := os.getenv("MXOPS_LOG_LEVEL", "").strip():
        return _get_numeric_log_level(level_str)
    return DEFAULT_LOG_LEVEL


def setup_early_logging() -> None:
    """Configure a console handler on the root logger before the CLI is parsed.

    Does nothing when the root logger already has handlers.
    """
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    log_level = _get_default_log_level()
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.setLevel(log_level)
    root_logger.addHandler(console_handler)


def setup_logging(log_level: str) -> None:
    """Apply the level chosen on the command line to the root logger."""
    numeric_level = _get_numeric_log_level(log_level)
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers:
        handler.setLevel(numeric_level)
    # Keep the HTTP stack quiet unless debugging.
    logging.getLogger("urllib3").setLevel(max(numeric_level, logging.WARNING))


def get_early_logger(name: str) -> logging.Logger:
    setup_early_logging()
    return logging.getLogger(name)
