# -*- coding: utf-8 -*-
"""
Mordant: Fixing colour across textures and meshes
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: mordant_logging.py — Console/file logging for the Mordant modules.

Every module logs through ``logging.getLogger(__name__)``. The modules are
flat, so their loggers have no common parent; ``setup_logging`` attaches
the same handlers to each of them.
"""

import logging
import sys
from typing import Final, List, Optional, Tuple

LOGGER_NAMES: Final[Tuple[str, ...]] = (
    "mordant_logging",
    "mordant_materials",
    "mordant_uv",
    "mordant_statistics",
    "mordant_kernels",
    "mordant_parallel",
    "mordant_transfer",
    "mordant_difference",
)


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> List[logging.Logger]:
    """
    Configures the loggers of the 'mordant' modules.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file.

    Returns:
        The configured loggers.
    """
    # Format: Time - Module - Level - Message
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    file_handler = None
    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)

    configured = []
    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        # Avoid duplicate output when called again.
        if logger.hasHandlers():
            logger.handlers.clear()
        logger.addHandler(console_handler)
        if file_handler is not None:
            logger.addHandler(file_handler)
        configured.append(logger)

    logging.getLogger(__name__).info("Logging initialized.")
    return configured
