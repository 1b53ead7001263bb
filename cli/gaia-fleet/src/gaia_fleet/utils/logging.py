# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: MIT
#
# Permission is hereby granted, free of charge, to any person obtaining a
# copy of this software and associated documentation files (the "Software"),
# to deal in the Software without restriction, including without limitation
# the rights to use, copy, modify, merge, publish, distribute, sublicense,
# and/or sell copies of the Software, and to permit persons to whom the
# Software is furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL
# THE AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING
# FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER
# DEALINGS IN THE SOFTWARE.

"""Logging setup shared by all gaia-fleet modules.

Every module obtains its logger through get_logger(__name__). setup_logging()
attaches a level-aware stdout handler and, when a log file is given, a file
handler writing ``[timestamp] [LEVEL] message`` lines to the install log.
"""

import logging
import os
import sys
from typing import Optional

ROOT_LOGGER_NAME = 'gaia_fleet'

FILE_FORMAT = '[%(asctime)s] [%(levelname)s] %(message)s'
FILE_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Log file severities use the short names of the install log format.
LEVEL_LABELS = {
    logging.WARNING: 'WARN',
    logging.CRITICAL: 'ERROR',
}


class LevelFormatter(logging.Formatter):
    """Custom formatter that changes format based on log level."""

    def __init__(self, fmt_dict):
        super().__init__()
        self.fmt_dict = fmt_dict

    def format(self, record):
        fmt = self.fmt_dict.get(record.levelno, self.fmt_dict[logging.INFO])
        formatter = logging.Formatter(fmt)
        return formatter.format(record)


class InstallLogFormatter(logging.Formatter):
    """File formatter emitting INFO/WARN/ERROR labels."""

    def __init__(self):
        super().__init__(FILE_FORMAT, datefmt=FILE_DATE_FORMAT)

    def format(self, record):
        original = record.levelname
        record.levelname = LEVEL_LABELS.get(record.levelno, original)
        try:
            return super().format(record)
        finally:
            record.levelname = original


console_formats = {
    logging.DEBUG: "DEBUG: %(message)s",
    logging.INFO: "%(message)s",
    logging.WARNING: "WARN: %(message)s",
    logging.ERROR: "ERROR: %(message)s",
    logging.CRITICAL: "CRITICAL: %(message)s",
}


def get_logger(name: str) -> logging.Logger:
    """Return a logger in the gaia_fleet namespace."""
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + '.'):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def setup_logging(log_file: Optional[str] = None, verbose: bool = False, fresh: bool = False) -> logging.Logger:
    """Configure the gaia_fleet root logger.

    Args:
        log_file: Path of the install log. No file handler when None.
        verbose: Show DEBUG messages on the console. The install log stays at INFO.
        fresh: Truncate the log file instead of appending (start of a new run).

    Returns:
        logging.Logger: The configured root logger.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(LevelFormatter(console_formats))
    logger.addHandler(console_handler)

    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='w' if fresh else 'a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(InstallLogFormatter())
        logger.addHandler(file_handler)

    return logger
