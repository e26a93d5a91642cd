"""
Logging setup shared by the CLI and the server.

Usage:
    setup_logging('DEBUG', log_file=Path('logs/editor.log'))
    logger = logging.getLogger(__name__)
"""

from pathlib import Path
from typing import Optional, Union
import logging
import sys

LOG_FORMAT = '%(asctime)s | %(message)s'
LOG_DATEFMT = '%H:%M:%S'


def setup_logging(level: Union[str, int] = 'INFO', log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure the 'rpn_latex' package logger: console output on stdout,
    plus a log file if given. Calling it again replaces the handlers.
    """
    if isinstance(level, str):
        level_value = logging.getLevelName(level.upper())
        if not isinstance(level_value, int):
            raise ValueError(f"Unknown log level: {level}")
        level = level_value

    logger = logging.getLogger('rpn_latex')
    logger.setLevel(level)

    # Clear any existing handlers
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    # Console handler
    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(level)
    ch.setFormatter(formatter)
    logger.addHandler(ch)

    # File handler
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding='utf-8')
        fh.setLevel(level)
        fh.setFormatter(formatter)
        logger.addHandler(fh)

    # Prevent propagation to root logger
    logger.propagate = False
    return logger
