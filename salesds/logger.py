"""
Logging for the salesds package.

``SalesDSLogger.setup`` is called once per process (by ``SalesDS`` or the
demo) and attaches a per-run log file, plus optional stdout output, to the
``salesds`` logger. Component loggers are its children.
"""

import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Optional


LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL
}

PACKAGE_LOGGER = "salesds"

FILE_FORMAT = '%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s'
CONSOLE_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'


class SalesDSLogger:
    """Owns the handlers of the ``salesds`` logger tree."""

    _loggers: Dict[str, logging.Logger] = {}
    _initialized = False
    _log_file: Optional[Path] = None

    @classmethod
    def setup(cls, log_dir: str = "./logs", log_level: str = "INFO", console_output: bool = False):
        """
        Attach a ``salesds_<timestamp>.log`` file under log_dir. Later calls
        are ignored. Console output, when enabled, shows WARNING and above.
        """
        if cls._initialized:
            return

        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        level = LEVEL_MAP.get(log_level.upper(), logging.INFO)

        root = logging.getLogger(PACKAGE_LOGGER)
        root.setLevel(level)
        root.handlers.clear()

        log_file = directory / f"salesds_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        root.addHandler(file_handler)

        if console_output:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(logging.WARNING)
            console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
            root.addHandler(console_handler)

        cls._log_file = log_file
        cls._initialized = True
        cls.get_logger("SalesDSLogger").info(
            f"Writing {log_level.upper()} logs to {log_file} (console: {console_output})"
        )

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Child of the package logger named ``salesds.<name>``."""
        if name not in cls._loggers:
            cls._loggers[name] = logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
        return cls._loggers[name]

    @classmethod
    def get_log_file(cls) -> Optional[Path]:
        """Path of this run's log file, or None before setup."""
        return cls._log_file if cls._initialized else None


def get_logger(name: str) -> logging.Logger:
    return SalesDSLogger.get_logger(name)
