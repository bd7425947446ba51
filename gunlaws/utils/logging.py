"""
Logging utilities for the gun law analysis.

Provides standardized logging across all modules with:
- Console and file output
- Configurable log levels
- Timed operation blocks for long model fits and placebo batches
"""

import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(
    name: str = "gunlaws",
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    log_to_file: bool = True,
    log_to_console: bool = True
) -> logging.Logger:
    """
    Set up a logger with consistent formatting.

    Module loggers created with ``get_logger`` propagate to the package
    logger, so configuring ``"gunlaws"`` once covers the whole analysis.

    Parameters
    ----------
    name : str
        Logger name (the package name by default)
    log_dir : Path, optional
        Directory for log files. No file is written when None.
    level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_to_file : bool
        Whether to write logs to file
    log_to_console : bool
        Whether to write logs to console

    Returns
    -------
    logging.Logger
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    logger.handlers = []

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_to_file and log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"{name}_{timestamp}.log"

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get or create a logger by name.

    Loggers inside the package rely on the package logger's handlers;
    anything else gets a stdout handler on first use.

    Parameters
    ----------
    name : str
        Logger name

    Returns
    -------
    logging.Logger
        Logger instance
    """
    logger = logging.getLogger(name)

    if name == "gunlaws" or name.startswith("gunlaws."):
        root = logging.getLogger("gunlaws")
        if not root.handlers:
            setup_logger("gunlaws", log_to_file=False)
        return logger

    if not logger.handlers:
        logger.setLevel(logging.INFO)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger


class LogContext:
    """Context manager for logging operation progress."""

    def __init__(self, logger: logging.Logger, operation: str,
                 level: int = logging.INFO, **kwargs):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.kwargs = kwargs
        self.start_time = None
        self.elapsed = None

    def __enter__(self):
        self.start_time = datetime.now()
        self.logger.log(self.level, f"Starting: {self.operation}")
        for key, value in self.kwargs.items():
            self.logger.debug(f"  {key}: {value}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = (datetime.now() - self.start_time).total_seconds()
        if exc_type is None:
            self.logger.log(
                self.level, f"Completed: {self.operation} ({self.elapsed:.2f}s)"
            )
        else:
            self.logger.error(
                f"Failed: {self.operation} ({self.elapsed:.2f}s) - {exc_val}"
            )
        return False
