"""
Process logger for the allocator, its connection handlers and the workers.

Log records go to stderr so stdout stays free for the port announcement,
result banners and encrypt output. One Logger is shared by every handler
thread of an allocator; tests pass console=False to keep runs quiet.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from keysearch.core.exceptions import ConfigurationError
from keysearch.core.interfaces import ILogger


LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Logger(ILogger):
    """
    Named stdlib logger with stderr and optional file output.

    Each command line tool gets its own name (KeyAllocator, KeyWorker,
    KeyEncrypt); creating a Logger again under the same name replaces
    the earlier handlers.
    """

    def __init__(
        self,
        name: str = "KeySearch",
        level: str = "INFO",
        log_file: Optional[str] = None,
        console: bool = True
    ):
        """
        Initialize logger.

        Args:
            name: Logger name
            level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_file: Optional file path for log output
            console: Whether to log to stderr

        Raises:
            ConfigurationError: If the level name is unknown
        """
        if level.upper() not in LEVELS:
            raise ConfigurationError(f"Unknown log level {level!r}, expected one of {', '.join(LEVELS)}")

        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))

        # Handlers from an earlier Logger with this name
        self.logger.handlers.clear()

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        if console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        if not self.logger.handlers:
            self.logger.addHandler(logging.NullHandler())

    def debug(self, message: str) -> None:
        """Log debug message."""
        self.logger.debug(message)

    def info(self, message: str) -> None:
        """Log info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log error message."""
        self.logger.error(message)
