"""Centralized Logging Management for CalCommand

Hands out module loggers and, on request, installs console and rotating file
handlers. Importing the library never installs handlers by itself.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from .config_manager import LoggingConfig


ROOT_LOGGER_NAME = "calcommand"


class ColoredFormatter(logging.Formatter):
    """Custom formatter that adds colors to console output."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record):
        """Format log record with colors for console output."""
        log_message = super().format(record)
        return f"{self.COLORS.get(record.levelname, '')}{log_message}{self.COLORS['RESET']}"


class LoggingManager:
    """Centralized logging configuration and management."""

    _instance: Optional['LoggingManager'] = None
    _initialized: bool = False

    def __new__(cls) -> 'LoggingManager':
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize logging manager (only once)."""
        if self._initialized:
            return

        self.loggers: Dict[str, logging.Logger] = {}
        self.handlers: Dict[str, logging.Handler] = {}

        # Library logger stays silent until configure() is called
        package_logger = logging.getLogger(ROOT_LOGGER_NAME)
        if not package_logger.handlers:
            package_logger.addHandler(logging.NullHandler())
        self._initialized = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Class method to get logger instance.

        Args:
            name: Logger name (typically __name__ of the module)

        Returns:
            Logger registered with the manager
        """
        manager = cls()
        return manager._get_logger_instance(name)

    def _get_logger_instance(self, name: str) -> logging.Logger:
        """Internal method to get logger instance."""
        if name in self.loggers:
            return self.loggers[name]

        logger = logging.getLogger(name)
        self.loggers[name] = logger
        return logger

    def configure(self, config: 'LoggingConfig'):
        """Install handlers on the package logger from a logging configuration.

        Calling this again replaces the handlers installed by a previous call.

        Args:
            config: Validated logging section of the engine configuration
        """
        package_logger = logging.getLogger(ROOT_LOGGER_NAME)
        package_logger.setLevel(logging.DEBUG)

        for handler in self.handlers.values():
            package_logger.removeHandler(handler)
            handler.close()
        self.handlers.clear()

        if config.log_to_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(self._numeric_level(config.level))
            console_handler.setFormatter(ColoredFormatter(
                '%(asctime)s | %(name)s | %(levelname)s | %(message)s',
                datefmt='%H:%M:%S'
            ))
            package_logger.addHandler(console_handler)
            self.handlers['console'] = console_handler

        if config.file_path:
            log_file = Path(config.file_path)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=config.max_file_size_mb * 1024 * 1024,
                backupCount=config.backup_count
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            package_logger.addHandler(file_handler)
            self.handlers['file'] = file_handler

    def set_log_level(self, level: str):
        """Set the logging level for the console handler.

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        """
        numeric_level = self._numeric_level(level)
        console_handler = self.handlers.get('console')
        if console_handler is not None:
            console_handler.setLevel(numeric_level)

    @staticmethod
    def _numeric_level(level: str) -> int:
        numeric_level = getattr(logging, level.upper(), None)
        if not isinstance(numeric_level, int):
            raise ValueError(f'Invalid log level: {level}')
        return numeric_level
