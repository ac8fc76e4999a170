"""Error Handling for CalCommand

Exception hierarchy, the resolution issue taxonomy and a severity-aware
error handler used at the edges of the engine.
"""

import logging
import sys
from enum import Enum
from typing import Callable, Dict, Optional, Type


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ResolutionIssue(Enum):
    """Problems the engine reports while resolving a command."""
    AMBIGUOUS_TIME = "ambiguous_time"
    UNKNOWN_TIMEZONE_ABBREVIATION = "unknown_timezone_abbreviation"
    INVALID_DATE = "invalid_date"
    INVALID_TIME = "invalid_time"
    RECURRENCE_CONFLICT = "recurrence_conflict"
    INVALID_RECURRENCE = "invalid_recurrence"
    END_BEFORE_START = "end_before_start"
    NO_TIME_FOUND = "no_time_found"
    INVALID_EMAIL = "invalid_email"
    MISSING_TITLE = "missing_title"
    DRAFT_OVERRIDDEN = "draft_overridden"


class CalCommandError(Exception):
    """Base exception class for CalCommand."""

    def __init__(self, message: str, severity: ErrorSeverity = ErrorSeverity.MEDIUM):
        self.message = message
        self.severity = severity
        super().__init__(self.message)


class ConfigurationError(CalCommandError):
    """Error raised when configuration is invalid."""

    def __init__(self, message: str):
        super().__init__(message, ErrorSeverity.HIGH)


class ResolutionError(CalCommandError):
    """Error raised when part of a command cannot be resolved."""

    issue: ResolutionIssue = ResolutionIssue.INVALID_DATE

    def __init__(self, message: str, field: Optional[str] = None,
                 severity: ErrorSeverity = ErrorSeverity.LOW):
        self.field = field
        super().__init__(message, severity)


class InvalidDateError(ResolutionError):
    """Raised for dates that do not exist on the calendar."""
    issue = ResolutionIssue.INVALID_DATE


class InvalidTimeError(ResolutionError):
    """Raised for clock times outside 00:00-23:59."""
    issue = ResolutionIssue.INVALID_TIME


class RecurrenceConflictError(ResolutionError):
    """Raised when a recurrence carries both an end date and a count."""
    issue = ResolutionIssue.RECURRENCE_CONFLICT


class InvalidRecurrenceError(ResolutionError):
    """Raised for recurrence values outside the accepted limits."""
    issue = ResolutionIssue.INVALID_RECURRENCE


class EndBeforeStartError(ResolutionError):
    """Raised when an explicit end does not come after the start."""
    issue = ResolutionIssue.END_BEFORE_START


class AmbiguousTimeError(ResolutionError):
    """Raised when an hour cannot be placed in the morning or evening."""
    issue = ResolutionIssue.AMBIGUOUS_TIME


class ErrorHandler:
    """Severity-aware error handler for callers embedding the engine."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """Initialize error handler.

        Args:
            logger: Logger to report through, defaults to this module's logger
        """
        self.logger = logger or logging.getLogger(__name__)
        self.error_callbacks: Dict[Type[Exception], Callable[[Exception], None]] = {}

    def register_error_callback(self, exception_type: Type[Exception],
                                callback: Callable[[Exception], None]):
        """Register a callback for specific exception types.

        Args:
            exception_type: The exception type to handle
            callback: Function to call when this exception occurs
        """
        self.error_callbacks[exception_type] = callback

    def handle_error(self, error: Exception, context: Optional[str] = None) -> bool:
        """Log an error at its severity and run any registered callback.

        Args:
            error: The exception that occurred
            context: Additional context about where the error occurred

        Returns:
            True if error was handled successfully, False otherwise
        """
        try:
            severity = self._get_error_severity(error)
            self._log_error(self._format_error_message(error, context), severity)

            for error_type in type(error).__mro__:
                if error_type in self.error_callbacks:
                    self.error_callbacks[error_type](error)
                    break

            return True

        except Exception as handler_error:
            print(f"Error handler failed: {handler_error}", file=sys.stderr)
            return False

    def _get_error_severity(self, error: Exception) -> ErrorSeverity:
        """Determine error severity based on exception type."""
        if isinstance(error, CalCommandError):
            return error.severity

        severity_map = {
            FileNotFoundError: ErrorSeverity.MEDIUM,
            PermissionError: ErrorSeverity.HIGH,
            ValueError: ErrorSeverity.MEDIUM,
            MemoryError: ErrorSeverity.CRITICAL,
        }

        return severity_map.get(type(error), ErrorSeverity.MEDIUM)

    def _format_error_message(self, error: Exception, context: Optional[str] = None) -> str:
        message = str(error)
        if isinstance(error, ResolutionError):
            message = f"[{error.issue.value}] {message}"
        if context:
            message = f"{context}: {message}"

        return message

    def _log_error(self, message: str, severity: ErrorSeverity):
        """Log error with appropriate level.

        Args:
            message: Formatted error message
            severity: Error severity
        """
        log_methods = {
            ErrorSeverity.LOW: self.logger.info,
            ErrorSeverity.MEDIUM: self.logger.warning,
            ErrorSeverity.HIGH: self.logger.error,
            ErrorSeverity.CRITICAL: self.logger.critical,
        }

        log_methods[severity](message, exc_info=severity is ErrorSeverity.CRITICAL)
