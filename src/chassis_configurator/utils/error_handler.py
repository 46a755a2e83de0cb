"""
Centralized Error Handler

Provides unified error logging and user notices for the configurator.
Placement rejections, derivation fallbacks, persistence and cleanup failures
are all routed through here and re-emitted as Qt signals for whatever front
end is attached.
"""

from typing import Optional, Callable, Dict, List
from PyQt6.QtCore import QObject, pyqtSignal
from enum import Enum, auto
from dataclasses import dataclass, field
from datetime import datetime
import traceback
import logging

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Error severity levels."""
    DEBUG = auto()      # Development info
    INFO = auto()       # User info
    WARNING = auto()    # Recoverable issue
    ERROR = auto()      # Operation failed
    CRITICAL = auto()   # Session may be unusable


class ErrorCategory(Enum):
    """Error categories for filtering and handling."""
    PLACEMENT = "placement"       # Slot rule violations
    DERIVATION = "derivation"     # Template / part number config problems
    PERSISTENCE = "persistence"   # Save / delete against the store
    CLEANUP = "cleanup"           # Placeholder / linked record removal
    CATALOG = "catalog"           # Catalog reads
    CONFIG = "config"             # Settings files
    VALIDATION = "validation"     # Input validation
    INTERNAL = "internal"         # Programming errors
    UNKNOWN = "unknown"


@dataclass
class ErrorInfo:
    """Container for error information."""
    message: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.UNKNOWN
    exception: Optional[Exception] = None
    details: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
    source: str = ""
    recoverable: bool = True
    user_action: str = ""  # Suggested action for user

    def __str__(self):
        return f"[{self.severity.name}] {self.category.value}: {self.message}"


class ErrorHandler(QObject):
    """
    Centralized error handler with notification and logging.

    Features:
    - Unified error logging
    - User notices via signals
    - Error history
    - Error filtering by category/severity
    """

    # Signals
    error_occurred = pyqtSignal(object)  # ErrorInfo
    warning_occurred = pyqtSignal(str)   # Simple warning message
    info_message = pyqtSignal(str)       # Info message

    def __init__(self, parent: QObject = None, max_history: int = 100):
        super().__init__(parent)
        self._max_history = max_history
        self._error_history: List[ErrorInfo] = []
        self._suppressed_categories: set = set()
        self._error_callbacks: Dict[ErrorCategory, List[Callable]] = {}

    def handle(self, error: ErrorInfo):
        """
        Handle an error.

        Args:
            error: Error information
        """
        self._add_to_history(error)
        self._log_error(error)

        if error.category in self._suppressed_categories:
            return

        self.error_occurred.emit(error)

        callbacks = self._error_callbacks.get(error.category, [])
        for callback in callbacks:
            try:
                callback(error)
            except Exception as e:
                logger.error(f"Error callback failed: {e}")

    def handle_exception(self, exception: Exception, message: str = "",
                         category: ErrorCategory = ErrorCategory.UNKNOWN,
                         severity: ErrorSeverity = ErrorSeverity.ERROR):
        """
        Handle an exception.

        Args:
            exception: The exception that occurred
            message: Custom message (uses exception message if not provided)
            category: Error category
            severity: Error severity
        """
        error = ErrorInfo(
            message=message or str(exception),
            severity=severity,
            category=category,
            exception=exception,
            details="".join(traceback.format_exception(type(exception), exception, exception.__traceback__)),
            source=exception.__class__.__name__
        )
        self.handle(error)

    def warning(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN):
        """Log and emit a warning."""
        error = ErrorInfo(
            message=message,
            severity=ErrorSeverity.WARNING,
            category=category
        )
        self._add_to_history(error)
        logger.warning(message)
        if category in self._suppressed_categories:
            return
        self.warning_occurred.emit(message)

    def info(self, message: str):
        """Emit an info message."""
        logger.info(message)
        self.info_message.emit(message)

    def register_callback(self, category: ErrorCategory,
                          callback: Callable[[ErrorInfo], None]):
        """Register a callback for a specific error category."""
        if category not in self._error_callbacks:
            self._error_callbacks[category] = []
        self._error_callbacks[category].append(callback)

    def suppress_category(self, category: ErrorCategory):
        """Suppress notices of a specific category."""
        self._suppressed_categories.add(category)

    def unsuppress_category(self, category: ErrorCategory):
        """Unsuppress notices of a specific category."""
        self._suppressed_categories.discard(category)

    def get_history(self, category: ErrorCategory = None,
                    severity: ErrorSeverity = None,
                    limit: int = None) -> List[ErrorInfo]:
        """
        Get error history with optional filtering.

        Args:
            category: Filter by category
            severity: Filter by minimum severity
            limit: Maximum number of errors to return
        """
        errors = self._error_history

        if category:
            errors = [e for e in errors if e.category == category]

        if severity:
            severity_order = list(ErrorSeverity)
            min_idx = severity_order.index(severity)
            errors = [e for e in errors if severity_order.index(e.severity) >= min_idx]

        if limit:
            errors = errors[-limit:]

        return errors

    def clear_history(self):
        """Clear error history."""
        self._error_history.clear()

    def _add_to_history(self, error: ErrorInfo):
        """Add error to history with size limit."""
        self._error_history.append(error)
        while len(self._error_history) > self._max_history:
            self._error_history.pop(0)

    def _log_error(self, error: ErrorInfo):
        """Log error to Python logger."""
        log_message = f"[{error.category.value}] {error.message}"
        if error.details:
            log_message += f"\nDetails: {error.details}"

        if error.severity == ErrorSeverity.DEBUG:
            logger.debug(log_message)
        elif error.severity == ErrorSeverity.INFO:
            logger.info(log_message)
        elif error.severity == ErrorSeverity.WARNING:
            logger.warning(log_message)
        elif error.severity == ErrorSeverity.ERROR:
            logger.error(log_message)
        elif error.severity == ErrorSeverity.CRITICAL:
            logger.critical(log_message)


# Singleton instance
_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance."""
    global _error_handler
    if _error_handler is None:
        _error_handler = ErrorHandler()
    return _error_handler


def set_error_handler(handler: ErrorHandler):
    """Set the global error handler instance."""
    global _error_handler
    _error_handler = handler


def reset_error_handler():
    """Reset the global error handler (for testing)."""
    global _error_handler
    _error_handler = None
