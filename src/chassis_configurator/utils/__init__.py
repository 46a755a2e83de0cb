"""
Utils Package

Contains utility modules for the chassis configurator.
"""

from .error_handler import (
    ErrorHandler,
    ErrorInfo,
    ErrorSeverity,
    ErrorCategory,
    get_error_handler,
    set_error_handler,
    reset_error_handler,
)
from .decorators import (
    safe_call,
    safe_async_call,
    retry_async,
    require_session,
)
from .settings import ConfiguratorSettings, load_settings, save_settings
from .logger import setup_logger

__all__ = [
    'ErrorHandler',
    'ErrorInfo',
    'ErrorSeverity',
    'ErrorCategory',
    'get_error_handler',
    'set_error_handler',
    'reset_error_handler',
    'safe_call',
    'safe_async_call',
    'retry_async',
    'require_session',
    'ConfiguratorSettings',
    'load_settings',
    'save_settings',
    'setup_logger',
]
