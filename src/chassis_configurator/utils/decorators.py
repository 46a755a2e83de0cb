"""
Decorators for common patterns in the configurator.
"""
import asyncio
import functools
import logging
from typing import Callable, Any, Tuple, Type

from .error_handler import (
    get_error_handler,
    ErrorCategory,
    ErrorHandler,
    ErrorSeverity,
)

logger = logging.getLogger(__name__)


def _handler_for(args) -> ErrorHandler:
    """Error handler of the bound object when it carries one, else the global one"""
    handler = getattr(args[0], "error_handler", None) if args else None
    return handler if isinstance(handler, ErrorHandler) else get_error_handler()


def safe_call(category: ErrorCategory = ErrorCategory.INTERNAL,
              message: str = "",
              severity: ErrorSeverity = ErrorSeverity.ERROR,
              default: Any = None):
    """
    Decorator that wraps a handler in error handling.

    Catches exceptions and routes them through the centralized ErrorHandler
    so a failing interaction never takes the session down.

    Usage:
        @safe_call(category=ErrorCategory.INTERNAL)
        def _on_quote_loaded(self, quote):
            ...

    Args:
        category: Error category for classification
        message: Message prefix (uses the function name if not provided)
        severity: Error severity level
        default: Value returned when the call fails
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                error_msg = f"{message}: {e}" if message else f"Error in {func.__name__}: {str(e)}"
                _handler_for(args).handle_exception(
                    exception=e,
                    message=error_msg,
                    category=category,
                    severity=severity
                )
                return default
        return wrapper
    return decorator


def safe_async_call(category: ErrorCategory = ErrorCategory.INTERNAL,
                    message: str = "",
                    severity: ErrorSeverity = ErrorSeverity.ERROR,
                    default: Any = None):
    """
    Decorator for coroutines with error handling.

    Cancellation is not an error and is re-raised untouched.

    Usage:
        @safe_async_call(category=ErrorCategory.CLEANUP, default=False)
        async def _delete_record(self, record_id):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            try:
                return await func(*args, **kwargs)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error_msg = f"{message}: {e}" if message else f"Error in {func.__name__}: {str(e)}"
                _handler_for(args).handle_exception(
                    exception=e,
                    message=error_msg,
                    category=category,
                    severity=severity
                )
                return default
        return wrapper
    return decorator


def retry_async(attempts: int = 3,
                initial_delay: float = 0.5,
                backoff_multiplier: float = 2.0,
                retry_on: Tuple[Type[BaseException], ...] = (Exception,),
                retry_if: Callable[[Any], bool] = None):
    """
    Retry a coroutine with exponential backoff.

    Args:
        attempts: Total number of attempts (including the first)
        initial_delay: Delay before the second attempt in seconds
        backoff_multiplier: Factor applied to the delay after each retry
        retry_on: Exception types that trigger a retry
        retry_if: Optional predicate on the result; a truthy return retries

    The last exception is re-raised once attempts are exhausted; when only the
    result predicate kept failing, the last result is returned.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            delay = initial_delay
            for attempt in range(1, attempts + 1):
                try:
                    result = await func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= attempts:
                        logger.error(f"{func.__name__} failed after {attempts} attempts: {e}")
                        raise
                    logger.warning(f"{func.__name__} attempt {attempt}/{attempts} failed: {e} (retry in {delay:.2f}s)")
                else:
                    if retry_if is None or not retry_if(result) or attempt >= attempts:
                        return result
                    logger.info(f"{func.__name__} attempt {attempt}/{attempts} returned no data (retry in {delay:.2f}s)")

                await asyncio.sleep(delay)
                delay *= backoff_multiplier
        return wrapper
    return decorator


def require_session(method: Callable) -> Callable:
    """
    Decorator that checks a chassis session is active before executing method.

    The decorated method's class must have a 'session' attribute. When it is
    None a warning notice is emitted and the call returns None.

    Usage:
        @require_session
        def place_card(self, slot, card_id):
            ...
    """
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs) -> Any:
        if getattr(self, 'session', None) is None:
            get_error_handler().warning(
                "Select a chassis first.",
                category=ErrorCategory.VALIDATION
            )
            return None
        return method(self, *args, **kwargs)
    return wrapper
