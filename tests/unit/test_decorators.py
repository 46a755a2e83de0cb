"""
Unit Tests: Decorators

Tests for utils/decorators.py.
"""

import asyncio

import pytest

from chassis_configurator.utils.decorators import (
    require_session,
    retry_async,
    safe_async_call,
    safe_call,
)
from chassis_configurator.utils.error_handler import ErrorCategory, ErrorHandler


class Holder:
    def __init__(self, session=None):
        self.session = session

    @require_session
    def describe(self):
        return f"session {self.session}"


class TestSafeCall:
    """Tests for safe_call and safe_async_call."""

    def test_returns_value(self, error_handler):
        @safe_call()
        def ok():
            return 5
        assert ok() == 5

    def test_exception_routed_to_handler(self, error_handler):
        @safe_call(category=ErrorCategory.PLACEMENT, default="fallback")
        def broken():
            raise KeyError("slot")

        assert broken() == "fallback"
        error = error_handler.get_history()[0]
        assert error.category == ErrorCategory.PLACEMENT
        assert "broken" in error.message

    async def test_async_exception_routed(self, error_handler):
        @safe_async_call(category=ErrorCategory.PERSISTENCE, message="save failed")
        async def broken():
            raise RuntimeError("x")

        assert await broken() is None
        assert error_handler.get_history()[0].message == "save failed: x"

    async def test_async_cancellation_propagates(self, error_handler):
        @safe_async_call()
        async def cancelled():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await cancelled()
        assert error_handler.get_history() == []

    async def test_owner_handler_preferred(self, error_handler):
        own = ErrorHandler()

        class Owner:
            error_handler = own

            @safe_async_call(category=ErrorCategory.CLEANUP, default=False)
            async def remove(self):
                raise ConnectionError("socket closed")

        assert await Owner().remove() is False
        assert own.get_history()[0].category == ErrorCategory.CLEANUP
        assert error_handler.get_history() == []


class TestRetryAsync:
    """Tests for retry_async."""

    async def test_retries_until_success(self):
        attempts = []

        @retry_async(attempts=3, initial_delay=0.001, retry_on=(ConnectionError,))
        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("down")
            return "up"

        assert await flaky() == "up"
        assert len(attempts) == 3

    async def test_reraises_after_last_attempt(self):
        @retry_async(attempts=2, initial_delay=0.001, retry_on=(ConnectionError,))
        async def down():
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            await down()

    async def test_unlisted_exception_not_retried(self):
        attempts = []

        @retry_async(attempts=3, initial_delay=0.001, retry_on=(ConnectionError,))
        async def wrong():
            attempts.append(1)
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await wrong()
        assert len(attempts) == 1

    async def test_result_predicate(self):
        results = iter([[], [], ["item"]])

        @retry_async(attempts=3, initial_delay=0.001, retry_if=lambda r: not r)
        async def lagging():
            return next(results)

        assert await lagging() == ["item"]

    async def test_predicate_exhausted_returns_last(self):
        @retry_async(attempts=2, initial_delay=0.001, retry_if=lambda r: not r)
        async def empty():
            return []

        assert await empty() == []


class TestRequireSession:
    """Tests for require_session."""

    def test_with_session(self, error_handler):
        assert Holder("ltx").describe() == "session ltx"

    def test_without_session_warns(self, error_handler):
        warnings = []
        error_handler.warning_occurred.connect(warnings.append)
        assert Holder().describe() is None
        assert warnings == ["Select a chassis first."]
