#!/usr/bin/env python3
"""
Tests for DeadlineToken and DeadlineProvider.

Run with: pytest tests/test_deadline.py -v
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest


FIXED_NOW = 1_700_000_000.0


def fixed_clock():
    return FIXED_NOW


# =============================================================================
# TEST: DeadlineProvider
# =============================================================================

class TestDeadlineProvider:
    """Tests for deadline arithmetic."""

    def test_fires_buffer_before_deadline(self):
        """Deadline now+10s with a 3s buffer fires about 7s from now."""
        from lambda_host.runtime.deadline import DeadlineProvider

        provider = DeadlineProvider(timedelta(seconds=3), clock=fixed_clock)
        deadline = datetime.fromtimestamp(FIXED_NOW, tz=timezone.utc) + timedelta(seconds=10)

        with provider.create(deadline) as token:
            remaining = token.remaining().total_seconds()
            assert 6.5 < remaining <= 7.0
            assert not token.is_cancelled
            assert token.has_timer
            assert token.deadline == deadline
        print("✓ Token fires buffer before the platform deadline")

    def test_past_deadline_cancels_immediately(self):
        """A deadline closer than the buffer yields an already-cancelled token."""
        from lambda_host.runtime.deadline import DeadlineProvider

        provider = DeadlineProvider(timedelta(seconds=3), clock=fixed_clock)
        deadline = datetime.fromtimestamp(FIXED_NOW, tz=timezone.utc) + timedelta(seconds=2)

        token = provider.create(deadline)
        assert token.is_cancelled
        assert token.deadline_exceeded
        assert not token.has_timer
        token.close()
        assert token.deadline_exceeded
        print("✓ Past deadlines cancel immediately")

    def test_from_deadline_ms(self):
        """Epoch-millisecond deadlines are supported."""
        from lambda_host.runtime.deadline import DeadlineProvider

        provider = DeadlineProvider(timedelta(seconds=1), clock=fixed_clock)
        with provider.from_deadline_ms(int((FIXED_NOW + 5) * 1000)) as token:
            assert 3.5 < token.remaining().total_seconds() <= 4.0

    def test_from_lambda_context(self, lambda_context):
        """The remaining execution time of the Lambda context sets the deadline."""
        from lambda_host.runtime.deadline import DeadlineProvider

        lambda_context.timeout_ms = 10_000
        provider = DeadlineProvider(timedelta(seconds=3))
        with provider.from_lambda_context(lambda_context) as token:
            assert 6.0 < token.remaining().total_seconds() <= 7.0

    def test_no_lambda_context_never_fires(self):
        """Local invokes without a context get a token without a deadline."""
        from lambda_host.runtime.deadline import DeadlineProvider

        token = DeadlineProvider().from_lambda_context(None)
        assert token.remaining() is None
        assert not token.is_cancelled
        assert not token.has_timer
        token.close()
        assert token.is_cancelled

    def test_negative_buffer_rejected(self):
        """The buffer must not be negative."""
        from lambda_host.runtime.deadline import DeadlineProvider

        with pytest.raises(ValueError):
            DeadlineProvider(timedelta(seconds=-1))


# =============================================================================
# TEST: DeadlineToken
# =============================================================================

class TestDeadlineToken:
    """Tests for the cancellation token."""

    def test_timer_fires(self):
        """The backing timer cancels the token with reason=deadline."""
        from lambda_host.runtime.deadline import CancellationReason, DeadlineToken

        token = DeadlineToken(0.05)
        assert token.wait(timeout=2.0)
        assert token.reason == CancellationReason.DEADLINE
        token.close()
        print("✓ Timer fires the token")

    def test_close_releases_timer(self):
        """close() cancels the pending timer and marks the token completed."""
        from lambda_host.runtime.deadline import CancellationReason, DeadlineToken

        token = DeadlineToken(60)
        assert token.has_timer
        token.close()
        assert not token.has_timer
        assert token.closed
        assert token.reason == CancellationReason.COMPLETED
        assert not token.deadline_exceeded
        token.close()
        print("✓ close() releases the timer")

    def test_context_manager_closes(self):
        """Leaving the with-block closes the token, also on error."""
        from lambda_host.runtime.deadline import DeadlineToken

        with pytest.raises(RuntimeError):
            with DeadlineToken(60) as token:
                raise RuntimeError("boom")
        assert token.closed
        assert not token.has_timer

    def test_raise_if_cancelled(self):
        """raise_if_cancelled raises InvocationCancelledError once cancelled."""
        from lambda_host.runtime.deadline import DeadlineToken
        from lambda_host.runtime.errors import InvocationCancelledError

        token = DeadlineToken(60)
        token.raise_if_cancelled()
        token.cancel()
        with pytest.raises(InvocationCancelledError):
            token.raise_if_cancelled()
        token.close()

    def test_callbacks_run_once(self):
        """Registered callbacks run once on cancellation; unregistered ones do not."""
        from lambda_host.runtime.deadline import DeadlineToken

        calls = []
        token = DeadlineToken(60)
        token.register(lambda: calls.append("a"))
        unregister = token.register(lambda: calls.append("b"))
        unregister()

        token.cancel()
        token.cancel()
        assert calls == ["a"]

        token.register(lambda: calls.append("late"))
        assert calls == ["a", "late"]
        token.close()

    def test_failing_callback_does_not_stop_others(self):
        """A callback raising is logged and the remaining callbacks still run."""
        from lambda_host.runtime.deadline import DeadlineToken

        calls = []

        def broken():
            raise ValueError("callback failed")

        token = DeadlineToken(60)
        token.register(broken)
        token.register(lambda: calls.append("after"))
        token.close()
        assert calls == ["after"]

    def test_wait_async(self):
        """wait_async resumes when the timer thread fires the token."""
        from lambda_host.runtime.deadline import DeadlineToken

        token = DeadlineToken(0.05)

        async def waiter():
            await asyncio.wait_for(token.wait_async(), timeout=2.0)
            return token.deadline_exceeded

        assert asyncio.run(waiter()) is True
        token.close()
        print("✓ wait_async() resumes on cancellation")
