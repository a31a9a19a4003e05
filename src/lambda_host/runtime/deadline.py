# =============================================================================
# Deadline Tokens
# =============================================================================
# Cooperative cancellation derived from the platform's remaining execution
# time. A token fires `buffer` before the platform's hard deadline so user
# code gets a chance to wrap up. Tokens never interrupt code; handlers poll
# them or pass them down to I/O.
# =============================================================================

import asyncio
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional

from lambda_host.runtime.errors import InvocationCancelledError

logger = logging.getLogger(__name__)


class CancellationReason:
    """Why a token was cancelled."""
    DEADLINE = "deadline"
    COMPLETED = "completed"
    MANUAL = "manual"


class DeadlineToken:
    """
    One-shot cancellation signal with a known firing instant.

    The token is cancelled when its timer fires, when cancel() is called, or
    when the owner closes it at the end of the invocation. Closing always
    releases the backing timer.

    Usage:
        def handler(order: Order, token: DeadlineToken):
            for item in order.items:
                token.raise_if_cancelled()
                process(item)
    """

    def __init__(self, delay: Optional[float], deadline: Optional[datetime] = None):
        self.deadline = deadline
        self.reason: Optional[str] = None
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], Any]] = []
        self._timer: Optional[threading.Timer] = None
        self._closed = False

        if delay is None:
            self._fires_at_monotonic = None
            self.fires_at = None
            return

        self._fires_at_monotonic = time.monotonic() + max(delay, 0.0)
        self.fires_at = datetime.now(timezone.utc) + timedelta(seconds=max(delay, 0.0))
        if delay <= 0:
            self.cancel(CancellationReason.DEADLINE)
        else:
            self._timer = threading.Timer(delay, self.cancel, args=(CancellationReason.DEADLINE,))
            self._timer.daemon = True
            self._timer.start()

    @classmethod
    def never(cls) -> "DeadlineToken":
        """A token without a deadline; it is only cancelled explicitly or on close."""
        return cls(None)

    # ==========================================================================
    # State
    # ==========================================================================

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def deadline_exceeded(self) -> bool:
        return self.reason == CancellationReason.DEADLINE

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_timer(self) -> bool:
        """True while a background timer is still pending."""
        return self._timer is not None and self._timer.is_alive()

    def remaining(self) -> Optional[timedelta]:
        """Time left before the token fires, or None for tokens without a deadline."""
        if self._fires_at_monotonic is None:
            return None
        return timedelta(seconds=max(self._fires_at_monotonic - time.monotonic(), 0.0))

    # ==========================================================================
    # Cancellation
    # ==========================================================================

    def cancel(self, reason: str = CancellationReason.MANUAL) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        if reason == CancellationReason.DEADLINE:
            logger.warning(f"Deadline token fired (deadline={self.deadline})")

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception(f"Cancellation callback {callback!r} failed")

    def register(self, callback: Callable[[], Any]) -> Callable[[], None]:
        """
        Run ``callback`` once the token is cancelled.

        Runs immediately when the token is already cancelled.
        Returns a function that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def unregister():
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return unregister
        callback()
        return lambda: None

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled:
            raise InvocationCancelledError(f"Invocation cancelled ({self.reason})")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` seconds pass. Returns is_cancelled."""
        return self._event.wait(timeout)

    async def wait_async(self) -> None:
        """Suspend until the token is cancelled."""
        if self.is_cancelled:
            return
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def _resolve():
            if not future.done():
                future.set_result(None)

        def _on_cancel():
            if not loop.is_closed():
                loop.call_soon_threadsafe(_resolve)

        unregister = self.register(_on_cancel)
        try:
            await future
        finally:
            unregister()

    # ==========================================================================
    # Disposal
    # ==========================================================================

    def close(self) -> None:
        """Release the timer and cancel the token as completed. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.cancel(CancellationReason.COMPLETED)

    def __enter__(self) -> "DeadlineToken":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = f"cancelled:{self.reason}" if self.is_cancelled else "active"
        return f"DeadlineToken({state}, fires_at={self.fires_at})"


class DeadlineProvider:
    """
    Creates DeadlineTokens that fire ``buffer`` before the invocation deadline.

    Args:
        buffer: safety margin subtracted from the platform deadline
        clock: wall clock returning epoch seconds (overridable in tests)
    """

    def __init__(self, buffer: timedelta = timedelta(seconds=3), clock: Callable[[], float] = time.time):
        if buffer < timedelta(0):
            raise ValueError("buffer must not be negative")
        self.buffer = buffer
        self._clock = clock

    def create(self, deadline: datetime) -> DeadlineToken:
        """Token for an absolute platform deadline."""
        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        if deadline.tzinfo is None:
            deadline = deadline.replace(tzinfo=timezone.utc)
        delay = (deadline - self.buffer - now).total_seconds()
        return DeadlineToken(delay, deadline=deadline)

    def from_deadline_ms(self, deadline_ms: int) -> DeadlineToken:
        """Token for a deadline given as epoch milliseconds (Lambda-Runtime-Deadline-Ms)."""
        return self.create(datetime.fromtimestamp(deadline_ms / 1000.0, tz=timezone.utc))

    def from_lambda_context(self, lambda_context: Any) -> DeadlineToken:
        """
        Token for the invocation described by a Lambda context object.

        Contexts without get_remaining_time_in_millis() (local invokes) get a
        token that never fires on its own.
        """
        get_remaining = getattr(lambda_context, "get_remaining_time_in_millis", None)
        if get_remaining is None:
            return DeadlineToken.never()
        remaining_ms = get_remaining()
        deadline = datetime.fromtimestamp(self._clock(), tz=timezone.utc) + timedelta(milliseconds=remaining_ms)
        return self.create(deadline)

    def after(self, duration: timedelta) -> DeadlineToken:
        """Token firing ``duration`` minus the buffer from now."""
        deadline = datetime.fromtimestamp(self._clock(), tz=timezone.utc) + duration
        return self.create(deadline)
