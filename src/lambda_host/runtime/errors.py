# =============================================================================
# Runtime Errors
# =============================================================================
# Every error raised by the host derives from LambdaHostError.
# User exceptions raised inside handlers and middleware are never wrapped;
# they propagate to the Lambda runtime unmodified.
# =============================================================================

from typing import Any, List, Optional, Tuple


class LambdaHostError(Exception):
    """Base class for all host errors."""


class ConfigurationError(LambdaHostError):
    """Structural misuse of the host, detected before any invocation runs."""


class InitializationError(LambdaHostError):
    """An init hook failed during cold start."""

    def __init__(self, message: str, hook_name: str = ""):
        super().__init__(message)
        self.hook_name = hook_name


class InitializationFailedError(LambdaHostError):
    """
    Raised for every invocation after a failed cold start.

    The original init failure is available as ``__cause__``.
    """


class HandlerError(LambdaHostError):
    """
    Optional base class for errors raised by user handlers.

    The host does not raise or wrap with it; it exists so applications can
    tell their own failures apart from host failures in middleware.
    """


class InvocationCancelledError(LambdaHostError):
    """Raised by DeadlineToken.raise_if_cancelled() once the deadline passed."""


class PayloadError(LambdaHostError):
    """
    Base class for envelope (de)serialization failures.

    Attributes:
        failures: (record index, record id, exception) for batch envelopes
    """

    def __init__(self, message: str, failures: Optional[List[Tuple[int, str, Exception]]] = None):
        super().__init__(message)
        self.failures = failures or []


class PayloadDeserializationError(PayloadError):
    """Malformed input at the envelope boundary."""


class PayloadSerializationError(PayloadError):
    """Unserializable output at the envelope boundary."""


class ShutdownError(LambdaHostError):
    """Aggregates failures collected while running shutdown hooks."""

    def __init__(self, errors: List[Exception]):
        super().__init__(f"{len(errors)} shutdown hook(s) failed")
        self.errors = errors


def describe(obj: Any) -> str:
    """Readable name for a hook, handler or middleware in error messages."""
    name = getattr(obj, "__qualname__", None) or getattr(obj, "__name__", None)
    if name:
        return name
    return type(obj).__name__
