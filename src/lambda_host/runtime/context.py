# =============================================================================
# Invocation Context
# =============================================================================
# Per-invocation aggregate handed to every middleware and to the handler.
# One context is created per invocation and closed when it ends; it is never
# shared between invocations.
# =============================================================================

from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from lambda_host.runtime.deadline import DeadlineToken
from lambda_host.runtime.deps import ServiceScope
from lambda_host.runtime.features import FeatureSet


@runtime_checkable
class LambdaContext(Protocol):
    """AWS Lambda context object interface."""

    function_name: str
    function_version: str
    invoked_function_arn: str
    memory_limit_in_mb: int
    aws_request_id: str
    log_group_name: str
    log_stream_name: str

    def get_remaining_time_in_millis(self) -> int:
        """Return remaining execution time in milliseconds."""
        ...


@dataclass
class InvocationContext:
    """
    Everything known about the invocation in flight.

    Attributes:
        raw_event: event exactly as the platform delivered it
        lambda_context: platform context object (None for local invokes)
        cancellation: token firing shortly before the platform deadline
        features: type-keyed per-invocation values
        services: invocation-scoped service resolver
        event: the bound event (typed value or envelope), set before the pipeline runs
        response: the handler result, set by the handler or a short-circuiting middleware
        raw_response: the packed response returned to the platform
        items: free-form per-invocation storage for middleware
    """
    raw_event: Any
    lambda_context: Optional[Any]
    cancellation: DeadlineToken
    features: FeatureSet
    services: ServiceScope
    event: Any = None
    response: Any = None
    raw_response: Any = None
    items: Dict[str, Any] = field(default_factory=dict)

    @property
    def request_id(self) -> str:
        return getattr(self.lambda_context, "aws_request_id", "") or ""

    @property
    def function_name(self) -> str:
        return getattr(self.lambda_context, "function_name", "") or ""

    @property
    def has_response(self) -> bool:
        return self.response is not None


_current: ContextVar[Optional[InvocationContext]] = ContextVar("lambda_host_invocation", default=None)


def current_context() -> Optional[InvocationContext]:
    """The InvocationContext of the invocation in flight, or None outside one."""
    return _current.get()


def _activate(context: InvocationContext):
    return _current.set(context)


def _deactivate(token) -> None:
    _current.reset(token)
