# =============================================================================
# Runtime Package - Invocation Lifecycle Core
# =============================================================================
# Provides the pieces the application host is assembled from:
# - FeatureSet (type-keyed per-invocation values)
# - DeadlineToken / DeadlineProvider (cancellation before the platform deadline)
# - PipelineBuilder (middleware around one handler)
# - LifecycleController (init -> invocations -> shutdown)
# =============================================================================

from lambda_host.runtime.binding import (
    Binding,
    EventBinding,
    FromEvent,
    FromFeatures,
    FromServices,
    HookContext,
    bind_callable,
)
from lambda_host.runtime.context import InvocationContext, LambdaContext, current_context
from lambda_host.runtime.deadline import CancellationReason, DeadlineProvider, DeadlineToken
from lambda_host.runtime.deps import AwsClients, ServiceProvider, ServiceScope, create_services
from lambda_host.runtime.errors import (
    ConfigurationError,
    HandlerError,
    InitializationError,
    InitializationFailedError,
    InvocationCancelledError,
    LambdaHostError,
    PayloadDeserializationError,
    PayloadError,
    PayloadSerializationError,
    ShutdownError,
)
from lambda_host.runtime.features import (
    EventFeature,
    EventSourceFeature,
    FeatureSet,
    ResponseFeature,
    create_feature_set,
)
from lambda_host.runtime.lifecycle import LifecycleController, LifecycleState
from lambda_host.runtime.pipeline import Pipeline, PipelineBuilder
from lambda_host.runtime.serialization import JsonSerializer, SerializerOptions
from lambda_host.runtime.settings import HostSettings

__all__ = [
    "Binding",
    "EventBinding",
    "FromEvent",
    "FromFeatures",
    "FromServices",
    "HookContext",
    "bind_callable",
    "InvocationContext",
    "LambdaContext",
    "current_context",
    "CancellationReason",
    "DeadlineProvider",
    "DeadlineToken",
    "AwsClients",
    "ServiceProvider",
    "ServiceScope",
    "create_services",
    "ConfigurationError",
    "HandlerError",
    "InitializationError",
    "InitializationFailedError",
    "InvocationCancelledError",
    "LambdaHostError",
    "PayloadDeserializationError",
    "PayloadError",
    "PayloadSerializationError",
    "ShutdownError",
    "EventFeature",
    "EventSourceFeature",
    "FeatureSet",
    "ResponseFeature",
    "create_feature_set",
    "LifecycleController",
    "LifecycleState",
    "Pipeline",
    "PipelineBuilder",
    "JsonSerializer",
    "SerializerOptions",
    "HostSettings",
]
