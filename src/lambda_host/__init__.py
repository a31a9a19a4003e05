# =============================================================================
# lambda_host
# =============================================================================
# Function-invocation runtime for AWS Lambda: cold-start init hooks, a
# middleware pipeline around one typed handler, envelope-based payload
# binding, deadline-derived cancellation, and shutdown hooks.
# =============================================================================

# runtime must be imported before envelopes: the binder depends on the
# Envelope contract, and envelopes depend on runtime.serialization.
from lambda_host.runtime import (
    AwsClients,
    ConfigurationError,
    DeadlineProvider,
    DeadlineToken,
    FeatureSet,
    FromEvent,
    FromFeatures,
    FromServices,
    HostSettings,
    InitializationError,
    InitializationFailedError,
    InvocationCancelledError,
    InvocationContext,
    LambdaHostError,
    LifecycleController,
    LifecycleState,
    PayloadDeserializationError,
    PayloadSerializationError,
    SerializerOptions,
    ServiceProvider,
    ServiceScope,
    ShutdownError,
    current_context,
)
from lambda_host.envelopes import (
    ApiGatewayRequestEnvelope,
    ApiGatewayResponseEnvelope,
    ApiGatewayV2RequestEnvelope,
    ApiGatewayV2ResponseEnvelope,
    CloudWatchLogsEnvelope,
    Envelope,
    FirehoseEventEnvelope,
    FirehoseResponseEnvelope,
    KinesisEnvelope,
    SnsEnvelope,
    SqsEnvelope,
)
from lambda_host.app import LambdaApplication, http_error_responses, request_logging

__version__ = "0.1.0"

__all__ = [
    "LambdaApplication",
    "http_error_responses",
    "request_logging",
    "AwsClients",
    "ConfigurationError",
    "DeadlineProvider",
    "DeadlineToken",
    "FeatureSet",
    "FromEvent",
    "FromFeatures",
    "FromServices",
    "HostSettings",
    "InitializationError",
    "InitializationFailedError",
    "InvocationCancelledError",
    "InvocationContext",
    "LambdaHostError",
    "LifecycleController",
    "LifecycleState",
    "PayloadDeserializationError",
    "PayloadSerializationError",
    "SerializerOptions",
    "ServiceProvider",
    "ServiceScope",
    "ShutdownError",
    "current_context",
    "Envelope",
    "ApiGatewayRequestEnvelope",
    "ApiGatewayResponseEnvelope",
    "ApiGatewayV2RequestEnvelope",
    "ApiGatewayV2ResponseEnvelope",
    "CloudWatchLogsEnvelope",
    "FirehoseEventEnvelope",
    "FirehoseResponseEnvelope",
    "KinesisEnvelope",
    "SnsEnvelope",
    "SqsEnvelope",
]
