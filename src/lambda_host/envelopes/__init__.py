# =============================================================================
# Envelopes
# =============================================================================
# Typed adapters for the native event shapes of Lambda triggers.
# Core code depends only on Envelope; the variants below implement it.
# =============================================================================

from lambda_host.envelopes.base import Envelope, RecordBatch
from lambda_host.envelopes.api_gateway import (
    ApiGatewayRequestEnvelope,
    ApiGatewayResponseEnvelope,
    ApiGatewayV2RequestEnvelope,
    ApiGatewayV2ResponseEnvelope,
)
from lambda_host.envelopes.cloudwatch_logs import CloudWatchLogsData, CloudWatchLogsEnvelope, LogEvent
from lambda_host.envelopes.detect import EventSource, detect_event_source
from lambda_host.envelopes.firehose import (
    FirehoseEventEnvelope,
    FirehoseResponseEnvelope,
    FirehoseResult,
)
from lambda_host.envelopes.kinesis import KinesisEnvelope
from lambda_host.envelopes.sns import SnsEnvelope
from lambda_host.envelopes.sqs import SqsEnvelope

__all__ = [
    "Envelope",
    "RecordBatch",
    "ApiGatewayRequestEnvelope",
    "ApiGatewayV2RequestEnvelope",
    "ApiGatewayResponseEnvelope",
    "ApiGatewayV2ResponseEnvelope",
    "SqsEnvelope",
    "SnsEnvelope",
    "KinesisEnvelope",
    "FirehoseEventEnvelope",
    "FirehoseResponseEnvelope",
    "FirehoseResult",
    "CloudWatchLogsEnvelope",
    "CloudWatchLogsData",
    "LogEvent",
    "EventSource",
    "detect_event_source",
]
