# =============================================================================
# Event Source Detection
# =============================================================================
# Labels a raw Lambda event with the trigger that produced it. Used for
# logging and exposed to middleware through EventSourceFeature.
# =============================================================================

from typing import Any


class EventSource:
    """Event source identifiers."""
    API_GATEWAY = "api_gateway"
    API_GATEWAY_V2 = "api_gateway_v2"
    SQS = "sqs"
    SNS = "sns"
    KINESIS = "kinesis"
    DYNAMODB = "dynamodb"
    FIREHOSE = "firehose"
    CLOUDWATCH_LOGS = "cloudwatch_logs"
    EVENTBRIDGE = "eventbridge"
    S3 = "s3"
    DIRECT = "direct"
    UNKNOWN = "unknown"


_RECORD_SOURCES = {
    "aws:sqs": EventSource.SQS,
    "aws:sns": EventSource.SNS,
    "aws:kinesis": EventSource.KINESIS,
    "aws:dynamodb": EventSource.DYNAMODB,
    "aws:s3": EventSource.S3,
}


def detect_event_source(event: Any) -> str:
    """
    Detect the source of a Lambda event.

    Returns one of the EventSource values; anything that is not a dict, or a
    dict that matches no known shape, is treated as a direct invoke.
    """
    if not isinstance(event, dict):
        return EventSource.DIRECT if event is not None else EventSource.UNKNOWN
    if not event:
        return EventSource.DIRECT

    # API Gateway HTTP API (v2) or REST API (v1)
    request_context = event.get("requestContext")
    if isinstance(request_context, dict):
        if "http" in request_context or event.get("version") == "2.0":
            return EventSource.API_GATEWAY_V2
        if "httpMethod" in request_context or "httpMethod" in event:
            return EventSource.API_GATEWAY

    records = event.get("Records")
    if isinstance(records, list) and records and isinstance(records[0], dict):
        first = records[0]
        source = first.get("eventSource") or first.get("EventSource") or ""
        if source in _RECORD_SOURCES:
            return _RECORD_SOURCES[source]
        if "Sns" in first:
            return EventSource.SNS
        if "kinesis" in first:
            return EventSource.KINESIS

    if "deliveryStreamArn" in event and "records" in event:
        return EventSource.FIREHOSE

    if isinstance(event.get("awslogs"), dict):
        return EventSource.CLOUDWATCH_LOGS

    if "detail-type" in event and "source" in event:
        return EventSource.EVENTBRIDGE

    return EventSource.DIRECT
