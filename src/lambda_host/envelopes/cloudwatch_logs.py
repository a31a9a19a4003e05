# =============================================================================
# CloudWatch Logs Envelope
# =============================================================================
# Subscription filter deliveries: `awslogs.data` is gzip-compressed, base64
# encoded JSON. CloudWatchLogsData describes the decoded document.
# =============================================================================

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from lambda_host.envelopes.base import (
    Envelope,
    T,
    decode_gzip_base64,
    encode_gzip_base64,
    serializer_for,
)
from lambda_host.runtime.serialization import SerializerOptions


@dataclass
class LogEvent:
    id: str
    timestamp: int
    message: str


@dataclass
class CloudWatchLogsData:
    message_type: str
    owner: str
    log_group: str
    log_stream: str
    subscription_filters: List[str] = field(default_factory=list)
    log_events: List[LogEvent] = field(default_factory=list)


@dataclass
class CloudWatchLogsEnvelope(Envelope[T]):
    """
    CloudWatch Logs subscription event.

    Usage:
        def handler(logs: CloudWatchLogsEnvelope[CloudWatchLogsData]):
            for log_event in logs.content.log_events:
                ...
    """
    data: Optional[str] = None
    content: Optional[T] = None
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)
    payload_type: Any = field(default=Any, repr=False)

    @classmethod
    def from_event(cls, event: Dict[str, Any], payload_type: Any = Any) -> "CloudWatchLogsEnvelope":
        event = dict(event or {})
        awslogs = dict(event.pop("awslogs", None) or {})
        return cls(data=awslogs.get("data"), extra=event, payload_type=payload_type)

    def extract_payload(self, options: SerializerOptions) -> None:
        self.content = serializer_for(options).loads(decode_gzip_base64(self.data), self.payload_type)

    def pack_payload(self, options: SerializerOptions) -> None:
        self._remember_type(self.content)
        self.data = encode_gzip_base64(serializer_for(options).dumps(self.content))

    def to_event(self) -> Dict[str, Any]:
        return {**self.extra, "awslogs": {"data": self.data}}
