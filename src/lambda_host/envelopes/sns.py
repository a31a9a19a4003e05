# =============================================================================
# SNS Envelope
# =============================================================================

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from lambda_host.envelopes.base import RecordBatch, T, for_each_record, serializer_for
from lambda_host.runtime.errors import PayloadDeserializationError, PayloadSerializationError
from lambda_host.runtime.serialization import SerializerOptions


@dataclass
class SnsRecord:
    """One SNS record; `content` is the typed `Sns.Message`."""
    raw: Dict[str, Any]
    content: Any = None

    @property
    def sns(self) -> Dict[str, Any]:
        return self.raw.setdefault("Sns", {})

    @property
    def record_id(self) -> str:
        return self.message_id

    @property
    def message_id(self) -> str:
        return self.sns.get("MessageId", "")

    @property
    def message(self) -> Optional[str]:
        return self.sns.get("Message")

    @property
    def subject(self) -> Optional[str]:
        return self.sns.get("Subject")

    @property
    def topic_arn(self) -> str:
        return self.sns.get("TopicArn", "")

    @property
    def message_attributes(self) -> Dict[str, Any]:
        return self.sns.get("MessageAttributes") or {}


@dataclass
class SnsEnvelope(RecordBatch[T]):
    """SNS notification batch whose messages are JSON documents of type T."""
    records: List[SnsRecord] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)
    payload_type: Any = field(default=Any, repr=False)

    @classmethod
    def from_event(cls, event: Dict[str, Any], payload_type: Any = Any) -> "SnsEnvelope":
        event = dict(event or {})
        records = []
        for record in event.pop("Records", None) or []:
            record = dict(record)
            record["Sns"] = dict(record.get("Sns") or {})
            records.append(SnsRecord(record))
        return cls(records=records, extra=event, payload_type=payload_type)

    def extract_payload(self, options: SerializerOptions) -> None:
        serializer = serializer_for(options)

        def extract(record: SnsRecord) -> None:
            record.content = serializer.loads(record.message, self.payload_type)

        for_each_record(self.records, extract, PayloadDeserializationError, "extract")

    def pack_payload(self, options: SerializerOptions) -> None:
        serializer = serializer_for(options)
        if self.records:
            self._remember_type(self.records[0].content)

        def pack(record: SnsRecord) -> None:
            record.sns["Message"] = serializer.dumps(record.content)

        for_each_record(self.records, pack, PayloadSerializationError, "pack")

    def to_event(self) -> Dict[str, Any]:
        return {**self.extra, "Records": [record.raw for record in self.records]}
