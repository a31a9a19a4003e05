# =============================================================================
# SQS Envelope
# =============================================================================

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from lambda_host.envelopes.base import RecordBatch, T, for_each_record, serializer_for
from lambda_host.runtime.errors import PayloadDeserializationError, PayloadSerializationError
from lambda_host.runtime.serialization import SerializerOptions


@dataclass
class SqsMessage:
    """One SQS record; `content` is the typed message body."""
    raw: Dict[str, Any]
    content: Any = None

    @property
    def record_id(self) -> str:
        return self.message_id

    @property
    def message_id(self) -> str:
        return self.raw.get("messageId", "")

    @property
    def receipt_handle(self) -> str:
        return self.raw.get("receiptHandle", "")

    @property
    def body(self) -> Optional[str]:
        return self.raw.get("body")

    @property
    def attributes(self) -> Dict[str, Any]:
        return self.raw.get("attributes") or {}

    @property
    def message_attributes(self) -> Dict[str, Any]:
        return self.raw.get("messageAttributes") or {}

    @property
    def event_source_arn(self) -> str:
        return self.raw.get("eventSourceARN", "")


@dataclass
class SqsEnvelope(RecordBatch[T]):
    """
    SQS batch whose message bodies are JSON documents of type T.

    Usage:
        def handler(batch: SqsEnvelope[OrderPlaced]):
            for order in batch.payloads():
                ...
    """
    records: List[SqsMessage] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)
    payload_type: Any = field(default=Any, repr=False)

    @classmethod
    def from_event(cls, event: Dict[str, Any], payload_type: Any = Any) -> "SqsEnvelope":
        event = dict(event or {})
        records = [SqsMessage(dict(record)) for record in event.pop("Records", None) or []]
        return cls(records=records, extra=event, payload_type=payload_type)

    def extract_payload(self, options: SerializerOptions) -> None:
        serializer = serializer_for(options)

        def extract(record: SqsMessage) -> None:
            record.content = serializer.loads(record.body, self.payload_type)

        for_each_record(self.records, extract, PayloadDeserializationError, "extract")

    def pack_payload(self, options: SerializerOptions) -> None:
        serializer = serializer_for(options)
        if self.records:
            self._remember_type(self.records[0].content)

        def pack(record: SqsMessage) -> None:
            record.raw["body"] = serializer.dumps(record.content)

        for_each_record(self.records, pack, PayloadSerializationError, "pack")

    def to_event(self) -> Dict[str, Any]:
        return {**self.extra, "Records": [record.raw for record in self.records]}

    @staticmethod
    def batch_item_failures(message_ids: Iterable[str]) -> Dict[str, Any]:
        """
        Partial batch response for an event source mapping with
        ReportBatchItemFailures enabled; only the listed messages are retried.

        Usage:
            except PayloadDeserializationError as e:
                return SqsEnvelope.batch_item_failures(rid for _, rid, _ in e.failures)
        """
        return {"batchItemFailures": [{"itemIdentifier": message_id} for message_id in message_ids]}
