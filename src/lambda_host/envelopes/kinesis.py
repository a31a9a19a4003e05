# =============================================================================
# Kinesis Data Streams Envelope
# =============================================================================
# Record data arrives base64 encoded; `content` holds the decoded JSON value.
# =============================================================================

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from lambda_host.envelopes.base import (
    RecordBatch,
    T,
    decode_base64,
    encode_base64,
    for_each_record,
    serializer_for,
)
from lambda_host.runtime.errors import PayloadDeserializationError, PayloadSerializationError
from lambda_host.runtime.serialization import SerializerOptions


@dataclass
class KinesisRecord:
    raw: Dict[str, Any]
    content: Any = None

    @property
    def kinesis(self) -> Dict[str, Any]:
        return self.raw.setdefault("kinesis", {})

    @property
    def record_id(self) -> str:
        return self.sequence_number

    @property
    def sequence_number(self) -> str:
        return self.kinesis.get("sequenceNumber", "")

    @property
    def partition_key(self) -> str:
        return self.kinesis.get("partitionKey", "")

    @property
    def data(self) -> Optional[str]:
        return self.kinesis.get("data")

    @property
    def event_id(self) -> str:
        return self.raw.get("eventID", "")


@dataclass
class KinesisEnvelope(RecordBatch[T]):
    """Kinesis stream batch whose record data are JSON documents of type T."""
    records: List[KinesisRecord] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)
    payload_type: Any = field(default=Any, repr=False)

    @classmethod
    def from_event(cls, event: Dict[str, Any], payload_type: Any = Any) -> "KinesisEnvelope":
        event = dict(event or {})
        records = []
        for record in event.pop("Records", None) or []:
            record = dict(record)
            record["kinesis"] = dict(record.get("kinesis") or {})
            records.append(KinesisRecord(record))
        return cls(records=records, extra=event, payload_type=payload_type)

    def extract_payload(self, options: SerializerOptions) -> None:
        serializer = serializer_for(options)

        def extract(record: KinesisRecord) -> None:
            record.content = serializer.loads(decode_base64(record.data), self.payload_type)

        for_each_record(self.records, extract, PayloadDeserializationError, "extract")

    def pack_payload(self, options: SerializerOptions) -> None:
        serializer = serializer_for(options)
        if self.records:
            self._remember_type(self.records[0].content)

        def pack(record: KinesisRecord) -> None:
            record.kinesis["data"] = encode_base64(serializer.dumps(record.content))

        for_each_record(self.records, pack, PayloadSerializationError, "pack")

    def to_event(self) -> Dict[str, Any]:
        return {**self.extra, "Records": [record.raw for record in self.records]}
