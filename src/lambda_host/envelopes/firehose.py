# =============================================================================
# Kinesis Firehose Envelopes
# =============================================================================
# Data transformation events and their responses. Record data is base64
# encoded JSON on both sides.
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


class FirehoseResult:
    """Transformation outcomes understood by Firehose."""
    OK = "Ok"
    DROPPED = "Dropped"
    PROCESSING_FAILED = "ProcessingFailed"


@dataclass
class FirehoseRecord:
    raw: Dict[str, Any]
    content: Any = None

    @property
    def record_id(self) -> str:
        return self.raw.get("recordId", "")

    @property
    def data(self) -> Optional[str]:
        return self.raw.get("data")

    @property
    def approximate_arrival_timestamp(self) -> Optional[int]:
        return self.raw.get("approximateArrivalTimestamp")


@dataclass
class FirehoseEventEnvelope(RecordBatch[T]):
    """Firehose transformation request; each record's data is a JSON document of type T."""
    records: List[FirehoseRecord] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)
    payload_type: Any = field(default=Any, repr=False)

    @property
    def invocation_id(self) -> str:
        return self.extra.get("invocationId", "")

    @property
    def delivery_stream_arn(self) -> str:
        return self.extra.get("deliveryStreamArn", "")

    @classmethod
    def from_event(cls, event: Dict[str, Any], payload_type: Any = Any) -> "FirehoseEventEnvelope":
        event = dict(event or {})
        records = [FirehoseRecord(dict(record)) for record in event.pop("records", None) or []]
        return cls(records=records, extra=event, payload_type=payload_type)

    def extract_payload(self, options: SerializerOptions) -> None:
        serializer = serializer_for(options)

        def extract(record: FirehoseRecord) -> None:
            record.content = serializer.loads(decode_base64(record.data), self.payload_type)

        for_each_record(self.records, extract, PayloadDeserializationError, "extract")

    def pack_payload(self, options: SerializerOptions) -> None:
        serializer = serializer_for(options)
        if self.records:
            self._remember_type(self.records[0].content)

        def pack(record: FirehoseRecord) -> None:
            record.raw["data"] = encode_base64(serializer.dumps(record.content))

        for_each_record(self.records, pack, PayloadSerializationError, "pack")

    def to_event(self) -> Dict[str, Any]:
        return {**self.extra, "records": [record.raw for record in self.records]}


@dataclass
class FirehoseResponseRecord:
    record_id: str
    result: str = FirehoseResult.OK
    content: Any = None
    data: str = ""
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        record = {"recordId": self.record_id, "result": self.result, "data": self.data}
        if self.metadata:
            record["metadata"] = self.metadata
        return record


@dataclass
class FirehoseResponseEnvelope(RecordBatch[T]):
    """
    Firehose transformation response.

    Usage:
        def handler(batch: FirehoseEventEnvelope[Click]) -> FirehoseResponseEnvelope[Enriched]:
            response = FirehoseResponseEnvelope()
            for record in batch:
                response.add(record.record_id, enrich(record.content))
            return response
    """
    records: List[FirehoseResponseRecord] = field(default_factory=list)
    payload_type: Any = field(default=Any, repr=False)

    def add(self, record_id: str, content: Any, result: str = FirehoseResult.OK) -> FirehoseResponseRecord:
        record = FirehoseResponseRecord(record_id=record_id, result=result, content=content)
        self.records.append(record)
        return record

    @classmethod
    def from_event(cls, event: Dict[str, Any], payload_type: Any = Any) -> "FirehoseResponseEnvelope":
        records = [
            FirehoseResponseRecord(
                record_id=record.get("recordId", ""),
                result=record.get("result", FirehoseResult.OK),
                data=record.get("data", ""),
                metadata=record.get("metadata"),
            )
            for record in (event or {}).get("records") or []
        ]
        return cls(records=records, payload_type=payload_type)

    def extract_payload(self, options: SerializerOptions) -> None:
        serializer = serializer_for(options)

        def extract(record: FirehoseResponseRecord) -> None:
            record.content = serializer.loads(decode_base64(record.data), self.payload_type)

        for_each_record(self.records, extract, PayloadDeserializationError, "extract")

    def pack_payload(self, options: SerializerOptions) -> None:
        serializer = serializer_for(options)
        if self.records:
            self._remember_type(self.records[0].content)

        def pack(record: FirehoseResponseRecord) -> None:
            if record.result == FirehoseResult.OK or record.content is not None:
                record.data = encode_base64(serializer.dumps(record.content))

        for_each_record(self.records, pack, PayloadSerializationError, "pack")

    def to_event(self) -> Dict[str, Any]:
        return {"records": [record.to_dict() for record in self.records]}
