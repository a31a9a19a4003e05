# =============================================================================
# Envelope Contract
# =============================================================================
# An envelope pairs a platform-native event/response shape with a typed
# payload. extract_payload() and pack_payload() are the only places payload
# (de)serialization happens; handlers never touch raw bodies.
# =============================================================================

import abc
import base64
import binascii
import gzip
from functools import lru_cache
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Type, TypeVar

from lambda_host.runtime.errors import (
    PayloadDeserializationError,
    PayloadError,
    PayloadSerializationError,
)
from lambda_host.runtime.serialization import JsonSerializer, SerializerOptions

T = TypeVar("T")
E = TypeVar("E", bound="Envelope")


class Envelope(abc.ABC, Generic[T]):
    """
    Bidirectional adapter between a native event shape and a payload of type T.

    Subclasses are parametrized by handlers, e.g. ``SqsEnvelope[Order]``; the
    host builds them with from_event() and calls extract_payload() before the
    pipeline runs, and pack_payload() + to_event() on the way out.
    """

    payload_type: Any = Any

    @classmethod
    @abc.abstractmethod
    def from_event(cls: Type[E], event: Dict[str, Any], payload_type: Any = Any) -> E:
        """Wrap a native event dict."""

    @abc.abstractmethod
    def extract_payload(self, options: SerializerOptions) -> None:
        """Populate the typed payload from the native field(s)."""

    @abc.abstractmethod
    def pack_payload(self, options: SerializerOptions) -> None:
        """Serialize the typed payload back into the native field(s)."""

    @abc.abstractmethod
    def to_event(self) -> Dict[str, Any]:
        """Native representation, as returned to (or received from) the platform."""

    def _remember_type(self, content: Any) -> None:
        if self.payload_type is Any and content is not None:
            self.payload_type = type(content)


@lru_cache(maxsize=32)
def serializer_for(options: SerializerOptions) -> JsonSerializer:
    return JsonSerializer(options)


# =============================================================================
# ENCODING HELPERS
# =============================================================================

def decode_base64(data: Optional[str]) -> bytes:
    if not data:
        return b""
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PayloadDeserializationError(f"Record data is not valid base64: {exc}") from exc


def encode_base64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_gzip_base64(data: Optional[str]) -> bytes:
    compressed = decode_base64(data)
    try:
        return gzip.decompress(compressed)
    except (OSError, EOFError) as exc:
        raise PayloadDeserializationError(f"Log data is not valid gzip: {exc}") from exc


def encode_gzip_base64(text: str) -> str:
    return base64.b64encode(gzip.compress(text.encode("utf-8"))).decode("ascii")


# =============================================================================
# BATCH HELPERS
# =============================================================================

def for_each_record(
    records: Sequence[Any],
    operation: Callable[[Any], None],
    error_type: Type[PayloadError],
    verb: str,
) -> None:
    """
    Apply ``operation`` to every record independently.

    All records are attempted; records that succeed keep their result. If any
    failed, a single ``error_type`` listing every failure is raised afterwards.
    """
    failures = []
    for index, record in enumerate(records):
        try:
            operation(record)
        except PayloadError as exc:
            failures.append((index, getattr(record, "record_id", "") or str(index), exc))

    if failures:
        ids = ", ".join(record_id for _, record_id, _ in failures)
        raise error_type(
            f"Failed to {verb} {len(failures)} of {len(records)} record(s): {ids}",
            failures=failures,
        ) from failures[0][2]


class RecordBatch(Envelope[T]):
    """Base for stream/queue envelopes that carry many records."""

    records: List[Any]

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def payloads(self) -> List[Optional[T]]:
        """Typed payload of every record, in order."""
        return [record.content for record in self.records]


__all__ = [
    "Envelope",
    "RecordBatch",
    "serializer_for",
    "for_each_record",
    "decode_base64",
    "encode_base64",
    "decode_gzip_base64",
    "encode_gzip_base64",
    "PayloadDeserializationError",
    "PayloadSerializationError",
]
