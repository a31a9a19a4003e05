# =============================================================================
# API Gateway Envelopes
# =============================================================================
# REST API (v1) and HTTP API (v2) proxy requests and responses. The JSON body
# is bound to `body_content`; everything else is kept as delivered.
# =============================================================================

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from lambda_host.envelopes.base import Envelope, T, decode_base64, serializer_for
from lambda_host.runtime.serialization import SerializerOptions


@dataclass
class ApiGatewayRequestEnvelope(Envelope[T]):
    """
    API Gateway REST API (payload format 1.0) proxy request.

    Usage:
        def handler(request: ApiGatewayRequestEnvelope[CreateOrder]):
            order = request.body_content
    """
    raw: Dict[str, Any] = field(default_factory=dict)
    body_content: Optional[T] = None
    payload_type: Any = field(default=Any, repr=False)

    @classmethod
    def from_event(cls, event: Dict[str, Any], payload_type: Any = Any) -> "ApiGatewayRequestEnvelope":
        return cls(raw=dict(event or {}), payload_type=payload_type)

    # ==========================================================================
    # Native fields
    # ==========================================================================

    @property
    def body(self) -> Optional[str]:
        return self.raw.get("body")

    @property
    def is_base64_encoded(self) -> bool:
        return bool(self.raw.get("isBase64Encoded"))

    @property
    def headers(self) -> Dict[str, str]:
        return self.raw.get("headers") or {}

    @property
    def query_string_parameters(self) -> Dict[str, str]:
        return self.raw.get("queryStringParameters") or {}

    @property
    def path_parameters(self) -> Dict[str, str]:
        return self.raw.get("pathParameters") or {}

    @property
    def request_context(self) -> Dict[str, Any]:
        return self.raw.get("requestContext") or {}

    @property
    def http_method(self) -> str:
        return self.raw.get("httpMethod") or self.request_context.get("httpMethod", "")

    @property
    def path(self) -> str:
        return self.raw.get("path", "")

    @property
    def request_id(self) -> str:
        return self.request_context.get("requestId", "")

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    # ==========================================================================
    # Envelope contract
    # ==========================================================================

    def extract_payload(self, options: SerializerOptions) -> None:
        body = self.body
        data = decode_base64(body) if self.is_base64_encoded else body
        self.body_content = serializer_for(options).loads(data, self.payload_type)

    def pack_payload(self, options: SerializerOptions) -> None:
        self._remember_type(self.body_content)
        self.raw["body"] = serializer_for(options).dumps(self.body_content)
        self.raw["isBase64Encoded"] = False

    def to_event(self) -> Dict[str, Any]:
        return self.raw


@dataclass
class ApiGatewayV2RequestEnvelope(ApiGatewayRequestEnvelope[T]):
    """API Gateway HTTP API (payload format 2.0) request."""

    @property
    def http_method(self) -> str:
        return (self.request_context.get("http") or {}).get("method", "")

    @property
    def path(self) -> str:
        return self.raw.get("rawPath") or (self.request_context.get("http") or {}).get("path", "")

    @property
    def raw_query_string(self) -> str:
        return self.raw.get("rawQueryString", "")

    @property
    def cookies(self) -> List[str]:
        return self.raw.get("cookies") or []


@dataclass
class ApiGatewayResponseEnvelope(Envelope[T]):
    """
    API Gateway proxy response with a typed body.

    `body_content` is serialized into `body` when packed. When it is None the
    pre-set `body` string is sent unchanged.

    Usage:
        return ApiGatewayResponseEnvelope.json(201, OrderCreated(order_id="o-1"))
    """
    status_code: int = 200
    body_content: Optional[T] = None
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    multi_value_headers: Optional[Dict[str, List[str]]] = None
    is_base64_encoded: bool = False
    payload_type: Any = field(default=Any, repr=False)

    # ==========================================================================
    # Factories
    # ==========================================================================

    @classmethod
    def ok(cls, content: Any = None) -> "ApiGatewayResponseEnvelope":
        return cls.json(200, content)

    @classmethod
    def json(cls, status_code: int, content: Any) -> "ApiGatewayResponseEnvelope":
        response = cls(status_code=status_code, body_content=content)
        return response.add_content_type("application/json; charset=utf-8")

    @classmethod
    def text(cls, status_code: int, body: str) -> "ApiGatewayResponseEnvelope":
        response = cls(status_code=status_code, body=body)
        return response.add_content_type("text/plain; charset=utf-8")

    @classmethod
    def status(cls, status_code: int) -> "ApiGatewayResponseEnvelope":
        return cls(status_code=status_code)

    def add_header(self, key: str, value: str) -> "ApiGatewayResponseEnvelope":
        self.headers[key] = value
        return self

    def add_content_type(self, content_type: str) -> "ApiGatewayResponseEnvelope":
        return self.add_header("Content-Type", content_type)

    # ==========================================================================
    # Envelope contract
    # ==========================================================================

    @classmethod
    def from_event(cls, event: Dict[str, Any], payload_type: Any = Any) -> "ApiGatewayResponseEnvelope":
        event = event or {}
        return cls(
            status_code=int(event.get("statusCode", 200)),
            body=event.get("body") or "",
            headers=dict(event.get("headers") or {}),
            multi_value_headers=event.get("multiValueHeaders"),
            is_base64_encoded=bool(event.get("isBase64Encoded")),
            payload_type=payload_type,
        )

    def extract_payload(self, options: SerializerOptions) -> None:
        data = decode_base64(self.body) if self.is_base64_encoded else self.body
        self.body_content = serializer_for(options).loads(data, self.payload_type)

    def pack_payload(self, options: SerializerOptions) -> None:
        if self.body_content is None:
            return
        self._remember_type(self.body_content)
        self.body = serializer_for(options).dumps(self.body_content)
        self.is_base64_encoded = False

    def to_event(self) -> Dict[str, Any]:
        event: Dict[str, Any] = {
            "statusCode": self.status_code,
            "headers": self.headers,
            "body": self.body,
            "isBase64Encoded": self.is_base64_encoded,
        }
        if self.multi_value_headers:
            event["multiValueHeaders"] = self.multi_value_headers
        return event


@dataclass
class ApiGatewayV2ResponseEnvelope(ApiGatewayResponseEnvelope[T]):
    """HTTP API (payload format 2.0) response; adds cookies."""
    cookies: List[str] = field(default_factory=list)

    @classmethod
    def from_event(cls, event: Dict[str, Any], payload_type: Any = Any) -> "ApiGatewayV2ResponseEnvelope":
        response = super().from_event(event, payload_type)
        response.cookies = list((event or {}).get("cookies") or [])
        return response

    def to_event(self) -> Dict[str, Any]:
        event = super().to_event()
        if self.cookies:
            event["cookies"] = self.cookies
        return event
