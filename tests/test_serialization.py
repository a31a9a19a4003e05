#!/usr/bin/env python3
"""
Tests for JsonSerializer, SerializerOptions and HostSettings.

Run with: pytest tests/test_serialization.py -v
"""
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import List, Optional

import pytest
from pydantic import BaseModel


class Status(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class LineItem:
    sku: str
    quantity: int


@dataclass
class Order:
    order_id: str
    status: Status
    items: List[LineItem] = field(default_factory=list)
    note: Optional[str] = None


class Customer(BaseModel):
    customer_id: str
    display_name: str


# =============================================================================
# TEST: Deserialization
# =============================================================================

class TestLoads:
    """Tests for binding JSON to typed values."""

    def test_binds_nested_dataclasses(self):
        """Nested dataclasses, enums and lists are validated."""
        from lambda_host.runtime.serialization import JsonSerializer

        order = JsonSerializer().loads(
            '{"order_id": "o-1", "status": "open", "items": [{"sku": "A", "quantity": 2}]}',
            Order,
        )
        assert order == Order("o-1", Status.OPEN, [LineItem("A", 2)])
        print("✓ Nested dataclasses bind from JSON")

    def test_keys_match_case_insensitively(self):
        """camelCase and PascalCase keys bind to snake_case fields."""
        from lambda_host.runtime.serialization import JsonSerializer

        order = JsonSerializer().loads(
            b'{"OrderId": "o-2", "Status": "closed", "Items": [{"SKU": "B", "Quantity": 1}]}',
            Order,
        )
        assert order.order_id == "o-2"
        assert order.status is Status.CLOSED
        assert order.items == [LineItem("B", 1)]

    def test_case_sensitive_option(self):
        """With case_insensitive=False, foreign casing does not bind."""
        from lambda_host.runtime.errors import PayloadDeserializationError
        from lambda_host.runtime.serialization import JsonSerializer, SerializerOptions

        serializer = JsonSerializer(SerializerOptions(case_insensitive=False))
        with pytest.raises(PayloadDeserializationError):
            serializer.loads('{"OrderId": "o-3", "Status": "open"}', Order)

    def test_pydantic_models(self):
        """Pydantic models bind through the same path."""
        from lambda_host.runtime.serialization import JsonSerializer

        customer = JsonSerializer().loads('{"customerId": "c-1", "displayName": "Ada"}', Customer)
        assert customer == Customer(customer_id="c-1", display_name="Ada")

    def test_ignore_none_restores_nullable_fields(self):
        """With ignore_none, missing Optional fields without defaults bind as None."""
        from lambda_host.runtime.errors import PayloadDeserializationError
        from lambda_host.runtime.serialization import JsonSerializer, SerializerOptions

        class Account(BaseModel):
            account_id: str
            closed_at: Optional[str]

        serializer = JsonSerializer(SerializerOptions(ignore_none=True))
        account = Account(account_id="a-1", closed_at=None)
        assert serializer.loads(serializer.dumps(account), Account) == account

        with pytest.raises(PayloadDeserializationError):
            serializer.loads('{"closed_at": null}', Account)

    def test_any_target_returns_parsed_json(self):
        """Untyped targets receive the decoded JSON value."""
        from lambda_host.runtime.serialization import JsonSerializer

        assert JsonSerializer().loads('{"a": [1, 2]}') == {"a": [1, 2]}
        assert JsonSerializer().loads("") is None

    def test_invalid_json(self):
        """Malformed JSON raises PayloadDeserializationError."""
        from lambda_host.runtime.errors import PayloadDeserializationError
        from lambda_host.runtime.serialization import JsonSerializer

        with pytest.raises(PayloadDeserializationError, match="not valid JSON"):
            JsonSerializer().loads("{not json", Order)

    def test_validation_failure(self):
        """Type mismatches raise PayloadDeserializationError chained to pydantic."""
        from pydantic import ValidationError
        from lambda_host.runtime.errors import PayloadDeserializationError
        from lambda_host.runtime.serialization import JsonSerializer

        with pytest.raises(PayloadDeserializationError) as excinfo:
            JsonSerializer().loads('{"sku": "A", "quantity": "many"}', LineItem)
        assert isinstance(excinfo.value.__cause__, ValidationError)

    def test_strict_mode(self):
        """strict=True refuses lax coercions."""
        from lambda_host.runtime.errors import PayloadDeserializationError
        from lambda_host.runtime.serialization import JsonSerializer, SerializerOptions

        lax = JsonSerializer().from_jsonable({"sku": "A", "quantity": "3"}, LineItem)
        assert lax.quantity == 3
        with pytest.raises(PayloadDeserializationError):
            JsonSerializer(SerializerOptions(strict=True)).from_jsonable({"sku": "A", "quantity": "3"}, LineItem)


# =============================================================================
# TEST: Serialization
# =============================================================================

class TestDumps:
    """Tests for packing typed values."""

    def test_default_keeps_field_names(self):
        """Without a naming policy fields keep their Python names."""
        from lambda_host.runtime.serialization import JsonSerializer

        data = JsonSerializer().to_jsonable(Order("o-1", Status.OPEN, [LineItem("A", 1)]))
        assert data == {
            "order_id": "o-1",
            "status": "open",
            "items": [{"sku": "A", "quantity": 1}],
            "note": None,
        }

    @pytest.mark.parametrize("number", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_numbers_rejected(self, number):
        """NaN and Infinity are not JSON; packing them fails."""
        from lambda_host.runtime.errors import PayloadSerializationError
        from lambda_host.runtime.serialization import JsonSerializer

        with pytest.raises(PayloadSerializationError):
            JsonSerializer().dumps({"x": number})

    @pytest.mark.parametrize("policy,key", [
        ("camelCase", "orderId"),
        ("PascalCase", "OrderId"),
        ("snake_case", "order_id"),
        ("kebab-case", "order-id"),
    ])
    def test_naming_policies(self, policy, key):
        """Each naming policy renames dataclass fields."""
        from lambda_host.runtime.serialization import JsonSerializer, SerializerOptions

        data = JsonSerializer(SerializerOptions(naming_policy=policy)).to_jsonable(Order("o-1", Status.OPEN))
        assert data[key] == "o-1"

    def test_mapping_keys_are_not_renamed(self):
        """Dict keys are data, not field names."""
        from lambda_host.runtime.serialization import JsonSerializer, SerializerOptions

        serializer = JsonSerializer(SerializerOptions(naming_policy="PascalCase"))
        assert serializer.to_jsonable({"order_id": 1}) == {"order_id": 1}

    def test_ignore_none(self):
        """ignore_none drops None-valued fields."""
        from lambda_host.runtime.serialization import JsonSerializer, SerializerOptions

        data = JsonSerializer(SerializerOptions(ignore_none=True)).to_jsonable(Order("o-1", Status.OPEN))
        assert "note" not in data

    def test_dumps_leaves(self):
        """Datetimes and other leaves go through pydantic_core."""
        import json
        from datetime import datetime, timezone
        from lambda_host.runtime.serialization import JsonSerializer

        text = JsonSerializer().dumps({"at": datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)})
        assert json.loads(text) == {"at": "2024-01-02T03:04:05Z"}

    def test_unserializable_value(self):
        """Values with no JSON form raise PayloadSerializationError."""
        from lambda_host.runtime.errors import PayloadSerializationError
        from lambda_host.runtime.serialization import JsonSerializer

        with pytest.raises(PayloadSerializationError):
            JsonSerializer().dumps({"lock": object()})

    def test_unknown_policy_rejected(self):
        """SerializerOptions validates the naming policy."""
        from lambda_host.runtime.serialization import SerializerOptions

        with pytest.raises(ValueError):
            SerializerOptions(naming_policy="SCREAMING")


# =============================================================================
# TEST: HostSettings
# =============================================================================

class TestHostSettings:
    """Tests for environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        """Defaults apply when no environment variables are set."""
        from lambda_host.runtime.settings import HostSettings

        for key in (
            "LAMBDA_HOST_CANCELLATION_BUFFER_MS",
            "LAMBDA_HOST_SHUTDOWN_DURATION_MS",
            "LAMBDA_HOST_SHUTDOWN_BUFFER_MS",
            "LAMBDA_HOST_INIT_TIMEOUT_MS",
            "LAMBDA_HOST_NAMING_POLICY",
            "LAMBDA_HOST_IGNORE_NONE",
        ):
            monkeypatch.delenv(key, raising=False)
        monkeypatch.setenv("AWS_REGION", "eu-west-2")

        settings = HostSettings.from_env()
        assert settings.cancellation_buffer == timedelta(seconds=3)
        assert settings.shutdown_window == timedelta(milliseconds=450)
        assert settings.init_deadline is None
        assert settings.serializer.naming_policy is None
        assert settings.region == "eu-west-2"
        print("✓ HostSettings defaults")

    def test_environment_overrides(self, monkeypatch):
        """Environment variables tune the settings."""
        from lambda_host.runtime.settings import HostSettings

        monkeypatch.setenv("LAMBDA_HOST_CANCELLATION_BUFFER_MS", "1500")
        monkeypatch.setenv("LAMBDA_HOST_INIT_TIMEOUT_MS", "2000")
        monkeypatch.setenv("LAMBDA_HOST_NAMING_POLICY", "camelCase")
        monkeypatch.setenv("LAMBDA_HOST_IGNORE_NONE", "true")

        settings = HostSettings.from_env()
        assert settings.cancellation_buffer == timedelta(milliseconds=1500)
        assert settings.init_deadline == timedelta(seconds=2)
        assert settings.serializer.naming_policy == "camelCase"
        assert settings.serializer.ignore_none is True

    def test_keyword_overrides(self, monkeypatch):
        """Keyword arguments win over the environment."""
        from lambda_host.runtime.settings import HostSettings

        monkeypatch.setenv("LAMBDA_HOST_CANCELLATION_BUFFER_MS", "1500")
        settings = HostSettings.from_env(cancellation_buffer=timedelta(seconds=1))
        assert settings.cancellation_buffer == timedelta(seconds=1)

    @pytest.mark.parametrize("key,value", [
        ("LAMBDA_HOST_CANCELLATION_BUFFER_MS", "soon"),
        ("LAMBDA_HOST_SHUTDOWN_DURATION_MS", "-5"),
        ("LAMBDA_HOST_NAMING_POLICY", "SCREAMING"),
    ])
    def test_malformed_environment(self, monkeypatch, key, value):
        """Malformed values raise ConfigurationError."""
        from lambda_host.runtime.errors import ConfigurationError
        from lambda_host.runtime.settings import HostSettings

        monkeypatch.setenv(key, value)
        with pytest.raises(ConfigurationError):
            HostSettings.from_env()

    def test_shutdown_window_never_negative(self, settings):
        """A buffer larger than the duration yields an empty window."""
        from dataclasses import replace

        tight = replace(settings, shutdown_duration=timedelta(milliseconds=10))
        assert tight.shutdown_window == timedelta(0)
