# =============================================================================
# Host Settings
# =============================================================================
# Configuration consumed by the runtime. Defaults are read from environment
# variables so a function can be tuned from its Lambda configuration without
# code changes.
# =============================================================================

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from lambda_host.runtime.errors import ConfigurationError
from lambda_host.runtime.serialization import NAMING_POLICIES, SerializerOptions


def _env_ms(key: str, default: int) -> timedelta:
    raw = os.environ.get(key, "")
    if not raw:
        return timedelta(milliseconds=default)
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer number of milliseconds, got {raw!r}")
    if value < 0:
        raise ConfigurationError(f"{key} must not be negative, got {value}")
    return timedelta(milliseconds=value)


def _env_bool(key: str, default: bool = False) -> bool:
    return os.environ.get(key, str(default)).lower() == "true"


def _serializer_options_from_env() -> SerializerOptions:
    policy = os.environ.get("LAMBDA_HOST_NAMING_POLICY", "") or None
    if policy is not None and policy not in NAMING_POLICIES:
        raise ConfigurationError(
            f"LAMBDA_HOST_NAMING_POLICY must be one of {sorted(NAMING_POLICIES)}, got {policy!r}"
        )
    return SerializerOptions(
        naming_policy=policy,
        ignore_none=_env_bool("LAMBDA_HOST_IGNORE_NONE"),
    )


@dataclass
class HostSettings:
    """
    Options for the lambda host.

    Attributes:
        cancellation_buffer: subtracted from the invocation deadline to get the
            instant the invocation's DeadlineToken fires
        shutdown_duration: time the platform grants for shutdown hooks
        shutdown_buffer: subtracted from shutdown_duration for the shutdown token
        init_timeout: deadline for the init token; zero means no deadline
        serializer: payload (de)serialization options used by envelopes
        region: AWS region used for service clients
    """
    cancellation_buffer: timedelta = field(
        default_factory=lambda: _env_ms("LAMBDA_HOST_CANCELLATION_BUFFER_MS", 3000)
    )
    shutdown_duration: timedelta = field(
        default_factory=lambda: _env_ms("LAMBDA_HOST_SHUTDOWN_DURATION_MS", 500)
    )
    shutdown_buffer: timedelta = field(
        default_factory=lambda: _env_ms("LAMBDA_HOST_SHUTDOWN_BUFFER_MS", 50)
    )
    init_timeout: timedelta = field(
        default_factory=lambda: _env_ms("LAMBDA_HOST_INIT_TIMEOUT_MS", 0)
    )
    serializer: SerializerOptions = field(default_factory=_serializer_options_from_env)
    region: str = field(default_factory=lambda: os.environ.get("AWS_REGION", "us-east-1"))

    def __post_init__(self):
        for name in ("cancellation_buffer", "shutdown_duration", "shutdown_buffer", "init_timeout"):
            value = getattr(self, name)
            if not isinstance(value, timedelta):
                raise ConfigurationError(f"{name} must be a timedelta, got {type(value).__name__}")
            if value < timedelta(0):
                raise ConfigurationError(f"{name} must not be negative")

    @classmethod
    def from_env(cls, **overrides) -> "HostSettings":
        """Build settings from the current environment, applying keyword overrides."""
        return cls(**overrides)

    @property
    def shutdown_window(self) -> timedelta:
        """Time shutdown hooks may run before their token fires."""
        return max(self.shutdown_duration - self.shutdown_buffer, timedelta(0))

    @property
    def init_deadline(self) -> Optional[timedelta]:
        if not self.init_timeout:
            return None
        return self.init_timeout
