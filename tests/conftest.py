"""
Shared fixtures for the lambda_host test suite.

Run with: pytest tests -v
"""
import asyncio
from datetime import timedelta

import pytest


@pytest.fixture
def settings():
    """Explicit settings so tests never depend on the caller's environment."""
    from lambda_host.runtime.serialization import SerializerOptions
    from lambda_host.runtime.settings import HostSettings

    return HostSettings(
        cancellation_buffer=timedelta(seconds=3),
        shutdown_duration=timedelta(milliseconds=500),
        shutdown_buffer=timedelta(milliseconds=50),
        init_timeout=timedelta(0),
        serializer=SerializerOptions(),
        region="us-east-1",
    )


@pytest.fixture
def pascal_settings(settings):
    from dataclasses import replace
    from lambda_host.runtime.serialization import SerializerOptions

    return replace(settings, serializer=SerializerOptions(naming_policy="PascalCase"))


@pytest.fixture
def lambda_context():
    from lambda_host.testing import FakeLambdaContext

    return FakeLambdaContext(aws_request_id="req-1", timeout_ms=30000)


@pytest.fixture
def make_app(settings):
    """Factory for LambdaApplications that are shut down after the test."""
    from lambda_host.app.application import LambdaApplication

    apps = []

    def factory(**kwargs):
        kwargs.setdefault("settings", settings)
        app = LambdaApplication(**kwargs)
        apps.append(app)
        return app

    yield factory

    for app in apps:
        app.shutdown()


@pytest.fixture
def invocation_context():
    """A bare InvocationContext for driving pipelines directly."""
    from lambda_host.runtime.context import InvocationContext
    from lambda_host.runtime.deadline import DeadlineToken
    from lambda_host.runtime.deps import ServiceProvider
    from lambda_host.runtime.features import FeatureSet

    token = DeadlineToken.never()
    context = InvocationContext(
        raw_event={},
        lambda_context=None,
        cancellation=token,
        features=FeatureSet(),
        services=ServiceProvider().create_scope(),
    )
    yield context
    token.close()


@pytest.fixture
def run():
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run
