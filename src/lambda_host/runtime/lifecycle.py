# =============================================================================
# Lifecycle Controller
# =============================================================================
# Runs init hooks once at cold start, the handler pipeline once per
# invocation, and shutdown hooks once when the environment is torn down.
#
#   UNBUILT -> INITIALIZING -> READY <-> INVOKING
#                   |                       |
#              INIT_FAILED           SHUTTING_DOWN -> TERMINATED
#
# The controller owns one asyncio event loop that lives as long as the
# execution environment, so async resources created by init hooks remain
# usable by every invocation.
# =============================================================================

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple

from lambda_host.envelopes.base import Envelope
from lambda_host.envelopes.detect import detect_event_source
from lambda_host.runtime.binding import Binding, EventBinding, HookContext, bind_event
from lambda_host.runtime.context import InvocationContext, _activate, _deactivate
from lambda_host.runtime.deadline import DeadlineProvider, DeadlineToken
from lambda_host.runtime.deps import ServiceProvider, ServiceScope
from lambda_host.runtime.errors import (
    ConfigurationError,
    InitializationError,
    InitializationFailedError,
    LambdaHostError,
    ShutdownError,
)
from lambda_host.runtime.features import (
    EventSourceFeature,
    FeatureProvider,
    ResponseFeature,
    create_feature_set,
)
from lambda_host.runtime.pipeline import Pipeline
from lambda_host.runtime.serialization import JsonSerializer
from lambda_host.runtime.settings import HostSettings

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    UNBUILT = "unbuilt"
    INITIALIZING = "initializing"
    READY = "ready"
    INVOKING = "invoking"
    INIT_FAILED = "init_failed"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class LifecycleController:
    """
    Drives one execution environment through its lifecycle.

    The controller is callable with the Lambda handler signature, so a built
    controller can be used directly as the function's entry point.

    Usage:
        controller = LifecycleController(pipeline, event_binding, init_hooks, shutdown_hooks, services)
        controller.initialize()
        response = controller(event, lambda_context)
        controller.shutdown()
    """

    def __init__(
        self,
        pipeline: Pipeline,
        event_binding: Optional[EventBinding],
        init_hooks: Sequence[Binding],
        shutdown_hooks: Sequence[Binding],
        services: ServiceProvider,
        settings: Optional[HostSettings] = None,
        feature_providers: Sequence[FeatureProvider] = (),
        deadline_provider: Optional[DeadlineProvider] = None,
    ):
        self.settings = settings or HostSettings()
        self.services = services
        self._pipeline = pipeline
        self._event_binding = event_binding
        self._init_hooks: Tuple[Binding, ...] = tuple(init_hooks)
        self._shutdown_hooks: Tuple[Binding, ...] = tuple(shutdown_hooks)
        self._feature_providers: Tuple[FeatureProvider, ...] = tuple(feature_providers)
        self._deadlines = deadline_provider or DeadlineProvider(self.settings.cancellation_buffer)
        self._serializer = JsonSerializer(self.settings.serializer)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._state = LifecycleState.UNBUILT
        self._init_error: Optional[BaseException] = None
        self._shutdown_requested = False
        self._shutdown_errors: List[Exception] = []
        self._after_shutdown: List[Callable[[], Any]] = []
        self.invocation_count = 0

    # ==========================================================================
    # State
    # ==========================================================================

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def init_error(self) -> Optional[BaseException]:
        return self._init_error

    @property
    def is_ready(self) -> bool:
        return self._state in (LifecycleState.READY, LifecycleState.INVOKING)

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None or self._loop.is_closed():
            self._loop = asyncio.new_event_loop()
        return self._loop

    def _run(self, coro):
        return self.loop.run_until_complete(coro)

    # ==========================================================================
    # Init
    # ==========================================================================

    def initialize(self) -> bool:
        """Run init hooks. Returns False when init failed (the failure is kept for replay)."""
        return self._run(self.initialize_async())

    async def initialize_async(self) -> bool:
        if self._state is not LifecycleState.UNBUILT:
            raise ConfigurationError(f"Cannot initialize in state {self._state.value}")

        self._state = LifecycleState.INITIALIZING
        started = time.monotonic()
        logger.info(f"Running {len(self._init_hooks)} init hook(s)")

        init_timeout = self.settings.init_deadline
        token = DeadlineToken(init_timeout.total_seconds()) if init_timeout else DeadlineToken.never()
        with token:
            for hook in self._init_hooks:
                try:
                    await hook.invoke(HookContext(self.services, token))
                except Exception as e:
                    logger.exception(f"Init hook {hook.name} failed: {e}")
                    self._init_error = _as_init_error(e, hook.name)
                    self._state = LifecycleState.INIT_FAILED
                    return False

        self._state = LifecycleState.READY
        logger.info(f"Init completed in {(time.monotonic() - started) * 1000:.1f}ms")
        return True

    # ==========================================================================
    # Invocation
    # ==========================================================================

    def __call__(self, event: Any, lambda_context: Any = None) -> Any:
        return self.invoke(event, lambda_context)

    def invoke(self, event: Any, lambda_context: Any = None) -> Any:
        """Handle one invocation and return the packed response."""
        self._ensure_can_invoke()
        try:
            return self._run(self.invoke_async(event, lambda_context))
        finally:
            if self._state is LifecycleState.TERMINATED:
                self._close_loop()
                self._run_after_shutdown()

    async def invoke_async(self, event: Any, lambda_context: Any = None) -> Any:
        self._ensure_can_invoke()
        self._state = LifecycleState.INVOKING

        token = self._deadlines.from_lambda_context(lambda_context)
        scope: Optional[ServiceScope] = None
        context: Optional[InvocationContext] = None
        activation = None
        failed = False
        started = time.monotonic()
        try:
            scope = self.services.create_scope()
            context = InvocationContext(
                raw_event=event,
                lambda_context=lambda_context,
                cancellation=token,
                features=create_feature_set(self._feature_providers),
                services=scope,
            )
            context.features.set(EventSourceFeature(detect_event_source(event)))
            activation = _activate(context)
            logger.debug(f"Invocation started request_id={context.request_id}")

            bind_event(context, self._event_binding, self._serializer)
            await self._pipeline(context)
            context.raw_response = self._pack(context)
            return context.raw_response
        except BaseException:
            failed = True
            raise
        finally:
            if activation is not None:
                _deactivate(activation)
            token.close()
            self.invocation_count += 1
            if self._state is LifecycleState.INVOKING:
                self._state = LifecycleState.READY
            logger.debug(
                f"Invocation finished failed={failed} in {(time.monotonic() - started) * 1000:.1f}ms"
            )
            try:
                if scope is not None:
                    await scope.aclose()
            except Exception:
                if not failed:
                    raise
            finally:
                if self._shutdown_requested:
                    await self.shutdown_async()

    def _ensure_can_invoke(self) -> None:
        state = self._state
        if state is LifecycleState.INIT_FAILED:
            raise InitializationFailedError(
                f"Initialization failed; this execution environment cannot serve invocations: {self._init_error}"
            ) from self._init_error
        if state is LifecycleState.UNBUILT or state is LifecycleState.INITIALIZING:
            raise ConfigurationError("The application must be built and initialized before it is invoked")
        if state is LifecycleState.INVOKING:
            raise LambdaHostError("Invocations must not overlap on one execution environment")
        if state in (LifecycleState.SHUTTING_DOWN, LifecycleState.TERMINATED):
            raise LambdaHostError("The execution environment is shutting down")

    def _pack(self, context: InvocationContext) -> Any:
        response = context.response
        if response is None:
            return None
        context.features.set(ResponseFeature(response))
        if isinstance(response, Envelope):
            response.pack_payload(self._serializer.options)
            return response.to_event()
        return self._serializer.to_jsonable(response)

    # ==========================================================================
    # Shutdown
    # ==========================================================================

    def request_shutdown(self, then: Optional[Callable[[], Any]] = None) -> None:
        """
        Shut down now, or right after the invocation in flight when one is running.

        ``then`` is called once shutdown has completed. A deferred shutdown
        calls it after the invocation returns from invoke(). Safe to call
        from a signal handler.
        """
        if then is not None:
            self._after_shutdown.append(then)
        if self._loop is not None and self._loop.is_running():
            logger.info("Shutdown requested during an invocation; deferring")
            self._shutdown_requested = True
            return
        self.shutdown()

    def shutdown(self, raise_errors: bool = False) -> List[Exception]:
        """Run shutdown hooks and close the event loop. Returns hook failures."""
        try:
            return self._run(self.shutdown_async(raise_errors))
        finally:
            self._close_loop()
            self._run_after_shutdown()

    def _run_after_shutdown(self) -> None:
        callbacks, self._after_shutdown = self._after_shutdown, []
        for callback in callbacks:
            callback()

    def _close_loop(self) -> None:
        loop = self._loop
        if loop is None or loop.is_running() or loop.is_closed():
            return
        try:
            loop.run_until_complete(loop.shutdown_default_executor())
        finally:
            loop.close()

    async def shutdown_async(self, raise_errors: bool = False) -> List[Exception]:
        if self._state in (LifecycleState.SHUTTING_DOWN, LifecycleState.TERMINATED):
            return list(self._shutdown_errors)

        previous = self._state
        self._state = LifecycleState.SHUTTING_DOWN
        self._shutdown_requested = False
        errors: List[Exception] = []

        if previous is not LifecycleState.UNBUILT:
            logger.info(f"Running {len(self._shutdown_hooks)} shutdown hook(s)")
            with DeadlineToken(self.settings.shutdown_window.total_seconds()) as token:
                for hook in self._shutdown_hooks:
                    try:
                        await hook.invoke(HookContext(self.services, token))
                    except Exception as e:
                        logger.exception(f"Shutdown hook {hook.name} failed: {e}")
                        errors.append(e)

        errors.extend(await self.services.aclose())

        self._shutdown_errors = errors
        self._state = LifecycleState.TERMINATED
        logger.info(f"Shutdown completed with {len(errors)} error(s)")
        if raise_errors and errors:
            raise ShutdownError(errors)
        return errors


def _as_init_error(error: Exception, hook_name: str) -> InitializationError:
    if isinstance(error, InitializationError):
        if not error.hook_name:
            error.hook_name = hook_name
        return error
    wrapped = InitializationError(f"Init hook {hook_name} failed: {error}", hook_name)
    wrapped.__cause__ = error
    return wrapped


LambdaHandler = Callable[[Any, Any], Any]
