# =============================================================================
# Lambda Application
# =============================================================================
# User-facing surface: register services, middleware, one handler and the
# init/shutdown hooks, then build() once at module import time and export
# the result as the Lambda entry point.
#
#   app = LambdaApplication()
#   app.use(request_logging)
#
#   @app.map_handler
#   def handle(order: Order, aws: AwsClients) -> Receipt:
#       ...
#
#   lambda_handler = app.build()
# =============================================================================

import logging
import signal
import sys
import threading
from typing import Any, Callable, Dict, List, Optional, TypeVar

from lambda_host.runtime.binding import Binding, bind_callable
from lambda_host.runtime.deps import ServiceProvider, create_services
from lambda_host.runtime.errors import ConfigurationError, describe
from lambda_host.runtime.features import FeatureProvider
from lambda_host.runtime.lifecycle import LifecycleController, LifecycleState
from lambda_host.runtime.pipeline import Middleware, MiddlewareFunc, PipelineBuilder
from lambda_host.runtime.settings import HostSettings

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class LambdaApplication:
    """
    Builds and hosts one Lambda function.

    Every registration method raises ConfigurationError once build() has run.
    map_handler() may be called exactly once.

    Attributes:
        settings: host options (deadline buffers, serializer, region)
        services: service registrations shared by hooks and the handler
        properties: free-form values shared with middleware at build time
    """

    def __init__(
        self,
        settings: Optional[HostSettings] = None,
        services: Optional[ServiceProvider] = None,
    ):
        self.settings = settings or HostSettings()
        self.services = services or create_services(self.settings.region)
        self.properties: Dict[str, Any] = {}
        self._pipeline = PipelineBuilder(self.properties)
        self._handler: Optional[Callable[..., Any]] = None
        self._init_hooks: List[Callable[..., Any]] = []
        self._shutdown_hooks: List[Callable[..., Any]] = []
        self._feature_providers: List[FeatureProvider] = []
        self._controller: Optional[LifecycleController] = None

    # ==========================================================================
    # Registration
    # ==========================================================================

    def map_handler(self, handler: F) -> F:
        """Set the function that handles every invocation. Usable as a decorator."""
        self._ensure_not_built("map_handler")
        if self._handler is not None:
            raise ConfigurationError(
                f"A handler is already mapped ({describe(self._handler)}); "
                f"an application hosts exactly one handler"
            )
        if not callable(handler):
            raise ConfigurationError(f"Handler must be callable, got {type(handler).__name__}")
        self._handler = handler
        return handler

    def use(self, middleware: Middleware) -> "LambdaApplication":
        """Add a middleware transform ``middleware(next) -> delegate``."""
        self._ensure_not_built("use")
        self._pipeline.use(middleware)
        return self

    def use_middleware(self, func: MiddlewareFunc) -> MiddlewareFunc:
        """Add an inline middleware ``func(context, next)``. Usable as a decorator."""
        self._ensure_not_built("use_middleware")
        self._pipeline.use_middleware(func)
        return func

    def on_init(self, hook: F) -> F:
        """Register a cold-start hook. Hooks run in registration order."""
        self._ensure_not_built("on_init")
        self._init_hooks.append(_require_callable(hook, "Init hook"))
        return hook

    def on_shutdown(self, hook: F) -> F:
        """Register a shutdown hook. Hooks run in registration order."""
        self._ensure_not_built("on_shutdown")
        self._shutdown_hooks.append(_require_callable(hook, "Shutdown hook"))
        return hook

    def add_feature_provider(self, provider: FeatureProvider) -> FeatureProvider:
        """Register a callable that adds features to every invocation's FeatureSet."""
        self._ensure_not_built("add_feature_provider")
        self._feature_providers.append(_require_callable(provider, "Feature provider"))
        return provider

    def _ensure_not_built(self, operation: str) -> None:
        if self._controller is not None:
            raise ConfigurationError(f"Cannot call {operation}() after the application was built")

    # ==========================================================================
    # Build / run
    # ==========================================================================

    @property
    def is_built(self) -> bool:
        return self._controller is not None

    @property
    def state(self) -> LifecycleState:
        if self._controller is None:
            return LifecycleState.UNBUILT
        return self._controller.state

    @property
    def controller(self) -> Optional[LifecycleController]:
        return self._controller

    def build(self, install_signal_handlers: bool = False) -> LifecycleController:
        """
        Bind the handler and hooks, build the pipeline and run init hooks.

        An init failure does not raise here; it is kept and replayed by every
        invocation as InitializationFailedError.

        Returns:
            The LifecycleController, callable as ``handler(event, context)``.

        Raises:
            ConfigurationError: no handler, a second build(), or a signature
                that cannot be bound
        """
        self._ensure_not_built("build")
        if self._handler is None:
            raise ConfigurationError("No handler mapped; call map_handler() before build()")

        handler_binding = bind_callable(self._handler, self.services, for_handler=True)
        init_bindings = self._bind_hooks(self._init_hooks)
        shutdown_bindings = self._bind_hooks(self._shutdown_hooks)

        self._pipeline.run(handler_binding.as_delegate())
        pipeline = self._pipeline.build()
        self.services.freeze()

        controller = LifecycleController(
            pipeline=pipeline,
            event_binding=handler_binding.event,
            init_hooks=init_bindings,
            shutdown_hooks=shutdown_bindings,
            services=self.services,
            settings=self.settings,
            feature_providers=self._feature_providers,
        )
        self._controller = controller
        logger.info(
            f"Built application handler={handler_binding.name} "
            f"middleware={len(pipeline.middleware)} "
            f"init_hooks={len(init_bindings)} shutdown_hooks={len(shutdown_bindings)}"
        )

        controller.initialize()
        if install_signal_handlers:
            install_shutdown_signal(controller)
        return controller

    def _bind_hooks(self, hooks: List[Callable[..., Any]]) -> List[Binding]:
        return [bind_callable(hook, self.services, for_handler=False) for hook in hooks]

    def run(self, event: Any, lambda_context: Any = None) -> Any:
        """Handle one invocation, building the application on first use."""
        if self._controller is None:
            self.build()
        return self._controller.invoke(event, lambda_context)

    def __call__(self, event: Any, lambda_context: Any = None) -> Any:
        return self.run(event, lambda_context)

    def shutdown(self, raise_errors: bool = False) -> List[Exception]:
        """Run shutdown hooks. A never-built application has nothing to shut down."""
        if self._controller is None:
            return []
        return self._controller.shutdown(raise_errors=raise_errors)


def _require_callable(func: Any, what: str) -> Any:
    if not callable(func):
        raise ConfigurationError(f"{what} must be callable, got {type(func).__name__}")
    return func


def install_shutdown_signal(controller: LifecycleController) -> bool:
    """
    Run shutdown hooks when the platform sends SIGTERM.

    Only possible from the main thread. Returns True when the handler was
    installed. A previously installed handler is called once shutdown has
    completed, which for a signal arriving mid-invocation is after that
    invocation returns.
    """
    if sys.platform == "win32" or threading.current_thread() is not threading.main_thread():
        logger.warning("SIGTERM handler not installed: not running on the main thread of a POSIX process")
        return False

    previous = signal.getsignal(signal.SIGTERM)

    def on_sigterm(signum, frame):
        logger.info("SIGTERM received; shutting down")
        # the previous handler may exit the process, so it runs after shutdown
        chain = (lambda: previous(signum, frame)) if callable(previous) else None
        controller.request_shutdown(then=chain)

    signal.signal(signal.SIGTERM, on_sigterm)
    return True
