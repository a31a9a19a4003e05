# =============================================================================
# Handler Pipeline
# =============================================================================
# Onion-model dispatcher: an ordered list of middleware transforms wrapped
# around one terminal handler delegate. The first middleware registered is
# the outermost layer, so for use(A); use(B) a call runs
#     A.before -> B.before -> handler -> B.after -> A.after
# =============================================================================

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from lambda_host.runtime.context import InvocationContext
from lambda_host.runtime.errors import ConfigurationError, describe

logger = logging.getLogger(__name__)

# Type definitions
InvocationDelegate = Callable[[InvocationContext], Awaitable[None]]
Middleware = Callable[[InvocationDelegate], InvocationDelegate]
MiddlewareFunc = Callable[[InvocationContext, InvocationDelegate], Any]


def is_async_callable(func: Any) -> bool:
    if inspect.iscoroutinefunction(func):
        return True
    return not isinstance(func, type) and inspect.iscoroutinefunction(getattr(func, "__call__", None))


async def call_maybe_async(func: Callable[..., Any], *args, **kwargs) -> Any:
    """
    Call ``func`` and return its result.

    Coroutine functions are awaited on the running loop. Plain functions run
    in a worker thread (with the caller's contextvars), so they may block or
    start their own event loop with asyncio.run(); an awaitable they return
    is awaited back on the running loop.
    """
    if is_async_callable(func):
        return await func(*args, **kwargs)
    result = await asyncio.to_thread(func, *args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


def ensure_async(delegate: Callable[[InvocationContext], Any]) -> InvocationDelegate:
    """Adapt a sync terminal delegate so every layer of the pipeline can be awaited."""
    if is_async_callable(delegate):
        return delegate

    async def adapted(context: InvocationContext) -> None:
        await call_maybe_async(delegate, context)

    adapted.__wrapped__ = delegate
    adapted.__qualname__ = describe(delegate)
    return adapted


@dataclass(frozen=True)
class Pipeline:
    """A finalized, immutable middleware chain."""
    delegate: InvocationDelegate
    middleware: Tuple[str, ...] = ()

    async def __call__(self, context: InvocationContext) -> None:
        await self.delegate(context)


class PipelineBuilder:
    """
    Staged construction of a Pipeline.

    build() consumes the builder: afterwards use(), run() and build() raise
    ConfigurationError.

    Usage:
        builder = PipelineBuilder()
        builder.use(timing_middleware)
        builder.run(handler_delegate)
        pipeline = builder.build()
    """

    def __init__(self, properties: Optional[Dict[str, Any]] = None):
        self.properties: Dict[str, Any] = properties if properties is not None else {}
        self._middlewares: List[Middleware] = []
        self._handler: Optional[InvocationDelegate] = None
        self._built = False

    @property
    def middlewares(self) -> Tuple[Middleware, ...]:
        return tuple(self._middlewares)

    @property
    def handler(self) -> Optional[InvocationDelegate]:
        return self._handler

    @property
    def is_built(self) -> bool:
        return self._built

    def use(self, middleware: Middleware) -> "PipelineBuilder":
        """Append a transform that receives `next` and returns a new delegate."""
        self._ensure_open("use")
        if not callable(middleware):
            raise ConfigurationError(f"Middleware must be callable, got {type(middleware).__name__}")
        self._middlewares.append(middleware)
        return self

    def use_middleware(self, func: MiddlewareFunc) -> "PipelineBuilder":
        """
        Append an inline middleware ``func(context, next)``.

        ``func`` is usually ``async`` and awaits ``next(context)``. A plain
        function runs in a worker thread and cannot await the chain: it may
        short-circuit, or return ``next(context)`` to continue with nothing
        left to do afterwards.
        """
        if not callable(func):
            raise ConfigurationError(f"Middleware must be callable, got {type(func).__name__}")

        def transform(next_delegate: InvocationDelegate) -> InvocationDelegate:
            async def invoke(context: InvocationContext) -> None:
                await call_maybe_async(func, context, next_delegate)

            invoke.__qualname__ = describe(func)
            return invoke

        transform.__qualname__ = describe(func)
        return self.use(transform)

    def run(self, handler: Callable[[InvocationContext], Any]) -> "PipelineBuilder":
        """Set the terminal delegate. Only one handler may be set."""
        self._ensure_open("run")
        if self._handler is not None:
            raise ConfigurationError("A handler has already been set for this pipeline")
        if not callable(handler):
            raise ConfigurationError(f"Handler must be callable, got {type(handler).__name__}")
        self._handler = ensure_async(handler)
        return self

    def build(self) -> Pipeline:
        self._ensure_open("build")
        if self._handler is None:
            raise ConfigurationError("No handler has been set; call run() before build()")
        self._built = True

        delegate = self._handler
        for middleware in reversed(self._middlewares):
            wrapped = middleware(delegate)
            if not callable(wrapped):
                raise ConfigurationError(f"Middleware {describe(middleware)} did not return a delegate")
            # a plain delegate would run its "after" code before next() is awaited
            if not is_async_callable(wrapped):
                raise ConfigurationError(
                    f"Middleware {describe(middleware)} returned {describe(wrapped)}, which is not a coroutine "
                    f"function; use an async delegate, or use_middleware() for a plain function"
                )
            delegate = wrapped

        names = tuple(describe(m) for m in self._middlewares)
        logger.debug(f"Built pipeline with {len(names)} middleware: {names}")
        return Pipeline(delegate, names)

    def _ensure_open(self, operation: str) -> None:
        if self._built:
            raise ConfigurationError(f"Cannot {operation}() after the pipeline was built")
