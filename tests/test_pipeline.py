#!/usr/bin/env python3
"""
Tests for the handler pipeline (middleware chain).

Run with: pytest tests/test_pipeline.py -v
"""
import pytest


def tracing(name, trace):
    """Middleware transform that records its before/after phases."""
    def middleware(next_delegate):
        async def invoke(context):
            trace.append(f"{name}.before")
            await next_delegate(context)
            trace.append(f"{name}.after")
        return invoke
    return middleware


# =============================================================================
# TEST: Ordering
# =============================================================================

class TestPipelineOrdering:
    """Tests for middleware nesting."""

    def test_symmetric_nesting(self, invocation_context, run):
        """use(A); use(B) runs A.before, B.before, handler, B.after, A.after."""
        from lambda_host.runtime.pipeline import PipelineBuilder

        trace = []
        builder = PipelineBuilder()
        builder.use(tracing("A", trace))
        builder.use(tracing("B", trace))
        builder.run(lambda context: trace.append("handler"))
        pipeline = builder.build()

        run(pipeline(invocation_context))
        assert trace == ["A.before", "B.before", "handler", "B.after", "A.after"]
        print("✓ Middleware nests symmetrically")

    def test_no_middleware_calls_handler_directly(self, invocation_context, run):
        """With zero middleware the pipeline delegate is the handler itself."""
        from lambda_host.runtime.pipeline import PipelineBuilder

        async def handler(context):
            context.response = "direct"

        pipeline = PipelineBuilder().run(handler).build()
        assert pipeline.delegate is handler
        assert pipeline.middleware == ()

        run(pipeline(invocation_context))
        assert invocation_context.response == "direct"

    def test_short_circuit(self, invocation_context, run):
        """A middleware that does not call next skips the handler."""
        from lambda_host.runtime.pipeline import PipelineBuilder

        calls = []

        def short_circuit(next_delegate):
            async def invoke(context):
                context.response = "cached"
            return invoke

        pipeline = (
            PipelineBuilder()
            .use(short_circuit)
            .run(lambda context: calls.append("handler"))
            .build()
        )
        run(pipeline(invocation_context))
        assert calls == []
        assert invocation_context.response == "cached"

    def test_sync_delegate_from_transform_rejected(self):
        """A plain delegate cannot wrap the chain, so build() refuses it."""
        from lambda_host.runtime.errors import ConfigurationError
        from lambda_host.runtime.pipeline import PipelineBuilder

        trace = []

        def sync_middleware(next_delegate):
            def invoke(context):
                trace.append("A.before")
                next_delegate(context)
                trace.append("A.after")
            return invoke

        builder = PipelineBuilder().use(sync_middleware).run(lambda context: trace.append("handler"))
        with pytest.raises(ConfigurationError, match="not a coroutine function"):
            builder.build()
        assert trace == []

    def test_async_callable_object_from_transform(self, invocation_context, run):
        """Objects with an async __call__ are valid delegates."""
        from lambda_host.runtime.pipeline import PipelineBuilder

        trace = []

        class Timing:
            def __init__(self, next_delegate):
                self.next_delegate = next_delegate

            async def __call__(self, context):
                trace.append("before")
                await self.next_delegate(context)
                trace.append("after")

        pipeline = PipelineBuilder().use(Timing).run(lambda context: trace.append("handler")).build()
        run(pipeline(invocation_context))
        assert trace == ["before", "handler", "after"]

    def test_sync_handler_runs_off_the_loop(self, invocation_context, run):
        """A plain terminal delegate may start its own event loop."""
        import asyncio

        from lambda_host.runtime.pipeline import PipelineBuilder

        async def fetch():
            return "fetched"

        def handler(context):
            context.response = asyncio.run(fetch())

        pipeline = PipelineBuilder().run(handler).build()
        run(pipeline(invocation_context))
        assert invocation_context.response == "fetched"


# =============================================================================
# TEST: Inline middleware
# =============================================================================

class TestUseMiddleware:
    """Tests for use_middleware(func(context, next))."""

    def test_inline_middleware_wraps_handler(self, invocation_context, run):
        """Inline middleware sees the handler result after awaiting next."""
        from lambda_host.runtime.pipeline import PipelineBuilder

        async def upper(context, next_delegate):
            await next_delegate(context)
            context.response = context.response.upper()

        pipeline = (
            PipelineBuilder()
            .use_middleware(upper)
            .run(lambda context: setattr(context, "response", "hello"))
            .build()
        )
        run(pipeline(invocation_context))
        assert invocation_context.response == "HELLO"
        assert pipeline.middleware == ("TestUseMiddleware.test_inline_middleware_wraps_handler.<locals>.upper",)

    def test_inline_and_transform_share_order(self, invocation_context, run):
        """Inline and transform middleware are ordered by registration."""
        from lambda_host.runtime.pipeline import PipelineBuilder

        trace = []

        async def inline(context, next_delegate):
            trace.append("inline.before")
            await next_delegate(context)
            trace.append("inline.after")

        pipeline = (
            PipelineBuilder()
            .use_middleware(inline)
            .use(tracing("T", trace))
            .run(lambda context: trace.append("handler"))
            .build()
        )
        run(pipeline(invocation_context))
        assert trace == ["inline.before", "T.before", "handler", "T.after", "inline.after"]

    def test_plain_inline_middleware(self, invocation_context, run):
        """A plain function either short-circuits or hands back next(context)."""
        from lambda_host.runtime.pipeline import PipelineBuilder

        calls = []

        def cache(context, next_delegate):
            if context.items.get("cached"):
                context.response = "from cache"
                return None
            return next_delegate(context)

        pipeline = (
            PipelineBuilder()
            .use_middleware(cache)
            .run(lambda context: calls.append("handler"))
            .build()
        )
        run(pipeline(invocation_context))
        assert calls == ["handler"]

        invocation_context.items["cached"] = True
        run(pipeline(invocation_context))
        assert calls == ["handler"]
        assert invocation_context.response == "from cache"


# =============================================================================
# TEST: Errors and builder rules
# =============================================================================

class TestPipelineErrors:
    """Tests for error propagation and builder misuse."""

    def test_exceptions_propagate_unmodified(self, invocation_context, run):
        """Handler exceptions reach the caller unchanged, after phases are skipped."""
        from lambda_host.runtime.pipeline import PipelineBuilder

        trace = []

        class OrderRejected(Exception):
            pass

        def handler(context):
            raise OrderRejected("no stock")

        pipeline = PipelineBuilder().use(tracing("A", trace)).run(handler).build()
        with pytest.raises(OrderRejected, match="no stock"):
            run(pipeline(invocation_context))
        assert trace == ["A.before"]

    def test_build_consumes_builder(self):
        """use(), run() and build() are rejected after build()."""
        from lambda_host.runtime.errors import ConfigurationError
        from lambda_host.runtime.pipeline import PipelineBuilder

        builder = PipelineBuilder().run(lambda context: None)
        builder.build()
        assert builder.is_built

        with pytest.raises(ConfigurationError):
            builder.build()
        with pytest.raises(ConfigurationError):
            builder.use(tracing("late", []))
        with pytest.raises(ConfigurationError):
            builder.run(lambda context: None)
        print("✓ Builder is consumed by build()")

    def test_one_handler_only(self):
        """A second run() is a configuration error."""
        from lambda_host.runtime.errors import ConfigurationError
        from lambda_host.runtime.pipeline import PipelineBuilder

        builder = PipelineBuilder().run(lambda context: None)
        with pytest.raises(ConfigurationError):
            builder.run(lambda context: None)

    def test_build_without_handler(self):
        """build() requires a handler."""
        from lambda_host.runtime.errors import ConfigurationError
        from lambda_host.runtime.pipeline import PipelineBuilder

        with pytest.raises(ConfigurationError):
            PipelineBuilder().build()

    def test_non_callable_middleware_rejected(self):
        """Middleware must be callable."""
        from lambda_host.runtime.errors import ConfigurationError
        from lambda_host.runtime.pipeline import PipelineBuilder

        with pytest.raises(ConfigurationError):
            PipelineBuilder().use("not callable")

    def test_pipeline_is_immutable(self):
        """The built pipeline cannot be modified."""
        import dataclasses
        from lambda_host.runtime.pipeline import PipelineBuilder

        pipeline = PipelineBuilder().run(lambda context: None).build()
        with pytest.raises(dataclasses.FrozenInstanceError):
            pipeline.middleware = ("x",)
