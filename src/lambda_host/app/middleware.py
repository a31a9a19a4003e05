# =============================================================================
# Built-in Middleware
# =============================================================================
# Ready-made transforms for LambdaApplication.use(). Each one receives the
# next delegate and returns the delegate that wraps it.
# =============================================================================

import logging
import time
from typing import Any, Callable, Optional

from lambda_host.envelopes.api_gateway import ApiGatewayResponseEnvelope
from lambda_host.runtime.context import InvocationContext
from lambda_host.runtime.errors import InvocationCancelledError
from lambda_host.runtime.features import EventSourceFeature
from lambda_host.runtime.pipeline import InvocationDelegate

logger = logging.getLogger(__name__)


def request_logging(next_delegate: InvocationDelegate) -> InvocationDelegate:
    """Log every invocation with its request id, event source and duration."""

    async def invoke(context: InvocationContext) -> None:
        source = context.features.get(EventSourceFeature)
        source_name = source.source if source else "unknown"
        started = time.monotonic()
        logger.info(f"START request_id={context.request_id} source={source_name}")
        try:
            await next_delegate(context)
        except Exception as e:
            elapsed = (time.monotonic() - started) * 1000
            logger.error(
                f"FAILED request_id={context.request_id} source={source_name} "
                f"duration={elapsed:.1f}ms error={type(e).__name__}: {e}"
            )
            raise
        elapsed = (time.monotonic() - started) * 1000
        logger.info(f"END request_id={context.request_id} source={source_name} duration={elapsed:.1f}ms")

    return invoke


def deadline_guard(next_delegate: InvocationDelegate) -> InvocationDelegate:
    """Refuse to start the handler when the invocation's deadline already passed."""

    async def invoke(context: InvocationContext) -> None:
        if context.cancellation.is_cancelled:
            raise InvocationCancelledError(
                f"Deadline reached before the handler started (request_id={context.request_id})"
            )
        await next_delegate(context)

    return invoke


def http_error_responses(
    status_code: int = 500,
    expose_errors: bool = False,
    on_error: Optional[Callable[[InvocationContext, Exception], Any]] = None,
) -> Callable[[InvocationDelegate], InvocationDelegate]:
    """
    Turn handler exceptions into API Gateway error responses.

    Without this middleware an exception fails the invocation and API Gateway
    answers 502. With it the client gets ``status_code`` and a JSON body.

    Usage:
        app.use(http_error_responses(expose_errors=True))
    """

    def middleware(next_delegate: InvocationDelegate) -> InvocationDelegate:
        async def invoke(context: InvocationContext) -> None:
            try:
                await next_delegate(context)
            except Exception as e:
                logger.exception(f"Handler error request_id={context.request_id}: {e}")
                if on_error is not None:
                    on_error(context, e)
                body = {"error": f"Internal error: {e}" if expose_errors else "Internal error"}
                if context.request_id:
                    body["requestId"] = context.request_id
                context.response = ApiGatewayResponseEnvelope.json(status_code, body)

        return invoke

    return middleware
