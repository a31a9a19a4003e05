# =============================================================================
# Testing Helpers
# =============================================================================
# Run a LambdaApplication in-process without the Lambda runtime:
#
#   client = LambdaTestClient(app)
#   result = client.invoke({"name": "bob"})
#   assert result.ok and result.response == {"Message": "hello bob"}
# =============================================================================

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from lambda_host.app.application import LambdaApplication
from lambda_host.runtime.lifecycle import LifecycleController


@dataclass
class FakeLambdaContext:
    """Stand-in for the context object the Lambda runtime passes to handlers."""
    function_name: str = "test-function"
    function_version: str = "$LATEST"
    invoked_function_arn: str = "arn:aws:lambda:us-east-1:123456789012:function:test-function"
    memory_limit_in_mb: int = 128
    aws_request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    log_group_name: str = "/aws/lambda/test-function"
    log_stream_name: str = "2024/01/01/[$LATEST]test"
    timeout_ms: int = 30000
    _started: float = field(default_factory=time.monotonic, repr=False)

    def get_remaining_time_in_millis(self) -> int:
        elapsed_ms = int((time.monotonic() - self._started) * 1000)
        return max(self.timeout_ms - elapsed_ms, 0)


@dataclass
class InvocationResult:
    """Outcome of one test invocation: either a response or the raised error."""
    response: Any = None
    error: Optional[BaseException] = None
    request_id: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


class LambdaTestClient:
    """
    Builds an application (when needed) and invokes it like the Lambda runtime would.

    Usage:
        with LambdaTestClient(app) as client:
            result = client.invoke(event, timeout_ms=5000)
    """

    def __init__(self, app: LambdaApplication):
        self.app = app

    @property
    def controller(self) -> LifecycleController:
        if not self.app.is_built:
            self.app.build()
        return self.app.controller

    def invoke(
        self,
        event: Any,
        timeout_ms: int = 30000,
        request_id: Optional[str] = None,
        lambda_context: Any = None,
    ) -> InvocationResult:
        """Invoke once. Exceptions are captured in the result instead of raised."""
        context = lambda_context or FakeLambdaContext(
            timeout_ms=timeout_ms,
            aws_request_id=request_id or str(uuid.uuid4()),
        )
        controller = self.controller
        result = InvocationResult(request_id=getattr(context, "aws_request_id", ""))
        try:
            result.response = controller.invoke(event, context)
        except Exception as e:
            result.error = e
        return result

    def shutdown(self):
        return self.app.shutdown()

    def __enter__(self) -> "LambdaTestClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
