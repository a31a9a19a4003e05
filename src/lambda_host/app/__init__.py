# =============================================================================
# Application Host
# =============================================================================
# LambdaApplication plus the middleware shipped with the host.
# =============================================================================

from lambda_host.app.application import LambdaApplication, install_shutdown_signal
from lambda_host.app.middleware import deadline_guard, http_error_responses, request_logging

__all__ = [
    "LambdaApplication",
    "install_shutdown_signal",
    "deadline_guard",
    "http_error_responses",
    "request_logging",
]
