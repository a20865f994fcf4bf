"""
Request correlation for the billing API.

Every request gets an id (echoed from the caller when it looks sane) that
is set on the response, bound to the logging context, and written on the
closing `request.complete` line together with the user the auth dependency
resolved. Limit blocks and provider outages can then be traced back to
the user and the call that hit them.
"""
import logging
import re
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from seoteric.core.logging import request_id_ctx_var, latency_bucket_ms

logger = logging.getLogger("seoteric")

# Caller-supplied ids end up in log lines and response headers
_ACCEPTED_REQUEST_ID = re.compile(r"[A-Za-z0-9._:-]{1,128}")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a request_id to each request and log completion with the caller's user_id."""

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    def _request_id(self, request) -> str:
        incoming = request.headers.get(self.header_name)
        if incoming and _ACCEPTED_REQUEST_ID.fullmatch(incoming):
            return incoming
        return str(uuid4())

    async def dispatch(self, request, call_next):
        rid = self._request_id(request)
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)
        duration_ms = (time.perf_counter() - start) * 1000

        response.headers[self.header_name] = rid

        status = response.status_code
        logger.log(
            logging.WARNING if status >= 500 else logging.INFO,
            "request.complete",
            extra={
                "request_id": rid,
                # Set by get_current_user_id; absent on unauthenticated routes
                "user_id": getattr(request.state, "user_id", None),
                "path": request.url.path,
                "method": request.method,
                "status": status,
                "latency_bucket": latency_bucket_ms(duration_ms),
            },
        )
        return response
