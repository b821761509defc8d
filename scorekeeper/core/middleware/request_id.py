import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from scorekeeper.core.logging import LOGGER_NAME, latency_bucket_ms, request_id_ctx_var


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind x-request-id for the request, echo it back and log one completion line."""

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)

        response.headers[self.header_name] = rid
        status = response.status_code
        logging.getLogger(LOGGER_NAME).log(
            logging.WARNING if status >= 500 else logging.INFO,
            "request.complete",
            extra={
                "request_id": rid,
                # read endpoints take the subject as ?user_id=
                "user_id": request.query_params.get("user_id"),
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "latency_bucket": latency_bucket_ms((time.perf_counter() - started) * 1000),
            },
        )
        return response
