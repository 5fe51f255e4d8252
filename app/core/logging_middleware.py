import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request: caller, route, status, duration.

    5xx responses and exceptions that escape the app are logged as errors.
    """

    async def dispatch(self, request: Request, call_next):
        start = time.monotonic()
        client = request.client.host if request.client else "-"

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "%s %s from %s failed after %.3fs",
                request.method,
                request.url.path,
                client,
                time.monotonic() - start,
            )
            raise

        level = logging.ERROR if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "%s %s from %s -> %s (%.3fs)",
            request.method,
            request.url.path,
            client,
            response.status_code,
            time.monotonic() - start,
        )
        return response
