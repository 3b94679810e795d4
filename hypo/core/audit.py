"""
Audit Middleware - one log line per API call.

Each line carries the client identity used for rate limiting and the
conversation the call belongs to. The id is taken from the
``X-Conversation-Id`` request header, or from the response header the
stream endpoint sets when it mints a new id.

For ``text/event-stream`` responses the logged duration is time to the
first byte; the full generation time travels in the ``done`` event.
"""
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from hypo.core.logging_config import get_logger

logger = get_logger(__name__)

CONVERSATION_HEADER = "x-conversation-id"
PROBE_PATHS = frozenset({"/", "/health", "/health/ready"})


def client_identity(request: Request) -> str:
    """First X-Forwarded-For hop, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "anonymous"


class AuditMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        client = client_identity(request)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"AUDIT {request.method} {request.url.path} failed after "
                f"{time.perf_counter() - started:.3f}s client={client} error={e}"
            )
            raise

        elapsed = time.perf_counter() - started
        response.headers["X-Response-Time"] = f"{elapsed:.3f}s"

        if request.url.path in PROBE_PATHS:
            logger.debug(f"AUDIT probe {request.url.path} -> {response.status_code}")
            return response

        conversation = (
            request.headers.get(CONVERSATION_HEADER)
            or response.headers.get(CONVERSATION_HEADER)
            or "-"
        )[:64]
        streaming = response.headers.get("content-type", "").startswith("text/event-stream")

        if response.status_code == 429:
            log_fn = logger.info
        elif response.status_code >= 500:
            log_fn = logger.error
        elif response.status_code >= 400:
            log_fn = logger.warning
        else:
            log_fn = logger.info

        log_fn(
            f"AUDIT {request.method} {request.url.path} -> {response.status_code} "
            f"{'ttfb' if streaming else 'took'}={elapsed:.3f}s "
            f"client={client} conversation={conversation}"
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers; SSE responses also opt out of content sniffing."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        return response
