"""
Per-request diagnostics.

Every HTTP request gets a ``RequestStats`` record in a context variable:
a request id (taken from an inbound ``X-Request-ID`` or generated), the
number of SQL statements executed and how many of them wrote.  The
engine listener installed by ``install_query_counter`` fills it in; the
middleware reports it back as response headers:

- ``X-Request-ID``
- ``X-Response-Time-Ms``
- ``X-Query-Count`` (all statements, including eager loads and SAVEPOINTs)
- ``X-Write-Count`` (INSERT / UPDATE / DELETE only)
"""
import logging
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass

from sqlalchemy import event
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from conduit.config import settings

logger = logging.getLogger(__name__)

_WRITE_VERBS = ("INSERT", "UPDATE", "DELETE")
_MAX_REQUEST_ID_LENGTH = 64


@dataclass
class RequestStats:
    request_id: str
    queries: int = 0
    writes: int = 0


request_stats_var: ContextVar[RequestStats | None] = ContextVar("request_stats", default=None)


def current_request_id() -> str | None:
    stats = request_stats_var.get()
    return stats.request_id if stats is not None else None


def install_query_counter(engine) -> None:
    """
    Count every SQL statement *engine* executes into the current request's
    ``RequestStats``.  Statements run outside a request are ignored.

    Call once per engine (``database.py`` for the app, ``conftest.py`` for
    the test engine).
    """
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        stats = request_stats_var.get()
        if stats is None:
            return
        stats.queries += 1
        if statement.lstrip()[:6].upper() in _WRITE_VERBS:
            stats.writes += 1


def _inbound_request_id(scope: Scope) -> str:
    for name, value in scope.get("headers", []):
        if name == b"x-request-id":
            candidate = value.decode("latin-1").strip()
            if candidate and len(candidate) <= _MAX_REQUEST_ID_LENGTH:
                return candidate
    return uuid.uuid4().hex


class TimingMiddleware:
    """
    Pure ASGI middleware.  The inner app runs in the same task (unlike
    ``BaseHTTPMiddleware``), so the stats bound here are the ones the
    engine listener updates.
    """

    def __init__(self, app: ASGIApp, slow_request_ms: float | None = None) -> None:
        self.app = app
        self.slow_request_ms = (
            settings.SLOW_REQUEST_MS if slow_request_ms is None else slow_request_ms
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        stats = RequestStats(request_id=_inbound_request_id(scope))
        token = request_stats_var.set(stats)
        start = time.perf_counter()

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                headers = list(message.get("headers", []))
                headers += [
                    (b"x-request-id", stats.request_id.encode("latin-1")),
                    (b"x-response-time-ms", str(duration_ms).encode()),
                    (b"x-query-count", str(stats.queries).encode()),
                    (b"x-write-count", str(stats.writes).encode()),
                ]
                message["headers"] = headers
                self._log(scope, message["status"], duration_ms, stats)
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            request_stats_var.reset(token)

    def _log(self, scope: Scope, status: int, duration_ms: float, stats: RequestStats) -> None:
        level = logging.WARNING if duration_ms >= self.slow_request_ms else logging.DEBUG
        logger.log(
            level,
            "[%s] %s %s -> %s in %.2fms (%d queries, %d writes)",
            stats.request_id, scope["method"], scope["path"], status,
            duration_ms, stats.queries, stats.writes,
        )
