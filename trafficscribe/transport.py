"""httpx event hooks that feed real client traffic into a TrafficStore.

Usage:
    store = TrafficStore.create(target_url="https://api.example.com")
    recorder = HttpxRecorder(store)
    with httpx.Client(base_url=store.target_url, event_hooks=recorder.event_hooks) as client:
        client.get("/users/42")
"""

import asyncio
import logging
import time
from datetime import datetime, timezone

import httpx

from .exchange import ObservedExchange, RawBody
from .store import TrafficStore

logger = logging.getLogger(__name__)

_STARTED_KEY = "trafficscribe.started"


def mark_started(request: httpx.Request) -> None:
    """Stamp the request with wall-clock and monotonic start times."""
    request.extensions[_STARTED_KEY] = (datetime.now(timezone.utc), time.perf_counter())


def _request_body(request: httpx.Request) -> bytes | None:
    try:
        content = request.content
    except httpx.RequestNotRead:
        # Streaming uploads are archived without a body
        return None
    return content or None


def exchange_from_httpx(response: httpx.Response) -> ObservedExchange:
    """Build an ObservedExchange from a response whose body has been read.

    The response bytes are handed over twice: as the body the registry
    infers from and as the raw payload the archive decodes lazily.
    """
    request = response.request
    started_at, started_clock = request.extensions.get(
        _STARTED_KEY,
        (datetime.now(timezone.utc), None),
    )
    duration_ms = 0.0
    if started_clock is not None:
        duration_ms = (time.perf_counter() - started_clock) * 1000

    content = response.content
    return ObservedExchange(
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        query=dict(request.url.params.items()),
        request_headers=dict(request.headers.items()),
        request_body=_request_body(request),
        request_content_type=request.headers.get("content-type"),
        response_headers=dict(response.headers.items()),
        response_body=content or None,
        response_content_type=response.headers.get("content-type"),
        # httpx has already removed any content-encoding
        response_raw=RawBody(content) if content else None,
        started_at=started_at,
        duration_ms=duration_ms,
        http_version=response.http_version,
    )


class HttpxRecorder:
    """Event hooks for ``httpx.Client`` recording every response."""

    def __init__(self, store: TrafficStore) -> None:
        self.store = store

    @property
    def event_hooks(self) -> dict[str, list]:
        return {"request": [self.on_request], "response": [self.on_response]}

    def on_request(self, request: httpx.Request) -> None:
        mark_started(request)

    def on_response(self, response: httpx.Response) -> None:
        response.read()
        exchange = exchange_from_httpx(response)
        self.store.record_exchange(exchange)
        logger.debug("Captured %s %s", exchange.method, exchange.path)


class AsyncHttpxRecorder:
    """Event hooks for ``httpx.AsyncClient`` recording every response."""

    def __init__(self, store: TrafficStore) -> None:
        self.store = store

    @property
    def event_hooks(self) -> dict[str, list]:
        return {"request": [self.on_request], "response": [self.on_response]}

    async def on_request(self, request: httpx.Request) -> None:
        mark_started(request)

    async def on_response(self, response: httpx.Response) -> None:
        await response.aread()
        exchange = exchange_from_httpx(response)
        # Inference and storage writes block, keep them off the event loop
        await asyncio.to_thread(self.store.record_exchange, exchange)
        logger.debug("Captured %s %s", exchange.method, exchange.path)
