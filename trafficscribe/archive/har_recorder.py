"""Append-only HAR 1.2 archive of observed exchanges.

Response payloads may be captured as raw bytes plus their content-encoding.
Decompression, text decoding and JSON normalisation are deferred to the
first read of the archive and performed exactly once per entry; the decoded
text is cached on the entry for every later read.
"""

import gzip
import json
import logging
import threading
import zlib
from dataclasses import dataclass, field
from datetime import datetime
from http import HTTPStatus
from typing import Any
from urllib.parse import urlencode

from ..config import ScribeConfig
from ..errors import RecoverableInferenceFailure
from ..exchange import ObservedExchange, RawBody
from ..inference.content_recovery import (
    decode_text,
    is_binary_content_type,
    is_json_content_type,
    looks_like_json,
    parse_json_lenient,
)

logger = logging.getLogger(__name__)

HAR_VERSION = "1.2"
DEFAULT_MIME_TYPE = "application/json"


def decompress(data: bytes, content_encoding: str | None) -> bytes:
    """Undo a content-encoding; unknown or broken encodings pass through."""
    encoding = (content_encoding or "identity").strip().lower()
    try:
        if encoding in ("gzip", "x-gzip"):
            return gzip.decompress(data)
        if encoding == "deflate":
            try:
                return zlib.decompress(data)
            except zlib.error:
                return zlib.decompress(data, -zlib.MAX_WBITS)
    except (OSError, EOFError, zlib.error) as e:
        logger.warning("Could not decode %s payload, keeping raw bytes: %s", encoding, e)
        return data

    if encoding not in ("identity", ""):
        logger.warning("Unsupported content-encoding %s, keeping raw bytes", encoding)
    return data


def normalize_json_text(text: str) -> str:
    """Re-serialise JSON-like text compactly, repairing it if needed.

    Returns the original text when it cannot be recovered.
    """
    try:
        value = parse_json_lenient(text)
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    except (RecoverableInferenceFailure, ValueError, RecursionError):
        return text


def decode_payload(raw: RawBody, content_type: str | None) -> str:
    """Turn captured response bytes into archive text."""
    data = decompress(raw.data, raw.content_encoding)
    text = decode_text(data, content_type)
    if is_binary_content_type(content_type):
        return text
    if is_json_content_type(content_type) or looks_like_json(text):
        return normalize_json_text(text)
    return text


def body_text(body: Any, content_type: str | None = None) -> str:
    """Archive text for an already-decoded body."""
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    if isinstance(body, (bytes, bytearray)):
        return decode_text(bytes(body), content_type)
    try:
        return json.dumps(body, ensure_ascii=False, separators=(",", ":"), default=str)
    except (ValueError, RecursionError) as e:
        logger.warning("Body cannot be serialised for the archive: %s", e)
        return ""


@dataclass(frozen=True)
class _Raw:
    payload: RawBody
    content_type: str | None


@dataclass(frozen=True)
class _Resolved:
    text: str


class DeferredContent:
    """Response text that is either still raw or already resolved.

    The Raw -> Resolved transition happens at most once, guarded by a lock.
    """

    def __init__(self, state: _Raw | _Resolved) -> None:
        self._state = state
        self._lock = threading.Lock()

    @classmethod
    def raw(cls, payload: RawBody, content_type: str | None) -> "DeferredContent":
        return cls(_Raw(payload, content_type))

    @classmethod
    def resolved(cls, text: str) -> "DeferredContent":
        return cls(_Resolved(text))

    @property
    def is_resolved(self) -> bool:
        return isinstance(self._state, _Resolved)

    def resolve(self) -> str:
        """Decoded text, computing it on the first call only."""
        with self._lock:
            state = self._state
            if isinstance(state, _Raw):
                try:
                    text = decode_payload(state.payload, state.content_type)
                except (ValueError, RecursionError) as e:
                    logger.warning("Keeping undecoded payload text: %s", e)
                    text = decode_text(state.payload.data, state.content_type)
                state = _Resolved(text)
                self._state = state
            return state.text


@dataclass(frozen=True)
class HarEntry:
    """Immutable snapshot of one exchange."""

    started_date_time: str
    time: float
    method: str
    url: str
    http_version: str
    request_headers: tuple[tuple[str, str], ...]
    query_string: tuple[tuple[str, str], ...]
    post_data: tuple[str, str] | None  # (mimeType, text)
    status: int
    status_text: str
    response_headers: tuple[tuple[str, str], ...]
    mime_type: str
    content: DeferredContent = field(compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Render as a HAR entry, resolving deferred content if needed."""
        text = self.content.resolve()
        request: dict[str, Any] = {
            "method": self.method,
            "url": self.url,
            "httpVersion": self.http_version,
            "headers": [{"name": n, "value": v} for n, v in self.request_headers],
            "queryString": [{"name": n, "value": v} for n, v in self.query_string],
        }
        if self.post_data is not None:
            request["postData"] = {"mimeType": self.post_data[0], "text": self.post_data[1]}

        return {
            "startedDateTime": self.started_date_time,
            "time": self.time,
            "request": request,
            "response": {
                "status": self.status,
                "statusText": self.status_text,
                "httpVersion": self.http_version,
                "headers": [{"name": n, "value": v} for n, v in self.response_headers],
                "content": {
                    "size": len(text.encode("utf-8")),
                    "mimeType": self.mime_type,
                    "text": text,
                },
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HarEntry":
        """Rebuild an entry from its HAR rendering (content already resolved)."""
        request = data.get("request", {})
        response = data.get("response", {})
        content = response.get("content", {})
        post_data = request.get("postData")
        return cls(
            started_date_time=data.get("startedDateTime", ""),
            time=data.get("time", 0),
            method=request.get("method", "GET"),
            url=request.get("url", ""),
            http_version=request.get("httpVersion", "HTTP/1.1"),
            request_headers=_pairs(request.get("headers", [])),
            query_string=_pairs(request.get("queryString", [])),
            post_data=(
                (post_data.get("mimeType", ""), post_data.get("text", ""))
                if post_data
                else None
            ),
            status=response.get("status", 0),
            status_text=response.get("statusText", ""),
            response_headers=_pairs(response.get("headers", [])),
            mime_type=content.get("mimeType", DEFAULT_MIME_TYPE),
            content=DeferredContent.resolved(content.get("text", "")),
        )


def _pairs(items: list[dict[str, Any]]) -> tuple[tuple[str, str], ...]:
    return tuple((str(i.get("name", "")), str(i.get("value", ""))) for i in items)


def status_text(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


def format_started(started: datetime) -> str:
    return started.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class HarRecorder:
    """Ordered, append-only log of HarEntry records.

    Provides:
    - Snapshot of each exchange at append time
    - Deferred, compute-once response decoding on read
    - HAR 1.2 rendering with absolute URLs against the target base URL
    """

    def __init__(self, config: ScribeConfig | None = None) -> None:
        self.config = config or ScribeConfig()
        self.target_url = self.config.target_url
        self._entries: list[HarEntry] = []
        self._lock = threading.Lock()

    def set_target_base_url(self, url: str) -> None:
        self.target_url = url

    def build_url(self, path: str, query: dict[str, str]) -> str:
        """Absolute URL for a request path against the target base URL."""
        if path.startswith(("http://", "https://")):
            url = path
        else:
            url = self.target_url.rstrip("/") + "/" + path.lstrip("/")
        if query:
            url += ("&" if "?" in url else "?") + urlencode(query)
        return url

    def snapshot(self, exchange: ObservedExchange) -> HarEntry:
        """Build an entry for ``exchange`` without storing it."""
        post_data = None
        if exchange.request_body not in (None, "", b""):
            post_data = (
                exchange.request_content_type or DEFAULT_MIME_TYPE,
                body_text(exchange.request_body, exchange.request_content_type),
            )

        if exchange.response_raw is not None:
            content = DeferredContent.raw(exchange.response_raw, exchange.response_content_type)
        else:
            content = DeferredContent.resolved(
                body_text(exchange.response_body, exchange.response_content_type),
            )

        return HarEntry(
            started_date_time=format_started(exchange.started_at),
            time=round(exchange.duration_ms, 3),
            method=exchange.method.upper(),
            url=self.build_url(exchange.path, exchange.query),
            http_version=exchange.http_version,
            request_headers=tuple(
                (name.lower(), str(value)) for name, value in exchange.request_headers.items()
            ),
            query_string=tuple((name, str(value)) for name, value in exchange.query.items()),
            post_data=post_data,
            status=exchange.status,
            status_text=status_text(exchange.status),
            response_headers=tuple(
                (name.lower(), str(value)) for name, value in exchange.response_headers.items()
            ),
            mime_type=exchange.response_content_type or DEFAULT_MIME_TYPE,
            content=content,
        )

    def append(self, exchange: ObservedExchange) -> HarEntry:
        """Snapshot and store one exchange."""
        entry = self.snapshot(exchange)
        self.add(entry)
        return entry

    def add(self, entry: HarEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(self) -> list[HarEntry]:
        """Stored entries, without resolving deferred content."""
        with self._lock:
            return list(self._entries)

    def read(self) -> list[dict[str, Any]]:
        """All entries rendered as HAR dictionaries, in append order."""
        return [entry.to_dict() for entry in self.entries()]

    def to_har(self) -> dict[str, Any]:
        """Complete HAR log document."""
        return {
            "log": {
                "version": HAR_VERSION,
                "creator": {
                    "name": self.config.creator_name,
                    "version": self.config.creator_version,
                },
                "entries": self.read(),
            },
        }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
