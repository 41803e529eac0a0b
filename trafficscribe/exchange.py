"""Typed records describing one observed request/response pair."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class SecurityHint:
    """Authentication mechanism observed on (or declared for) a request.

    Only the fields relevant to ``kind`` are consulted; the registry fills
    in defaults for anything left unset.
    """

    kind: str  # apiKey, oauth2, http, openIdConnect
    name: str | None = None  # apiKey parameter name
    location: str | None = None  # apiKey location: header, query, cookie
    scheme: str | None = None  # http scheme: bearer, basic, ...
    bearer_format: str | None = None
    flows: dict[str, Any] | None = None  # oauth2 flows object
    open_id_connect_url: str | None = None


@dataclass
class RawBody:
    """Undecoded payload bytes plus the content-encoding they arrived with."""

    data: bytes
    content_encoding: str | None = None


@dataclass
class ObservedExchange:
    """One forwarded request paired with its response.

    ``request_body`` and ``response_body`` hold whatever the transport already
    decoded (a parsed JSON value, text, or bytes). ``None`` means no body.
    ``response_raw`` optionally carries the still-encoded response bytes so the
    archive can defer decompression until it is read.
    """

    method: str
    path: str
    status: int = 200
    query: dict[str, str] = field(default_factory=dict)
    request_headers: dict[str, str] = field(default_factory=dict)
    request_body: Any = None
    request_content_type: str | None = None
    response_headers: dict[str, str] = field(default_factory=dict)
    response_body: Any = None
    response_content_type: str | None = None
    response_raw: RawBody | None = None
    security: list[SecurityHint] | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: float = 0.0
    http_version: str = "HTTP/1.1"

    @property
    def normalized_method(self) -> str:
        """Lower-case HTTP method."""
        return self.method.lower()
