"""Accumulated API contract per (method, templated path).

Each observed exchange is folded into the endpoint it belongs to:
- Path, query and header parameters (first sighting wins)
- Security scheme references (attached once)
- Request body schemas per content type
- Response body schemas per status and content type, re-merged over the
  full sample history of that slot
- Response header examples (last write wins per header)
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from ..config import ScribeConfig
from ..exchange import ObservedExchange
from ..inference.content_recovery import ContentRecovery, media_type
from ..inference.schema_inferrer import SchemaNode
from ..inference.schema_merger import merge_schemas
from .path_templater import PathTemplater
from .security_registry import SecuritySchemeRegistry, detect_security_hints, normalize_kind

logger = logging.getLogger(__name__)

READ_ONLY_METHODS = frozenset({"get", "head", "options", "trace"})
DEFAULT_CONTENT_TYPE = "application/json"
CREDENTIAL_HEADER = "authorization"


@dataclass
class ParameterRecord:
    """A parameter seen on an endpoint, unique by (name, location)."""

    name: str
    location: str  # path, query, header
    schema_type: str = "string"
    example: Any = None

    @property
    def required(self) -> bool:
        return self.location == "path"

    def to_dict(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.schema_type}
        if self.example is not None:
            schema["example"] = self.example
        param: dict[str, Any] = {"name": self.name, "in": self.location, "schema": schema}
        if self.required:
            param["required"] = True
        return param


@dataclass
class ResponseRecord:
    """Merged content schemas and header examples for one status code."""

    status: int
    content: dict[str, SchemaNode] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class EndpointRecord:
    """Contract accumulated for one (method, templated path)."""

    method: str
    path: str
    parameters: list[ParameterRecord] = field(default_factory=list)
    request_body: dict[str, SchemaNode] = field(default_factory=dict)
    responses: dict[int, ResponseRecord] = field(default_factory=dict)
    security: list[str] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, str]:
        return (self.method, self.path)

    def upsert_parameter(self, name: str, location: str, example: Any = None) -> bool:
        """Add a parameter unless one with the same name and location exists.

        Returns:
            True if the parameter was added
        """
        for param in self.parameters:
            if param.name == name and param.location == location:
                return False
        self.parameters.append(ParameterRecord(name=name, location=location, example=example))
        return True

    def attach_security(self, scheme_name: str) -> None:
        if scheme_name not in self.security:
            self.security.append(scheme_name)


class EndpointRegistry:
    """Owns every EndpointRecord plus the per-slot schema sample caches.

    Not thread-safe on its own; the owning store serialises access.
    """

    def __init__(
        self,
        config: ScribeConfig | None = None,
        templater: PathTemplater | None = None,
        security: SecuritySchemeRegistry | None = None,
        recovery: ContentRecovery | None = None,
    ) -> None:
        self.config = config or ScribeConfig()
        self.templater = templater or PathTemplater()
        self.security = security or SecuritySchemeRegistry()
        self.recovery = recovery or ContentRecovery()
        self._records: dict[tuple[str, str], EndpointRecord] = {}
        self._response_samples: dict[tuple[str, str, int, str], list[SchemaNode]] = {}
        self._request_samples: dict[tuple[str, str, str], list[SchemaNode]] = {}
        self._credential_headers = {CREDENTIAL_HEADER, *self.config.api_key_headers}

    def record_exchange(self, exchange: ObservedExchange) -> EndpointRecord:
        """Fold one exchange into its endpoint's contract.

        Args:
            exchange: Observed request/response pair

        Returns:
            The created or updated EndpointRecord

        Raises:
            UnsupportedSecurityKind: if an explicit security hint is unknown
        """
        # Reject unknown kinds before any state changes
        for hint in exchange.security or []:
            normalize_kind(hint.kind)

        method = exchange.normalized_method
        path = self.templater.template(exchange.path)
        record = self._records.get((method, path))
        if record is None:
            record = EndpointRecord(method=method, path=path)
            self._records[record.key] = record

        self._record_security(record, exchange)
        self._record_parameters(record, exchange)
        self._record_request_body(record, exchange)
        self._record_response(record, exchange)

        logger.debug("Recorded %s %s -> %s", method.upper(), path, exchange.status)
        return record

    def _record_security(self, record: EndpointRecord, exchange: ObservedExchange) -> None:
        hints = exchange.security
        if hints is None:
            hints = detect_security_hints(
                exchange.request_headers,
                exchange.query,
                self.config.api_key_headers,
                self.config.api_key_query_params,
            )
        for hint in hints:
            record.attach_security(self.security.register(hint))

    def _record_parameters(self, record: EndpointRecord, exchange: ObservedExchange) -> None:
        for name in self.templater.parameters(record.path):
            record.upsert_parameter(name, "path")

        # Credentials are described by security schemes, never as parameters
        for name, value in exchange.query.items():
            if name in self.config.api_key_query_params:
                continue
            record.upsert_parameter(name, "query", example=value)

        for name, value in exchange.request_headers.items():
            lowered = name.lower()
            if lowered in self.config.ignored_request_headers or lowered in self._credential_headers:
                continue
            record.upsert_parameter(lowered, "header", example=value)

    def _record_request_body(self, record: EndpointRecord, exchange: ObservedExchange) -> None:
        if record.method in READ_ONLY_METHODS or _is_empty(exchange.request_body):
            return

        content_type = media_type(exchange.request_content_type) or DEFAULT_CONTENT_TYPE

        if self.config.request_body_policy == "first":
            if content_type not in record.request_body:
                record.request_body[content_type] = self.recovery.interpret(
                    exchange.request_body,
                    exchange.request_content_type,
                )
            return

        schema = self.recovery.interpret(exchange.request_body, exchange.request_content_type)
        samples = self._request_samples.setdefault((*record.key, content_type), [])
        if schema not in samples:
            samples.append(schema)
        record.request_body[content_type] = merge_schemas(samples)

    def _record_response(self, record: EndpointRecord, exchange: ObservedExchange) -> None:
        response = record.responses.get(exchange.status)
        if response is None:
            response = ResponseRecord(status=exchange.status)
            record.responses[exchange.status] = response

        for name, value in exchange.response_headers.items():
            response.headers[name.lower()] = value

        if _is_empty(exchange.response_body):
            return

        content_type = media_type(exchange.response_content_type) or DEFAULT_CONTENT_TYPE
        schema = self.recovery.interpret(exchange.response_body, exchange.response_content_type)

        # Each slot keeps structurally distinct shapes only
        samples = self._response_samples.setdefault((*record.key, exchange.status, content_type), [])
        if schema not in samples:
            samples.append(schema)
        response.content[content_type] = merge_schemas(samples)

    def get(self, method: str, path: str) -> EndpointRecord | None:
        """Look up a record by method and (concrete or templated) path."""
        return self._records.get((method.lower(), self.templater.template(path)))

    def records(self) -> list[EndpointRecord]:
        """All records in first-observation order."""
        return list(self._records.values())

    def clear(self) -> None:
        self._records.clear()
        self._response_samples.clear()
        self._request_samples.clear()
        self.security.clear()

    def __len__(self) -> int:
        return len(self._records)


def _is_empty(body: Any) -> bool:
    return body is None or (isinstance(body, (str, bytes, bytearray)) and not body)
