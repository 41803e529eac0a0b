"""Render the accumulated registries as an OpenAPI document.

Documents are computed on demand from the live registries; nothing is
cached between calls.
"""

import json
import re
from http import HTTPStatus
from typing import Any

import yaml

from .config import ScribeConfig
from .registry.endpoint_registry import EndpointRecord, EndpointRegistry, ResponseRecord

DOCUMENT_FORMATS = ("json", "yaml")


def operation_id(method: str, path: str) -> str:
    """Stable operationId derived from method and templated path."""
    slug = re.sub(r"[^A-Za-z0-9]+", "_", path).strip("_") or "root"
    return f"{method.lower()}_{slug}"


def response_description(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return f"Response {status}"


class DocumentAssembler:
    """Build OpenAPI documents from an EndpointRegistry.

    Provides:
    - Path and operation rendering
    - Security scheme components
    - JSON and YAML serialisation
    """

    def __init__(self, config: ScribeConfig | None = None) -> None:
        self.config = config or ScribeConfig()

    def assemble(
        self,
        registry: EndpointRegistry,
        target_url: str,
        restored: dict[tuple[str, str], dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Generate an OpenAPI document.

        Args:
            registry: Registry holding the live endpoint records
            target_url: Base URL of the documented API
            restored: Operations loaded from storage, keyed by (method, path);
                used only where no live record exists

        Returns:
            OpenAPI document as a dictionary
        """
        paths: dict[str, dict[str, Any]] = {}

        for (method, path), operation in (restored or {}).items():
            if registry.get(method, path) is None:
                paths.setdefault(path, {})[method] = operation

        for record in registry.records():
            paths.setdefault(record.path, {})[record.method] = self.render_operation(record)

        return {
            "openapi": self.config.openapi_version,
            "info": {
                "title": self.config.title,
                "version": self.config.api_version,
                "description": self.config.description,
            },
            "servers": [{"url": target_url}],
            "paths": paths,
            "components": {
                "securitySchemes": registry.security.schemes(),
            },
        }

    def render_operation(self, record: EndpointRecord) -> dict[str, Any]:
        """Render one endpoint as an OpenAPI operation object."""
        include_examples = self.config.include_examples
        operation: dict[str, Any] = {
            "summary": f"{record.method.upper()} {record.path}",
            "operationId": operation_id(record.method, record.path),
        }

        if record.parameters:
            operation["parameters"] = [param.to_dict() for param in record.parameters]

        if record.request_body:
            operation["requestBody"] = {
                "required": False,
                "content": {
                    content_type: {"schema": schema.to_json_schema(include_examples)}
                    for content_type, schema in record.request_body.items()
                },
            }

        operation["responses"] = {
            str(status): self._render_response(response)
            for status, response in sorted(record.responses.items())
        }

        if record.security:
            operation["security"] = [{name: []} for name in record.security]

        return operation

    def _render_response(self, response: ResponseRecord) -> dict[str, Any]:
        rendered: dict[str, Any] = {"description": response_description(response.status)}

        if response.content:
            rendered["content"] = {
                content_type: {"schema": schema.to_json_schema(self.config.include_examples)}
                for content_type, schema in response.content.items()
            }

        if response.headers:
            rendered["headers"] = {
                name: {
                    "description": f"Response header {name}",
                    "schema": {"type": "string", "example": value},
                }
                for name, value in response.headers.items()
            }

        return rendered

    @staticmethod
    def to_text(document: dict[str, Any], fmt: str = "json") -> str:
        """Serialise a document as JSON or YAML.

        Raises:
            ValueError: if ``fmt`` is not json or yaml
        """
        fmt = fmt.lower()
        if fmt == "json":
            return json.dumps(document, indent=2, ensure_ascii=False, default=str)
        if fmt in ("yaml", "yml"):
            return yaml.safe_dump(
                document,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
            )
        raise ValueError(f"Unsupported document format: {fmt!r} (expected one of {DOCUMENT_FORMATS})")
