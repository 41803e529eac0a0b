"""Per-endpoint contract accumulation."""

from .endpoint_registry import EndpointRecord, EndpointRegistry, ParameterRecord, ResponseRecord
from .path_templater import PathTemplater
from .security_registry import (
    SecurityKind,
    SecuritySchemeRegistry,
    detect_security_hints,
    normalize_kind,
)

__all__ = [
    "EndpointRecord",
    "EndpointRegistry",
    "ParameterRecord",
    "PathTemplater",
    "ResponseRecord",
    "SecurityKind",
    "SecuritySchemeRegistry",
    "detect_security_hints",
    "normalize_kind",
]
