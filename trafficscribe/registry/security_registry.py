"""Detection and deduplication of authentication schemes.

One definition is kept per authentication kind. The canonical scheme name
comes from the kind alone, so repeated detections collapse into a single
entry, and a later registration of the same kind replaces the stored
definition (last write wins).
"""

import copy
import logging
from enum import Enum
from typing import Any

from ..errors import UnsupportedSecurityKind
from ..exchange import SecurityHint

logger = logging.getLogger(__name__)


class SecurityKind(Enum):
    """Authentication kinds expressible as OpenAPI security schemes."""

    API_KEY = "apiKey"
    OAUTH2 = "oauth2"
    HTTP = "http"
    OPENID_CONNECT = "openIdConnect"


_KIND_ALIASES = {
    "apikey": SecurityKind.API_KEY,
    "api-key": SecurityKind.API_KEY,
    "api_key": SecurityKind.API_KEY,
    "oauth2": SecurityKind.OAUTH2,
    "http": SecurityKind.HTTP,
    "openidconnect": SecurityKind.OPENID_CONNECT,
    "openid-connect": SecurityKind.OPENID_CONNECT,
    "openid_connect": SecurityKind.OPENID_CONNECT,
}

DEFAULT_OAUTH2_FLOWS: dict[str, Any] = {
    "implicit": {
        "authorizationUrl": "https://example.com/oauth/authorize",
        "scopes": {
            "read": "Read access",
            "write": "Write access",
        },
    },
}
DEFAULT_OPENID_CONNECT_URL = "https://example.com/.well-known/openid-configuration"


def normalize_kind(kind: str | SecurityKind) -> SecurityKind:
    """Map a kind spelling onto a SecurityKind.

    Raises:
        UnsupportedSecurityKind: if the kind is not recognised
    """
    if isinstance(kind, SecurityKind):
        return kind
    try:
        return _KIND_ALIASES[str(kind).strip().lower()]
    except KeyError:
        raise UnsupportedSecurityKind(str(kind)) from None


class SecuritySchemeRegistry:
    """Holds one security scheme definition per authentication kind."""

    def __init__(self) -> None:
        self._schemes: dict[str, dict[str, Any]] = {}

    @staticmethod
    def canonical_name(kind: str | SecurityKind) -> str:
        """Scheme name for a kind, independent of any instance data."""
        return normalize_kind(kind).value

    def register(self, hint: SecurityHint) -> str:
        """Store the scheme described by ``hint`` and return its name.

        Raises:
            UnsupportedSecurityKind: if ``hint.kind`` is not recognised
        """
        kind = normalize_kind(hint.kind)
        name = kind.value
        self._schemes[name] = self._build_scheme(kind, hint)
        return name

    @staticmethod
    def _build_scheme(kind: SecurityKind, hint: SecurityHint) -> dict[str, Any]:
        if kind is SecurityKind.API_KEY:
            return {
                "type": "apiKey",
                "name": hint.name or "x-api-key",
                "in": hint.location or "header",
            }

        if kind is SecurityKind.OAUTH2:
            return {
                "type": "oauth2",
                "flows": copy.deepcopy(hint.flows or DEFAULT_OAUTH2_FLOWS),
            }

        if kind is SecurityKind.HTTP:
            scheme: dict[str, Any] = {
                "type": "http",
                "scheme": (hint.scheme or "bearer").lower(),
            }
            if hint.bearer_format:
                scheme["bearerFormat"] = hint.bearer_format
            return scheme

        return {
            "type": "openIdConnect",
            "openIdConnectUrl": hint.open_id_connect_url or DEFAULT_OPENID_CONNECT_URL,
        }

    def restore(self, name: str, scheme: dict[str, Any]) -> None:
        """Reinstate a previously stored definition under its canonical name.

        Raises:
            UnsupportedSecurityKind: if ``name`` is not a known kind
        """
        self._schemes[self.canonical_name(name)] = copy.deepcopy(scheme)

    def schemes(self) -> dict[str, dict[str, Any]]:
        """Copy of all stored definitions, keyed by canonical name."""
        return copy.deepcopy(self._schemes)

    def clear(self) -> None:
        self._schemes.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._schemes

    def __len__(self) -> int:
        return len(self._schemes)


def detect_security_hints(
    headers: dict[str, str],
    query: dict[str, str] | None = None,
    api_key_headers: list[str] | None = None,
    api_key_query_params: list[str] | None = None,
) -> list[SecurityHint]:
    """Derive security hints from request headers and query parameters.

    Args:
        headers: Request headers (any case)
        query: Query parameters
        api_key_headers: Header names that carry API keys
        api_key_query_params: Query parameter names that carry API keys

    Returns:
        Hints in detection order; empty when no credentials are visible
    """
    lowered = {name.lower(): value for name, value in headers.items()}
    hints: list[SecurityHint] = []

    for header in api_key_headers if api_key_headers is not None else ["x-api-key"]:
        if header.lower() in lowered:
            hints.append(SecurityHint(kind="apiKey", name=header.lower(), location="header"))
            break

    authorization = lowered.get("authorization", "").strip()
    if authorization:
        scheme = authorization.split(None, 1)[0].lower()
        if scheme == "bearer":
            hints.append(SecurityHint(kind="http", scheme="bearer"))
        elif scheme == "basic":
            hints.append(SecurityHint(kind="http", scheme="basic"))
        elif " " in authorization:
            hints.append(SecurityHint(kind="http", scheme=scheme))

    for param in api_key_query_params or []:
        if param in (query or {}):
            hints.append(SecurityHint(kind="apiKey", name=param, location="query"))
            break

    if hints:
        logger.debug("Detected security hints: %s", [h.kind for h in hints])
    return hints
