"""Configuration for the traffic synthesis engine.

Reads ``config/scribe.yaml`` (or an explicit path) and falls back to
built-in defaults for anything missing, so the engine always starts.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "scribe.yaml"
TARGET_URL_ENV = "TRAFFICSCRIBE_TARGET_URL"

REQUEST_BODY_POLICIES = ("merge", "first")


@dataclass
class ScribeConfig:
    """Settings shared by the registries, the archive and the document."""

    target_url: str = "http://localhost:8080"
    title: str = "Generated API Documentation"
    description: str = "Automatically generated API documentation from proxy traffic"
    api_version: str = "1.0.0"
    openapi_version: str = "3.1.0"
    include_examples: bool = False
    request_body_policy: str = "merge"
    api_key_headers: list[str] = field(
        default_factory=lambda: ["x-api-key", "api-key", "x-auth-token"],
    )
    api_key_query_params: list[str] = field(default_factory=lambda: ["api_key", "apikey"])
    ignored_request_headers: list[str] = field(
        default_factory=lambda: [
            "host",
            "connection",
            "content-length",
            "transfer-encoding",
            "keep-alive",
            "upgrade",
            "proxy-connection",
        ],
    )
    creator_name: str = "trafficscribe"
    creator_version: str = "1.0.0"

    def __post_init__(self) -> None:
        if self.request_body_policy not in REQUEST_BODY_POLICIES:
            raise ValueError(
                f"request_body_policy must be one of {REQUEST_BODY_POLICIES}, "
                f"got {self.request_body_policy!r}",
            )
        self.api_key_headers = [h.lower() for h in self.api_key_headers]
        self.ignored_request_headers = [h.lower() for h in self.ignored_request_headers]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScribeConfig":
        """Build a config from a mapping, ignoring unknown keys.

        Accepts either the settings themselves or a mapping nesting them
        under a ``trafficscribe`` key.
        """
        data = data.get("trafficscribe", data)
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown configuration keys: %s", ", ".join(unknown))
        return cls(**{k: v for k, v in data.items() if k in known})


def load_config(config_path: Path | None = None) -> ScribeConfig:
    """Load configuration from YAML, applying environment overrides.

    Args:
        config_path: YAML file to read. Defaults to config/scribe.yaml.

    Returns:
        ScribeConfig populated from the file, or defaults when the file is
        missing or unparseable.
    """
    config_path = config_path or DEFAULT_CONFIG_PATH
    data: dict[str, Any] = {}

    try:
        with config_path.open() as f:
            data = yaml.safe_load(f) or {}
            logger.info("Loaded configuration from %s", config_path)
    except FileNotFoundError:
        logger.warning("Config file not found: %s. Using defaults.", config_path)
    except yaml.YAMLError:
        logger.exception("Error parsing configuration")

    config = ScribeConfig.from_dict(data) if isinstance(data, dict) else ScribeConfig()

    target_url = os.environ.get(TARGET_URL_ENV)
    if target_url:
        config.target_url = target_url

    return config
