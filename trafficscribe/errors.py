"""Exception types raised by the traffic synthesis engine.

Data-shape anomalies are handled where they occur and degrade a single
schema or archive entry. Only integration errors propagate to callers.
"""


class ScribeError(Exception):
    """Base class for all trafficscribe errors."""


class UnsupportedSecurityKind(ScribeError, ValueError):
    """A security hint named an authentication kind the registry cannot model."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Unsupported security type: {kind}")
        self.kind = kind


class StorageUnavailable(ScribeError):
    """The persistence collaborator failed; the store keeps working in memory."""


class RecoverableInferenceFailure(ScribeError):
    """A payload could not be decoded or parsed strictly."""
