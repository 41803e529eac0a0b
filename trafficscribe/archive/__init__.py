"""HAR traffic archive."""

from .har_recorder import DeferredContent, HarEntry, HarRecorder

__all__ = [
    "DeferredContent",
    "HarEntry",
    "HarRecorder",
]
