"""Coordinator owning all accumulated traffic state.

Every observed exchange is appended to the archive and folded into the
endpoint registry while a single lock is held, so concurrent transports
cannot interleave mid-merge. Persistence runs after the lock is released
and never interrupts recording.
"""

import logging
import threading
from typing import Any

from .archive.har_recorder import HarEntry, HarRecorder
from .config import ScribeConfig
from .document import DocumentAssembler
from .errors import ScribeError, StorageUnavailable, UnsupportedSecurityKind
from .exchange import ObservedExchange
from .registry.endpoint_registry import EndpointRecord, EndpointRegistry
from .storage import StorageAdapter

logger = logging.getLogger(__name__)


class TrafficStore:
    """Owns the endpoint registry, security registry and traffic archive.

    Lifecycle: ``TrafficStore.create(...)`` (or the constructor), use it
    directly or as a context manager, then ``dispose()``. ``reset()`` clears
    all accumulated state without ending the lifecycle.
    """

    def __init__(
        self,
        config: ScribeConfig | None = None,
        storage: StorageAdapter | None = None,
        target_url: str | None = None,
    ) -> None:
        """Initialize an in-memory store.

        Args:
            config: Engine configuration (defaults when omitted)
            storage: Optional persistence collaborator; call ``open_storage``
                or use ``create`` to initialise it
            target_url: Base URL of the proxied API (overrides the config)
        """
        self.config = config or ScribeConfig()
        self.target_url = target_url or self.config.target_url
        self.endpoints = EndpointRegistry(self.config)
        self.archive = HarRecorder(self.config)
        self.archive.set_target_base_url(self.target_url)
        self.assembler = DocumentAssembler(self.config)
        self.storage = storage
        self._restored: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = threading.RLock()
        self._disposed = False

    @classmethod
    def create(
        cls,
        config: ScribeConfig | None = None,
        storage: StorageAdapter | None = None,
        target_url: str | None = None,
    ) -> "TrafficStore":
        """Build a store and restore any persisted state."""
        store = cls(config=config, storage=storage, target_url=target_url)
        store.open_storage()
        return store

    def open_storage(self) -> None:
        """Initialise the storage collaborator and reload what it holds.

        On failure the store drops the collaborator and stays in memory.
        """
        if self.storage is None:
            return

        try:
            self.storage.init()
            entries = self.storage.load_entries()
            endpoints = self.storage.load_endpoints()
            schemes = self.storage.load_security_schemes()
        except StorageUnavailable as e:
            logger.warning("Storage unavailable, continuing in memory: %s", e)
            self.storage = None
            return

        with self._lock:
            for data in entries:
                self.archive.add(HarEntry.from_dict(data))
            for path, method, operation in endpoints:
                self._restored[(method.lower(), path)] = operation
            for name, scheme in schemes.items():
                try:
                    self.endpoints.security.restore(name, scheme)
                except UnsupportedSecurityKind:
                    logger.warning("Skipping stored security scheme of unknown kind %s", name)

        logger.info(
            "Restored %d archive entries, %d endpoints and %d security schemes",
            len(entries),
            len(endpoints),
            len(schemes),
        )

    def record_exchange(self, exchange: ObservedExchange) -> EndpointRecord:
        """Archive an exchange and fold it into the API contract.

        The archive record is written first, so an exchange whose contract
        update fails still leaves a trace.

        Raises:
            UnsupportedSecurityKind: if the exchange carries an unknown hint kind
        """
        self._check_open()
        operation = None
        schemes: dict[str, dict[str, Any]] = {}

        with self._lock:
            entry = self.archive.append(exchange)
            record = self.endpoints.record_exchange(exchange)
            self._restored.pop(record.key, None)
            if self.storage is not None:
                operation = self.assembler.render_operation(record)
                defined = self.endpoints.security.schemes()
                schemes = {name: defined[name] for name in record.security if name in defined}

        if self.storage is not None and operation is not None:
            self._persist(entry, record, operation, schemes)

        return record

    def _persist(
        self,
        entry: HarEntry,
        record: EndpointRecord,
        operation: dict[str, Any],
        schemes: dict[str, dict[str, Any]],
    ) -> None:
        try:
            self.storage.save_entry(entry.to_dict())
            for name, scheme in schemes.items():
                self.storage.upsert_security_scheme(name, scheme)
            self.storage.upsert_endpoint(record.path, record.method, operation)
        except StorageUnavailable as e:
            logger.warning("Storage write failed for %s %s: %s", record.method, record.path, e)

    def get_document(self) -> dict[str, Any]:
        """Current OpenAPI document."""
        with self._lock:
            return self.assembler.assemble(self.endpoints, self.target_url, self._restored)

    def get_document_as_text(self, fmt: str = "json") -> str:
        """Current OpenAPI document serialised as ``json`` or ``yaml``."""
        return self.assembler.to_text(self.get_document(), fmt)

    def get_archive(self) -> dict[str, Any]:
        """Current HAR log; deferred payloads are decoded on first read."""
        return self.archive.to_har()

    def set_target_base_url(self, url: str) -> None:
        with self._lock:
            self.target_url = url
            self.archive.set_target_base_url(url)

    def reset(self) -> None:
        """Forget every endpoint, security scheme and archive entry."""
        with self._lock:
            self.endpoints.clear()
            self.archive.clear()
            self._restored.clear()

        if self.storage is not None:
            try:
                self.storage.clear()
            except StorageUnavailable as e:
                logger.warning("Could not clear storage: %s", e)

    def dispose(self) -> None:
        """Release the storage collaborator; the store cannot record afterwards."""
        if self._disposed:
            return
        self._disposed = True
        if self.storage is not None:
            self.storage.close()

    def _check_open(self) -> None:
        if self._disposed:
            raise ScribeError("TrafficStore has been disposed")

    def __enter__(self) -> "TrafficStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()
