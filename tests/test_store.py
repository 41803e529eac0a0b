"""End-to-end tests for the TrafficStore coordinator."""

import gzip
import json
import threading
from unittest import mock

import pytest
import yaml

from trafficscribe.archive import har_recorder
from trafficscribe.config import ScribeConfig
from trafficscribe.errors import ScribeError, StorageUnavailable, UnsupportedSecurityKind
from trafficscribe.exchange import ObservedExchange, RawBody, SecurityHint
from trafficscribe.store import TrafficStore


@pytest.fixture
def store():
    with TrafficStore.create(ScribeConfig(), target_url="https://api.example.com") as store:
        yield store


def _json_get(path, body, status=200, **kwargs):
    return ObservedExchange(
        method="GET",
        path=path,
        status=status,
        response_body=body,
        response_content_type="application/json",
        **kwargs,
    )


class TestScenarios:
    """Test the end-to-end behaviours of the engine."""

    def test_list_response_schema(self, store):
        """Test a list of objects documents array of typed object."""
        store.record_exchange(_json_get("/users", [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}]))

        schema = store.get_document()["paths"]["/users"]["get"]["responses"]["200"]["content"][
            "application/json"
        ]["schema"]
        assert schema == {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"id": {"type": "integer"}, "name": {"type": "string"}},
            },
        }

    def test_numeric_segments_collapse(self, store):
        """Test two concrete ids produce one templated path."""
        store.record_exchange(_json_get("/users/123", {"id": 123}))
        store.record_exchange(_json_get("/users/456", {"id": 456}))

        assert list(store.get_document()["paths"]) == ["/users/{id}"]
        assert len(store.endpoints) == 1

    def test_api_key_security(self, store):
        """Test an x-api-key header yields one apiKey scheme referenced by the operation."""
        store.record_exchange(_json_get("/secure", {"ok": True}, request_headers={"x-api-key": "abc"}))

        document = store.get_document()
        assert document["components"]["securitySchemes"] == {
            "apiKey": {"type": "apiKey", "name": "x-api-key", "in": "header"},
        }
        assert document["paths"]["/secure"]["get"]["security"] == [{"apiKey": []}]

    def test_request_bodies_merge(self, store):
        """Test request schemas gain properties absent from earlier samples."""
        for body in ({"name": "A"}, {"name": "B", "age": 1}):
            store.record_exchange(
                ObservedExchange(
                    method="POST",
                    path="/users",
                    status=201,
                    request_body=body,
                    request_content_type="application/json",
                ),
            )

        schema = store.get_document()["paths"]["/users"]["post"]["requestBody"]["content"][
            "application/json"
        ]["schema"]
        assert schema["properties"] == {"name": {"type": "string"}, "age": {"type": "integer"}}

    def test_archive_reads_decode_once(self, store):
        """Test two archive reads return one identical entry from a single decode."""
        store.record_exchange(
            ObservedExchange(
                method="GET",
                path="/users/1",
                response_body={"id": 1},
                response_content_type="application/json",
                response_raw=RawBody(gzip.compress(b'{"id": 1}'), "gzip"),
            ),
        )

        with mock.patch.object(har_recorder, "decode_payload", wraps=har_recorder.decode_payload) as spy:
            first = store.get_archive()
            second = store.get_archive()

        assert spy.call_count == 1
        assert len(first["log"]["entries"]) == len(second["log"]["entries"]) == 1
        text = first["log"]["entries"][0]["response"]["content"]["text"]
        assert text == second["log"]["entries"][0]["response"]["content"]["text"] == '{"id":1}'

    def test_malformed_body_recovers_to_object(self, store):
        """Test bare keys and single quotes still produce an object schema."""
        store.record_exchange(_json_get("/thing", "{id:1,name:'A'}"))

        schema = store.get_document()["paths"]["/thing"]["get"]["responses"]["200"]["content"][
            "application/json"
        ]["schema"]
        assert schema["type"] == "object"
        assert set(schema["properties"]) == {"id", "name"}


class TestLifecycle:
    """Test reset, target URL and disposal."""

    def test_reset_clears_everything(self, store):
        """Test reset forgets endpoints, schemes and archive entries."""
        store.record_exchange(_json_get("/secure", {"ok": True}, request_headers={"x-api-key": "k"}))
        store.reset()

        document = store.get_document()
        assert document["paths"] == {}
        assert document["components"]["securitySchemes"] == {}
        assert store.get_archive()["log"]["entries"] == []

    def test_set_target_base_url(self, store):
        """Test the target URL drives servers and archive URLs."""
        store.set_target_base_url("https://other.example.com")
        store.record_exchange(_json_get("/ping", {"ok": True}))

        assert store.get_document()["servers"] == [{"url": "https://other.example.com"}]
        assert store.get_archive()["log"]["entries"][0]["request"]["url"] == "https://other.example.com/ping"

    def test_config_target_url_is_default(self):
        """Test the configured target URL is used when none is given."""
        with TrafficStore(ScribeConfig(target_url="https://cfg.example.com")) as store:
            assert store.get_document()["servers"] == [{"url": "https://cfg.example.com"}]

    def test_record_after_dispose_fails(self):
        """Test a disposed store refuses new traffic."""
        store = TrafficStore.create()
        store.dispose()
        with pytest.raises(ScribeError):
            store.record_exchange(_json_get("/x", {}))

    def test_unsupported_security_is_archived_first(self, store):
        """Test an unknown security kind raises after the exchange is archived."""
        with pytest.raises(UnsupportedSecurityKind):
            store.record_exchange(_json_get("/x", {}, security=[SecurityHint(kind="magic")]))

        assert len(store.get_archive()["log"]["entries"]) == 1
        assert store.get_document()["paths"] == {}


class TestPathologicalTraffic:
    """Test malformed payloads degrade single entries without interrupting recording."""

    DEEP_ARRAY_TEXT = "[" * 5000 + "]" * 5000

    def test_deep_response_body_is_recorded(self, store):
        """Test a body nested past the parser limit still yields an operation."""
        store.record_exchange(_json_get("/deep", self.DEEP_ARRAY_TEXT))
        store.record_exchange(_json_get("/ok", {"id": 1}))

        paths = store.get_document()["paths"]
        assert paths["/deep"]["get"]["responses"]["200"]["content"]["application/json"]["schema"] == {
            "type": "array",
            "items": {"type": "object"},
        }
        assert "/ok" in paths

    def test_deep_raw_payload_does_not_poison_archive(self, store):
        """Test the archive renders every entry when one deferred payload cannot be normalised."""
        store.record_exchange(
            ObservedExchange(
                method="GET",
                path="/deep",
                response_content_type="application/json",
                response_raw=RawBody(gzip.compress(self.DEEP_ARRAY_TEXT.encode()), "gzip"),
            ),
        )
        store.record_exchange(_json_get("/ok", {"id": 1}))

        for _ in range(2):
            entries = store.get_archive()["log"]["entries"]
            assert [e["response"]["content"]["text"] for e in entries] == [self.DEEP_ARRAY_TEXT, '{"id":1}']


class TestText:
    """Test serialised document access."""

    def test_json_text(self, store):
        """Test JSON text matches the document."""
        store.record_exchange(_json_get("/a", {"x": 1}))
        assert json.loads(store.get_document_as_text("json")) == store.get_document()

    def test_yaml_text(self, store):
        """Test YAML text matches the document."""
        store.record_exchange(_json_get("/a", {"x": 1}))
        assert yaml.safe_load(store.get_document_as_text("yaml")) == store.get_document()

    def test_unknown_format(self, store):
        """Test unknown formats raise ValueError."""
        with pytest.raises(ValueError):
            store.get_document_as_text("toml")


class TestConcurrency:
    """Test recording from many threads."""

    def test_parallel_recording(self, store):
        """Test concurrent exchanges are all archived and merged."""

        def worker(n):
            for i in range(20):
                store.record_exchange(_json_get(f"/items/{n * 100 + i}", {"id": i, f"f{n}": True}))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store.get_archive()["log"]["entries"]) == 80
        schema = store.get_document()["paths"]["/items/{id}"]["get"]["responses"]["200"]["content"][
            "application/json"
        ]["schema"]
        assert set(schema["properties"]) == {"id", "f0", "f1", "f2", "f3"}


class TestStorageFailures:
    """Test degraded behaviour when storage fails."""

    def test_init_failure_falls_back_to_memory(self):
        """Test a failing storage init leaves a working in-memory store."""
        storage = mock.Mock()
        storage.init.side_effect = StorageUnavailable("disk gone")

        with TrafficStore.create(storage=storage) as store:
            store.record_exchange(_json_get("/a", {"x": 1}))
            assert store.storage is None
            assert "/a" in store.get_document()["paths"]

    def test_write_failure_does_not_block_recording(self):
        """Test failed writes are logged and recording carries on."""
        storage = mock.Mock()
        storage.load_entries.return_value = []
        storage.load_endpoints.return_value = []
        storage.load_security_schemes.return_value = {}
        storage.save_entry.side_effect = StorageUnavailable("read-only")

        with TrafficStore.create(storage=storage) as store:
            record = store.record_exchange(_json_get("/a", {"x": 1}))
            assert record.path == "/a"
            assert len(store.get_archive()["log"]["entries"]) == 1
        storage.close.assert_called_once()
