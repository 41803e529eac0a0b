"""Unit tests for per-endpoint contract accumulation."""

import pytest

from trafficscribe.config import ScribeConfig
from trafficscribe.errors import UnsupportedSecurityKind
from trafficscribe.exchange import ObservedExchange, SecurityHint
from trafficscribe.inference.schema_inferrer import (
    ArraySchema,
    IntegerSchema,
    ObjectSchema,
    OneOfSchema,
    StringSchema,
)
from trafficscribe.registry.endpoint_registry import EndpointRegistry


@pytest.fixture
def registry():
    return EndpointRegistry(ScribeConfig())


def _get(path, body=None, status=200, **kwargs):
    return ObservedExchange(
        method="GET",
        path=path,
        status=status,
        response_body=body,
        response_content_type="application/json",
        **kwargs,
    )


class TestEndpointIdentity:
    """Test how exchanges map onto endpoint records."""

    def test_numeric_segments_share_one_record(self, registry):
        """Test paths differing only in a numeric segment share a record."""
        registry.record_exchange(_get("/users/123", {"id": 123}))
        registry.record_exchange(_get("/users/456", {"id": 456}))
        assert len(registry) == 1
        assert registry.records()[0].path == "/users/{id}"

    def test_method_is_part_of_identity(self, registry):
        """Test different methods on one path are different records."""
        registry.record_exchange(_get("/users"))
        registry.record_exchange(ObservedExchange(method="POST", path="/users", status=201))
        assert [r.key for r in registry.records()] == [("get", "/users"), ("post", "/users")]

    def test_lookup_by_concrete_path(self, registry):
        """Test get accepts concrete paths and any method case."""
        registry.record_exchange(_get("/users/1"))
        assert registry.get("GET", "/users/99") is registry.records()[0]
        assert registry.get("delete", "/users/1") is None


class TestParameters:
    """Test parameter accumulation."""

    def test_path_parameter_required(self, registry):
        """Test placeholders become required path parameters."""
        record = registry.record_exchange(_get("/users/7"))
        assert record.parameters[0].to_dict() == {
            "name": "id",
            "in": "path",
            "schema": {"type": "string"},
            "required": True,
        }

    def test_query_and_header_parameters(self, registry):
        """Test query and header parameters are recorded with examples."""
        record = registry.record_exchange(
            _get("/search", query={"q": "cats"}, request_headers={"X-Trace": "t1", "Host": "h"}),
        )
        params = {(p.name, p.location): p for p in record.parameters}
        assert params[("q", "query")].example == "cats"
        assert params[("x-trace", "header")].example == "t1"
        assert ("host", "header") not in params

    def test_credentials_not_recorded_as_parameters(self, registry):
        """Test credential headers and query keys stay out of the parameter list."""
        record = registry.record_exchange(
            _get(
                "/secure",
                query={"api_key": "secret-q", "page": "2"},
                request_headers={"Authorization": "Bearer secret-t", "X-API-Key": "secret-k", "X-Trace": "t"},
            ),
        )
        params = {(p.name, p.location) for p in record.parameters}
        assert params == {("page", "query"), ("x-trace", "header")}
        assert all("secret" not in str(p.example) for p in record.parameters)
        assert record.security == ["apiKey", "http"]

    def test_first_parameter_sighting_wins(self, registry):
        """Test repeated parameters keep the first example and are not duplicated."""
        registry.record_exchange(_get("/search", query={"q": "a"}))
        record = registry.record_exchange(_get("/search", query={"q": "b"}))
        assert [(p.name, p.example) for p in record.parameters] == [("q", "a")]


class TestResponses:
    """Test response schema accumulation."""

    def test_array_of_objects(self, registry):
        """Test a list response yields array of object with typed properties."""
        record = registry.record_exchange(_get("/users", [{"id": 1, "name": "A"}, {"id": 2, "name": "B"}]))
        schema = record.responses[200].content["application/json"]
        assert schema == ArraySchema(ObjectSchema((("id", IntegerSchema()), ("name", StringSchema()))))

    def test_responses_merge_across_history(self, registry):
        """Test later samples merge into the schema for the same slot."""
        registry.record_exchange(_get("/users/1", {"id": 1}))
        registry.record_exchange(_get("/users/2", {"id": 2, "email": "x"}))
        record = registry.record_exchange(_get("/users/3", {"id": 3}))
        schema = record.responses[200].content["application/json"]
        assert schema.property_map == {"id": IntegerSchema(), "email": StringSchema()}

    def test_status_codes_are_separate(self, registry):
        """Test each status code keeps its own schema."""
        registry.record_exchange(_get("/users/1", {"id": 1}))
        record = registry.record_exchange(_get("/users/2", {"error": "nope"}, status=404))
        assert set(record.responses) == {200, 404}
        assert "error" in record.responses[404].content["application/json"].property_map

    def test_content_types_are_separate(self, registry):
        """Test each content type within a status keeps its own schema."""
        registry.record_exchange(_get("/report", {"rows": 1}))
        record = registry.record_exchange(
            ObservedExchange(
                method="GET",
                path="/report",
                response_body="a,b\n1,2",
                response_content_type="text/csv; charset=utf-8",
            ),
        )
        assert set(record.responses[200].content) == {"application/json", "text/csv"}

    def test_heterogeneous_responses_become_one_of(self, registry):
        """Test differently-shaped bodies for one slot merge to oneOf."""
        registry.record_exchange(_get("/value", {"v": 1}))
        record = registry.record_exchange(_get("/value", [1, 2]))
        assert isinstance(record.responses[200].content["application/json"], OneOfSchema)

    def test_empty_response_still_listed(self, registry):
        """Test a bodiless response is recorded without content."""
        record = registry.record_exchange(
            ObservedExchange(method="DELETE", path="/users/1", status=204),
        )
        assert record.responses[204].content == {}

    def test_response_headers_last_write_wins(self, registry):
        """Test response header examples keep the latest value."""
        registry.record_exchange(_get("/a", response_headers={"X-Rate": "10"}))
        record = registry.record_exchange(_get("/a", response_headers={"x-rate": "9"}))
        assert record.responses[200].headers == {"x-rate": "9"}


class TestRequestBodies:
    """Test request body accumulation."""

    def _post(self, body):
        return ObservedExchange(
            method="POST",
            path="/users",
            status=201,
            request_body=body,
            request_content_type="application/json",
        )

    def test_merge_policy_unions_properties(self, registry):
        """Test request schemas merge properties absent from earlier samples."""
        registry.record_exchange(self._post({"name": "A"}))
        record = registry.record_exchange(self._post({"name": "B", "age": 1}))
        schema = record.request_body["application/json"]
        assert schema.property_map == {"name": StringSchema(), "age": IntegerSchema()}

    def test_first_policy_keeps_first_body(self):
        """Test the first policy ignores later request bodies."""
        registry = EndpointRegistry(ScribeConfig(request_body_policy="first"))
        registry.record_exchange(self._post({"name": "A"}))
        record = registry.record_exchange(self._post({"name": "B", "age": 1}))
        assert record.request_body["application/json"].property_map == {"name": StringSchema()}

    def test_empty_body_ignored(self, registry):
        """Test empty request bodies do not produce a schema."""
        record = registry.record_exchange(self._post(""))
        assert record.request_body == {}

    def test_read_only_methods_ignore_bodies(self, registry):
        """Test GET bodies are not documented."""
        record = registry.record_exchange(_get("/users", request_body={"q": 1}))
        assert record.request_body == {}


class TestSecurity:
    """Test security references on endpoints."""

    def test_detected_api_key(self, registry):
        """Test a detected API key header is registered and referenced."""
        record = registry.record_exchange(_get("/secure", request_headers={"x-api-key": "abc"}))
        assert record.security == ["apiKey"]
        assert registry.security.schemes() == {
            "apiKey": {"type": "apiKey", "name": "x-api-key", "in": "header"},
        }

    def test_explicit_hints_replace_detection(self, registry):
        """Test explicit hints are used instead of header detection."""
        record = registry.record_exchange(
            _get("/secure", request_headers={"x-api-key": "abc"}, security=[SecurityHint(kind="oauth2")]),
        )
        assert record.security == ["oauth2"]
        assert "apiKey" not in registry.security

    def test_security_attached_once(self, registry):
        """Test repeated detections do not duplicate references."""
        registry.record_exchange(_get("/secure", request_headers={"x-api-key": "a"}))
        record = registry.record_exchange(_get("/secure", request_headers={"x-api-key": "b"}))
        assert record.security == ["apiKey"]

    def test_unsupported_hint_leaves_no_partial_record(self, registry):
        """Test an unknown hint kind fails before anything is recorded."""
        with pytest.raises(UnsupportedSecurityKind):
            registry.record_exchange(_get("/secure", security=[SecurityHint(kind="magic")]))
        assert len(registry) == 0

    def test_clear(self, registry):
        """Test clear forgets records and schemes."""
        registry.record_exchange(_get("/secure", request_headers={"x-api-key": "a"}))
        registry.clear()
        assert len(registry) == 0
        assert len(registry.security) == 0
