"""Unit tests for request path templating."""

import pytest

from trafficscribe.registry.path_templater import PathTemplater


@pytest.fixture
def templater():
    return PathTemplater()


class TestTemplate:
    """Test generalisation of concrete paths."""

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/users", "/users"),
            ("/users/123", "/users/{id}"),
            ("/users/:name", "/users/{name}"),
            ("/users/123/posts/9", "/users/{id}/posts/{id2}"),
            ("/v1/users", "/v1/users"),
            ("/", "/"),
        ],
    )
    def test_template(self, templater, path, expected):
        """Test numeric and marked segments become placeholders."""
        assert templater.template(path) == expected

    def test_query_string_is_dropped(self, templater):
        """Test query strings never reach the template."""
        assert templater.template("/users/5?expand=true") == "/users/{id}"

    def test_leading_slash_added(self, templater):
        """Test relative paths are anchored at the root."""
        assert templater.template("users/5") == "/users/{id}"

    def test_marked_id_does_not_collide(self, templater):
        """Test an explicit :id keeps its name and numbers take the next one."""
        assert templater.template("/orgs/42/users/:id") == "/orgs/{id2}/users/{id}"

    @pytest.mark.parametrize(
        "path",
        ["/users/{id}", "/users/{id}/posts/{id2}", "/a/{name}/b", "/orgs/:org/7"],
    )
    def test_idempotent(self, templater, path):
        """Test templating an already-templated path is a no-op."""
        once = templater.template(path)
        assert templater.template(once) == once

    def test_custom_numeric_name(self):
        """Test the numeric placeholder name is configurable."""
        assert PathTemplater(numeric_name="n").template("/x/1/y/2") == "/x/{n}/y/{n2}"


class TestParameters:
    """Test placeholder extraction."""

    def test_parameters_in_order(self):
        """Test placeholder names are returned in path order."""
        assert PathTemplater.parameters("/a/{id}/b/{name}") == ["id", "name"]

    def test_no_parameters(self):
        """Test static paths have no parameters."""
        assert PathTemplater.parameters("/health") == []
