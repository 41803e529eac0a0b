"""Generalize concrete request paths into parameterized templates.

Templating is positional: a purely numeric segment always becomes a
placeholder, even on its first sighting. Two different resources that share
a numeric position at the same depth therefore collapse into one template.
"""

import re

_NUMERIC_SEGMENT = re.compile(r"^\d+$")
_MARKED_SEGMENT = re.compile(r"^:(\w+)$")
_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class PathTemplater:
    """Turn request paths into OpenAPI path templates.

    - ``/users/123`` -> ``/users/{id}``
    - ``/users/:name`` -> ``/users/{name}``
    - ``/a/1/b/2`` -> ``/a/{id}/b/{id2}``
    - ``/users/{id}`` -> unchanged
    """

    def __init__(self, numeric_name: str = "id") -> None:
        """Initialize path templater.

        Args:
            numeric_name: Base placeholder name for numeric segments
        """
        self.numeric_name = numeric_name

    def template(self, path: str) -> str:
        """Return the templated form of ``path``."""
        path = path.split("?", 1)[0] or "/"
        if not path.startswith("/"):
            path = "/" + path

        segments = path.split("/")
        used = set(_PLACEHOLDER.findall(path))
        used.update(m.group(1) for m in map(_MARKED_SEGMENT.match, segments) if m)
        result = []

        for segment in segments:
            marked = _MARKED_SEGMENT.match(segment)
            if marked:
                result.append("{" + marked.group(1) + "}")
            elif _NUMERIC_SEGMENT.match(segment):
                name = self._next_name(used)
                used.add(name)
                result.append("{" + name + "}")
            else:
                result.append(segment)

        return "/".join(result)

    def _next_name(self, used: set[str]) -> str:
        if self.numeric_name not in used:
            return self.numeric_name
        index = 2
        while f"{self.numeric_name}{index}" in used:
            index += 1
        return f"{self.numeric_name}{index}"

    @staticmethod
    def parameters(templated_path: str) -> list[str]:
        """Placeholder names in a templated path, in order."""
        return _PLACEHOLDER.findall(templated_path)
