"""Structural schema inference from observed payload values.

Turns one decoded value into a SchemaNode:
- Type detection (null, boolean, integer, number, string, array, object)
- Integer vs number by whole-value test, independent of magnitude
- Arrays of objects sampled from their first member
- Heterogeneous arrays expressed as oneOf
"""

import math
from dataclasses import dataclass, field
from typing import Any, ClassVar

from ..errors import RecoverableInferenceFailure

_JSON_NATIVE = (type(None), bool, int, float, str, list, tuple, dict)

MAX_DEPTH = 64


@dataclass(frozen=True)
class SchemaNode:
    """Base of the closed set of schema variants.

    Nodes are immutable and compare structurally. The observed ``example``
    is carried along for rendering but never takes part in equality.
    """

    type_name: ClassVar[str] = ""

    example: Any = field(default=None, compare=False, repr=False, kw_only=True)

    def accepts(self, value: Any) -> bool:
        """Return True when ``value`` satisfies this schema."""
        raise NotImplementedError

    def to_json_schema(self, include_examples: bool = False) -> dict[str, Any]:
        """Render as an OpenAPI 3.1 schema object."""
        schema: dict[str, Any] = {"type": self.type_name}
        if include_examples and self.example is not None:
            schema["example"] = self.example
        return schema


@dataclass(frozen=True)
class NullSchema(SchemaNode):
    type_name: ClassVar[str] = "null"

    def accepts(self, value: Any) -> bool:
        return value is None


@dataclass(frozen=True)
class BooleanSchema(SchemaNode):
    type_name: ClassVar[str] = "boolean"

    def accepts(self, value: Any) -> bool:
        return isinstance(value, bool)


@dataclass(frozen=True)
class IntegerSchema(SchemaNode):
    type_name: ClassVar[str] = "integer"

    def accepts(self, value: Any) -> bool:
        return is_number(value) and is_whole(value)


@dataclass(frozen=True)
class NumberSchema(SchemaNode):
    type_name: ClassVar[str] = "number"

    def accepts(self, value: Any) -> bool:
        return is_number(value)


@dataclass(frozen=True)
class StringSchema(SchemaNode):
    """String values, and the fallback for anything unrepresentable.

    ``unstructured`` marks text that looked like structured data but could
    not be recovered into a better shape.
    """

    type_name: ClassVar[str] = "string"

    format: str | None = None
    unstructured: bool = False

    def accepts(self, value: Any) -> bool:
        return isinstance(value, (str, bytes)) or not isinstance(value, _JSON_NATIVE)

    def to_json_schema(self, include_examples: bool = False) -> dict[str, Any]:
        schema = super().to_json_schema(include_examples)
        if self.format:
            schema["format"] = self.format
        if self.unstructured:
            schema["x-unstructured"] = True
        return schema


@dataclass(frozen=True)
class ArraySchema(SchemaNode):
    type_name: ClassVar[str] = "array"

    items: SchemaNode = field(default_factory=lambda: ObjectSchema())

    def accepts(self, value: Any) -> bool:
        return isinstance(value, (list, tuple)) and all(self.items.accepts(v) for v in value)

    def to_json_schema(self, include_examples: bool = False) -> dict[str, Any]:
        schema = super().to_json_schema(include_examples)
        schema["items"] = self.items.to_json_schema(include_examples)
        return schema


@dataclass(frozen=True, eq=False)
class ObjectSchema(SchemaNode):
    """Object with ordered named properties.

    Properties are never required: a sample that omits one still conforms,
    and properties not described here are allowed.
    """

    type_name: ClassVar[str] = "object"

    properties: tuple[tuple[str, SchemaNode], ...] = ()

    @property
    def property_map(self) -> dict[str, SchemaNode]:
        return dict(self.properties)

    def __eq__(self, other: object) -> bool:
        # Property order does not affect equality
        if type(other) is not ObjectSchema:
            return NotImplemented
        return frozenset(self.properties) == frozenset(other.properties)

    def __hash__(self) -> int:
        return hash(frozenset(self.properties))

    def accepts(self, value: Any) -> bool:
        if not isinstance(value, dict):
            return False
        return all(
            node.accepts(value[name]) for name, node in self.properties if name in value
        )

    def to_json_schema(self, include_examples: bool = False) -> dict[str, Any]:
        schema = super().to_json_schema(include_examples)
        if self.properties:
            schema["properties"] = {
                name: node.to_json_schema(include_examples) for name, node in self.properties
            }
        return schema


@dataclass(frozen=True, eq=False)
class OneOfSchema(SchemaNode):
    type_name: ClassVar[str] = "oneOf"

    variants: tuple[SchemaNode, ...] = ()

    def __eq__(self, other: object) -> bool:
        if type(other) is not OneOfSchema:
            return NotImplemented
        return frozenset(self.variants) == frozenset(other.variants)

    def __hash__(self) -> int:
        return hash(frozenset(self.variants))

    def accepts(self, value: Any) -> bool:
        return any(v.accepts(value) for v in self.variants)

    def to_json_schema(self, include_examples: bool = False) -> dict[str, Any]:
        return {"oneOf": [v.to_json_schema(include_examples) for v in self.variants]}


def is_number(value: Any) -> bool:
    """True for ints and floats, excluding booleans."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_whole(value: int | float) -> bool:
    """True when a numeric value has no fractional part."""
    if isinstance(value, int):
        return True
    return math.isfinite(value) and value.is_integer()


def unique_schemas(schemas: list[SchemaNode]) -> list[SchemaNode]:
    """Drop structural duplicates, keeping first-seen order."""
    unique: list[SchemaNode] = []
    for schema in schemas:
        if schema not in unique:
            unique.append(schema)
    return unique


class SchemaInferrer:
    """Infer a SchemaNode from one decoded value.

    Pure and stateless; a single instance can be shared freely.
    """

    def __init__(self, max_depth: int = MAX_DEPTH) -> None:
        self.max_depth = max_depth

    def infer(self, data: Any) -> SchemaNode:
        """Infer schema from data.

        Args:
            data: Decoded payload value (JSON types, or anything else)

        Returns:
            SchemaNode describing the value

        Raises:
            RecoverableInferenceFailure: if containers nest deeper than max_depth
        """
        return self._infer_value(data, 0)

    def _infer_value(self, value: Any, depth: int) -> SchemaNode:
        if value is None:
            return NullSchema()

        if isinstance(value, bool):
            return BooleanSchema(example=value)

        if is_number(value):
            if is_whole(value):
                return IntegerSchema(example=value)
            return NumberSchema(example=value)

        if isinstance(value, str):
            return StringSchema(example=value)

        if isinstance(value, (list, tuple, dict)) and depth >= self.max_depth:
            raise RecoverableInferenceFailure(f"Value nests deeper than {self.max_depth} levels")

        if isinstance(value, (list, tuple)):
            return self._infer_array(list(value), depth + 1)

        if isinstance(value, dict):
            return self._infer_object(value, depth + 1)

        # Unknown type, treat as string
        return StringSchema(example=str(value))

    def _infer_array(self, value: list, depth: int) -> SchemaNode:
        # schema_merger imports this module
        from .schema_merger import merge_schemas

        if not value:
            return ArraySchema(ObjectSchema(), example=value)

        # Representative sampling: object members are described by the first one
        if all(isinstance(item, dict) for item in value):
            return ArraySchema(self._infer_value(value[0], depth), example=value)

        if all(is_number(item) for item in value):
            if all(is_whole(item) for item in value):
                return ArraySchema(IntegerSchema(example=value[0]), example=value)
            return ArraySchema(NumberSchema(example=value[0]), example=value)

        item_schemas = unique_schemas([self._infer_value(item, depth) for item in value])
        return ArraySchema(merge_schemas(item_schemas), example=value)

    def _infer_object(self, value: dict, depth: int) -> ObjectSchema:
        properties = tuple((str(key), self._infer_value(val, depth)) for key, val in value.items())
        return ObjectSchema(properties, example=value)
