"""Schema inference from observed payloads.

- Shape inference for decoded JSON values
- Structural merging of schemas seen across calls
- Recovery of malformed or non-JSON content
"""

from .content_recovery import ContentRecovery, parse_json_lenient, repair_json_text
from .schema_inferrer import (
    ArraySchema,
    BooleanSchema,
    IntegerSchema,
    NullSchema,
    NumberSchema,
    ObjectSchema,
    OneOfSchema,
    SchemaInferrer,
    SchemaNode,
    StringSchema,
)
from .schema_merger import merge_schemas

__all__ = [
    "ArraySchema",
    "BooleanSchema",
    "ContentRecovery",
    "IntegerSchema",
    "NullSchema",
    "NumberSchema",
    "ObjectSchema",
    "OneOfSchema",
    "SchemaInferrer",
    "SchemaNode",
    "StringSchema",
    "merge_schemas",
    "parse_json_lenient",
    "repair_json_text",
]
