"""Merge schemas observed for the same slot across many exchanges.

The merged schema must accept every sample that produced an input schema,
both through ``accepts`` and once rendered as JSON Schema. It does not try
to be the tightest such schema.
"""

from .schema_inferrer import (
    ArraySchema,
    IntegerSchema,
    NumberSchema,
    ObjectSchema,
    OneOfSchema,
    SchemaNode,
    StringSchema,
    unique_schemas,
)


def merge_schemas(schemas: list[SchemaNode]) -> SchemaNode:
    """Combine schemas for one slot into a single schema.

    - No inputs: a generic object.
    - One input: returned unchanged.
    - All objects: property sets are unioned in first-seen order and shared
      properties merged recursively. Properties never become required.
    - Otherwise: structural duplicates are dropped (nested oneOf variants are
      flattened first) and variants of overlapping JSON types are combined.
      A single survivor is returned as is; several are wrapped in oneOf, in
      first-seen order.

    Args:
        schemas: Schemas previously inferred for the same slot, in arrival order

    Returns:
        Merged schema
    """
    if not schemas:
        return ObjectSchema()

    if len(schemas) == 1:
        return schemas[0]

    if all(isinstance(s, ObjectSchema) for s in schemas):
        return _merge_objects(schemas)

    flattened: list[SchemaNode] = []
    for schema in schemas:
        if isinstance(schema, OneOfSchema):
            flattened.extend(schema.variants)
        else:
            flattened.append(schema)

    variants = _disjoint_variants(unique_schemas(flattened))
    if len(variants) == 1:
        return variants[0]
    return OneOfSchema(tuple(variants), example=variants[0].example)


def _disjoint_variants(schemas: list[SchemaNode]) -> list[SchemaNode]:
    """Leave at most one variant per JSON type.

    A oneOf rejects values matching more than one branch, so integers are
    folded into number and same-typed variants are merged.
    """
    has_number = any(isinstance(s, NumberSchema) for s in schemas)
    groups: dict[str, list[SchemaNode]] = {}
    for schema in schemas:
        kind = schema.type_name
        if has_number and isinstance(schema, IntegerSchema):
            kind = NumberSchema.type_name
        groups.setdefault(kind, []).append(schema)

    return [_combine(kind, group) for kind, group in groups.items()]


def _combine(kind: str, group: list[SchemaNode]) -> SchemaNode:
    if len(group) == 1:
        return group[0]

    example = group[0].example
    if kind == ObjectSchema.type_name:
        return _merge_objects(group)
    if kind == ArraySchema.type_name:
        return ArraySchema(merge_schemas([s.items for s in group]), example=example)
    if kind == NumberSchema.type_name:
        return NumberSchema(example=example)
    if kind == StringSchema.type_name:
        return StringSchema(example=example)
    return group[0]


def _merge_objects(schemas: list[SchemaNode]) -> ObjectSchema:
    """Union the properties of object schemas."""
    all_props: dict[str, list[SchemaNode]] = {}
    for schema in schemas:
        for name, prop in schema.properties:
            all_props.setdefault(name, []).append(prop)

    properties = tuple((name, merge_schemas(props)) for name, props in all_props.items())
    return ObjectSchema(properties, example=schemas[0].example)
