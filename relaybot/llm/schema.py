"""
Tool schema translation.

Tool servers describe parameters in full JSON Schema. LLM function-calling
APIs accept a stricter subset: no ``additionalProperties``, no ``$schema``
marker, no ``default`` values and no unions. normalize() converts the
former into the latter.

The raw dict is first parsed into a small tagged form (object, array,
union, scalar) and then rendered back to a plain dict, so each construct
is handled in exactly one place.

Known limitation: unions (``anyOf`` / ``oneOf``) are collapsed by merging
the FIRST alternative into the parent schema. Later alternatives are
discarded. This is lossy, but the target dialect has no union type.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union

# Keys the target dialect rejects outright
UNSUPPORTED_KEYS = frozenset({"additionalProperties", "$schema", "default"})

# Union keywords, collapsed in this order
UNION_KEYS = ("anyOf", "oneOf")


@dataclass(frozen=True)
class ScalarSchema:
    """Any schema without properties, items or a union."""

    fields: dict[str, Any]


@dataclass(frozen=True)
class ObjectSchema:
    fields: dict[str, Any]
    properties: dict[str, SchemaNode]
    items: SchemaNode | list[SchemaNode] | None = None


@dataclass(frozen=True)
class ArraySchema:
    fields: dict[str, Any]
    items: SchemaNode | list[SchemaNode]


@dataclass(frozen=True)
class UnionSchema:
    """
    A schema carrying an ``anyOf`` / ``oneOf`` list.

    ``fields`` holds every other key of the schema, including a second
    union keyword if both are present.
    """

    fields: dict[str, Any]
    keyword: str
    alternatives: list[Any] = field(default_factory=list)


@dataclass(frozen=True)
class OpaqueSchema:
    """A non-mapping value (bool schema, None, malformed entry) kept as-is."""

    value: Any


SchemaNode = Union[ScalarSchema, ObjectSchema, ArraySchema, UnionSchema, OpaqueSchema]


def parse_schema(raw: Any) -> SchemaNode:
    """Parse a raw JSON-Schema-like value into its tagged form."""
    if not isinstance(raw, Mapping):
        return OpaqueSchema(raw)

    fields = {key: value for key, value in raw.items() if key not in UNSUPPORTED_KEYS}

    for keyword in UNION_KEYS:
        if keyword in fields:
            alternatives = fields.pop(keyword)
            if not isinstance(alternatives, list):
                alternatives = []
            return UnionSchema(fields=fields, keyword=keyword, alternatives=alternatives)

    properties = fields.get("properties")
    if isinstance(properties, Mapping):
        return ObjectSchema(
            fields=fields,
            properties={name: parse_schema(value) for name, value in properties.items()},
            items=_parse_items(fields.get("items")),
        )

    items = _parse_items(fields.get("items"))
    if items is not None:
        return ArraySchema(fields=fields, items=items)

    return ScalarSchema(fields=fields)


def _parse_items(items: Any) -> SchemaNode | list[SchemaNode] | None:
    if items is None:
        return None
    if isinstance(items, list):
        return [parse_schema(item) for item in items]
    return parse_schema(items)


def _render_items(items: SchemaNode | list[SchemaNode]) -> Any:
    if isinstance(items, list):
        return [render_schema(item) for item in items]
    return render_schema(items)


def render_schema(node: SchemaNode) -> Any:
    """Render a tagged schema into the target dialect's plain dict form."""
    if isinstance(node, OpaqueSchema):
        return node.value

    if isinstance(node, UnionSchema):
        merged = dict(node.fields)
        if node.alternatives and isinstance(node.alternatives[0], Mapping):
            # First alternative wins over the parent's own keys
            merged.update(node.alternatives[0])
        # The merged dict may reintroduce unsupported keys or another union
        return render_schema(parse_schema(merged))

    if isinstance(node, ObjectSchema):
        rendered = dict(node.fields)
        rendered["properties"] = {
            name: render_schema(child) for name, child in node.properties.items()
        }
        if node.items is not None:
            rendered["items"] = _render_items(node.items)
        return rendered

    if isinstance(node, ArraySchema):
        rendered = dict(node.fields)
        rendered["items"] = _render_items(node.items)
        return rendered

    return dict(node.fields)


def normalize(schema: Any) -> Any:
    """
    Convert a tool parameter schema into the LLM function-calling dialect.

    Strips unsupported keys, collapses unions to their first alternative and
    recurses into ``properties`` and ``items``. Non-mapping input (including
    None) is returned unchanged. The function is pure and idempotent.

    Example:
        >>> normalize({
        ...     "type": "object",
        ...     "additionalProperties": False,
        ...     "properties": {
        ...         "limit": {"anyOf": [{"type": "integer"}, {"type": "null"}], "default": 10},
        ...     },
        ... })
        {'type': 'object', 'properties': {'limit': {'type': 'integer'}}}
    """
    return render_schema(parse_schema(schema))
