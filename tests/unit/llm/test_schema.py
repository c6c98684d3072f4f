"""
Unit tests for tool schema normalization.

Tests cover:
- Stripping of keys the LLM dialect rejects
- Union collapsing (first alternative wins)
- Recursion into properties and items
- Pass-through of non-mapping input
- Idempotence and purity
"""

import copy

import pytest

from relaybot.llm.schema import (
    ArraySchema,
    ObjectSchema,
    OpaqueSchema,
    ScalarSchema,
    UnionSchema,
    normalize,
    parse_schema,
)


GMAIL_SEARCH_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "query": {"type": "string", "description": "Gmail search query"},
        "max_results": {
            "anyOf": [{"type": "integer"}, {"type": "null"}],
            "default": 10,
            "description": "Maximum messages to return",
        },
        "labels": {
            "type": "array",
            "items": {"type": "string", "default": "INBOX"},
            "default": [],
        },
        "filter": {
            "type": "object",
            "additionalProperties": True,
            "properties": {
                "unread": {"type": "boolean", "default": True},
            },
        },
    },
    "required": ["query"],
}


class TestParseSchema:
    """The raw dict is classified into one tagged variant."""

    def test_object(self):
        assert isinstance(parse_schema({"type": "object", "properties": {}}), ObjectSchema)

    def test_array(self):
        assert isinstance(parse_schema({"type": "array", "items": {"type": "string"}}), ArraySchema)

    def test_union(self):
        node = parse_schema({"oneOf": [{"type": "string"}]})
        assert isinstance(node, UnionSchema)
        assert node.keyword == "oneOf"

    def test_scalar(self):
        assert isinstance(parse_schema({"type": "string"}), ScalarSchema)

    def test_non_mapping(self):
        assert isinstance(parse_schema(None), OpaqueSchema)


class TestStripUnsupportedKeys:
    def test_removes_top_level_keys(self):
        result = normalize(GMAIL_SEARCH_SCHEMA)
        assert "$schema" not in result
        assert "additionalProperties" not in result

    def test_removes_default_from_nested_property(self):
        result = normalize(GMAIL_SEARCH_SCHEMA)
        assert "default" not in result["properties"]["filter"]["properties"]["unread"]
        assert "additionalProperties" not in result["properties"]["filter"]

    def test_removes_default_from_array_items(self):
        result = normalize(GMAIL_SEARCH_SCHEMA)
        assert result["properties"]["labels"] == {"type": "array", "items": {"type": "string"}}

    def test_keeps_supported_keys(self):
        result = normalize(GMAIL_SEARCH_SCHEMA)
        assert result["type"] == "object"
        assert result["required"] == ["query"]
        assert result["properties"]["query"] == {
            "type": "string",
            "description": "Gmail search query",
        }

    def test_property_named_like_unsupported_key_survives(self):
        """Only schema keywords are stripped, not parameter names."""
        schema = {"type": "object", "properties": {"default": {"type": "string"}}}
        assert normalize(schema)["properties"] == {"default": {"type": "string"}}


class TestUnionCollapsing:
    def test_any_of_takes_first_alternative(self):
        result = normalize({"anyOf": [{"type": "integer"}, {"type": "null"}]})
        assert result == {"type": "integer"}

    def test_one_of_takes_first_alternative(self):
        result = normalize({"oneOf": [{"type": "string", "format": "email"}, {"type": "integer"}]})
        assert result == {"type": "string", "format": "email"}

    def test_merges_first_alternative_into_parent(self):
        result = normalize(GMAIL_SEARCH_SCHEMA)["properties"]["max_results"]
        assert result == {"type": "integer", "description": "Maximum messages to return"}
        assert "anyOf" not in result

    def test_alternative_overrides_parent_keys(self):
        result = normalize({"type": "string", "anyOf": [{"type": "number"}]})
        assert result == {"type": "number"}

    def test_alternative_fields_are_normalized(self):
        schema = {
            "anyOf": [
                {
                    "type": "object",
                    "additionalProperties": False,
                    "default": {},
                    "properties": {"id": {"type": "string", "default": ""}},
                }
            ]
        }
        assert normalize(schema) == {"type": "object", "properties": {"id": {"type": "string"}}}

    def test_both_union_keywords_are_collapsed(self):
        schema = {
            "anyOf": [{"description": "from anyOf"}],
            "oneOf": [{"type": "boolean"}],
        }
        result = normalize(schema)
        assert result == {"description": "from anyOf", "type": "boolean"}

    def test_empty_alternative_list_is_dropped(self):
        assert normalize({"type": "string", "anyOf": []}) == {"type": "string"}

    def test_union_inside_array_items(self):
        schema = {"type": "array", "items": {"oneOf": [{"type": "string"}, {"type": "integer"}]}}
        assert normalize(schema) == {"type": "array", "items": {"type": "string"}}


class TestPassThrough:
    @pytest.mark.parametrize("value", [None, True, "string", 42, ["a", "b"]])
    def test_non_mapping_input_returned_unchanged(self, value):
        assert normalize(value) == value

    def test_tuple_items_normalized_individually(self):
        schema = {"type": "array", "items": [{"type": "string", "default": "x"}, {"type": "integer"}]}
        assert normalize(schema)["items"] == [{"type": "string"}, {"type": "integer"}]

    def test_empty_schema(self):
        assert normalize({}) == {}


class TestNormalizeProperties:
    @pytest.mark.parametrize(
        "schema",
        [
            GMAIL_SEARCH_SCHEMA,
            {"anyOf": [{"anyOf": [{"type": "string", "default": "a"}]}]},
            {"type": "object", "properties": {"x": {"oneOf": [{"type": "array", "items": {"default": 1}}]}}},
            {"type": "string", "anyOf": [], "oneOf": [{"default": 3}]},
            {},
            None,
        ],
    )
    def test_idempotent(self, schema):
        once = normalize(schema)
        assert normalize(once) == once

    def test_does_not_mutate_input(self):
        original = copy.deepcopy(GMAIL_SEARCH_SCHEMA)
        normalize(GMAIL_SEARCH_SCHEMA)
        assert GMAIL_SEARCH_SCHEMA == original

    def test_deterministic(self):
        assert normalize(GMAIL_SEARCH_SCHEMA) == normalize(GMAIL_SEARCH_SCHEMA)
