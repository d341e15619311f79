"""Unit tests for loopwright.engine.variables -- VariableScope and value typing."""

from __future__ import annotations

import pytest

from loopwright.engine.variables import VariableScope, parse_float, parse_value, stringify, tokenize_path


# ---------------------------------------------------------------------------
# 1. Path resolution
# ---------------------------------------------------------------------------

class TestGet:
    def test_nested_path_resolves(self):
        scope = VariableScope({"a": {"b": [{"c": 5}]}})
        assert scope.get("a.b[0].c") == 5

    def test_out_of_range_index_is_empty_string(self):
        scope = VariableScope({"a": {"b": [{"c": 5}]}})
        assert scope.get("a.b[9].c") == ""

    def test_missing_root_is_empty_string(self):
        assert VariableScope().get("missing.path") == ""

    def test_indexing_into_scalar_is_empty_string(self):
        scope = VariableScope({"n": 3})
        assert scope.get("n[0]") == ""
        assert scope.get("n.x") == ""

    def test_top_level_value_returned_as_is(self):
        scope = VariableScope({"items": [1, 2]})
        assert scope.get("items") == [1, 2]

    def test_tokenize_path(self):
        assert tokenize_path("a.b[0].c") == ["a", "b", 0, "c"]
        assert tokenize_path("list[2][1]") == ["list", 2, 1]


# ---------------------------------------------------------------------------
# 2. Substitution
# ---------------------------------------------------------------------------

class TestSubstitute:
    def test_replaces_tokens(self):
        scope = VariableScope({"name": "Ada", "user": {"id": 42}})
        assert scope.substitute("Hi {{name}} #{{ user.id }}") == "Hi Ada #42"

    def test_missing_path_becomes_empty(self):
        assert VariableScope().substitute("x={{nope}}.") == "x=."

    def test_objects_are_json_encoded(self):
        scope = VariableScope({"obj": {"k": 1}, "flag": True})
        assert scope.substitute("{{obj}} {{flag}}") == '{"k":1} true'

    def test_text_without_tokens_is_unchanged(self):
        assert VariableScope({"a": 1}).substitute("{ not a token }") == "{ not a token }"

    def test_none_template_is_empty(self):
        assert VariableScope().substitute(None) == ""

    def test_substitute_all_walks_structures(self):
        scope = VariableScope({"t": "tok"})
        result = scope.substitute_all({"h": ["Bearer {{t}}", 3], "n": None})
        assert result == {"h": ["Bearer tok", 3], "n": None}


# ---------------------------------------------------------------------------
# 3. Auto-typing
# ---------------------------------------------------------------------------

class TestParseValue:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("42", 42),
            ("3.5", 3.5),
            ("true", True),
            ("false", False),
            ("hello", "hello"),
            ('{"k":1}', {"k": 1}),
            ("[1, 2]", [1, 2]),
            ("", ""),
        ],
    )
    def test_parse_value(self, raw, expected):
        assert parse_value(raw) == expected

    def test_nan_literal_stays_text(self):
        assert parse_value("NaN") == "NaN"

    @pytest.mark.parametrize("raw", ["42", "true", "false", "hello", '{"k":1}'])
    def test_round_trip_is_stable(self, raw):
        first = parse_value(raw)
        assert parse_value(stringify(first)) == first

    def test_set_parsed_stores_typed_value(self):
        scope = VariableScope()
        assert scope.set_parsed("n", "10") == 10
        assert scope.get("n") == 10


class TestParseFloat:
    def test_leading_number(self):
        assert parse_float("12.5px") == 12.5

    def test_not_a_number(self):
        assert parse_float("abc") is None

    def test_bool_is_not_a_number(self):
        assert parse_float(True) is None


# ---------------------------------------------------------------------------
# 4. Scope isolation
# ---------------------------------------------------------------------------

class TestScopeLifecycle:
    def test_seed_is_copied(self):
        seed = {"a": 1}
        scope = VariableScope(seed)
        scope.set("a", 2)
        assert seed["a"] == 1

    def test_init_resets(self):
        scope = VariableScope({"a": 1})
        scope.init({"b": 2})
        assert "a" not in scope
        assert scope.has("b")
        assert len(scope) == 1
