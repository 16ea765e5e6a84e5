"""Tests for placeholder resolution and recipe variable schemas."""

import pytest

from recipe_engine.errors import RecipeValidationError
from recipe_engine.variables import MISSING
from recipe_engine.variables import lookup_path
from recipe_engine.variables import resolve
from recipe_engine.variables import resolve_inputs
from recipe_engine.variables import resolve_text
from recipe_engine.variables import split_path
from recipe_engine.variables import substitute_variables


class TestLookupPath:
    """Tests for dotted path lookups."""

    def test_split_path_with_indices(self):
        assert split_path("a.b[0].c") == ["a", "b", "0", "c"]

    def test_nested_dict_and_list(self):
        scope = {"pkg": {"deps": [{"name": "react"}]}}
        assert lookup_path(scope, "pkg.deps[0].name") == "react"
        assert lookup_path(scope, "pkg.deps.0.name") == "react"

    def test_missing_segment(self):
        assert lookup_path({"a": {}}, "a.b.c") is MISSING
        assert lookup_path({"a": [1]}, "a[5]") is MISSING
        assert lookup_path({}, "") is MISSING

    def test_attribute_access(self):
        class Holder:
            value = 42

        assert lookup_path({"h": Holder()}, "h.value") == 42

    def test_private_attributes_are_not_reachable(self):
        class Holder:
            _secret = "x"

        assert lookup_path({"h": Holder()}, "h._secret") is MISSING


class TestSubstitution:
    """Tests for {{ }} substitution."""

    def test_single_placeholder_keeps_type(self):
        scope = {"items": [1, 2], "flag": True}
        assert substitute_variables("{{ items }}", scope) == [1, 2]
        assert substitute_variables("{{flag}}", scope) is True

    def test_embedded_placeholders_are_stringified(self):
        scope = {"name": "app", "deps": ["a"], "on": False}
        assert substitute_variables("{{name}}-{{deps}}-{{on}}", scope) == 'app-["a"]-false'

    def test_unresolved_placeholder_left_verbatim(self):
        assert substitute_variables("hello {{ who }}", {}) == "hello {{ who }}"
        assert substitute_variables("{{ who }}", {}) == "{{ who }}"

    def test_resolve_walks_structures(self):
        scope = {"name": "app", "port": 3000}
        value = {"title": "{{ name }}", "ports": ["{{ port }}", 8080], "enabled": True}
        assert resolve(value, scope) == {"title": "app", "ports": [3000, 8080], "enabled": True}

    def test_resolve_text_always_returns_string(self):
        assert resolve_text("{{ port }}", {"port": 3000}) == "3000"
        assert resolve_text("{{ items }}", {"items": {"a": 1}}) == '{"a": 1}'


class TestResolveInputs:
    """Tests for applying a variable schema to provided values."""

    def test_defaults_fill_gaps(self):
        schema = {"name": {"type": "string", "default": "app"}, "port": {"type": "number", "default": 3000}}
        assert resolve_inputs(schema, {"port": 8080}) == {"name": "app", "port": 8080}

    def test_missing_required_variable(self):
        with pytest.raises(RecipeValidationError) as exc_info:
            resolve_inputs({"name": {"type": "string", "required": True}}, {})

        assert exc_info.value.code == "INVALID_VARIABLES"
        assert "Missing required variable: name" in exc_info.value.errors

    def test_type_errors_are_collected(self):
        schema = {
            "count": {"type": "number"},
            "flag": {"type": "boolean"},
            "mode": {"type": "enum", "values": ["a", "b"]},
        }
        with pytest.raises(RecipeValidationError) as exc_info:
            resolve_inputs(schema, {"count": "three", "flag": "yes", "mode": "c"})

        assert len(exc_info.value.errors) == 3

    def test_boolean_is_not_a_number(self):
        with pytest.raises(RecipeValidationError):
            resolve_inputs({"count": {"type": "number"}}, {"count": True})

    def test_pattern_check(self):
        schema = {"name": {"type": "string", "pattern": "[a-z-]+"}}
        assert resolve_inputs(schema, {"name": "my-app"}) == {"name": "my-app"}
        with pytest.raises(RecipeValidationError):
            resolve_inputs(schema, {"name": "My App"})

    def test_unknown_variables_pass_through(self):
        assert resolve_inputs({}, {"extra": 1}) == {"extra": 1}

    def test_optional_without_default_is_absent(self):
        assert resolve_inputs({"name": {"type": "string"}}, {}) == {}
