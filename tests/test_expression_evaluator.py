"""Tests for the condition expression evaluator."""

import pytest

from recipe_engine.expression_evaluator import ExpressionError
from recipe_engine.expression_evaluator import evaluate_condition
from recipe_engine.expression_evaluator import evaluate_expression
from recipe_engine.expression_evaluator import parse_expression


class TestEvaluateCondition:
    """Tests for boolean conditions over a scope."""

    @pytest.fixture
    def scope(self):
        return {
            "framework": "react",
            "port": 3000,
            "typescript": True,
            "features": ["auth", "db"],
            "steps": {"detect": {"hasDb": False}},
        }

    @pytest.mark.parametrize(
        ("condition", "expected"),
        [
            ("framework == 'react'", True),
            ('framework != "vue"', True),
            ("port >= 3000 and port < 4000", True),
            ("typescript && port > 5000", False),
            ("typescript || port > 5000", True),
            ("not typescript", False),
            ("!steps.detect.hasDb", True),
            ("'auth' in features", True),
            ("'cli' not in features", True),
            ("framework in ['react', 'vue']", True),
            ("(port == 1 or port == 3000) and typescript", True),
            ("features[1] == 'db'", True),
            ("{{ typescript }}", True),
        ],
    )
    def test_conditions(self, scope, condition, expected):
        assert evaluate_condition(condition, scope) is expected

    def test_unknown_path_is_falsy(self, scope):
        assert evaluate_condition("missing.value", scope) is False
        assert evaluate_condition("missing == null", scope) is True

    def test_bool_condition_passes_through(self):
        assert evaluate_condition(True, {}) is True
        assert evaluate_condition(False, {}) is False

    def test_incomparable_types_compare_false(self, scope):
        assert evaluate_condition("framework > 3", scope) is False


class TestFunctions:
    """Tests for the function whitelist."""

    def test_whitelisted_function_called(self):
        functions = {"fileExists": lambda path: path == "package.json"}
        assert evaluate_condition("fileExists('package.json')", {}, functions) is True
        assert evaluate_condition("fileExists('nope')", {}, functions) is False

    def test_unlisted_function_rejected(self):
        with pytest.raises(ExpressionError, match="not allowed"):
            evaluate_condition("__import__('os')", {})

    def test_arbitrary_code_is_not_parsed(self):
        with pytest.raises(ExpressionError):
            evaluate_condition("open('x').read()", {"open": open})


class TestParseExpression:
    """Tests for syntax errors."""

    @pytest.mark.parametrize("expression", ["", "a ==", "(a", "a b", "a ; b", "[1, 2"])
    def test_malformed(self, expression):
        with pytest.raises(ExpressionError):
            parse_expression(expression)

    def test_raw_values(self):
        data = {"data": {"version": "1.2.0", "count": 4}}
        assert evaluate_expression("data.version", data) == "1.2.0"
        assert evaluate_expression("data.count", data) == 4
        assert evaluate_expression("[1, 'a', null]", {}) == [1, "a", None]
