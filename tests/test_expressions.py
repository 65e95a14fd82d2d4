# ============================================================================
# EXPRESSION EVALUATOR TESTS
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Tests - Expression language
# PURPOSE: Verify paths, operators, literals, truthiness and filters
# CREATED: 18 OCT 2026
# ============================================================================
"""
Expression Evaluator Tests

Covers:
1. Path access (dots, brackets, list indexes, missing paths)
2. Literals and keywords
3. Operators: !, ?:, ||, ??
4. Truthiness rules (0, "", NaN falsy; empty containers truthy)
5. Filters (Jinja2 built-ins, extras, custom)
6. Malformed expressions

Run with:
    pytest tests/test_expressions.py -v
"""

import math

import pytest

from core.contracts import UNDEFINED, is_truthy
from core.errors import ExpressionError
from orchestrator.engine.expressions import (
    ExpressionEvaluator,
    get_member,
    parse_expression,
    tokenize,
)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def evaluator():
    return ExpressionEvaluator()


@pytest.fixture
def scope():
    return {
        "input": {
            "name": "Ada",
            "zero": 0,
            "empty": "",
            "flag": False,
            "nothing": None,
            "items": ["a", "b", "c"],
            "nested": {"deep": {"value": 7}},
            "my key": "spaced",
            "names": ["Ada", "Grace"],
            "csv": "x,y,z",
        },
        "fetch-user": {"output": {"name": "Linus"}, "status": "succeeded", "cached": False},
    }


# ============================================================================
# PATHS
# ============================================================================

class TestPaths:
    """Test path access."""

    def test_dotted_path(self, evaluator, scope):
        assert evaluator.evaluate("input.name", scope) == "Ada"
        assert evaluator.evaluate("input.nested.deep.value", scope) == 7

    def test_missing_path_is_undefined(self, evaluator, scope):
        assert evaluator.evaluate("input.missing", scope) is UNDEFINED
        assert evaluator.evaluate("input.missing.deeper.still", scope) is UNDEFINED
        assert evaluator.evaluate("nope", scope) is UNDEFINED

    def test_member_of_null_is_undefined(self, evaluator, scope):
        assert evaluator.evaluate("input.nothing.field", scope) is UNDEFINED

    def test_list_index(self, evaluator, scope):
        assert evaluator.evaluate("input.items[0]", scope) == "a"
        assert evaluator.evaluate("input.items[2]", scope) == "c"

    def test_out_of_range_index_is_undefined(self, evaluator, scope):
        assert evaluator.evaluate("input.items[5]", scope) is UNDEFINED
        assert evaluator.evaluate("input.items[-1]", scope) is UNDEFINED

    def test_dotted_index(self, evaluator, scope):
        assert evaluator.evaluate("input.items.1", scope) == "b"

    def test_list_length(self, evaluator, scope):
        assert evaluator.evaluate("input.items.length", scope) == 3

    def test_bracket_string_key(self, evaluator, scope):
        assert evaluator.evaluate("input['my key']", scope) == "spaced"

    def test_computed_index(self, evaluator, scope):
        scope["index"] = 1
        assert evaluator.evaluate("input.items[index]", scope) == "b"

    def test_hyphenated_step_id(self, evaluator, scope):
        assert evaluator.evaluate("fetch-user.output.name", scope) == "Linus"

    def test_member_of_primitive_is_undefined(self, evaluator, scope):
        assert evaluator.evaluate("input.name.first", scope) is UNDEFINED

    def test_unhashable_key_is_undefined(self, evaluator, scope):
        assert evaluator.evaluate("input.nested[input.names]", scope) is UNDEFINED
        assert evaluator.evaluate("input.nested[input.nested]", scope) is UNDEFINED
        assert get_member({"a": 1}, ["a"]) is UNDEFINED

    def test_only_ascii_digit_strings_index_lists(self):
        assert get_member(["a", "b"], "1") == "b"
        assert get_member(["a", "b"], "\u00b9") is UNDEFINED
        assert get_member(["a", "b"], "\u0661") is UNDEFINED

    def test_get_member_reads_object_attributes(self):
        class Thing:
            color = "blue"
            _secret = "hidden"

        assert get_member(Thing(), "color") == "blue"
        assert get_member(Thing(), "_secret") is UNDEFINED


# ============================================================================
# LITERALS
# ============================================================================

class TestLiterals:
    """Test literal parsing."""

    def test_numbers(self, evaluator):
        assert evaluator.evaluate("42", {}) == 42
        assert evaluator.evaluate("3.5", {}) == 3.5
        assert evaluator.evaluate("-3", {}) == -3

    def test_quoted_strings(self, evaluator):
        assert evaluator.evaluate("'42'", {}) == "42"
        assert evaluator.evaluate('"hello world"', {}) == "hello world"
        assert evaluator.evaluate(r"'it\'s'", {}) == "it's"

    def test_keywords(self, evaluator):
        assert evaluator.evaluate("true", {}) is True
        assert evaluator.evaluate("false", {}) is False
        assert evaluator.evaluate("null", {}) is None
        assert evaluator.evaluate("undefined", {}) is UNDEFINED

    def test_empty_expression_is_undefined(self, evaluator):
        assert evaluator.evaluate("", {}) is UNDEFINED
        assert evaluator.evaluate("   ", {}) is UNDEFINED

    def test_native_values_are_not_stringified(self, evaluator, scope):
        assert evaluator.evaluate("input.items", scope) == ["a", "b", "c"]
        assert evaluator.evaluate("input.nested", scope) == {"deep": {"value": 7}}


# ============================================================================
# OPERATORS
# ============================================================================

class TestOperators:
    """Test !, ternary, || and ??."""

    def test_negation(self, evaluator, scope):
        assert evaluator.evaluate("!input.flag", scope) is True
        assert evaluator.evaluate("!input.name", scope) is False
        assert evaluator.evaluate("!!input.name", scope) is True

    def test_negation_with_nullish_fallback(self, evaluator, scope):
        assert evaluator.evaluate("!input.disabled ?? false", scope) is True

    def test_ternary(self, evaluator, scope):
        assert evaluator.evaluate("input.name ? 'yes' : 'no'", scope) == "yes"
        assert evaluator.evaluate("input.zero ? 'yes' : 'no'", scope) == "no"

    def test_nested_ternary_is_right_associative(self, evaluator, scope):
        expr = "input.flag ? 'a' : input.zero ? 'b' : 'c'"
        assert evaluator.evaluate(expr, scope) == "c"

    def test_ternary_only_evaluates_selected_branch(self, scope):
        calls = []

        def boom(value):
            calls.append(value)
            return value

        evaluator = ExpressionEvaluator(filters={"boom": boom})
        assert evaluator.evaluate("input.name ? 'ok' : (input.zero | boom)", scope) == "ok"
        assert calls == []

        assert evaluator.evaluate("input.flag ? 'ok' : (input.zero | boom)", scope) == 0
        assert calls == [0]

    def test_or_returns_first_truthy(self, evaluator, scope):
        assert evaluator.evaluate("input.zero || input.empty || 'd'", scope) == "d"
        assert evaluator.evaluate("input.zero || input.name", scope) == "Ada"
        assert evaluator.evaluate("input.name || 'd'", scope) == "Ada"

    @pytest.mark.parametrize("key", ["zero", "empty", "flag", "nothing", "missing"])
    def test_or_skips_falsy(self, evaluator, scope, key):
        assert evaluator.evaluate(f"input.{key} || 'd'", scope) == "d"

    @pytest.mark.parametrize("key,expected", [
        ("zero", 0),
        ("empty", ""),
        ("flag", False),
    ])
    def test_nullish_preserves_falsy_values(self, evaluator, scope, key, expected):
        assert evaluator.evaluate(f"input.{key} ?? 'd'", scope) == expected

    @pytest.mark.parametrize("key", ["nothing", "missing"])
    def test_nullish_replaces_null_and_undefined(self, evaluator, scope, key):
        assert evaluator.evaluate(f"input.{key} ?? 'd'", scope) == "d"

    def test_nullish_chain(self, evaluator, scope):
        assert evaluator.evaluate("input.a ?? input.b ?? input.name", scope) == "Ada"
        assert evaluator.evaluate("input.a ?? input.b", scope) is UNDEFINED

    def test_index_with_default(self, evaluator, scope):
        assert evaluator.evaluate("input.items[5] ?? 'default'", scope) == "default"
        assert evaluator.evaluate("input.items[0] ?? 'default'", scope) == "a"

    def test_parentheses(self, evaluator, scope):
        assert evaluator.evaluate("(input.zero ?? 1) || 'd'", scope) == "d"


# ============================================================================
# TRUTHINESS
# ============================================================================

class TestTruthiness:
    """Test truthiness rules."""

    @pytest.mark.parametrize("value", [False, 0, 0.0, "", None, UNDEFINED, math.nan])
    def test_falsy(self, value):
        assert is_truthy(value) is False

    @pytest.mark.parametrize("value", [True, 1, -1, 0.5, "0", "false", [], {}, [0], object()])
    def test_truthy(self, value):
        assert is_truthy(value) is True

    def test_nan_is_falsy_in_expressions(self, evaluator):
        scope = {"input": {"n": math.nan}}
        assert evaluator.evaluate("input.n ? 'y' : 'n'", scope) == "n"

    def test_empty_containers_are_truthy_in_expressions(self, evaluator):
        scope = {"input": {"list": [], "map": {}}}
        assert evaluator.evaluate("input.list ? 'y' : 'n'", scope) == "y"
        assert evaluator.evaluate("input.map || 'd'", scope) == {}


# ============================================================================
# FILTERS
# ============================================================================

class TestFilters:
    """Test filter pipelines."""

    def test_builtin_filters(self, evaluator, scope):
        assert evaluator.evaluate("input.name | upper", scope) == "ADA"
        assert evaluator.evaluate("input.names | length", scope) == 2
        assert evaluator.evaluate("input.names | join(', ')", scope) == "Ada, Grace"

    def test_case_filter_aliases(self, evaluator, scope):
        assert evaluator.evaluate("input.name | uppercase", scope) == "ADA"
        assert evaluator.evaluate("input.name | lowercase", scope) == "ada"
        assert evaluator.evaluate("input.names | first | uppercase", scope) == "ADA"

    def test_filter_chain(self, evaluator, scope):
        assert evaluator.evaluate("input.names | first | lower", scope) == "ada"

    def test_extra_filters(self, evaluator, scope):
        assert evaluator.evaluate("input.csv | split(',')", scope) == ["x", "y", "z"]
        assert evaluator.evaluate("input.nested | keys", scope) == ["deep"]

    def test_default_filter_on_undefined(self, evaluator, scope):
        assert evaluator.evaluate("input.missing | default('x')", scope) == "x"

    def test_filter_on_undefined_is_undefined(self, evaluator, scope):
        assert evaluator.evaluate("input.missing | length", scope) is UNDEFINED

    def test_generator_results_become_lists(self, evaluator, scope):
        assert evaluator.evaluate("input.items | reverse", scope) == ["c", "b", "a"]

    def test_custom_filter(self, scope):
        evaluator = ExpressionEvaluator(filters={"double": lambda v: v * 2})
        assert evaluator.evaluate("input.nested.deep.value | double", scope) == 14
        assert "double" in evaluator.filters

    def test_unknown_filter_raises(self, evaluator, scope):
        with pytest.raises(ExpressionError, match="Unknown filter"):
            evaluator.evaluate("input.name | shout", scope)

    def test_failing_filter_raises(self, scope):
        def broken(value):
            raise ValueError("nope")

        evaluator = ExpressionEvaluator(filters={"broken": broken})
        with pytest.raises(ExpressionError, match="Filter 'broken' failed"):
            evaluator.evaluate("input.name | broken", scope)


# ============================================================================
# PARSING
# ============================================================================

class TestParsing:
    """Test the tokenizer and parser."""

    def test_tokenize_two_char_operators(self):
        values = [t.value for t in tokenize("a ?? b || c")]
        assert values == ["a", "??", "b", "||", "c", None]

    def test_parse_is_cached(self):
        assert parse_expression("input.name") is parse_expression("input.name")

    @pytest.mark.parametrize("expression", [
        "input.",
        "input.name ?",
        "input.name ? 'a'",
        "'unterminated",
        "input.name )",
        "input[0",
        "input.name | ",
        "#",
        "1\u00b2",
        "\u00b2",
        "input.items[1\u00b2]",
    ])
    def test_malformed_expressions_raise(self, evaluator, expression):
        with pytest.raises(ExpressionError):
            evaluator.evaluate(expression, {})

    def test_error_reports_position(self, evaluator):
        with pytest.raises(ExpressionError) as exc_info:
            evaluator.evaluate("input.name )", {})
        assert exc_info.value.position == 11
        assert exc_info.value.kind == "ExpressionError"
