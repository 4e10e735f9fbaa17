"""Tests for template interpolation and condition evaluation."""

import pytest

from automate.engine.expressions import (
    ExpressionContext,
    evaluate_condition,
    evaluate_expression,
    interpolate,
    resolve_params,
)
from automate.errors import ExpressionError


@pytest.fixture
def context() -> ExpressionContext:
    return ExpressionContext(
        variables={"name": "world", "count": 3, "enabled": True, "ratio": "0.5"},
        steps={
            "fetch": {
                "status": "success",
                "output": {"items": ["a", "b"], "total": 2, "meta": {"ok": True}},
                "error": None,
                "exit_code": 0,
            },
            "health": {"status": "error", "output": None, "error": "down", "exit_code": 1},
        },
        outputs={"listing": "file1\nfile2"},
        env={"HOME": "/home/test"},
    )


class TestInterpolate:
    def test_dollar_brace(self, context):
        assert interpolate("hello ${name}", context) == "hello world"

    def test_mustache(self, context):
        assert interpolate("hello {{ name }}!", context) == "hello world!"

    def test_whole_reference_returns_raw_value(self, context):
        assert interpolate("${count}", context) == 3
        assert interpolate("{{ steps.fetch.output.items }}", context) == ["a", "b"]

    def test_embedded_values_are_stringified(self, context):
        assert interpolate("n=${count} on=${enabled}", context) == "n=3 on=true"
        assert interpolate("items: ${steps.fetch.output.items}", context) == 'items: ["a", "b"]'

    def test_vars_prefix(self, context):
        assert interpolate("${vars.name}", context) == "world"

    def test_step_fields(self, context):
        assert interpolate("${steps.fetch.status}", context) == "success"
        assert interpolate("${steps.health.error}", context) == "down"
        assert interpolate("${steps.fetch.output.meta.ok}", context) is True

    def test_list_index(self, context):
        assert interpolate("${steps.fetch.output.items.1}", context) == "b"

    def test_bound_output_name(self, context):
        assert interpolate("${listing}", context) == "file1\nfile2"

    def test_variables_shadow_outputs(self):
        context = ExpressionContext(variables={"x": "var"}, outputs={"x": "out"})

        assert interpolate("${x}", context) == "var"

    def test_env(self, context):
        assert interpolate("${env.HOME}/bin", context) == "/home/test/bin"

    def test_plain_text_unchanged(self, context):
        assert interpolate("no refs here $ {} {{", context) == "no refs here $ {} {{"

    @pytest.mark.parametrize(
        "template",
        [
            "${missing}",
            "${vars.missing}",
            "${steps.never.output}",
            "${steps.fetch.output.nope}",
            "${steps.fetch.output.items.9}",
            "${env.NOT_SET}",
            "${bad path}",
        ],
    )
    def test_unknown_reference(self, context, template):
        with pytest.raises(ExpressionError):
            interpolate(template, context)


class TestResolveParams:
    def test_nested(self, context):
        params = {
            "url": "https://example.com/${name}",
            "headers": {"X-Count": "${count}"},
            "list": ["${name}", 5, None],
            "flag": False,
        }

        resolved = resolve_params(params, context)

        assert resolved == {
            "url": "https://example.com/world",
            "headers": {"X-Count": 3},
            "list": ["world", 5, None],
            "flag": False,
        }

    def test_does_not_mutate_input(self, context):
        params = {"a": "${name}"}

        resolve_params(params, context)

        assert params == {"a": "${name}"}


class TestEvaluateCondition:
    @pytest.mark.parametrize(
        "expression,expected",
        [
            ("count > 0", True),
            ("count>5", False),
            ("count >= 3", True),
            ("count < 3", False),
            ("count <= 3", True),
            ("count == 3", True),
            ("count != 3", False),
            ("count > -1", True),
            ('name == "world"', True),
            ("name == 'world'", True),
            ('name != "mars"', True),
            ("ratio < 1", True),
            ('ratio == "0.50"', True),
            ("enabled", True),
            ("enabled == true", True),
            ("not enabled", False),
            ("!enabled", False),
            ("count > 0 and name == 'world'", True),
            ("count > 5 && enabled", False),
            ("count > 5 or enabled", True),
            ("count > 5 || false", False),
            ("not (count > 5 or name == 'mars')", True),
            ("steps.fetch.status == 'success'", True),
            ("steps.health.status == 'success'", False),
            ("steps.fetch.output.total == 2", True),
            ("steps.health.output == null", True),
            ("${count > 1}", True),
            ("{{ count > 10 }}", False),
            ("${count} > 0", True),
            ("${ count } == 3 and ${name} == 'world'", True),
            ("{{ count }} == {{ count }}", True),
            ("{{ name }} != {{ vars.name }}", False),
            ("${steps.fetch.output.total} < {{ count }}", True),
            ("not ${enabled}", False),
            ("true", True),
            ("0", False),
        ],
    )
    def test_expressions(self, context, expression, expected):
        assert evaluate_condition(expression, context) is expected

    def test_string_truthiness(self):
        context = ExpressionContext(variables={"yes": "true", "no": "false", "empty": ""})

        assert evaluate_condition("yes", context) is True
        assert evaluate_condition("no", context) is False
        assert evaluate_condition("empty", context) is False

    def test_numeric_strings_compare_numerically(self):
        context = ExpressionContext(variables={"a": "10", "b": "9"})

        assert evaluate_condition("a > b", context) is True

    @pytest.mark.parametrize(
        "expression",
        [
            "",
            "count >",
            "(count > 1",
            "count > 1)",
            "count = 1",
            "count > 1 extra",
            "missing > 1",
            "name < 5 < 6",
            "steps.fetch.output > 1",
            "${missing} > 0",
            "${} > 0",
            "${count > 0",
        ],
    )
    def test_errors(self, context, expression):
        with pytest.raises(ExpressionError):
            evaluate_condition(expression, context)


class TestEvaluateExpression:
    def test_returns_value(self, context):
        assert evaluate_expression("steps.fetch.output.items", context) == ["a", "b"]
        assert evaluate_expression("${count}", context) == 3
        assert evaluate_expression("count > 1", context) is True

    def test_wrapper_with_inner_references_is_kept(self, context):
        assert evaluate_expression("${count} == ${count}", context) is True
