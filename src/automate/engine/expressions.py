"""Template interpolation and condition evaluation.

Templates reference values with ``${path}`` or ``{{ path }}``:

- ``name``: a run variable, else a step output bound with ``output``
- ``vars.name``: a run variable
- ``steps.<id>.output[.key...]`` / ``steps.<id>.status``: a finished step
- ``env.NAME``: a process environment variable

Conditions use a deliberately small grammar: literals, paths, comparisons
(``== != < <= > >=``), ``and``/``or``/``not`` (also ``&& || !``) and
parentheses. Nothing is ever executed.
"""

from __future__ import annotations

import json
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from automate.errors import ExpressionError

_REFERENCE_RE = re.compile(r"\$\{\s*([^{}]+?)\s*\}|\{\{\s*([^{}]+?)\s*\}\}")
_WRAPPED_RE = re.compile(r"\$\{([^{}]*)\}|\{\{([^{}]*)\}\}")
_PATH_RE = re.compile(r"^[A-Za-z_][\w-]*(?:\.[\w-]+)*$")
_NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?$")

_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<number>-?\d+(?:\.\d+)?(?![\w.]))
      | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
      | (?P<ref>\$\{[^{}]*\}|\{\{[^{}]*\}\})
      | (?P<op>==|!=|<=|>=|&&|\|\||<|>|!|\(|\))
      | (?P<path>[A-Za-z_][\w-]*(?:\.[\w-]+)*)
    )
    """,
    re.VERBOSE,
)

_KEYWORD_LITERALS: dict[str, Any] = {"true": True, "false": False, "null": None}
_COMPARISONS = {"==", "!=", "<", "<=", ">", ">="}


@dataclass
class ExpressionContext:
    """Values visible to templates and conditions during a run."""

    variables: dict[str, Any] = field(default_factory=dict)
    # step id -> {"status": ..., "output": ..., "error": ...}
    steps: dict[str, dict[str, Any]] = field(default_factory=dict)
    # names bound by a step's `output` field
    outputs: dict[str, Any] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=lambda: os.environ)


def resolve_path(path: str, context: ExpressionContext) -> Any:
    """Look up a dotted reference in the context."""
    path = path.strip()
    if not _PATH_RE.match(path):
        raise ExpressionError(f"Invalid reference: {path!r}")

    head, *rest = path.split(".")
    if head == "vars" and rest:
        name, *rest = rest
        if name not in context.variables:
            raise ExpressionError(f"Unknown variable: {name}")
        value = context.variables[name]
    elif head == "steps" and rest:
        step_id, *rest = rest
        if step_id not in context.steps:
            raise ExpressionError(f"Step has not run: {step_id}")
        value = context.steps[step_id]
    elif head == "env" and rest:
        name, *rest = rest
        if name not in context.env:
            raise ExpressionError(f"Unknown environment variable: {name}")
        value = context.env[name]
    elif head in context.variables:
        value = context.variables[head]
    elif head in context.outputs:
        value = context.outputs[head]
    else:
        raise ExpressionError(f"Unknown reference: {head}")

    for key in rest:
        value = _descend(value, key, path)
    return value


def _descend(value: Any, key: str, path: str) -> Any:
    if isinstance(value, Mapping):
        if key in value:
            return value[key]
    elif isinstance(value, list | tuple) and key.isdigit():
        index = int(key)
        if index < len(value):
            return value[index]
    raise ExpressionError(f"Cannot resolve {key!r} in {path!r}")


def stringify(value: Any) -> str:
    """Render a value for embedding inside a larger string."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict | list):
        return json.dumps(value)
    return str(value)


def interpolate(template: str, context: ExpressionContext) -> Any:
    """Replace references in a template string.

    A template that is exactly one reference returns the referenced value
    unchanged, so ``"${count}"`` can yield a number or a list.
    """
    whole = _REFERENCE_RE.fullmatch(template)
    if whole:
        return resolve_path(whole.group(1) or whole.group(2), context)

    def replace(match: re.Match[str]) -> str:
        return stringify(resolve_path(match.group(1) or match.group(2), context))

    return _REFERENCE_RE.sub(replace, template)


def resolve_params(params: Any, context: ExpressionContext) -> Any:
    """Interpolate every string inside nested dicts and lists."""
    if isinstance(params, str):
        return interpolate(params, context)
    if isinstance(params, dict):
        return {key: resolve_params(value, context) for key, value in params.items()}
    if isinstance(params, list):
        return [resolve_params(item, context) for item in params]
    return params


def evaluate_expression(expression: str, context: ExpressionContext) -> Any:
    """Evaluate an expression and return its value.

    A single ``${...}`` or ``{{ ... }}`` wrapping the whole expression is
    unwrapped first; references may also appear as operands, as in
    ``"${count} > 0"``.
    """
    text = expression.strip()
    wrapped = _WRAPPED_RE.fullmatch(text)
    if wrapped:
        text = (wrapped.group(1) if wrapped.group(1) is not None else wrapped.group(2)).strip()
    if not text:
        raise ExpressionError("Empty condition")
    parser = _ConditionParser(_tokenize(text), context)
    return parser.parse()


def evaluate_condition(expression: str, context: ExpressionContext) -> bool:
    """Evaluate a condition expression to a boolean."""
    return is_truthy(evaluate_expression(expression, context))


def is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "0", "no", "null")
    return bool(value)


def _tokenize(text: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    while pos < len(text):
        if text[pos:].strip() == "":
            break
        match = _TOKEN_RE.match(text, pos)
        if not match or match.end() == pos:
            raise ExpressionError(f"Unexpected character at {pos} in {text!r}")
        kind = match.lastgroup
        assert kind is not None
        value = match.group(kind)
        if kind == "path" and value in ("and", "or", "not"):
            kind = "op"
        tokens.append((kind, value))
        pos = match.end()
    return tokens


class _ConditionParser:
    """Recursive descent over the condition tokens.

    or_expr  := and_expr (("or" | "||") and_expr)*
    and_expr := not_expr (("and" | "&&") not_expr)*
    not_expr := ("not" | "!") not_expr | compare
    compare  := operand (cmp_op operand)?
    operand  := number | string | path | ref | "(" or_expr ")"
    """

    def __init__(self, tokens: list[tuple[str, str]], context: ExpressionContext) -> None:
        self._tokens = tokens
        self._pos = 0
        self._context = context

    def parse(self) -> Any:
        value = self._or()
        if self._pos != len(self._tokens):
            raise ExpressionError(f"Unexpected token: {self._tokens[self._pos][1]!r}")
        return value

    def _peek(self) -> tuple[str, str] | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _accept(self, *ops: str) -> str | None:
        token = self._peek()
        if token and token[0] == "op" and token[1] in ops:
            self._pos += 1
            return token[1]
        return None

    def _or(self) -> Any:
        left = self._and()
        while self._accept("or", "||"):
            right = self._and()
            left = is_truthy(left) or is_truthy(right)
        return left

    def _and(self) -> Any:
        left = self._not()
        while self._accept("and", "&&"):
            right = self._not()
            left = is_truthy(left) and is_truthy(right)
        return left

    def _not(self) -> Any:
        if self._accept("not", "!"):
            return not is_truthy(self._not())
        return self._compare()

    def _compare(self) -> Any:
        left = self._operand()
        op = self._accept(*_COMPARISONS)
        if op is None:
            return left
        right = self._operand()
        return compare(left, op, right)

    def _operand(self) -> Any:
        token = self._peek()
        if token is None:
            raise ExpressionError("Unexpected end of condition")
        kind, value = token
        self._pos += 1
        if kind == "number":
            return float(value) if "." in value else int(value)
        if kind == "string":
            return re.sub(r"\\(.)", r"\1", value[1:-1])
        if kind == "path":
            if value in _KEYWORD_LITERALS:
                return _KEYWORD_LITERALS[value]
            return resolve_path(value, self._context)
        if kind == "ref":
            reference = _REFERENCE_RE.fullmatch(value)
            if not reference:
                raise ExpressionError(f"Invalid reference: {value!r}")
            return resolve_path(reference.group(1) or reference.group(2), self._context)
        if value == "(":
            inner = self._or()
            if not self._accept(")"):
                raise ExpressionError("Missing closing parenthesis")
            return inner
        raise ExpressionError(f"Unexpected token: {value!r}")


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str) and _NUMBER_RE.match(value.strip()):
        return float(value.strip())
    return None


def compare(left: Any, op: str, right: Any) -> bool:
    """Compare two values, numerically when both look like numbers."""
    left_num, right_num = _as_number(left), _as_number(right)
    if left_num is not None and right_num is not None:
        left, right = left_num, right_num
    elif isinstance(left, str) != isinstance(right, str) and None not in (left, right):
        left, right = stringify(left), stringify(right)

    if op == "==":
        return left == right
    if op == "!=":
        return left != right
    try:
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right
    except TypeError as e:
        raise ExpressionError(f"Cannot compare {left!r} {op} {right!r}") from e
