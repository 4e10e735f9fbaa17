"""Data shaping actions: json.*, text.* and array.*."""

import json
import logging
import re
from collections.abc import Callable
from typing import Any

from automate.actions.base import ActionContext, ActionHandler, ActionOutcome
from automate.actions.builtin.file import to_text
from automate.engine.expressions import is_truthy
from automate.errors import ExpressionError

logger = logging.getLogger(__name__)

JSON_OPERATIONS = ("parse", "stringify", "query")
TEXT_OPERATIONS = ("regex", "template", "split", "join")
ARRAY_OPERATIONS = ("filter", "map", "sort", "flatten")

_QUERY_TOKEN_RE = re.compile(r"\.?([A-Za-z_][\w-]*|\*)|\[(\d+|\*|'[^']*'|\"[^\"]*\")\]")
_REPLACEMENT_RE = re.compile(r"\$(\$|&|\d+|<\w+>)")
_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}
# Accept (?<name>...) named groups; lookbehinds stay untouched
_NAMED_GROUP_RE = re.compile(r"\(\?<(?=[A-Za-z_])")


def resolve_input(value: Any, context: ActionContext) -> Any:
    """Accept either a value or a bare reference such as "steps.list.output"."""
    if isinstance(value, str) and context.evaluate is not None:
        try:
            return context.evaluate_in(value)
        except ExpressionError:
            return value
    return value


def query(data: Any, path: str) -> list[Any]:
    """Select values with a JSONPath subset: ``$.items[*].name``, ``$.a[0]``, ``a.*``.

    Missing keys select nothing rather than failing.
    """
    text = path.strip()
    if text.startswith("$"):
        text = text[1:]
    nodes = [data]
    pos = 0
    while pos < len(text):
        match = _QUERY_TOKEN_RE.match(text, pos)
        if not match:
            raise ValueError(f"Unsupported query syntax at {pos} in {path!r}")
        pos = match.end()
        key = match.group(1) or match.group(2)
        if key[0] in "'\"":
            key = key[1:-1]
        selected: list[Any] = []
        for node in nodes:
            if key == "*":
                if isinstance(node, dict):
                    selected.extend(node.values())
                elif isinstance(node, list):
                    selected.extend(node)
            elif isinstance(node, list) and key.isdigit():
                if int(key) < len(node):
                    selected.append(node[int(key)])
            elif isinstance(node, dict) and key in node:
                selected.append(node[key])
        nodes = selected
    return nodes


class JsonAction(ActionHandler):
    """JSON operations, registered as json.parse, json.stringify and json.query.

    Params:
        input: String to parse, or the value to stringify or query.
        indent: json.stringify indentation (default: 2; 0 for compact).
        query: json.query path, e.g. "$.items[*].name". Output is a list.
    """

    def __init__(self, operation: str) -> None:
        if operation not in JSON_OPERATIONS:
            raise ValueError(f"Unknown json operation: {operation}")
        self._operation = operation

    @property
    def name(self) -> str:
        return f"json.{self._operation}"

    @property
    def description(self) -> str:
        return {
            "parse": "Parse a JSON string",
            "stringify": "Serialize a value to JSON",
            "query": "Select values from JSON data",
        }[self._operation]

    async def execute(
        self,
        params: dict[str, Any],
        context: ActionContext,
    ) -> ActionOutcome:
        if "input" not in params:
            return ActionOutcome.fail("Missing required parameter: input")
        value = params["input"]

        if self._operation == "parse":
            # Shell output that was already JSON arrives decoded
            if not isinstance(value, str):
                return ActionOutcome.ok(value)
            try:
                return ActionOutcome.ok(json.loads(value))
            except json.JSONDecodeError as e:
                return ActionOutcome.fail(f"Invalid JSON: {e.msg} (line {e.lineno})")

        if self._operation == "stringify":
            indent = int(params.get("indent", 2)) or None
            return ActionOutcome.ok(json.dumps(value, indent=indent, default=str))

        path = params.get("query")
        if not path:
            return ActionOutcome.fail("Missing required parameter: query")
        data = resolve_input(value, context)
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except json.JSONDecodeError:
                return ActionOutcome.fail("Input is not JSON data")
        try:
            return ActionOutcome.ok(query(data, str(path)))
        except ValueError as e:
            return ActionOutcome.fail(str(e))

    def describe(self, params: dict[str, Any]) -> str:
        if self._operation == "query":
            return f"{self.name} {params.get('query', '')}"
        return self.name


class TextAction(ActionHandler):
    """Text operations, registered as text.regex, text.template, text.split and text.join.

    Params:
        input: Source string (regex, split) or list (join).
        pattern, replacement, flags: text.regex. Flags default to "g"
            (replace every match); i, m and s map to the re flags. Without
            a replacement the output lists the matches. Replacements use
            $1, $<name>, $& and $$.
        template: text.template source; references are resolved as written.
        separator: text.split and text.join separator (default: newline).
    """

    def __init__(self, operation: str) -> None:
        if operation not in TEXT_OPERATIONS:
            raise ValueError(f"Unknown text operation: {operation}")
        self._operation = operation
        if operation == "template":
            self.raw_params = frozenset({"template"})

    @property
    def name(self) -> str:
        return f"text.{self._operation}"

    @property
    def description(self) -> str:
        return {
            "regex": "Match or replace with a regular expression",
            "template": "Render a template string",
            "split": "Split a string into a list",
            "join": "Join a list into a string",
        }[self._operation]

    async def execute(
        self,
        params: dict[str, Any],
        context: ActionContext,
    ) -> ActionOutcome:
        separator = to_text(params.get("separator", "\n"))

        if self._operation == "template":
            if "template" not in params:
                return ActionOutcome.fail("Missing required parameter: template")
            try:
                return ActionOutcome.ok(to_text(context.render_in(params["template"])))
            except ExpressionError as e:
                return ActionOutcome.fail(f"Template error: {e}")

        if "input" not in params:
            return ActionOutcome.fail("Missing required parameter: input")

        if self._operation == "split":
            text = to_text(params["input"])
            return ActionOutcome.ok(list(text) if separator == "" else text.split(separator))

        if self._operation == "join":
            items = resolve_input(params["input"], context)
            if not isinstance(items, list):
                return ActionOutcome.fail("Input is not an array")
            return ActionOutcome.ok(separator.join(to_text(item) for item in items))

        return self._regex(to_text(params["input"]), params)

    @staticmethod
    def _regex(text: str, params: dict[str, Any]) -> ActionOutcome:
        pattern = params.get("pattern")
        if not pattern:
            return ActionOutcome.fail("Missing required parameter: pattern")
        flags_text = str(params.get("flags", "g"))
        unknown = set(flags_text) - set(_REGEX_FLAGS) - {"g"}
        if unknown:
            return ActionOutcome.fail(f"Unsupported regex flags: {''.join(sorted(unknown))}")
        flags = 0
        for flag in flags_text:
            flags |= _REGEX_FLAGS.get(flag, 0)
        try:
            regex = re.compile(_NAMED_GROUP_RE.sub("(?P<", str(pattern)), flags)
        except re.error as e:
            return ActionOutcome.fail(f"Invalid pattern: {e}")

        if "replacement" in params:
            expand = _replacer(to_text(params["replacement"]))
            result, count = regex.subn(expand, text, count=0 if "g" in flags_text else 1)
            return ActionOutcome.ok({"result": result, "matchCount": count})

        matches = [
            {"match": m.group(0), "groups": m.groupdict(), "index": m.start()}
            for m in regex.finditer(text)
        ]
        return ActionOutcome.ok({"matches": matches, "count": len(matches)})

    def describe(self, params: dict[str, Any]) -> str:
        if self._operation == "regex":
            return f"{self.name} /{params.get('pattern', '')}/"
        return self.name


def _replacer(replacement: str) -> Callable[[re.Match[str]], str]:
    def expand(match: re.Match[str]) -> str:
        def group(token: re.Match[str]) -> str:
            ref = token.group(1)
            if ref == "$":
                return "$"
            if ref == "&":
                return match.group(0)
            try:
                value = match.group(ref[1:-1] if ref.startswith("<") else int(ref))
            except IndexError:
                return token.group(0)
            return value or ""

        return _REPLACEMENT_RE.sub(group, replacement)

    return expand


class ArrayAction(ActionHandler):
    """List operations, registered as array.filter, array.map, array.sort and array.flatten.

    Params:
        input: The list, or a reference to it such as "steps.list.output".
        expression: array.filter condition or array.map expression, with
            `item` and `index` in scope, e.g. "item.size > 10".
        key, order: array.sort field and "asc" (default) or "desc".
    """

    def __init__(self, operation: str) -> None:
        if operation not in ARRAY_OPERATIONS:
            raise ValueError(f"Unknown array operation: {operation}")
        self._operation = operation
        if operation in ("filter", "map"):
            self.raw_params = frozenset({"expression"})

    @property
    def name(self) -> str:
        return f"array.{self._operation}"

    @property
    def description(self) -> str:
        return {
            "filter": "Keep items matching a condition",
            "map": "Transform each item",
            "sort": "Sort items",
            "flatten": "Flatten nested lists",
        }[self._operation]

    async def execute(
        self,
        params: dict[str, Any],
        context: ActionContext,
    ) -> ActionOutcome:
        items = resolve_input(params.get("input"), context)
        if not isinstance(items, list):
            return ActionOutcome.fail("Input is not an array")

        if self._operation == "flatten":
            return ActionOutcome.ok(_flatten(items))
        if self._operation == "sort":
            return self._sort(items, params)

        expression = params.get("expression")
        if not expression:
            return ActionOutcome.fail("Missing required parameter: expression")
        try:
            values = [
                context.evaluate_in(expression, item=item, index=index)
                for index, item in enumerate(items)
            ]
        except ExpressionError as e:
            return ActionOutcome.fail(f"Expression failed: {e}")
        if self._operation == "map":
            return ActionOutcome.ok(values)
        return ActionOutcome.ok([item for item, keep in zip(items, values) if is_truthy(keep)])

    @staticmethod
    def _sort(items: list[Any], params: dict[str, Any]) -> ActionOutcome:
        key = params.get("key")
        order = str(params.get("order", "asc")).lower()
        if order not in ("asc", "desc"):
            return ActionOutcome.fail(f'order must be "asc" or "desc", got "{order}"')

        def sort_key(item: Any) -> Any:
            value = item.get(key) if key and isinstance(item, dict) else item
            # None first, then numbers, then strings
            return (value is not None, isinstance(value, str), value)

        try:
            return ActionOutcome.ok(sorted(items, key=sort_key, reverse=order == "desc"))
        except TypeError as e:
            return ActionOutcome.fail(f"Cannot sort items: {e}")

    def describe(self, params: dict[str, Any]) -> str:
        if self._operation in ("filter", "map"):
            return f"{self.name}: {params.get('expression', '')}"
        return self.name


def _flatten(items: list[Any]) -> list[Any]:
    flat: list[Any] = []
    for item in items:
        if isinstance(item, list):
            flat.extend(_flatten(item))
        else:
            flat.append(item)
    return flat
