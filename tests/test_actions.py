"""Tests for built-in actions and the action registry."""

import json

import httpx
import pytest

from automate.actions import ActionContext, ActionRegistry, create_default_registry
from automate.actions.builtin import (
    HttpAction,
    LogAction,
    PromptAction,
    SetAction,
    ShellAction,
)
from automate.actions.builtin.shell import parse_output

from tests.conftest import MockAction, make_action_context


@pytest.fixture
def context() -> ActionContext:
    return ActionContext(step_id="step")


class TestActionRegistry:
    def test_register_and_get(self):
        registry = ActionRegistry()
        action = MockAction()
        registry.register(action)

        assert registry.get("mock") is action
        assert "mock" in registry
        assert registry.has("mock")
        assert len(registry) == 1
        assert list(registry) == [action]

    def test_duplicate_name(self):
        registry = ActionRegistry()
        registry.register(MockAction())

        with pytest.raises(ValueError, match="already registered"):
            registry.register(MockAction())

    def test_missing(self):
        with pytest.raises(KeyError):
            ActionRegistry().get("nope")

    def test_unregister(self):
        registry = ActionRegistry()
        registry.register(MockAction())
        registry.unregister("mock")
        registry.unregister("mock")

        assert "mock" not in registry

    def test_default_registry(self):
        assert create_default_registry().names == [
            "array.filter",
            "array.flatten",
            "array.map",
            "array.sort",
            "file.copy",
            "file.delete",
            "file.glob",
            "file.move",
            "file.read",
            "file.template",
            "file.write",
            "forEach",
            "http",
            "http-get",
            "json.parse",
            "json.query",
            "json.stringify",
            "log",
            "prompt",
            "set",
            "shell",
            "text.join",
            "text.regex",
            "text.split",
            "text.template",
            "while",
        ]


class TestLogAction:
    async def test_logs_message(self, context, caplog):
        with caplog.at_level("INFO"):
            outcome = await LogAction().execute({"message": "hello"}, context)

        assert outcome.success
        assert outcome.output == "hello"
        assert "hello" in caplog.messages

    async def test_unknown_level(self, context):
        outcome = await LogAction().execute({"message": "x", "level": "loud"}, context)

        assert not outcome.success
        assert "loud" in outcome.error


class TestSetAction:
    async def test_sets_scalar_variables(self, context):
        outcome = await SetAction().execute(
            {"target": "prod", "count": 2, "nested": {"a": 1}}, context
        )

        assert outcome.success
        assert outcome.variables == {"target": "prod", "count": 2}

    def test_describe(self):
        assert SetAction().describe({"b": 1, "a": 2}) == "set: a, b"


class TestShellAction:
    async def test_text_output(self, context):
        outcome = await ShellAction().execute({"command": "echo hello"}, context)

        assert outcome.success
        assert outcome.output == "hello"
        assert outcome.exit_code == 0

    async def test_json_output(self, context):
        outcome = await ShellAction().execute(
            {"command": """echo '{"count": 3}'"""}, context
        )

        assert outcome.output == {"count": 3}

    async def test_non_zero_exit(self, context):
        outcome = await ShellAction().execute(
            {"command": "echo oops >&2; exit 3"}, context
        )

        assert not outcome.success
        assert outcome.exit_code == 3
        assert outcome.error == "oops"

    async def test_exit_code_without_stderr(self, context):
        outcome = await ShellAction().execute({"cmd": "exit 1"}, context)

        assert outcome.error == "Exit code: 1"

    async def test_env_and_cwd(self, context, tmp_path):
        outcome = await ShellAction().execute(
            {"command": 'echo "$GREETING $(pwd)"', "env": {"GREETING": "hi"}, "cwd": str(tmp_path)},
            context,
        )

        assert outcome.output == f"hi {tmp_path}"

    async def test_timeout(self, context):
        outcome = await ShellAction().execute({"command": "sleep 5", "timeout": 0.1}, context)

        assert not outcome.success
        assert "timed out" in outcome.error
        assert outcome.exit_code == -1

    async def test_missing_command(self, context):
        outcome = await ShellAction().execute({}, context)

        assert not outcome.success
        assert "command" in outcome.error

    async def test_bad_cwd(self, context, tmp_path):
        outcome = await ShellAction().execute(
            {"command": "true", "cwd": str(tmp_path / "missing")}, context
        )

        assert not outcome.success

    @pytest.mark.parametrize(
        "stdout,expected",
        [("", ""), ("  plain\n", "plain"), ("[1, 2]", [1, 2]), ("{bad", "{bad")],
    )
    def test_parse_output(self, stdout, expected):
        assert parse_output(stdout) == expected


def _http(handler, **kwargs) -> HttpAction:
    return HttpAction(transport=httpx.MockTransport(handler), **kwargs)


class TestHttpAction:
    async def test_get_json(self, context):
        def handler(request):
            assert request.url.params["q"] == "x"
            assert request.headers["x-token"] == "abc"
            return httpx.Response(200, json={"items": [1, 2]})

        outcome = await _http(handler).execute(
            {
                "url": "https://api.example.com/search",
                "query": {"q": "x"},
                "headers": {"X-Token": "abc"},
            },
            context,
        )

        assert outcome.success
        assert outcome.output["status"] == 200
        assert outcome.output["body"] == {"items": [1, 2]}

    async def test_post_json_body(self, context):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, text="created")

        outcome = await _http(handler).execute(
            {"url": "https://api.example.com/items", "method": "post", "body": {"name": "a"}},
            context,
        )

        assert outcome.success
        assert seen == {"method": "POST", "body": {"name": "a"}}
        assert outcome.output["body"] == "created"

    async def test_fixed_method_wins(self, context):
        methods = []

        def handler(request):
            methods.append(request.method)
            return httpx.Response(204)

        await _http(handler, name="http-get", method="GET").execute(
            {"url": "https://example.com", "method": "DELETE"}, context
        )

        assert methods == ["GET"]

    async def test_error_status_fails(self, context):
        outcome = await _http(lambda request: httpx.Response(503, text="down")).execute(
            {"url": "https://example.com/health"}, context
        )

        assert not outcome.success
        assert "HTTP 503" in outcome.error
        assert outcome.output["body"] == "down"

    async def test_connection_error(self, context):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        outcome = await _http(handler).execute({"url": "https://example.com"}, context)

        assert not outcome.success
        assert "failed" in outcome.error

    async def test_timeout(self, context):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        outcome = await _http(handler).execute(
            {"url": "https://example.com", "timeout": 1}, context
        )

        assert not outcome.success
        assert "timed out" in outcome.error

    async def test_validate_status_accepts_expected_code(self):
        outcome = await _http(lambda request: httpx.Response(404, text="gone")).execute(
            {"url": "https://example.com/old", "validateStatus": "status == 404"},
            make_action_context(),
        )

        assert outcome.success
        assert outcome.output["status"] == 404

    async def test_validate_status_rejects(self):
        outcome = await _http(lambda request: httpx.Response(200)).execute(
            {"url": "https://example.com", "validateStatus": "status == 201"},
            make_action_context(),
        )

        assert not outcome.success
        assert "HTTP 200" in outcome.error

    async def test_validate_status_bad_expression(self):
        outcome = await _http(lambda request: httpx.Response(200)).execute(
            {"url": "https://example.com", "validateStatus": "code == 200"},
            make_action_context(),
        )

        assert not outcome.success
        assert "validateStatus failed" in outcome.error

    async def test_requires_url(self, context):
        outcome = await HttpAction().execute({}, context)

        assert not outcome.success
        assert "url" in outcome.error

    async def test_rejects_unknown_method(self, context):
        outcome = await HttpAction().execute({"url": "https://x", "method": "BREW"}, context)

        assert not outcome.success

    def test_describe(self):
        assert HttpAction(name="http-get", method="GET").describe({"url": "https://x"}) == (
            "GET https://x"
        )


class TestPromptAction:
    async def test_requires_interactive_step(self, context):
        outcome = await PromptAction().execute({"message": "Name?"}, context)

        assert not outcome.success
        assert "interactive" in outcome.error

    async def test_returns_answer(self, monkeypatch):
        asked = {}

        def fake_ask(message, default=None):
            asked["message"] = message
            asked["default"] = default
            return "alice"

        monkeypatch.setattr("automate.actions.builtin.prompt.Prompt.ask", fake_ask)

        outcome = await PromptAction().execute(
            {"message": "Name?", "default": "bob"},
            ActionContext(step_id="ask", interactive=True),
        )

        assert outcome.success
        assert outcome.output == "alice"
        assert asked == {"message": "Name?", "default": "bob"}

    async def test_cancelled(self, monkeypatch):
        def fake_ask(message, default=None):
            raise EOFError

        monkeypatch.setattr("automate.actions.builtin.prompt.Prompt.ask", fake_ask)

        outcome = await PromptAction().execute({}, ActionContext(step_id="ask", interactive=True))

        assert not outcome.success
        assert outcome.error == "User cancelled"
