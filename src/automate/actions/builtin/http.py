"""HTTP request actions."""

import logging
from typing import Any

import httpx

from automate.actions.base import ActionContext, ActionHandler, ActionOutcome
from automate.engine.expressions import is_truthy
from automate.errors import ExpressionError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
ALLOWED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"})


class HttpAction(ActionHandler):
    """Send an HTTP request.

    Params:
        url: Request URL (required).
        method: HTTP method (default: GET, or the fixed method of the action).
        headers: Request headers.
        query: Query string parameters.
        body: JSON body (objects/lists) or raw text.
        timeout: Seconds (default: 30).
        validateStatus: Condition deciding success, with `status` in scope,
            e.g. "status == 404". Default: status below 400.

    Output is {"status": int, "headers": {...}, "body": <json or text>}.
    """

    raw_params = frozenset({"validateStatus"})

    def __init__(
        self,
        name: str = "http",
        method: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._name = name
        self._method = method
        self._transport = transport

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        if self._method:
            return f"Send an HTTP {self._method} request"
        return "Send an HTTP request"

    async def execute(
        self,
        params: dict[str, Any],
        context: ActionContext,
    ) -> ActionOutcome:
        url = params.get("url")
        if not url:
            return ActionOutcome.fail("Missing required parameter: url")

        method = str(self._method or params.get("method") or "GET").upper()
        if method not in ALLOWED_METHODS:
            return ActionOutcome.fail(f"Unsupported HTTP method: {method}")

        headers = {str(k): str(v) for k, v in (params.get("headers") or {}).items()}
        query = params.get("query") or None
        body = params.get("body")
        timeout = float(params.get("timeout") or context.timeout or DEFAULT_TIMEOUT_SECONDS)

        request_kwargs: dict[str, Any] = {"headers": headers, "params": query}
        if isinstance(body, dict | list):
            request_kwargs["json"] = body
        elif body is not None:
            request_kwargs["content"] = str(body)

        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.request(method, str(url), **request_kwargs)
        except httpx.TimeoutException:
            return ActionOutcome.fail(f"{method} {url} timed out after {timeout:g}s")
        except httpx.HTTPError as e:
            return ActionOutcome.fail(f"{method} {url} failed: {e}")

        output = {
            "status": response.status_code,
            "headers": dict(response.headers),
            "body": _decode_body(response),
        }
        logger.debug(
            "http_request_completed",
            extra={
                "step.id": context.step_id,
                "http.method": method,
                "http.status_code": response.status_code,
            },
        )

        validate = params.get("validateStatus")
        if validate is None:
            status_ok = response.status_code < 400
        else:
            try:
                status_ok = is_truthy(context.evaluate_in(validate, status=response.status_code))
            except ExpressionError as e:
                return ActionOutcome.fail(f"validateStatus failed: {e}", output=output)

        if not status_ok:
            return ActionOutcome.fail(
                f"{method} {url} returned HTTP {response.status_code}",
                output=output,
            )
        return ActionOutcome.ok(output)

    def describe(self, params: dict[str, Any]) -> str:
        method = str(self._method or params.get("method") or "GET").upper()
        return f"{method} {params.get('url', '')}"


def _decode_body(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            pass
    return response.text
