"""File system actions: file.read, file.write, file.copy, file.move,
file.delete, file.glob and file.template.

Relative paths resolve against the daemon's (or CLI's) working directory.
Blocking file I/O runs in a worker thread.
"""

import asyncio
import json
import logging
import shutil
from pathlib import Path
from typing import Any

from automate.actions.base import ActionContext, ActionHandler, ActionOutcome
from automate.errors import ExpressionError

logger = logging.getLogger(__name__)

FILE_OPERATIONS = ("read", "write", "copy", "move", "delete", "glob", "template")

_REQUIRED_PARAMS: dict[str, tuple[str, ...]] = {
    "read": ("path",),
    "write": ("path",),
    "copy": ("source", "destination"),
    "move": ("source", "destination"),
    "delete": ("path",),
    "glob": ("pattern",),
    "template": (),
}

_DESCRIPTIONS = {
    "read": "Read a text file",
    "write": "Write content to a file",
    "copy": "Copy a file",
    "move": "Move or rename a file",
    "delete": "Delete a file",
    "glob": "List files matching a glob pattern",
    "template": "Render a template, optionally to a file",
}


def to_text(value: Any) -> str:
    """Render a param value as file or string content."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict | list):
        return json.dumps(value, indent=2)
    return str(value)


def _path(value: Any) -> Path:
    return Path(str(value)).expanduser().resolve()


class FileAction(ActionHandler):
    """File system operation, registered once per operation as "file.<op>".

    Params by operation:
        read: path. Output {"path", "content", "size"}.
        write: path, content. Creates parent directories.
        copy, move: source, destination. Creates parent directories.
        delete: path. Output {"path", "existed"}; a missing file is not an error.
        glob: pattern, cwd (default: working directory). Output
            {"pattern", "cwd", "files", "count"}, files only, absolute paths.
        template: templatePath or content, variables, path. ``{{ name }}``
            references see `variables` first, then the run's values. With
            `path` the result is written there.
    """

    def __init__(self, operation: str) -> None:
        if operation not in FILE_OPERATIONS:
            raise ValueError(f"Unknown file operation: {operation}")
        self._operation = operation
        if operation == "template":
            self.raw_params = frozenset({"content"})

    @property
    def name(self) -> str:
        return f"file.{self._operation}"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self._operation]

    async def execute(
        self,
        params: dict[str, Any],
        context: ActionContext,
    ) -> ActionOutcome:
        for key in _REQUIRED_PARAMS[self._operation]:
            if params.get(key) in (None, ""):
                return ActionOutcome.fail(f"Missing required parameter: {key}")

        try:
            if self._operation == "template":
                return await self._template(params, context)
            operation = getattr(self, f"_{self._operation}")
            outcome: ActionOutcome = await asyncio.to_thread(operation, params)
        except (OSError, UnicodeDecodeError) as e:
            return ActionOutcome.fail(f"{self.name} failed: {e}")

        if outcome.success and self._operation != "read":
            logger.debug(
                "file_action_completed",
                extra={"step.id": context.step_id, "file.operation": self._operation},
            )
        return outcome

    @staticmethod
    def _read(params: dict[str, Any]) -> ActionOutcome:
        path = _path(params["path"])
        if not path.is_file():
            return ActionOutcome.fail(f"File not found: {path}")
        content = path.read_text(encoding="utf-8")
        return ActionOutcome.ok({"path": str(path), "content": content, "size": len(content)})

    @staticmethod
    def _write(params: dict[str, Any]) -> ActionOutcome:
        path = _path(params["path"])
        content = to_text(params.get("content"))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return ActionOutcome.ok({"path": str(path), "size": len(content)})

    @staticmethod
    def _copy(params: dict[str, Any]) -> ActionOutcome:
        source, destination = _path(params["source"]), _path(params["destination"])
        if not source.exists():
            return ActionOutcome.fail(f"Source not found: {source}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)
        return ActionOutcome.ok({"source": str(source), "destination": str(destination)})

    @staticmethod
    def _move(params: dict[str, Any]) -> ActionOutcome:
        source, destination = _path(params["source"]), _path(params["destination"])
        if not source.exists():
            return ActionOutcome.fail(f"Source not found: {source}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(source, destination)
        return ActionOutcome.ok({"source": str(source), "destination": str(destination)})

    @staticmethod
    def _delete(params: dict[str, Any]) -> ActionOutcome:
        path = _path(params["path"])
        existed = path.exists()
        if existed:
            path.unlink()
        return ActionOutcome.ok({"path": str(path), "existed": existed})

    @staticmethod
    def _glob(params: dict[str, Any]) -> ActionOutcome:
        pattern = str(params["pattern"])
        cwd = _path(params["cwd"]) if params.get("cwd") else Path.cwd()
        base, relative = cwd, pattern
        if Path(pattern).is_absolute():
            base = Path(Path(pattern).anchor)
            relative = str(Path(pattern).relative_to(base))
        files = sorted(str(p.resolve()) for p in base.glob(relative) if p.is_file())
        return ActionOutcome.ok(
            {"pattern": pattern, "cwd": str(cwd), "files": files, "count": len(files)}
        )

    async def _template(self, params: dict[str, Any], context: ActionContext) -> ActionOutcome:
        if params.get("templatePath"):
            template_path = _path(params["templatePath"])
            if not template_path.is_file():
                return ActionOutcome.fail(f"Template not found: {template_path}")
            template = await asyncio.to_thread(template_path.read_text, encoding="utf-8")
        else:
            template = params.get("content") or ""

        variables = params.get("variables") or {}
        if not isinstance(variables, dict):
            return ActionOutcome.fail("variables must be an object")
        try:
            rendered = to_text(context.render_in(template, **variables))
        except ExpressionError as e:
            return ActionOutcome.fail(f"Template error: {e}")

        if not params.get("path"):
            return ActionOutcome.ok({"content": rendered})
        outcome: ActionOutcome = await asyncio.to_thread(
            self._write, {"path": params["path"], "content": rendered}
        )
        if outcome.success:
            outcome.output = {"path": outcome.output["path"], "content": rendered}
        return outcome

    def describe(self, params: dict[str, Any]) -> str:
        if self._operation in ("copy", "move"):
            return f"{self.name} {params.get('source', '')} -> {params.get('destination', '')}"
        target = params.get("pattern") or params.get("path") or params.get("templatePath") or ""
        return f"{self.name} {target}".rstrip()
