"""Shell command action."""

import asyncio
import json
import logging
import os
from typing import Any

from automate.actions.base import ActionContext, ActionHandler, ActionOutcome

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300
# Output kept per stream; the ledger truncates again when persisting
MAX_OUTPUT_CHARS = 1_000_000


def parse_output(stdout: str) -> Any:
    """Decode JSON stdout for structured access, else return stripped text."""
    text = stdout.strip()
    if not text:
        return ""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


class ShellAction(ActionHandler):
    """Run a command with `bash -c`.

    Params:
        command (or cmd): Command line to run.
        cwd: Working directory (default: current directory).
        timeout: Seconds before the process is killed (default: 300).
        env: Extra environment variables.

    A zero exit code is success. Stdout is parsed as JSON when possible so
    later steps can reference fields like ${steps.list.output.count}.
    """

    @property
    def name(self) -> str:
        return "shell"

    @property
    def description(self) -> str:
        return "Run a shell command"

    async def execute(
        self,
        params: dict[str, Any],
        context: ActionContext,
    ) -> ActionOutcome:
        command = params.get("command", params.get("cmd"))
        if not command:
            return ActionOutcome.fail("Missing required parameter: command")

        timeout = float(params.get("timeout") or context.timeout or DEFAULT_TIMEOUT_SECONDS)
        cwd = params.get("cwd")
        env = {**os.environ, **context.env}
        extra_env = params.get("env") or {}
        if not isinstance(extra_env, dict):
            return ActionOutcome.fail("Parameter 'env' must be an object")
        env.update({str(k): str(v) for k, v in extra_env.items()})

        logger.debug(
            "shell_command_starting",
            extra={"step.id": context.step_id, "process.command": str(command)},
        )

        try:
            proc = await asyncio.create_subprocess_exec(
                "bash",
                "-c",
                str(command),
                cwd=str(cwd) if cwd else None,
                env=env,
                stdin=None if context.interactive else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, NotADirectoryError, PermissionError) as e:
            return ActionOutcome.fail(f"Cannot start command: {e}")

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=timeout
            )
        except TimeoutError:
            proc.kill()
            await proc.wait()
            return ActionOutcome.fail(
                f"Command timed out after {timeout:g}s", exit_code=-1
            )
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise

        stdout = stdout_bytes.decode("utf-8", errors="replace")[:MAX_OUTPUT_CHARS]
        stderr = stderr_bytes.decode("utf-8", errors="replace")[:MAX_OUTPUT_CHARS]
        exit_code = proc.returncode if proc.returncode is not None else -1
        output = parse_output(stdout)

        if exit_code != 0:
            return ActionOutcome.fail(
                stderr.strip() or f"Exit code: {exit_code}",
                output=output,
                exit_code=exit_code,
            )
        return ActionOutcome.ok(output, exit_code=exit_code)

    def describe(self, params: dict[str, Any]) -> str:
        return f"shell: {params.get('command', params.get('cmd', ''))}"
