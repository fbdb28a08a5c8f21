"""
vhdenv diskpart invoker.

Writes a rendered script to a fixed-name file in the temp directory, runs
``diskpart /s <file>`` synchronously and classifies the outcome. Diskpart is
not trusted with its own exit code: text on the error stream is a failure
even when the exit code is 0.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from vhdenv.core.logging import get_logger
from vhdenv.core.models import ExecutionResult
from vhdenv.core.templates import ScriptProperties, ScriptTask, render

if TYPE_CHECKING:
    from vhdenv.core.config import DiskConfig
    from vhdenv.platform.base import CommandResult, PlatformBackend

logger = get_logger(__name__)


def classify(result: CommandResult) -> ExecutionResult:
    """Build the ExecutionResult of a finished tool run."""
    if result.error is not None:
        return ExecutionResult(output=result.error, failed=True, message=result.error)

    stdout = (result.stdout or "").strip()
    stderr = (result.stderr or "").strip()
    output = "\n".join(text for text in (stdout, stderr) if text)
    failed = bool(stderr) or result.returncode != 0
    return ExecutionResult(output=output, failed=failed)


class DiskpartInvoker:
    """Runs the diskpart script of a ScriptTask."""

    def __init__(self, backend: PlatformBackend, config: DiskConfig) -> None:
        self.backend = backend
        self.tool = config.diskpart
        self.script_directory = config.script_directory

    def script_file(self, task: ScriptTask) -> Path:
        # Fixed names, so a file left behind by a crash is overwritten next time
        directory = self.script_directory or Path(tempfile.gettempdir())
        return directory / f"diskpart.{task.value}"

    def run(self, task: ScriptTask, properties: ScriptProperties) -> ExecutionResult:
        script = render(task, properties)
        script_file = self.script_file(task)

        try:
            script_file.unlink(missing_ok=True)
            script_file.write_bytes(script.encode("ascii"))
            logger.debug("Running diskpart", task=task.value, script_file=str(script_file))
            result = classify(self.backend.run_command([self.tool, "/s", str(script_file)]))
        except UnicodeEncodeError as e:
            message = f"Script cannot be written as ASCII: {e.object[e.start:e.end]!r}"
            result = ExecutionResult(output=message, failed=True, message=message)
        except OSError as e:
            result = ExecutionResult(output=str(e), failed=True, message=str(e))
        finally:
            try:
                script_file.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Script file not removed", script_file=str(script_file), error=str(e))

        if result.failed:
            logger.warning("Diskpart failed", task=task.value, output=result.output[:500])
        return result
