"""
vhdenv lifecycle errors.

Lifecycle errors are the only channel through which a failed disk operation
leaves the core. Each error carries a short context label (which task failed),
a human message, and optionally the raw output of the tool that failed.

Whether a failure needs a rollback is carried on the error itself
(``rollback_required``), so the orchestrator never has to guess from the
exception class.
"""

from __future__ import annotations

from enum import Enum, IntEnum


class ErrorKind(Enum):
    """Category of a lifecycle failure."""

    PRECONDITION = "precondition"
    TOOL_FAILURE = "tool_failure"
    FREEZE_TIMEOUT = "freeze_timeout"
    ROLLBACK = "rollback"


class ExitCode(IntEnum):
    """Process exit status of a lifecycle task."""

    SUCCESS = 0
    FAILURE = 1
    USAGE = 2
    ABORTED = 3  # precondition not met, retrying later is safe


class LifecycleError(Exception):
    """Base class of all lifecycle failures."""

    kind: ErrorKind = ErrorKind.TOOL_FAILURE

    def __init__(
        self,
        context: str,
        message: str,
        output: str | None = None,
        rollback_required: bool = False,
    ) -> None:
        super().__init__(message)
        self.context = context
        self.message = message
        self.output = output or None
        self.rollback_required = rollback_required

    @property
    def retry_safe(self) -> bool:
        """True when nothing was changed and the task can simply be retried."""
        return self.kind is ErrorKind.PRECONDITION

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.ABORTED if self.retry_safe else ExitCode.FAILURE

    def __str__(self) -> str:
        return f"{self.context}: {self.message}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(context={self.context!r}, "
            f"message={self.message!r}, rollback_required={self.rollback_required})"
        )


class PreconditionError(LifecycleError):
    """The disk or drive is not in the state the operation requires."""

    kind = ErrorKind.PRECONDITION


class ToolFailure(LifecycleError):
    """The partitioning tool or the environment script reported a failure."""

    kind = ErrorKind.TOOL_FAILURE


class FreezeTimeout(ToolFailure):
    """The environment script stopped consuming processor time and was killed."""

    kind = ErrorKind.FREEZE_TIMEOUT


class RollbackError(LifecycleError):
    """A best-effort rollback step failed. Never leaves the core."""

    kind = ErrorKind.ROLLBACK
