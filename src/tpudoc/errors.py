"""Exception hierarchy for tpu-doc.

Platform probes raise these; check bodies translate them into ``Skip`` or
``Fail`` results and the CLI reports them at the invocation boundary.
"""

from __future__ import annotations


class TpuDocError(Exception):
    """Base class for all tpu-doc errors."""


class NotOnAcceleratorError(TpuDocError):
    """Raised when the host has no TPU attached."""

    def __init__(self) -> None:
        super().__init__("Not running on a TPU VM")


class PermissionDeniedError(TpuDocError):
    """Raised when a resource exists but cannot be read."""

    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__(f"Permission denied: {resource}")


class ProbeTimeoutError(TpuDocError):
    """Raised when a probe operation exceeds its time limit."""

    def __init__(self, operation: str, timeout_ms: int) -> None:
        self.operation = operation
        self.timeout_ms = timeout_ms
        super().__init__(f"Timeout after {timeout_ms}ms: {operation}")


class ProbeIOError(TpuDocError):
    """Raised for missing files, failed connections and non-200 responses.

    Parameters
    ----------
    context:
        Short tag naming the operation that failed.
    message:
        Human-readable failure description.
    status_code:
        HTTP status code when the failure was an HTTP response.
    """

    def __init__(self, context: str, message: str, *, status_code: int | None = None) -> None:
        self.context = context
        self.message = message
        self.status_code = status_code
        super().__init__(f"I/O error in {context}: {message}")


class ProbeParseError(TpuDocError):
    """Raised when probe input or a baseline file is malformed."""

    def __init__(self, context: str, message: str) -> None:
        self.context = context
        self.message = message
        super().__init__(f"Parse error in {context}: {message}")


class CheckFailedError(TpuDocError):
    """Raised when a check cannot produce a result at all."""

    def __init__(self, check_id: str, reason: str) -> None:
        self.check_id = check_id
        self.reason = reason
        super().__init__(f"Check {check_id} failed: {reason}")


class CommandError(TpuDocError):
    """Raised when an external command is missing or exits abnormally."""

    def __init__(self, command: str, message: str) -> None:
        self.command = command
        self.message = message
        super().__init__(f"Command '{command}' error: {message}")
