"""
Engine errors — the failure taxonomy for command execution.

Terminals raise the low-level errors (start, exit, timeout, cancel).
The executor wraps them in ``CommandFailedError`` together with the
command's human-readable error message. Resolution failures
(``TargetNotFoundError``) happen before anything runs.
"""

from __future__ import annotations


class TargetNotFoundError(LookupError):
    """Raised when a target identifier is not registered in a package."""

    def __init__(self, target_id: str, label: str = ""):
        self.target_id = target_id
        self.label = label
        where = f"Command package '{label}'" if label else "Command package"
        super().__init__(f"{where} does not support target {target_id}")


class TerminalError(Exception):
    """Base class for failures reported by a Terminal.

    ``output`` holds whatever the process wrote before it failed, in the
    shape the capture mode asked for (may be empty).
    """

    def __init__(self, message: str, command: str = "", output: bytes = b""):
        super().__init__(message)
        self.command = command
        self.output = output


class CommandStartError(TerminalError):
    """The process could not be launched (missing shell, permission denied)."""


class CommandExitError(TerminalError):
    """The process ran and exited with a non-zero status."""

    def __init__(self, returncode: int, command: str = "", output: bytes = b""):
        super().__init__(f"exit status {returncode}", command=command, output=output)
        self.returncode = returncode


class CommandTimeoutError(TerminalError):
    """The context deadline elapsed before the process exited."""

    def __init__(self, timeout: float | None, command: str = "", output: bytes = b""):
        if timeout:
            message = f"timed out after {timeout:g}s"
        else:
            message = "deadline exceeded"
        super().__init__(message, command=command, output=output)
        self.timeout = timeout


class CommandCancelledError(TerminalError):
    """The context was cancelled before the process exited."""

    def __init__(self, command: str = "", output: bytes = b""):
        super().__init__("cancelled", command=command, output=output)


class CommandFailedError(Exception):
    """A command in a package run failed.

    The message bundles the command's error message with the underlying
    terminal error. It is already redacted when raised by the executor.
    ``output`` carries everything gathered by the run up to and
    including the failing command.
    """

    def __init__(
        self,
        message: str,
        error_message: str = "",
        cause: TerminalError | None = None,
        output: bytes = b"",
        fatal: bool = True,
    ):
        super().__init__(message)
        self.error_message = error_message
        self.cause = cause
        self.output = output
        self.fatal = fatal

    @property
    def timed_out(self) -> bool:
        return isinstance(self.cause, CommandTimeoutError)
