"""
Mock terminal — test double for all terminal operations.

Used in tests to drive the engine without shelling out. Returns a
programmed output/error pair regardless of the capture mode requested,
and records every command it was asked to run.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.adapters.base import CommandContext, Terminal
from src.core.engine.errors import CommandExitError, TerminalError


@dataclass
class MockCall:
    """One recorded terminal invocation."""

    mode: str
    command: str
    shell: str


class MockTerminal(Terminal):
    """Universal mock terminal for testing.

    By default every call returns ``output`` (or raises ``error`` if one
    is set). Individual commands can be given their own output or be
    made to fail with ``respond`` / ``fail_on``.
    """

    def __init__(
        self,
        output: bytes = b"",
        error: TerminalError | None = None,
        terminal_name: str = "mock",
    ):
        self.output = output
        self.error = error
        self.last_command = ""
        self._name = terminal_name
        self._responses: dict[str, bytes] = {}
        self._failures: dict[str, TerminalError] = {}
        self._call_log: list[MockCall] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[MockCall]:
        """All invocations this mock has received, in order."""
        return self._call_log

    @property
    def commands(self) -> list[str]:
        return [call.command for call in self._call_log]

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def respond(self, command: str, output: bytes) -> None:
        """Set a custom output for a specific command string."""
        self._responses[command] = output

    def fail_on(self, command: str, error: TerminalError | None = None) -> None:
        """Configure a specific command to fail (exit status 1 by default)."""
        self._failures[command] = error or CommandExitError(1, command=command)

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._responses.clear()
        self._failures.clear()
        self.last_command = ""

    def _invoke(self, mode: str, command: str, shell: str) -> bytes:
        self.last_command = command
        self._call_log.append(MockCall(mode=mode, command=command, shell=shell))

        if command in self._failures:
            raise self._failures[command]
        if self.error is not None:
            raise self.error
        return self._responses.get(command, self.output)

    def exec_combined(self, ctx: CommandContext, command: str, shell: str) -> bytes:
        return self._invoke("combined", command, shell)

    def exec_error(self, ctx: CommandContext, command: str, shell: str) -> None:
        self._invoke("error", command, shell)

    def exec_only(self, ctx: CommandContext, command: str, shell: str) -> None:
        try:
            self._invoke("only", command, shell)
        except TerminalError:
            pass

    def exec_stdout(self, ctx: CommandContext, command: str, shell: str) -> bytes:
        return self._invoke("stdout", command, shell)

    def exec_stderr(self, ctx: CommandContext, command: str, shell: str) -> bytes:
        return self._invoke("stderr", command, shell)
