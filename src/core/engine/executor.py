"""
Engine executor — the command-package run loop.

The executor takes a CommandPackage and a target id, resolves the
target, and runs its commands one at a time, in order, through a
Terminal. The five run strategies share one loop and differ only in
the terminal mode they use, what they return, and their failure policy.

Flow per command:
    context → before text → terminal → transcript → accumulate → after text → failure policy

Failure policy:
    combined / stdout / stderr  every failure aborts the run
    error-only                  aborts only when the command is fatal
    silent                      never aborts
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from src.adapters.base import CommandContext, Terminal
from src.core.engine.errors import CommandFailedError, TerminalError
from src.core.models.command import Command
from src.core.models.package import CommandPackage, find_target

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Strategy:
    """How one run strategy drives the loop."""

    name: str
    mode: str               # terminal method suffix: exec_<mode>
    output_field: str = ""  # Command field that receives the output
    always_fatal: bool = False
    never_fatal: bool = False


COMBINED = _Strategy("combined", "combined", output_field="combined", always_fatal=True)
ERROR_ONLY = _Strategy("error", "error")
SILENT = _Strategy("silent", "only", never_fatal=True)
STDOUT = _Strategy("stdout", "stdout", output_field="stdout", always_fatal=True)
STDERR = _Strategy("stderr", "stderr", output_field="stderr", always_fatal=True)

STRATEGIES: dict[str, _Strategy] = {
    s.name: s for s in (COMBINED, ERROR_ONLY, SILENT, STDOUT, STDERR)
}


class Executor:
    """Run command packages through a Terminal.

    Args:
        terminal: Where commands are executed.
        context: Optional parent context. Every per-command deadline is
            derived from it, so cancelling it stops the in-flight command
            and the run.
    """

    def __init__(self, terminal: Terminal, context: CommandContext | None = None):
        self.terminal = terminal
        self.context = context or CommandContext.background()

    def __repr__(self) -> str:
        return f"<Executor terminal={self.terminal.name!r}>"

    # ── Run strategies ──────────────────────────────────────────

    def run_combined(self, pkg: CommandPackage, target_id: str) -> bytes:
        """Run every command, returning stdout and stderr interleaved.

        Raises:
            TargetNotFoundError: Unknown target, nothing was run.
            CommandFailedError: On the first failing command.
        """
        return self._run(pkg, target_id, COMBINED)

    def run_error_only(self, pkg: CommandPackage, target_id: str) -> None:
        """Run every command, discarding output.

        Non-fatal failures are logged and the run continues.

        Raises:
            TargetNotFoundError: Unknown target, nothing was run.
            CommandFailedError: When a fatal command fails.
        """
        self._run(pkg, target_id, ERROR_ONLY)

    def run_silently(self, pkg: CommandPackage, target_id: str) -> None:
        """Run every command, ignoring output and failures.

        Raises:
            TargetNotFoundError: Unknown target, nothing was run.
        """
        self._run(pkg, target_id, SILENT)

    def run_stdout(self, pkg: CommandPackage, target_id: str) -> bytes:
        """Run every command, returning stdout only."""
        return self._run(pkg, target_id, STDOUT)

    def run_stderr(self, pkg: CommandPackage, target_id: str) -> bytes:
        """Run every command, returning stderr only."""
        return self._run(pkg, target_id, STDERR)

    def run(self, pkg: CommandPackage, target_id: str, strategy: str = "error") -> bytes | None:
        """Dispatch to a run strategy by name.

        Raises:
            ValueError: If ``strategy`` is not one of ``STRATEGIES``.
        """
        if strategy not in STRATEGIES:
            raise ValueError(
                f"Unknown run strategy '{strategy}' "
                f"(expected one of: {', '.join(STRATEGIES)})"
            )
        out = self._run(pkg, target_id, STRATEGIES[strategy])
        if strategy in ("error", "silent"):
            return None
        return out

    # ── Loop ────────────────────────────────────────────────────

    def _run(self, pkg: CommandPackage, target_id: str, strategy: _Strategy) -> bytes:
        target = find_target(pkg, target_id)
        pkg.log_trace(
            f"Running {len(target.commands)} command(s) from '{pkg.label}' "
            f"for {target.id} ({strategy.name})"
        )

        accumulated = bytearray()
        for index, command in enumerate(target.commands):
            pkg.log_trace(f"Command {index + 1}: {command.text}")
            output, error = self._run_one(pkg, command, target.shell, strategy)
            accumulated += output

            if error is None:
                continue
            if strategy.never_fatal:
                pkg.log_trace(f"Ignoring failure of '{command.text}': {error}")
                continue

            message = pkg.redact(f"{command.error_message} occurred and returned {error}")
            if strategy.always_fatal or command.fatal:
                raise CommandFailedError(
                    message,
                    error_message=command.error_message,
                    cause=error,
                    output=bytes(accumulated),
                    fatal=command.fatal,
                ) from error
            pkg.log_error(message)

        return bytes(accumulated)

    def _run_one(
        self,
        pkg: CommandPackage,
        command: Command,
        shell: str,
        strategy: _Strategy,
    ) -> tuple[bytes, TerminalError | None]:
        """Run a single command; return its output and any terminal error."""
        command.clear_output()
        if command.before_text:
            pkg.log.say(command.before_text)

        execute = getattr(self.terminal, f"exec_{strategy.mode}")
        output = b""
        error: TerminalError | None = None
        with self.context.with_timeout(command.timeout) as ctx:
            try:
                output = execute(ctx, command.text, shell) or b""
            except TerminalError as e:
                error = e
                output = e.output or b""

        text = output.decode("utf-8", errors="replace")
        pkg.record(command.text, text)

        if strategy.output_field:
            setattr(command, strategy.output_field, text)

        if command.after_text:
            pkg.log.say(command.after_text)
        return output, error
