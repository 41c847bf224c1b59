"""
Local terminal — execute shell commands on this host.

This is the most fundamental terminal: it launches ``<shell> -c
<command>`` as a child process, captures the requested stream(s), and
supervises it against the context's deadline and cancellation.

The child is started in its own session so a timeout can kill the
whole process group (``bash -c "a | b"`` spawns grandchildren that
would otherwise keep the pipes open).
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess

from src.adapters.base import CommandContext, Terminal
from src.core.engine.errors import (
    CommandCancelledError,
    CommandExitError,
    CommandStartError,
    CommandTimeoutError,
    TerminalError,
)

logger = logging.getLogger(__name__)

# How often a running child is checked against its context
_POLL_INTERVAL = 0.05


class LocalTerminal(Terminal):
    """Run commands as local child processes."""

    @property
    def name(self) -> str:
        return "local"

    def is_available(self, shell: str = "bash") -> bool:
        return shutil.which(shell) is not None

    def exec_combined(self, ctx: CommandContext, command: str, shell: str) -> bytes:
        out, _ = self._run(ctx, command, shell, subprocess.PIPE, subprocess.STDOUT)
        return out

    def exec_error(self, ctx: CommandContext, command: str, shell: str) -> None:
        self._run(ctx, command, shell, subprocess.DEVNULL, subprocess.DEVNULL)

    def exec_only(self, ctx: CommandContext, command: str, shell: str) -> None:
        try:
            self._run(ctx, command, shell, subprocess.DEVNULL, subprocess.DEVNULL)
        except TerminalError as e:
            logger.debug("Ignored failure of best-effort command: %s", e)

    def exec_stdout(self, ctx: CommandContext, command: str, shell: str) -> bytes:
        out, _ = self._run(ctx, command, shell, subprocess.PIPE, subprocess.DEVNULL)
        return out

    def exec_stderr(self, ctx: CommandContext, command: str, shell: str) -> bytes:
        _, err = self._run(ctx, command, shell, subprocess.DEVNULL, subprocess.PIPE)
        return err

    # ── internals ─────────────────────────────────────────────────

    def _run(
        self,
        ctx: CommandContext,
        command: str,
        shell: str,
        stdout: int,
        stderr: int,
    ) -> tuple[bytes, bytes]:
        """Start, drain and wait for one child, honouring ``ctx``.

        Returns ``(stdout_bytes, stderr_bytes)``; a stream that was not
        piped comes back as ``b""``.
        """
        if ctx.cancelled:
            raise CommandCancelledError(command=command)
        if ctx.expired:
            raise CommandTimeoutError(ctx.timeout, command=command)

        logger.debug("Executing: %s -c <command>", shell)
        try:
            proc = subprocess.Popen(
                [shell, "-c", command],
                stdin=subprocess.DEVNULL,
                stdout=stdout,
                stderr=stderr,
                start_new_session=True,
            )
        except OSError as e:
            raise CommandStartError(
                f"unable to start {shell}: {e}", command=command,
            ) from e

        # communicate() drains the pipes while waiting and may be retried
        # after TimeoutExpired without losing output
        while True:
            wait = _POLL_INTERVAL
            remaining = ctx.remaining()
            if remaining is not None:
                wait = min(wait, remaining)
            try:
                out, err = proc.communicate(timeout=wait)
                break
            except subprocess.TimeoutExpired:
                if not ctx.done:
                    continue
                out, err = self._kill(proc)
                partial = _captured(out, err, stdout)
                if ctx.cancelled:
                    raise CommandCancelledError(command=command, output=partial)
                raise CommandTimeoutError(ctx.timeout, command=command, output=partial)

        out = out or b""
        err = err or b""
        if proc.returncode != 0:
            raise CommandExitError(
                proc.returncode, command=command, output=_captured(out, err, stdout),
            )
        return out, err

    @staticmethod
    def _kill(proc: subprocess.Popen) -> tuple[bytes | None, bytes | None]:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        return proc.communicate()


def _captured(out: bytes | None, err: bytes | None, stdout: int) -> bytes:
    """Pick the stream that was actually captured for error reporting."""
    if stdout == subprocess.PIPE:
        return out or b""
    return err or b""
