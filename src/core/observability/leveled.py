"""
Leveled logger — the installer's two output channels.

1. The install log: ``trace / info / warning / error`` lines written
   through a stdlib logger (normally the one returned by
   ``open_install_log``).
2. Operator echo: section headers, status lines and boxed banners
   printed to the terminal with click, silenced by ``quiet``.

Both channels pass every string through the shared ``Redactor`` so a
secret registered once never reaches a log file or the screen.

``CommandTranscript`` is a third, optional channel that receives the
command-and-output record of every executed command.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from src.core.observability.logging_config import TRACE
from src.core.observability.redact import Redactor

_BANNER_WIDTH = 80


class LeveledLogger:
    """Redacting front-end over a stdlib logger plus operator echo."""

    def __init__(
        self,
        logger: logging.Logger | None = None,
        redactor: Redactor | None = None,
        trace_enabled: bool = False,
        quiet: bool = False,
    ):
        self.logger = logger or logging.getLogger("dojo.install")
        self.redactor = redactor or Redactor()
        self.trace_enabled = trace_enabled
        self.quiet = quiet

    # ── Install log ─────────────────────────────────────────────

    def trace(self, msg: str) -> None:
        # Skipped before redaction when tracing is off
        if not self.trace_enabled:
            return
        self.logger.log(TRACE, self.redactor.redact(msg))

    def info(self, msg: str) -> None:
        self.logger.info(self.redactor.redact(msg))

    def warning(self, msg: str) -> None:
        self.logger.warning(self.redactor.redact(msg))

    def error(self, msg: str) -> None:
        self.logger.error(self.redactor.redact(msg))

    # ── Operator echo ───────────────────────────────────────────

    def section(self, msg: str) -> None:
        """Announce the start of a major install step."""
        if self.quiet:
            return
        rule = "=" * _BANNER_WIDTH
        click.echo("")
        click.secho(rule, bold=True)
        click.secho(f"  {self.redactor.redact(msg)}", bold=True)
        click.secho(rule, bold=True)
        click.echo("")

    def status(self, msg: str) -> None:
        if self.quiet:
            return
        click.echo(f"    {self.redactor.redact(msg)}")

    def warn(self, msg: str) -> None:
        """Boxed warning banner. Also recorded in the install log."""
        self.warning(msg)
        if self.quiet:
            return
        self._banner("WARNING", msg, fg="yellow")

    def fail(self, msg: str) -> None:
        """Boxed error banner, always shown, even when quiet.

        Also recorded in the install log.
        """
        self.error(msg)
        self._banner("ERROR", msg, fg="red", err=True)

    def say(self, msg: str) -> None:
        """Echo free-form text such as a command's before/after text."""
        if self.quiet:
            return
        click.echo(self.redactor.redact(msg))

    def _banner(self, title: str, msg: str, fg: str, err: bool = False) -> None:
        rule = "#" * _BANNER_WIDTH
        click.echo("", err=err)
        click.secho(rule, fg=fg, err=err)
        click.secho(f"  {title}", fg=fg, bold=True, err=err)
        for line in self.redactor.redact(msg).splitlines() or [""]:
            click.secho(f"  {line}", fg=fg, err=err)
        click.secho(rule, fg=fg, err=err)
        click.echo("", err=err)


class CommandTranscript:
    """Side-channel log of every executed command and its output.

    Accepts either a ready logger (``open_transcript_log``) or a file
    path, in which case a dedicated non-propagating logger is created.
    """

    def __init__(
        self,
        path_or_logger: str | Path | logging.Logger,
        prefix: str = "[dojo-installer]",
    ):
        self.prefix = prefix
        self._handler: logging.Handler | None = None
        if isinstance(path_or_logger, logging.Logger):
            self.logger = path_or_logger
            return

        path = Path(path_or_logger).resolve()
        # One logger per resolved file path; reopening a path takes it over
        self.logger = logging.getLogger(f"dojo.transcript.file:{path}")
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False
        for old in self.logger.handlers[:]:
            self.logger.removeHandler(old)
            old.close()
        self._handler = logging.FileHandler(path, encoding="utf-8")
        self._handler.setFormatter(logging.Formatter("%(message)s"))
        self.logger.addHandler(self._handler)

    def record(self, command: str, output: str) -> None:
        """Write one entry. Both strings must already be redacted."""
        self.logger.info("%s # %s\n%s", self.prefix, command, output)

    def close(self) -> None:
        if self._handler is None:
            return
        self.logger.removeHandler(self._handler)
        self._handler.close()
        self._handler = None
