"""
Command package — one installation phase, indexed by target.

A package is created empty for a label ("bootstrap", "installdb"...),
then populated with targets and their commands. It also carries the
package-level output settings the executor needs: the redaction
switch and secret list, the leveled logger, and the optional command
transcript.

Running a package re-issues every command verbatim; it is not
idempotent.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from src.core.engine.errors import TargetNotFoundError
from src.core.models.command import Command, Target
from src.core.observability.leveled import CommandTranscript, LeveledLogger
from src.core.observability.redact import Redactor

logger = logging.getLogger(__name__)


class CommandPackage:
    """A labelled collection of Targets plus shared output settings."""

    def __init__(
        self,
        label: str,
        redactor: Redactor | None = None,
        log: LeveledLogger | None = None,
    ):
        self.label = label
        self.targets: list[Target] = []
        self.redactor = redactor or (log.redactor if log else Redactor())
        self.log = log or LeveledLogger(redactor=self.redactor)
        self.transcript: CommandTranscript | None = None
        self.enable_transcript = False

    def __repr__(self) -> str:
        return f"<CommandPackage label={self.label!r} targets={len(self.targets)}>"

    # ── Targets & commands ──────────────────────────────────────

    def add_target(
        self,
        target_id: str,
        distro: str,
        release: str,
        os: str = "linux",
        shell: str = "bash",
    ) -> Target:
        """Append a new empty Target and return it."""
        target = Target(id=target_id, distro=distro, release=release, os=os, shell=shell)
        self.targets.append(target)
        return target

    def add_command(
        self,
        target_id: str,
        text: str,
        error_message: str,
        fatal: bool = False,
        timeout: float = 0,
        before_text: str = "",
        after_text: str = "",
    ) -> Command:
        """Build one Command and append it to ``target_id``.

        Raises:
            TargetNotFoundError: If the target is not registered.
            pydantic.ValidationError: If the command is malformed.
        """
        target = find_target(self, target_id)
        command = Command(
            text=text,
            error_message=error_message,
            fatal=fatal,
            timeout=timeout,
            before_text=before_text,
            after_text=after_text,
        )
        target.commands.append(command)
        return command

    @property
    def target_ids(self) -> list[str]:
        return [t.id for t in self.targets]

    # ── Redaction ───────────────────────────────────────────────

    @property
    def redaction_enabled(self) -> bool:
        return self.redactor.enabled

    def add_redact(self, secret: str) -> None:
        self.redactor.add(secret)

    def add_redact_many(self, secrets: Iterable[str]) -> None:
        self.redactor.add_many(secrets)

    def turn_off_redaction(self) -> None:
        self.redactor.turn_off()

    def redact(self, text: str) -> str:
        return self.redactor.redact(text)

    # ── Logging ─────────────────────────────────────────────────

    def log_trace(self, msg: str) -> None:
        self.log.trace(msg)

    def log_info(self, msg: str) -> None:
        self.log.info(msg)

    def log_warning(self, msg: str) -> None:
        self.log.warning(msg)

    def log_error(self, msg: str) -> None:
        self.log.error(msg)

    # ── Transcript ──────────────────────────────────────────────

    def set_transcript(self, transcript: CommandTranscript) -> None:
        self.transcript = transcript

    def turn_on_transcript(self) -> None:
        """Enable transcript logging. Needs a transcript set first."""
        if self.transcript is None:
            raise ValueError(
                f"Command package '{self.label}' has no transcript logger; "
                "call set_transcript() first"
            )
        self.enable_transcript = True

    def record(self, command: str, output: str) -> None:
        """Write a redacted transcript entry when transcripts are on."""
        if not self.enable_transcript or self.transcript is None:
            return
        self.transcript.record(self.redact(command), self.redact(output))


def find_target(pkg: CommandPackage, target_id: str) -> Target:
    """Return the Target whose id matches ``target_id`` (case-insensitive).

    Only exact matches count: there is no prefix, wildcard or fallback
    lookup.

    Raises:
        TargetNotFoundError: If no registered target matches.
    """
    for target in pkg.targets:
        if target.matches(target_id):
            return target
    raise TargetNotFoundError(target_id, label=pkg.label)


def load_commands(pkg: CommandPackage, commands: Iterable[Command], target_id: str) -> None:
    """Append a batch of Commands to an existing Target.

    Raises:
        TargetNotFoundError: If the target is not registered.
    """
    target = find_target(pkg, target_id)
    added = list(commands)
    target.commands.extend(added)
    logger.debug("Loaded %d command(s) into %s/%s", len(added), pkg.label, target.id)
