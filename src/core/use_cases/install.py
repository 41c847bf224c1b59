"""
Install use case — run the install phases in order.

This is the top-level orchestrator: it builds each phase's command
package from the catalog, shares one Redactor, LeveledLogger and
transcript across all of them, runs them through a single Executor,
and stops at the first fatal failure.

Phase order:
    (preflight) → bootstrap → installerprep → installdb / installdbclient
    → startdb → prepdb → prepdjango → createsettings → setupdojo
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from src.adapters.base import CommandContext, Terminal
from src.core.data.catalog import build_package, redaction_values
from src.core.engine.errors import CommandFailedError, TargetNotFoundError
from src.core.engine.executor import Executor
from src.core.models.config import InstallerConfig
from src.core.models.package import CommandPackage, find_target
from src.core.observability.leveled import CommandTranscript, LeveledLogger
from src.core.services.preflight import PreflightError

logger = logging.getLogger(__name__)

# Phase → (section heading, completion status)
PHASE_MESSAGES: dict[str, tuple[str, str]] = {
    "bootstrap": ("Bootstrapping the installer", "Bootstrapping the installer complete"),
    "installerprep": ("Installing OS packages needed for DefectDojo", "Installing OS packages complete"),
    "installdb": ("Installing database needed for DefectDojo", "Installing Database complete"),
    "installdbclient": (
        "Installing database client needed for DefectDojo",
        "Installing Database client complete",
    ),
    "startdb": ("Starting the database needed for DefectDojo", "Starting Database complete"),
    "prepdb": ("Preparing the database for DefectDojo", "Preparing the database complete"),
    "prepdjango": ("Preparing the OS for DefectDojo installation", "Preparing the OS complete"),
    "createsettings": ("Creating settings for DefectDojo", "Creating settings for DefectDojo complete"),
    "setupdojo": ("Setting up Django for DefectDojo", "Setting up Django for DefectDojo complete"),
}


@dataclass
class PhaseResult:
    """Outcome of one phase."""

    phase: str
    ok: bool = False
    error: str | None = None
    commands: list[str] = field(default_factory=list)   # redacted, dry-run only
    output: bytes = b""

    def to_dict(self) -> dict:
        return {
            "phase": self.phase,
            "ok": self.ok,
            "error": self.error,
            "commands": self.commands,
        }


@dataclass
class InstallReport:
    """Result of an install run."""

    target: str = ""
    dry_run: bool = False
    phases: list[PhaseResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.phases) and all(p.ok for p in self.phases)

    @property
    def failed_phase(self) -> str | None:
        for p in self.phases:
            if not p.ok:
                return p.phase
        return None

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "dry_run": self.dry_run,
            "ok": self.ok,
            "failed_phase": self.failed_phase,
            "phases": [p.to_dict() for p in self.phases],
        }


class InstallError(Exception):
    """A phase failed and the install was stopped.

    ``report`` holds the phases run so far, the last one failed.
    The message is already redacted.
    """

    def __init__(self, message: str, phase: str, report: InstallReport):
        super().__init__(message)
        self.phase = phase
        self.report = report


class Installer:
    """Runs install phases for one config through one terminal."""

    def __init__(
        self,
        config: InstallerConfig,
        terminal: Terminal,
        log: LeveledLogger | None = None,
        transcript: CommandTranscript | None = None,
        context: CommandContext | None = None,
        preflight: Callable[[InstallerConfig], None] | None = None,
    ):
        self.config = config.with_generated_keys()
        self.log = log or LeveledLogger()
        self.redactor = self.log.redactor
        self.transcript = transcript
        self.executor = Executor(terminal, context)
        self.preflight = preflight

        # Secrets must be known before anything is logged
        self.redactor.add_many(redaction_values(self.config))
        if not self.config.install.redact:
            self.redactor.turn_off()

    def __repr__(self) -> str:
        return f"<Installer executor={self.executor!r}>"

    def phases(self) -> list[str]:
        """The phases an install runs for this config, in order."""
        db = self.config.install.db
        plan = ["bootstrap", "installerprep"]
        if db.local:
            if not db.exists:
                plan.append("installdb")
            plan.append("startdb")
        else:
            plan.append("installdbclient")
        plan += ["prepdb", "prepdjango", "createsettings", "setupdojo"]
        return plan

    def build(self, phase: str) -> CommandPackage:
        """Build the package for ``phase`` wired to the shared outputs."""
        pkg = build_package(phase, self.config, redactor=self.redactor, log=self.log)
        if self.transcript is not None:
            pkg.set_transcript(self.transcript)
            pkg.turn_on_transcript()
        return pkg

    def run_phase(self, phase: str, target_id: str, strategy: str = "error") -> PhaseResult:
        """Run one phase.

        Raises:
            UnknownPhaseError: No such phase in the catalog.
            TargetNotFoundError: The phase does not support ``target_id``.
            CommandFailedError: A command failed under ``strategy``'s policy.
        """
        heading, done = PHASE_MESSAGES.get(phase, (f"Running {phase}", f"{phase} complete"))
        self.log.section(heading)
        self.log.info(f"Starting phase {phase} for {target_id}")

        pkg = self.build(phase)
        output = self.executor.run(pkg, target_id, strategy) or b""

        self.log.status(done)
        self.log.info(f"Phase {phase} complete")
        return PhaseResult(phase=phase, ok=True, output=output)

    def describe_phase(self, phase: str, target_id: str) -> PhaseResult:
        """List the (redacted) commands ``phase`` would run, without running them."""
        heading, _ = PHASE_MESSAGES.get(phase, (f"Running {phase}", ""))
        self.log.section(f"{heading} (dry run)")

        pkg = self.build(phase)
        target = find_target(pkg, target_id)
        commands = [self.redactor.redact(c.text) for c in target.commands]
        for text in commands:
            self.log.status(text)
        return PhaseResult(phase=phase, ok=True, commands=commands)

    def install(self, target_id: str, dry_run: bool = False) -> InstallReport:
        """Run every phase in order, stopping at the first failure.

        Raises:
            InstallError: A phase failed; carries the partial report.
        """
        report = InstallReport(target=target_id, dry_run=dry_run)
        self.log.info(f"Installing DefectDojo {self.config.install.version} on {target_id}")

        if self.preflight is not None and not dry_run:
            self.log.section("Checking installer prerequisites")
            try:
                self.preflight(self.config)
            except PreflightError as e:
                message = self.redactor.redact(str(e))
                report.phases.append(PhaseResult(phase="preflight", error=message))
                self.log.error(f"Pre-flight check failed: {message}")
                raise InstallError(message, phase="preflight", report=report) from e
            self.log.status("Installer prerequisites met")

        for phase in self.phases():
            try:
                if dry_run:
                    result = self.describe_phase(phase, target_id)
                else:
                    result = self.run_phase(phase, target_id)
            except (CommandFailedError, TargetNotFoundError) as e:
                message = self.redactor.redact(str(e))
                report.phases.append(PhaseResult(
                    phase=phase,
                    error=message,
                    output=getattr(e, "output", b""),
                ))
                self.log.error(f"Phase {phase} failed: {message}")
                raise InstallError(message, phase=phase, report=report) from e
            report.phases.append(result)

        self.log.info("Install complete")
        return report
