"""
dojo-installer — CLI entrypoint.

Usage:
    python -m src.main --help
    python -m src.main install --dry-run
    python -m src.main run bootstrap --target ubuntu:22.04
    python -m src.main config check
"""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import click

from src import __version__
from src.core.observability.logging_config import LoggingSetupError, setup_logging

if TYPE_CHECKING:
    from src.core.observability.leveled import LeveledLogger
    from src.core.use_cases.install import Installer


@dataclass
class Runtime:
    """Everything a command needs to run phases."""

    installer: Installer
    log: LeveledLogger
    target: str


@click.group()
@click.version_option(version=__version__, prog_name="dojo-install")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose console logging.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress operator output (logs are still written).")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option("--trace", is_flag=True, help="Write trace lines to the install log.")
@click.option("--no-redact", is_flag=True, help="Do not redact secrets from logs and output.")
@click.option("--transcript", is_flag=True, help="Also write every command and its output to cmd-output_<ns>.log.")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to dojoConfig.yml (default: auto-detect).",
)
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory for install logs (default: options.log_dir from the config).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    trace: bool,
    no_redact: bool,
    transcript: bool,
    config_path: str | None,
    log_dir: str | None,
) -> None:
    """dojo-install — unattended DefectDojo installer."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["trace"] = trace
    ctx.obj["no_redact"] = no_redact
    ctx.obj["transcript"] = transcript
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["log_dir"] = Path(log_dir) if log_dir else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("DOJO_LOG_LEVEL", "WARNING")

    try:
        setup_logging(
            level=level,
            log_file=os.environ.get("DOJO_LOG_FILE"),
            log_file_level=os.environ.get("DOJO_LOG_FILE_LEVEL"),
        )
    except LoggingSetupError as e:
        _fatal(str(e))


# ── Shared setup ────────────────────────────────────────────────


def _fatal(message: str) -> None:
    """Boxed error banner for failures before the install log exists."""
    rule = "#" * 80
    click.echo("", err=True)
    click.secho(rule, fg="red", err=True)
    click.secho("  ERROR", fg="red", bold=True, err=True)
    for line in message.splitlines() or [""]:
        click.secho(f"  {line}", fg="red", err=True)
    click.secho(rule, fg="red", err=True)
    click.echo("", err=True)
    sys.exit(1)


def _load_config(ctx: click.Context):
    """Config file (if any) plus DD_* overrides; defaults when no file exists."""
    from src.core.config.loader import (
        ConfigError,
        apply_env_overrides,
        find_config_file,
        load_config,
    )
    from src.core.models.config import InstallerConfig

    path: Path | None = ctx.obj.get("config_path") or find_config_file()
    try:
        config = load_config(path) if path is not None else InstallerConfig()
        return apply_env_overrides(config)
    except ConfigError as e:
        _fatal(str(e))


def _runtime(ctx: click.Context, target: str | None) -> Runtime:
    """Open the logs, build the installer and resolve the target id."""
    from src.adapters.shell.command import LocalTerminal
    from src.core.observability.leveled import CommandTranscript, LeveledLogger
    from src.core.observability.logging_config import open_install_log, open_transcript_log
    from src.core.observability.redact import Redactor
    from src.core.services.detection import UnsupportedOSError, detect_target
    from src.core.services.preflight import run_preflight
    from src.core.use_cases.install import Installer

    config = _load_config(ctx)
    log_dir = ctx.obj.get("log_dir") or Path(config.options.log_dir)
    trace = ctx.obj.get("trace") or config.install.trace
    quiet = ctx.obj.get("quiet") or config.install.quiet

    try:
        install_logger = open_install_log(log_dir, trace=trace)
        transcript = None
        if ctx.obj.get("transcript") or config.options.transcript:
            transcript = CommandTranscript(open_transcript_log(log_dir))
    except LoggingSetupError as e:
        _fatal(f"{e}\nInstallation requires a logging directory.")

    redactor = Redactor(enabled=not ctx.obj.get("no_redact"))
    log = LeveledLogger(install_logger, redactor, trace_enabled=trace, quiet=quiet)

    # A pre-set terminal lets tests drive the CLI without shelling out
    terminal = ctx.obj.get("terminal") or LocalTerminal()
    # Tests swap the pre-flight checks out the same way
    preflight = ctx.obj.get("preflight", run_preflight)
    installer = Installer(config, terminal, log=log, transcript=transcript, preflight=preflight)

    if target is None:
        log.section("Determining OS for installation")
        try:
            target = detect_target().id
        except UnsupportedOSError as e:
            log.fail(str(e))
            sys.exit(1)
        log.status(f"OS was determined to be {target}")

    return Runtime(installer=installer, log=log, target=target)


# ── Commands ────────────────────────────────────────────────────


@cli.command()
@click.option("--target", "-t", default=None, help="Target id, e.g. ubuntu:22.04 (default: detect).")
@click.option("--dry-run", is_flag=True, help="List the commands of every phase without running them.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output the report as JSON.")
@click.pass_context
def install(ctx: click.Context, target: str | None, dry_run: bool, as_json: bool) -> None:
    """Run the full install, phase by phase.

    Examples:

        dojo-install install

        dojo-install --trace install --target ubuntu:22.04

        dojo-install install --dry-run
    """
    from src.core.use_cases.install import InstallError

    rt = _runtime(ctx, target)
    try:
        report = rt.installer.install(rt.target, dry_run=dry_run)
    except InstallError as e:
        if as_json:
            click.echo(json.dumps(e.report.to_dict(), indent=2))
        rt.log.fail(f"Phase '{e.phase}' failed:\n{e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    rt.log.status("")
    if dry_run:
        rt.log.status(f"Dry run complete: {len(report.phases)} phase(s) for {report.target}")
    else:
        rt.log.status(f"Successfully installed DefectDojo using dojo-install version {__version__}")


@cli.command()
@click.argument("phase")
@click.option("--target", "-t", default=None, help="Target id, e.g. ubuntu:22.04 (default: detect).")
@click.option(
    "--strategy",
    "-s",
    type=click.Choice(["combined", "error", "silent", "stdout", "stderr"]),
    default="error",
    show_default=True,
    help="Output capture and failure policy.",
)
@click.pass_context
def run(ctx: click.Context, phase: str, target: str | None, strategy: str) -> None:
    """Run a single install PHASE.

    Examples:

        dojo-install run bootstrap

        dojo-install run startdb --target debian:12 --strategy combined
    """
    from src.core.data.catalog import UnknownPhaseError
    from src.core.engine.errors import CommandFailedError, TargetNotFoundError

    rt = _runtime(ctx, target)
    try:
        result = rt.installer.run_phase(phase, rt.target, strategy=strategy)
    except (UnknownPhaseError, TargetNotFoundError, CommandFailedError) as e:
        rt.log.fail(rt.log.redactor.redact(str(e)))
        sys.exit(1)

    if result.output:
        rt.log.say(result.output.decode("utf-8", errors="replace").rstrip("\n"))


@cli.command()
@click.argument("phase", required=False)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def targets(phase: str | None, as_json: bool) -> None:
    """List supported targets, per phase."""
    from src.core.data.catalog import CATALOG

    listing = {
        key: list(by_target)
        for key, by_target in CATALOG.items()
        if phase is None or key.split(":", 1)[0] == phase
    }
    if not listing:
        click.secho(f"❌ Unknown phase: {phase}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(listing, indent=2))
        return

    for key, ids in listing.items():
        click.secho(f"{key}", bold=True)
        for target_id in ids:
            click.echo(f"   • {target_id}")


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def detect(as_json: bool) -> None:
    """Detect this host's install target."""
    from src.core.data.catalog import TARGETS
    from src.core.services.detection import UnsupportedOSError, detect_target

    try:
        found = detect_target()
    except UnsupportedOSError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    supported = found.id in TARGETS
    if as_json:
        click.echo(json.dumps({"id": found.id, "distro": found.distro,
                               "release": found.release, "supported": supported}, indent=2))
        return

    click.echo(found.id)
    if not supported:
        click.secho(f"⚠️  {found.id} is not a supported install target", fg="yellow")
        sys.exit(1)


@cli.group()
def config() -> None:
    """Installer configuration commands."""


@config.command("init")
@click.argument("path", type=click.Path(dir_okay=False), default="dojoConfig.yml")
@click.option("--force", is_flag=True, help="Overwrite an existing file.")
def config_init(path: str, force: bool) -> None:
    """Write a config file with every default value."""
    from src.core.config.loader import ConfigError, write_default_config

    try:
        written = write_default_config(Path(path), overwrite=force)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)
    click.secho(f"✅ Wrote {written}", fg="green")


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate dojoConfig.yml configuration."""
    from src.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)
        return

    if result.valid:
        assert result.config is not None  # guaranteed when valid
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Version:   {result.config.install.version}")
        click.echo(f"   Database:  {result.config.install.db.engine}")
        click.echo(f"   Root:      {result.config.install.root}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


if __name__ == "__main__":
    cli()
