"""
Pre-flight checks — things that must hold before any phase runs.

    privileges   the installer runs as root, unless options.user_install
    python       a Python 3 interpreter is on PATH for the virtualenv

Each check raises ``PreflightError`` with a message fit for the
failure banner.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess

from src.core.models.config import InstallerConfig

logger = logging.getLogger(__name__)


class PreflightError(Exception):
    """Raised when the host is not ready for an install."""


def check_privileges(config: InstallerConfig, euid: int | None = None) -> None:
    """Require root unless the config allows a user install.

    Args:
        euid: Override for ``os.geteuid()`` (tests).
    """
    if config.options.user_install:
        logger.debug("User install allowed, skipping privilege check")
        return
    if euid is None:
        euid = os.geteuid()
    if euid != 0:
        raise PreflightError(
            "This program must be run as root or with sudo\n"
            "  Please correct and run installer again"
        )


def python_version(python: str = "python3", timeout: float = 10) -> str:
    """Return ``python --version`` output, e.g. ``"3.11.4"``.

    Raises:
        PreflightError: If the interpreter is missing or its version cannot be read.
    """
    path = shutil.which(python)
    if path is None:
        raise PreflightError(f"Unable to find {python} on the PATH")
    try:
        result = subprocess.run(
            [path, "--version"],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
    except (subprocess.SubprocessError, OSError) as e:
        raise PreflightError(f"Unable to run {python} --version: {e}") from e

    # Python 2 printed its version on stderr
    text = (result.stdout or result.stderr).strip()
    if not text:
        raise PreflightError(f"{python} --version printed nothing")
    return text.split()[-1]


def check_python(python: str = "python3") -> str:
    """Require a Python 3 interpreter; returns its version."""
    version = python_version(python)
    if not version.startswith("3."):
        raise PreflightError(
            f"Python 3 is required, {python} is version {version}\n"
            "  Please install Python 3 and run installer again"
        )
    logger.debug("Found %s %s", python, version)
    return version


def run_preflight(config: InstallerConfig) -> None:
    """Run every pre-flight check, stopping at the first failure."""
    check_privileges(config)
    check_python()
