"""
OS detection — work out which catalog target this host is.

Reads the freedesktop ``/etc/os-release`` file (falling back to
``/etc/lsb-release``) and builds the ``distro:release`` identifier the
command catalog is keyed by.

Detection only names the host; whether that name is a supported
target is decided by the catalog lookup.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

OS_RELEASE = Path("/etc/os-release")
LSB_RELEASE = Path("/etc/lsb-release")


class UnsupportedOSError(Exception):
    """Raised when this host cannot be identified as a Linux target."""


@dataclass(frozen=True)
class TargetOS:
    """The detected host platform."""

    id: str          # "ubuntu:22.04"
    os: str          # "linux"
    distro: str      # "ubuntu"
    release: str     # "22.04"


def parse_release_file(text: str) -> dict[str, str]:
    """Parse KEY=value lines, stripping quotes. Comments and blanks are skipped."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip().strip("\"'")
    return values


def detect_target(
    os_release_path: Path | None = None,
    platform: str | None = None,
) -> TargetOS:
    """Detect the install target for this host.

    Args:
        os_release_path: Override for ``/etc/os-release`` (tests).
        platform: Override for ``sys.platform`` (tests).

    Raises:
        UnsupportedOSError: Not Linux, or no usable release file.
    """
    platform = platform or sys.platform
    if not platform.startswith("linux"):
        raise UnsupportedOSError(f"{platform} is not a supported installation platform")

    if os_release_path is not None:
        candidates = [(os_release_path, "ID", "VERSION_ID")]
    else:
        candidates = [
            (OS_RELEASE, "ID", "VERSION_ID"),
            (LSB_RELEASE, "DISTRIB_ID", "DISTRIB_RELEASE"),
        ]

    for path, distro_key, release_key in candidates:
        if not path.is_file():
            logger.debug("Release file %s not present", path)
            continue
        try:
            values = parse_release_file(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise UnsupportedOSError(f"Cannot read {path}: {e}") from e

        distro = values.get(distro_key, "").lower()
        release = values.get(release_key, "")
        if not distro or not release:
            raise UnsupportedOSError(
                f"Unable to determine the Linux install target from {path}"
            )

        target = TargetOS(id=f"{distro}:{release}", os="linux", distro=distro, release=release)
        logger.info("Detected install target %s from %s", target.id, path)
        return target

    raise UnsupportedOSError("Unable to determine the Linux install target")
