"""
Tests for the pre-flight checks — root privileges and the Python interpreter.
"""

import sys
from pathlib import Path

import pytest

from src.core.models.config import InstallerConfig
from src.core.services.preflight import (
    PreflightError,
    check_privileges,
    check_python,
    python_version,
)


def _fake_python(tmp_path: Path, body: str) -> str:
    path = tmp_path / "python-fake"
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(0o755)
    return str(path)


class TestPrivileges:
    def test_root_passes(self):
        check_privileges(InstallerConfig(), euid=0)

    def test_non_root_fails(self):
        with pytest.raises(PreflightError, match="must be run as root or with sudo"):
            check_privileges(InstallerConfig(), euid=1000)

    def test_user_install_skips_check(self):
        config = InstallerConfig.model_validate({"options": {"user_install": True}})
        check_privileges(config, euid=1000)


class TestPython:
    def test_current_interpreter(self):
        version = check_python(sys.executable)
        assert version.startswith(f"{sys.version_info.major}.{sys.version_info.minor}.")

    def test_python2_rejected(self, tmp_path: Path):
        # Python 2 reports its version on stderr
        fake = _fake_python(tmp_path, 'echo "Python 2.7.18" >&2')
        assert python_version(fake) == "2.7.18"
        with pytest.raises(PreflightError, match="Python 3 is required"):
            check_python(fake)

    def test_missing_interpreter(self):
        with pytest.raises(PreflightError, match="Unable to find"):
            python_version("no-such-python-here")

    def test_interpreter_that_fails(self, tmp_path: Path):
        fake = _fake_python(tmp_path, "exit 3")
        with pytest.raises(PreflightError, match="Unable to run"):
            python_version(fake)

    def test_silent_interpreter(self, tmp_path: Path):
        fake = _fake_python(tmp_path, "exit 0")
        with pytest.raises(PreflightError, match="printed nothing"):
            python_version(fake)
