"""
Shared test fixtures and configuration.
"""

import logging
from pathlib import Path

import pytest

from src.adapters.mock import MockTerminal
from src.core.models.package import CommandPackage
from src.core.observability.leveled import LeveledLogger
from src.core.observability.redact import Redactor


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """setup_logging() replaces root handlers; put them back after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def redactor() -> Redactor:
    return Redactor()


@pytest.fixture
def install_logger() -> logging.Logger:
    """An isolated logger at TRACE level, captured by caplog."""
    logger = logging.getLogger("tests.install")
    logger.setLevel(1)
    logger.propagate = True
    return logger


@pytest.fixture
def leveled(install_logger: logging.Logger, redactor: Redactor) -> LeveledLogger:
    return LeveledLogger(install_logger, redactor, trace_enabled=True, quiet=False)


@pytest.fixture
def terminal() -> MockTerminal:
    return MockTerminal(output=b"ok\n")


@pytest.fixture
def make_package(leveled: LeveledLogger):
    """Build a one-target package from (text, fatal) pairs or command kwargs."""

    def _make(commands=(), target_id: str = "ubuntu:22.04", label: str = "db-prep") -> CommandPackage:
        pkg = CommandPackage(label, log=leveled)
        pkg.add_target(target_id, *target_id.split(":"), "linux", "bash")
        for index, raw in enumerate(commands):
            if isinstance(raw, str):
                raw = {"text": raw}
            raw = {"error_message": f"step {index + 1} failed", **raw}
            pkg.add_command(target_id, **raw)
        return pkg

    return _make
