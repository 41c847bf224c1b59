"""
Logging configuration — central setup for all entrypoints.

Called once at startup by main.py.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Levels are resolved in precedence order:
    CLI flag  >  DOJO_LOG_LEVEL env var  >  WARNING (default)

The installer additionally writes two files in its log directory:
    dojo-install_<ns>.log   leveled install log (see leveled.py)
    cmd-output_<ns>.log     command transcript (optional)
"""

from __future__ import annotations

import logging
import sys
import time
from pathlib import Path

# Below DEBUG: per-step tracing of the install
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

# ── Format strings ──────────────────────────────────────────────

# Console: bare messages unless debugging the installer itself
_FMT_CONSOLE = "%(levelname)s: %(message)s"
_FMT_CONSOLE_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s"
_DATEFMT_CONSOLE = "%H:%M:%S"

# DOJO_LOG_FILE output: always full detail
_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# Install log: level prefix then message, like the transcript
_FMT_INSTALL = "%(levelname)-8s %(asctime)s %(message)s"
_DATEFMT_INSTALL = "%Y/%m/%d %H:%M:%S"

INSTALL_LOGGER = "dojo.install"
TRANSCRIPT_LOGGER = "dojo.transcript"


class LoggingSetupError(Exception):
    """Raised when a log directory or log file cannot be created."""


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure diagnostic logging for the installer process.

    Module loggers (``src.*``) go to stderr, and optionally to
    ``log_file``. The ``dojo.*`` loggers are the installer's own records
    and never reach the console: they get their files from
    ``open_install_log`` / ``open_transcript_log``.

    Args:
        level: Console level name (TRACE, DEBUG, INFO, WARNING, ERROR).
            Unknown names fall back to WARNING.
        log_file: Optional path to a diagnostic log file.
        log_file_level: Level for ``log_file``; defaults to ``level``.

    Raises:
        LoggingSetupError: If ``log_file`` cannot be opened.
    """
    numeric_level = _parse_level(level)

    if numeric_level <= logging.DEBUG:
        console_fmt = logging.Formatter(_FMT_CONSOLE_DEBUG, datefmt=_DATEFMT_CONSOLE)
    else:
        console_fmt = logging.Formatter(_FMT_CONSOLE)
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(console_fmt)
    handlers: list[logging.Handler] = [console]

    effective_level = numeric_level
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)
        fh = _file_handler(Path(log_file), logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        fh.setLevel(file_level)
        handlers.append(fh)

    root = logging.getLogger()
    for old in root.handlers[:]:
        root.removeHandler(old)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(effective_level)

    # Install records stay in their own files even before they are opened
    for name in (INSTALL_LOGGER, TRANSCRIPT_LOGGER):
        logging.getLogger(name).propagate = False

    # A failing log write must never abort an install
    logging.raiseExceptions = False


def open_install_log(log_dir: str | Path, trace: bool = True) -> logging.Logger:
    """Create ``<log_dir>/dojo-install_<ns>.log`` and a logger writing to it.

    The returned logger does not propagate to the root logger: the
    install log is a record of the install, not console output.

    Raises:
        LoggingSetupError: If the directory or file cannot be created.
    """
    path = _timestamped_file(log_dir, "dojo-install")
    handler = _file_handler(path, logging.Formatter(_FMT_INSTALL, datefmt=_DATEFMT_INSTALL))

    logger = logging.getLogger(INSTALL_LOGGER)
    _replace_handlers(logger, handler)
    logger.setLevel(TRACE if trace else logging.INFO)
    return logger


def open_transcript_log(log_dir: str | Path) -> logging.Logger:
    """Create ``<log_dir>/cmd-output_<ns>.log`` for command transcripts.

    Raises:
        LoggingSetupError: If the directory or file cannot be created.
    """
    path = _timestamped_file(log_dir, "cmd-output")
    handler = _file_handler(path, logging.Formatter("%(asctime)s %(message)s", datefmt=_DATEFMT_INSTALL))

    logger = logging.getLogger(TRANSCRIPT_LOGGER)
    _replace_handlers(logger, handler)
    logger.setLevel(logging.INFO)
    return logger


def log_file_path(logger: logging.Logger) -> Path | None:
    """Return the file a logger created by this module writes to."""
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler):
            return Path(handler.baseFilename)
    return None


def _timestamped_file(log_dir: str | Path, stem: str) -> Path:
    directory = Path(log_dir)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise LoggingSetupError(
            f"Error creating installer logging directory {directory}: {e}"
        ) from e
    return directory / f"{stem}_{time.time_ns()}.log"


def _file_handler(path: Path, formatter: logging.Formatter) -> logging.FileHandler:
    try:
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as e:
        raise LoggingSetupError(f"Failed to open log file {path}: {e}") from e
    handler.setFormatter(formatter)
    return handler


def _replace_handlers(logger: logging.Logger, handler: logging.Handler) -> None:
    for old in logger.handlers[:]:
        logger.removeHandler(old)
        old.close()
    logger.addHandler(handler)
    logger.propagate = False


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    if level.upper() == "TRACE":
        return TRACE
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
