"""
Config check use case — validate dojoConfig.yml and report issues.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from src.core.config.loader import (
    CONFIG_FILE,
    ConfigError,
    apply_env_overrides,
    find_config_file,
    load_config,
)
from src.core.models.config import MIN_KEY_LENGTH, InstallerConfig


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: InstallerConfig | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "version": self.config.install.version if self.config else None,
            "db_engine": self.config.install.db.engine if self.config else None,
        }


def check_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ConfigCheckResult:
    """Validate installer configuration and report issues.

    Args:
        config_path: Optional explicit path to dojoConfig.yml.
        environ: Environment to take DD_* overrides from (default: os.environ).

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
    if config_path is None:
        result.errors.append(f"No {CONFIG_FILE} found.")
        return result
    result.config_path = config_path

    # Load, validate and apply overrides
    try:
        config = apply_env_overrides(load_config(config_path), environ)
        result.config = config
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    # Semantic checks
    install = config.install
    if not install.admin.password:
        result.warnings.append("No admin password set; the superuser will have an empty password.")

    if not install.db.password:
        result.warnings.append("No database password set.")

    if len(config.settings.secret_key) < MIN_KEY_LENGTH:
        result.warnings.append("Secret key missing or too short; a random one will be generated.")

    if not install.db.local and install.db.host in ("localhost", "127.0.0.1"):
        result.warnings.append(
            f"Database is marked remote but host is {install.db.host}."
        )

    if install.db.engine == "MySQL" and install.db.port == 5432:
        result.warnings.append("MySQL configured with the PostgreSQL default port 5432.")

    if not install.redact:
        result.warnings.append("Redaction is off; secrets will be written to the logs.")

    result.valid = len(result.errors) == 0
    return result
