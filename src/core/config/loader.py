"""
Configuration loader — reads dojoConfig.yml into the config model.

This is the primary entry point for loading installer configuration.
It reads YAML, validates against Pydantic schemas, and applies DD_*
environment variable overrides on top.

Precedence:
    DD_* environment variables  >  dojoConfig.yml  >  model defaults
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import ValidationError

from src.core.models.config import InstallerConfig

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "dojoConfig.yml"

# Env var → (section path, field, type)
ENV_OVERRIDES: dict[str, tuple[str, str, type]] = {
    "DD_ADMIN_USER": ("install.admin", "user", str),
    "DD_ADMIN_PASSWORD": ("install.admin", "password", str),
    "DD_ADMIN_MAIL": ("install.admin", "email", str),
    "DD_ALLOWED_HOSTS": ("settings", "allowed_hosts", str),
    "DD_CELERY_BROKER_PASSWORD": ("settings", "celery_broker_password", str),
    "DD_CELERY_BROKER_PORT": ("settings", "celery_broker_port", int),
    "DD_CREDENTIAL_AES_256_KEY": ("settings", "credential_aes256_key", str),
    "DD_CSRF_COOKIE_HTTPONLY": ("settings", "csrf_cookie_httponly", bool),
    "DD_DATABASE_HOST": ("install.db", "host", str),
    "DD_DATABASE_NAME": ("install.db", "name", str),
    "DD_DATABASE_PASSWORD": ("install.db", "password", str),
    "DD_DATABASE_PORT": ("install.db", "port", int),
    "DD_DATABASE_USER": ("install.db", "user", str),
    "DD_DEBUG": ("settings", "debug", bool),
    "DD_DJANGO_ADMIN_ENABLED": ("settings", "django_admin_enabled", bool),
    "DD_SECRET_KEY": ("settings", "secret_key", str),
    "DD_SECURE_SSL_REDIRECT": ("settings", "secure_ssl_redirect", bool),
    "DD_SESSION_COOKIE_HTTPONLY": ("settings", "session_cookie_httponly", bool),
    "DD_SITE_ID": ("settings", "site_id", int),
    "DD_SOCIAL_AUTH_GOOGLE_OAUTH2_KEY": ("settings", "google_oauth2_key", str),
    "DD_SOCIAL_AUTH_GOOGLE_OAUTH2_SECRET": ("settings", "google_oauth2_secret", str),
    "DD_SOCIAL_AUTH_OKTA_OAUTH2_KEY": ("settings", "okta_oauth2_key", str),
    "DD_SOCIAL_AUTH_OKTA_OAUTH2_SECRET": ("settings", "okta_oauth2_secret", str),
    "DD_TIME_ZONE": ("settings", "time_zone", str),
    "DD_TRACK_MIGRATIONS": ("settings", "track_migrations", bool),
    "DD_WHITENOISE": ("settings", "whitenoise", bool),
}

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


class ConfigError(Exception):
    """Raised when installer configuration is invalid or missing."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for dojoConfig.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to dojoConfig.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None) -> InstallerConfig:
    """Load and validate installer configuration.

    Args:
        path: Explicit path to dojoConfig.yml. If None, searches upward.

    Returns:
        Validated InstallerConfig model.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_config_file()

    if path is None:
        raise ConfigError(
            f"No {CONFIG_FILE} found. "
            "Run 'dojo-install config init' to create one, or specify --config."
        )

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading installer config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = InstallerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid installer configuration: {e}") from e

    logger.info("Loaded installer config for version %s", config.install.version)
    return config


def apply_env_overrides(
    config: InstallerConfig,
    environ: Mapping[str, str] | None = None,
) -> InstallerConfig:
    """Return a copy of ``config`` with DD_* environment values applied.

    Only the variables listed in ``ENV_OVERRIDES`` are honoured.

    Raises:
        ConfigError: If a boolean or integer variable cannot be parsed,
            or the result fails validation (e.g. a port out of range).
    """
    env = os.environ if environ is None else environ
    matched = sorted(name for name in ENV_OVERRIDES if name in env)
    if not matched:
        return config

    data = config.model_dump()
    for name in matched:
        section_path, field, kind = ENV_OVERRIDES[name]
        section = data
        for key in section_path.split("."):
            section = section[key]
        section[field] = _convert(name, env[name], kind)
        logger.debug("Config override from %s", name)

    try:
        return InstallerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid value from environment: {e}") from e


def write_default_config(path: Path, overwrite: bool = False) -> Path:
    """Write a config file holding every default value.

    Raises:
        ConfigError: If the file exists (and ``overwrite`` is False)
            or cannot be written.
    """
    if path.exists() and not overwrite:
        raise ConfigError(f"Refusing to overwrite existing config: {path}")

    content = yaml.safe_dump(InstallerConfig().model_dump(), sort_keys=False)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot write {path}: {e}") from e

    logger.info("Wrote default config to %s", path)
    return path


def _convert(name: str, value: str, kind: type) -> str | int | bool:
    if kind is bool:
        if value in _TRUE:
            return True
        if value in _FALSE:
            return False
        raise ConfigError(
            f"{name} environmental variable was not a boolean. "
            "Valid values are 1, t, T, TRUE, true, True, 0, f, F, FALSE, false, False."
        )
    if kind is int:
        try:
            return int(value)
        except ValueError as e:
            raise ConfigError(
                f"{name} provided via environmental variable isn't a valid number"
            ) from e
    return value
