"""
Installer configuration model — loaded from dojoConfig.yml.

Three sections:
    install   what to install and where (versions, paths, DB, OS user, admin)
    settings  values for the application's settings / env file
    options   installer internals you should rarely need to change

Every secret in here is registered with the Redactor before anything
is logged (see ``sensitive_values``).
"""

from __future__ import annotations

import base64
import secrets
from typing import Literal

from pydantic import BaseModel, Field

# Shorter secret_key / credential_aes256_key values are replaced with random ones
MIN_KEY_LENGTH = 28


class DBTarget(BaseModel):
    """Database engine and credentials."""

    engine: Literal["PostgreSQL", "MySQL"] = "PostgreSQL"
    local: bool = True           # install the DB engine on this host
    exists: bool = False         # DB engine already installed
    ruser: str = "postgres"      # DB admin (root) user
    rpass: str = ""
    name: str = "dojodb"
    user: str = "dojodbusr"
    password: str = ""
    host: str = "localhost"
    port: int = Field(default=5432, ge=1, le=65535)
    drop: bool = False           # drop an existing DB of the same name


class OSTarget(BaseModel):
    """OS account that owns the install."""

    user: str = "dojo"
    password: str = ""
    group: str = "dojo"


class AdminTarget(BaseModel):
    """Initial application admin."""

    user: str = "admin"
    password: str = ""
    email: str = "admin@localhost"


class InstallConfig(BaseModel):
    version: str = "2.30.0"          # release to download
    source_install: bool = False     # git clone source_branch instead of the release tarball
    source_branch: str = "master"
    quiet: bool = False
    trace: bool = False
    redact: bool = True
    root: str = "/opt/dojo"
    source: str = "django-DefectDojo"    # application directory under root
    sample_data: bool = False        # load the sample data fixture
    db: DBTarget = Field(default_factory=DBTarget)
    os: OSTarget = Field(default_factory=OSTarget)
    admin: AdminTarget = Field(default_factory=AdminTarget)


class SettingsConfig(BaseModel):
    """Values written into the application's settings."""

    allowed_hosts: str = "localhost"
    debug: bool = False
    django_admin_enabled: bool = False
    time_zone: str = "UTC"
    track_migrations: bool = True
    whitenoise: bool = False
    session_cookie_httponly: bool = True
    csrf_cookie_httponly: bool = True
    secure_ssl_redirect: bool = False
    site_id: int = 1
    celery_broker_port: int = Field(default=5672, ge=1, le=65535)

    # Secrets
    secret_key: str = ""
    credential_aes256_key: str = ""
    celery_broker_password: str = ""
    google_oauth2_key: str = ""
    google_oauth2_secret: str = ""
    okta_oauth2_key: str = ""
    okta_oauth2_secret: str = ""


class OptionsConfig(BaseModel):
    clone_url: str = "https://github.com/DefectDojo/django-DefectDojo.git"
    release_url: str = "https://github.com/DefectDojo/django-DefectDojo/archive/"
    yarn_gpg: str = "https://dl.yarnpkg.com/debian/pubkey.gpg"
    yarn_repo: str = "deb https://dl.yarnpkg.com/debian/ stable main"
    node_url: str = "https://deb.nodesource.com/setup_18.x"
    tmpdir: str = "/tmp/.dojo-temp/"
    log_dir: str = "logs"
    transcript: bool = False     # write cmd-output_<ns>.log
    user_install: bool = False   # allow running without root


class InstallerConfig(BaseModel):
    """Root configuration object."""

    install: InstallConfig = Field(default_factory=InstallConfig)
    settings: SettingsConfig = Field(default_factory=SettingsConfig)
    options: OptionsConfig = Field(default_factory=OptionsConfig)

    def sensitive_values(self) -> list[str]:
        """All non-empty secrets, in a stable order, for the Redactor."""
        candidates = [
            self.install.db.rpass,
            self.install.db.password,
            self.install.os.password,
            self.install.admin.password,
            self.settings.celery_broker_password,
            self.settings.secret_key,
            self.settings.credential_aes256_key,
            self.settings.google_oauth2_key,
            self.settings.google_oauth2_secret,
            self.settings.okta_oauth2_key,
            self.settings.okta_oauth2_secret,
        ]
        return [value for value in candidates if value]

    def with_generated_keys(self) -> InstallerConfig:
        """Return a copy whose application keys are long enough to use.

        A ``secret_key`` or ``credential_aes256_key`` shorter than
        ``MIN_KEY_LENGTH`` is replaced with 42 random bytes, base64 encoded.
        The original is returned unchanged when both keys are usable.
        """
        updates = {
            name: _random_key()
            for name in ("secret_key", "credential_aes256_key")
            if len(getattr(self.settings, name)) < MIN_KEY_LENGTH
        }
        if not updates:
            return self
        settings = self.settings.model_copy(update=updates)
        return self.model_copy(update={"settings": settings})


def _random_key() -> str:
    return base64.b64encode(secrets.token_bytes(42)).decode("ascii")
